"""OpenAI-compatible chat completions provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import ProviderConfig, SummaryConfig
from ...core.errors import SummarizerError
from ...logging_utils import log_event
from ..metadata import parse_metadata
from ..prompts import (
    METADATA_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_metadata_prompt,
    build_summary_prompt,
)
from .base import MetadataSuggestion, Summarizer, SummaryResult


class OpenAISummarizer(Summarizer):
    """Summarizer backed by a ``/chat/completions`` endpoint."""

    def __init__(
        self,
        cfg: ProviderConfig,
        summary_cfg: SummaryConfig,
        api_key: str | None,
        logger: logging.Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("Missing OpenAI API key")
        self.cfg = cfg
        self.summary_cfg = summary_cfg
        self.api_key = api_key
        self.logger = logger
        self._transport = transport

    @property
    def available(self) -> bool:
        return True

    async def summarize(self, title: str, text: str) -> SummaryResult:
        prompt = build_summary_prompt(title, text, self.summary_cfg.max_input_chars)
        try:
            content, input_tokens, output_tokens = await self._complete(
                SUMMARY_SYSTEM_PROMPT,
                prompt,
                max_tokens=self.summary_cfg.summary_max_tokens,
                temperature=self.summary_cfg.summary_temperature,
            )
        except SummarizerError as exc:
            self._log_failure("summarize", exc)
            return SummaryResult()
        return SummaryResult(text=content.strip(), input_tokens=input_tokens, output_tokens=output_tokens)

    async def suggest_metadata(self, title: str, text: str) -> MetadataSuggestion:
        prompt = build_metadata_prompt(title, text, self.summary_cfg.max_input_chars)
        try:
            content, input_tokens, output_tokens = await self._complete(
                METADATA_SYSTEM_PROMPT,
                prompt,
                max_tokens=self.summary_cfg.metadata_max_tokens,
                temperature=self.summary_cfg.metadata_temperature,
            )
        except SummarizerError as exc:
            self._log_failure("suggest_metadata", exc)
            return MetadataSuggestion()
        category, tags = parse_metadata(content)
        return MetadataSuggestion(
            category=category,
            tags=tags,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def _complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> tuple[str, int, int]:
        payload = {
            "model": self.cfg.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        data = await self._post(payload)
        content = _extract_text(data)
        if not content:
            raise SummarizerError("no completion returned")
        input_tokens, output_tokens = _extract_usage(data)
        log_event(
            self.logger,
            "LLM response",
            level=logging.DEBUG,
            event="llm_response",
            model=self.cfg.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return content, input_tokens, output_tokens

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.cfg.base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self.cfg.timeout_seconds,
                trust_env=self.cfg.trust_env,
                transport=self._transport,
            ) as client:
                resp = await client.post(url, headers=headers, json=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as exc:
            raise SummarizerError(f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise SummarizerError(f"invalid JSON from provider: {exc}") from exc

    def _log_failure(self, call: str, exc: Exception) -> None:
        log_event(
            self.logger,
            "LLM call failed",
            level=logging.WARNING,
            event="llm_error",
            call=call,
            model=self.cfg.model,
            error=str(exc),
        )


def _extract_text(data: dict[str, Any]) -> str:
    try:
        return data["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError):
        return ""


def _extract_usage(data: dict[str, Any]) -> tuple[int, int]:
    usage = data.get("usage") or {}
    if not isinstance(usage, dict):
        return 0, 0
    return int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)
