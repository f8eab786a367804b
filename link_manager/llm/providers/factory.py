"""Provider factory and registry for summarizer backends."""

from __future__ import annotations

import logging

from ...config import ProviderConfig, SummaryConfig, get_api_key
from .base import DisabledSummarizer, Summarizer
from .openai_compatible import OpenAISummarizer


ProviderBuilder = type[OpenAISummarizer]

_PROVIDER_REGISTRY: dict[str, ProviderBuilder] = {
    "openai": OpenAISummarizer,
    "openai_compatible": OpenAISummarizer,
    "openai-compatible": OpenAISummarizer,
}


def available_providers() -> list[str]:
    """Return the set of registered provider names."""
    return sorted(_PROVIDER_REGISTRY.keys())


def create_summarizer(
    provider_cfg: ProviderConfig,
    summary_cfg: SummaryConfig,
    logger: logging.Logger | None = None,
) -> Summarizer:
    """Build a summarizer from runtime config.

    A missing API key is not an error: the disabled variant is returned and
    the pipeline skips summarization.
    """
    name = provider_cfg.name.lower().strip()
    builder = _PROVIDER_REGISTRY.get(name)
    if builder is None:
        supported = ", ".join(available_providers())
        raise ValueError(f"Unsupported provider: {provider_cfg.name}. Supported: {supported}")
    api_key = get_api_key(provider_cfg)
    if not api_key:
        return DisabledSummarizer()
    return builder(provider_cfg, summary_cfg, api_key, logger)
