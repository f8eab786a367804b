"""Shared fixtures and stubs for pipeline tests."""

from __future__ import annotations

import asyncio

import pytest

from link_manager.core.errors import FetchError
from link_manager.fetch.fetcher import FetchResult, race_cancel
from link_manager.llm.providers.base import MetadataSuggestion, Summarizer, SummaryResult
from link_manager.store.database import ContentStore


class FakeFetcher:
    """Serves canned HTML per URL and counts calls."""

    def __init__(self, pages: dict[str, str] | None = None, gate: asyncio.Event | None = None):
        self.pages = pages or {}
        self.calls: list[str] = []
        self.gate = gate

    async def fetch(self, url, cancel=None):
        self.calls.append(url)
        if self.gate is not None:
            await race_cancel(self.gate.wait(), cancel, url)
        if url not in self.pages:
            raise FetchError("unexpected status code: 404", url, status_code=404)
        return FetchResult(url=url, status_code=200, text=self.pages[url])


class FakeSummarizer(Summarizer):
    """Returns fixed output and records the calls it received."""

    def __init__(
        self,
        summary: str = "A short summary.",
        category: str = "Tech",
        tags: list[str] | None = None,
        delay: float = 0.0,
    ):
        self.summary = summary
        self.category = category
        self.tags = tags if tags is not None else ["python", "asyncio"]
        self.delay = delay
        self.summarize_calls = 0
        self.metadata_calls = 0

    @property
    def available(self) -> bool:
        return True

    async def summarize(self, title, text):
        self.summarize_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return SummaryResult(text=self.summary, input_tokens=100, output_tokens=20)

    async def suggest_metadata(self, title, text):
        self.metadata_calls += 1
        return MetadataSuggestion(category=self.category, tags=list(self.tags), input_tokens=50, output_tokens=10)


@pytest.fixture
def store(tmp_path):
    content_store = ContentStore(tmp_path / "lm.db")
    yield content_store
    content_store.close()
