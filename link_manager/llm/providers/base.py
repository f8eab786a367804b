"""
Summarizer capability interface.

The pipeline works with or without an LLM. Instead of passing ``None``
around, an unconfigured installation gets a ``DisabledSummarizer`` whose
``available`` flag is False; the orchestrator checks that flag once and
skips the summarizing stage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class SummaryResult:
    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class MetadataSuggestion:
    """Suggested category and tags. Empty values mean no suggestion."""

    category: str = ""
    tags: list[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class Summarizer(ABC):
    """Provider interface for summaries and metadata suggestions.

    Implementations must not raise from ``summarize`` or
    ``suggest_metadata``: a failed call returns an empty result so the
    pipeline can continue without AI output.
    """

    @property
    @abstractmethod
    def available(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def summarize(self, title: str, text: str) -> SummaryResult:
        """Return a 2-3 sentence summary of the page."""
        raise NotImplementedError

    @abstractmethod
    async def suggest_metadata(self, title: str, text: str) -> MetadataSuggestion:
        """Return one category and 3-5 lower-cased tags."""
        raise NotImplementedError


class DisabledSummarizer(Summarizer):
    """Stand-in used when no API key is configured."""

    @property
    def available(self) -> bool:
        return False

    async def summarize(self, title: str, text: str) -> SummaryResult:
        return SummaryResult()

    async def suggest_metadata(self, title: str, text: str) -> MetadataSuggestion:
        return MetadataSuggestion()
