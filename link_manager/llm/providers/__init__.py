"""Summarizer provider implementations."""

from .base import DisabledSummarizer, MetadataSuggestion, Summarizer, SummaryResult
from .factory import available_providers, create_summarizer
from .openai_compatible import OpenAISummarizer

__all__ = [
    "DisabledSummarizer",
    "MetadataSuggestion",
    "OpenAISummarizer",
    "Summarizer",
    "SummaryResult",
    "available_providers",
    "create_summarizer",
]
