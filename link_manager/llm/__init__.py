"""
LLM summarization.

Summaries and category/tag suggestions are optional: without an API key
the factory hands out a disabled summarizer and the pipeline skips the
stage.
"""

from .metadata import DEFAULT_CATEGORY, DEFAULT_TAGS, normalize_tags, parse_metadata
from .providers import (
    DisabledSummarizer,
    MetadataSuggestion,
    OpenAISummarizer,
    Summarizer,
    SummaryResult,
    available_providers,
    create_summarizer,
)
from .usage import estimate_cost, format_cost

__all__ = [
    "DEFAULT_CATEGORY",
    "DEFAULT_TAGS",
    "DisabledSummarizer",
    "MetadataSuggestion",
    "OpenAISummarizer",
    "Summarizer",
    "SummaryResult",
    "available_providers",
    "create_summarizer",
    "estimate_cost",
    "format_cost",
    "normalize_tags",
    "parse_metadata",
]
