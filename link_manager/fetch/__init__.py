"""
Page fetching and extraction.

This package handles HTTP fetching and the HTML to Markdown conversion
used before a page is stored.
"""

from .extractor import Extractor, clean_markdown, truncate_text
from .fetcher import CancelToken, Fetcher, FetchResult, race_cancel

__all__ = [
    "CancelToken",
    "Extractor",
    "Fetcher",
    "FetchResult",
    "clean_markdown",
    "race_cancel",
    "truncate_text",
]
