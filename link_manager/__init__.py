"""
Link Manager - fetch, summarize and index web pages for later.

This package turns a URL into a searchable record: the page is fetched,
reduced to Markdown, optionally summarized by an LLM, and stored in a
SQLite database whose full-text index is kept in lockstep with the links.

Main entry point is the CLI via the `lm` command.

Example:
    $ lm add https://example.com/article --tags python,async
"""

__all__ = ["__version__", "Pipeline", "ContentStore", "IngestRequest", "load_config"]
__version__ = "1.0.0"

from .config import load_config
from .core.types import IngestRequest
from .runner import Pipeline
from .store.database import ContentStore
