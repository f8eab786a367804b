"""
Exception hierarchy for the ingestion pipeline.

Each exception carries an ``error_kind`` used by the orchestrator to label
the terminal ``failed`` event so callers can tell a network failure apart
from a duplicate URL without parsing messages.
"""

from __future__ import annotations


class LinkManagerError(Exception):
    """Base class for all link manager errors."""

    error_kind = "error"


class FetchError(LinkManagerError):
    """HTTP fetch failed.

    Attributes:
        url: The URL being fetched
        status_code: HTTP status of the last response, or None when the
            request never produced one (timeout, DNS, refused connection)
        transient: True for failures that could succeed on a later attempt
    """

    error_kind = "network"

    def __init__(
        self,
        message: str,
        url: str,
        status_code: int | None = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.transient = transient


class PipelineCancelledError(LinkManagerError):
    """The caller cancelled the pipeline while a stage was waiting."""

    error_kind = "cancelled"

    def __init__(self, url: str):
        super().__init__(f"canceled: {url}")
        self.url = url


class ExtractionError(LinkManagerError):
    """HTML could not be parsed or converted."""

    error_kind = "content"


class SummarizerError(LinkManagerError):
    """LLM provider call failed. Never escapes the summarizer."""

    error_kind = "summarizer"


class StoreError(LinkManagerError):
    """Generic persistence failure."""

    error_kind = "storage"


class DuplicateURLError(StoreError):
    """A link with the same URL already exists.

    Attributes:
        url: The conflicting URL
        existing_id: Row id of the stored link, when known
    """

    error_kind = "conflict"

    def __init__(self, url: str, existing_id: int | None = None):
        super().__init__(f"link already exists: {url}")
        self.url = url
        self.existing_id = existing_id


class LinkNotFoundError(StoreError):
    """No link matches the given id or URL."""

    error_kind = "not_found"
