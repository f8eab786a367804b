"""
Core data types for the link manager.

This module defines the records kept in the content store and the values
that flow through the ingestion pipeline:
- Link, Category, Tag, Task, Activity: persisted rows
- IngestRequest / IngestResult: pipeline input and terminal payload
- PipelineState / PipelineEvent: orchestrator state machine and its events
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LinkStatus(str, Enum):
    """Reading status of a stored link."""

    READ_LATER = "read_later"
    REMEMBER = "remember"
    ARCHIVED = "archived"


@dataclass
class Link:
    """A stored web page.

    Attributes:
        id: Row id assigned by the store
        url: Unique URL of the page (natural key)
        title: Page title, None when the page had none
        content: Extracted Markdown, truncated to the configured limit
        summary: LLM summary, None when summarization was unavailable
        status: Reading status, defaults to read-later
        created_at / updated_at / fetched_at / summarized_at: ISO 8601 UTC
    """

    id: int
    url: str
    title: str | None = None
    content: str | None = None
    summary: str | None = None
    status: LinkStatus = LinkStatus.READ_LATER
    created_at: str | None = None
    updated_at: str | None = None
    fetched_at: str | None = None
    summarized_at: str | None = None


@dataclass
class Category:
    id: int
    name: str
    description: str | None = None


@dataclass
class Tag:
    id: int
    name: str


@dataclass
class Task:
    id: int
    name: str
    description: str | None = None
    completed: bool = False


@dataclass
class Activity:
    id: int
    name: str
    description: str | None = None


@dataclass
class TokenUsage:
    """Accumulated LLM token counts for one pipeline run."""

    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


LINK_TYPES = ("link", "task", "activity")


@dataclass
class IngestRequest:
    """Input to the ingest operation.

    Attributes:
        url: The page to ingest
        category: Category override; wins over the LLM suggestion
        tags: Tag override; wins over the LLM suggestion
        link_type: "link", "task" or "activity"
        target_name: Task or activity name; defaults to the page title
    """

    url: str
    category: str | None = None
    tags: list[str] | None = None
    link_type: str = "link"
    target_name: str | None = None

    def __post_init__(self) -> None:
        if self.link_type not in LINK_TYPES:
            raise ValueError(
                f"invalid link type {self.link_type!r}: must be link, task, or activity"
            )


@dataclass
class IngestResult:
    """Payload of the terminal ``complete`` event.

    Attributes:
        record_id: Id of the stored (or already existing) link
        title: Page title
        preview_text: Full extracted text, or the stored content for duplicates
        summary: LLM summary, empty when unavailable
        suggested_category: LLM category suggestion, empty when unavailable
        suggested_tags: LLM tag suggestions, empty when unavailable
        usage: Token counts across all LLM calls of this run
        cost_estimate: USD estimate derived from usage
        duplicate: True when the URL was already stored and nothing was fetched
        refreshed: True when an existing record was updated in place
    """

    record_id: int
    title: str = ""
    preview_text: str = ""
    summary: str = ""
    suggested_category: str = ""
    suggested_tags: list[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost_estimate: float = 0.0
    duplicate: bool = False
    refreshed: bool = False


class PipelineState(str, Enum):
    IDLE = "idle"
    DUPLICATE_CHECK = "duplicate_check"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    SUMMARIZING = "summarizing"
    PERSISTING = "persisting"
    ASSOCIATING_METADATA = "associating_metadata"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.COMPLETE, PipelineState.FAILED)


class EventKind(str, Enum):
    FETCHED = "fetched"
    EXTRACTED = "extracted"
    SUMMARIZED = "summarized"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class PipelineEvent:
    """A stage-completion event delivered to the caller.

    Only ``complete`` carries ``result``; only ``failed`` carries ``reason``
    and ``error_kind``. ``record_id`` on a failed event points at the
    existing link when the failure was a duplicate-URL conflict.
    """

    kind: EventKind
    url: str
    result: IngestResult | None = None
    reason: str | None = None
    error_kind: str | None = None
    record_id: int | None = None

    @property
    def terminal(self) -> bool:
        return self.kind in (EventKind.COMPLETE, EventKind.FAILED)
