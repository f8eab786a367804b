"""
Core domain models and errors.

This package contains data types and the exception hierarchy shared by
every pipeline stage.
"""

from .errors import (
    DuplicateURLError,
    ExtractionError,
    FetchError,
    LinkManagerError,
    LinkNotFoundError,
    PipelineCancelledError,
    StoreError,
    SummarizerError,
)
from .types import (
    Activity,
    Category,
    EventKind,
    IngestRequest,
    IngestResult,
    Link,
    LinkStatus,
    PipelineEvent,
    PipelineState,
    Tag,
    Task,
    TokenUsage,
)

__all__ = [
    "Activity",
    "Category",
    "DuplicateURLError",
    "EventKind",
    "ExtractionError",
    "FetchError",
    "IngestRequest",
    "IngestResult",
    "Link",
    "LinkManagerError",
    "LinkNotFoundError",
    "LinkStatus",
    "PipelineCancelledError",
    "PipelineEvent",
    "PipelineState",
    "StoreError",
    "SummarizerError",
    "Tag",
    "Task",
    "TokenUsage",
]
