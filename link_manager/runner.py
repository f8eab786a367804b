"""
Ingestion pipeline orchestration.

A submission walks an explicit state machine:

    idle -> duplicate_check -> fetching -> extracting -> summarizing
         -> persisting -> associating_metadata -> complete

with ``failed`` reachable from every non-terminal state. Each submission
runs as its own asyncio task; stage completions are delivered to the caller
through the run's event queue instead of a blocking return value.

Nothing is written before the fetch/extract/summarize stages succeed, so a
failure there never leaves a partial link behind. Store calls are pushed to
worker threads so the event loop serving the caller stays responsive.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import AsyncIterator, Awaitable, Callable

from .config import AppConfig
from .core.errors import DuplicateURLError, LinkManagerError, LinkNotFoundError, PipelineCancelledError
from .core.types import (
    Category,
    EventKind,
    IngestRequest,
    IngestResult,
    PipelineEvent,
    PipelineState,
    Tag,
    TokenUsage,
)
from .fetch.extractor import Extractor
from .fetch.fetcher import CancelToken, Fetcher, race_cancel
from .llm.metadata import normalize_tags
from .llm.providers.base import DisabledSummarizer, MetadataSuggestion, Summarizer
from .llm.usage import estimate_cost, format_cost
from .logging_utils import get_logger, log_event
from .store.database import ContentStore


@dataclass
class PipelineRun:
    """Handle on one submitted ingest or refresh.

    Attributes:
        url: URL being processed
        operation: "ingest" or "refresh"
        events: Stage events in delivery order; the last one is terminal
        states: State machine transitions taken so far
        cancel_token: Shared cancel signal; set it through ``cancel()``
        task: The asyncio task running the pipeline
    """

    url: str
    operation: str
    events: asyncio.Queue = field(default_factory=asyncio.Queue)
    states: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    cancel_token: CancelToken = field(default_factory=CancelToken)
    task: asyncio.Task | None = None
    terminal_event: PipelineEvent | None = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def cancel(self) -> None:
        self.cancel_token.cancel()

    async def result(self) -> PipelineEvent:
        """Wait for the run to finish and return its terminal event."""
        if self.task is not None:
            await self.task
        if self.terminal_event is None:
            raise RuntimeError(f"pipeline run for {self.url} ended without a terminal event")
        return self.terminal_event

    async def stream(self) -> AsyncIterator[PipelineEvent]:
        """Yield events as they arrive, ending with the terminal event."""
        while True:
            event = await self.events.get()
            yield event
            if event.terminal:
                return


class Pipeline:
    """Sequences fetch, extract, summarize and persist for a URL.

    Args:
        store: Content store used for duplicate checks and persistence
        fetcher: HTTP fetcher; a default one is built from config when None
        extractor: HTML extractor; a default one is built from config when None
        summarizer: Optional summarizer; None means summarization is disabled
        cfg: Application configuration
        logger: Logger for pipeline events
    """

    def __init__(
        self,
        store: ContentStore,
        fetcher: Fetcher | None = None,
        extractor: Extractor | None = None,
        summarizer: Summarizer | None = None,
        cfg: AppConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg or AppConfig()
        self.store = store
        self.fetcher = fetcher or Fetcher(self.cfg.fetch)
        self.extractor = extractor or Extractor(self.cfg.extract)
        self.summarizer = summarizer or DisabledSummarizer()
        self.logger = logger or get_logger("pipeline")

    # -- submission ----------------------------------------------------------

    def submit_ingest(self, request: IngestRequest | str, cancel: CancelToken | None = None) -> PipelineRun:
        """Schedule an ingest and return immediately.

        Must be called from a running event loop.
        """
        if isinstance(request, str):
            request = IngestRequest(url=request)
        return self._submit("ingest", request.url, lambda run: self._ingest(run, request), cancel)

    def submit_refresh(self, url: str, cancel: CancelToken | None = None) -> PipelineRun:
        """Schedule a refresh of an existing link and return immediately.

        An empty new summary keeps the stored one instead of clearing it.
        """
        return self._submit("refresh", url, lambda run: self._refresh(run), cancel)

    async def ingest(self, request: IngestRequest | str, cancel: CancelToken | None = None) -> PipelineEvent:
        return await self.submit_ingest(request, cancel).result()

    async def refresh(self, url: str, cancel: CancelToken | None = None) -> PipelineEvent:
        return await self.submit_refresh(url, cancel).result()

    def _submit(
        self,
        operation: str,
        url: str,
        body: Callable[[PipelineRun], Awaitable[IngestResult]],
        cancel: CancelToken | None,
    ) -> PipelineRun:
        run = PipelineRun(url=url, operation=operation)
        if cancel is not None:
            run.cancel_token = cancel
        run.task = asyncio.get_running_loop().create_task(self._execute(run, body))
        return run

    async def _execute(self, run: PipelineRun, body: Callable[[PipelineRun], Awaitable[IngestResult]]) -> None:
        log_event(self.logger, "Pipeline start", event="pipeline_start", url=run.url, operation=run.operation)
        try:
            result = await body(run)
        except LinkManagerError as exc:
            record_id = exc.existing_id if isinstance(exc, DuplicateURLError) else None
            self._fail(run, str(exc), exc.error_kind, record_id)
            return
        except asyncio.CancelledError:
            self._fail(run, f"canceled: {run.url}", PipelineCancelledError.error_kind)
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("Unexpected pipeline error for %s", run.url)
            self._fail(run, f"{type(exc).__name__}: {exc}", "error")
            return

        self._transition(run, PipelineState.COMPLETE)
        self._emit(run, PipelineEvent(kind=EventKind.COMPLETE, url=run.url, result=result))
        log_event(
            self.logger,
            "Pipeline complete",
            event="pipeline_complete",
            url=run.url,
            operation=run.operation,
            record_id=result.record_id,
            duplicate=result.duplicate,
        )

    def _fail(self, run: PipelineRun, reason: str, error_kind: str, record_id: int | None = None) -> None:
        failed_in = run.state
        self._transition(run, PipelineState.FAILED)
        self._emit(
            run,
            PipelineEvent(
                kind=EventKind.FAILED,
                url=run.url,
                reason=reason,
                error_kind=error_kind,
                record_id=record_id,
            ),
        )
        log_event(
            self.logger,
            "Pipeline failed",
            level=logging.WARNING,
            event="pipeline_failed",
            url=run.url,
            operation=run.operation,
            stage=failed_in.value,
            error_kind=error_kind,
            reason=reason,
        )

    def _transition(self, run: PipelineRun, state: PipelineState) -> None:
        run.states.append(state)
        log_event(self.logger, "Pipeline state", level=logging.DEBUG, event="pipeline_state", url=run.url, state=state.value)

    def _emit(self, run: PipelineRun, event: PipelineEvent) -> None:
        if event.terminal:
            run.terminal_event = event
        run.events.put_nowait(event)

    # -- stages ----------------------------------------------------------------

    async def _ingest(self, run: PipelineRun, request: IngestRequest) -> IngestResult:
        url = request.url
        self._transition(run, PipelineState.DUPLICATE_CHECK)
        existing = await asyncio.to_thread(self.store.find_by_url, url)
        if existing is not None:
            log_event(self.logger, "Already exists", event="duplicate_hit", url=url, record_id=existing.id)
            return IngestResult(
                record_id=existing.id,
                title=existing.title or "",
                preview_text=existing.content or "",
                summary=existing.summary or "",
                duplicate=True,
            )

        title, text = await self._fetch_and_extract(run)

        usage = TokenUsage()
        summary = ""
        suggestion = MetadataSuggestion()
        if self.summarizer.available:
            self._transition(run, PipelineState.SUMMARIZING)
            summary = await self._summarize(run, title, text, usage)
            suggestion = await race_cancel(self.summarizer.suggest_metadata(title, text), run.cancel_token, url)
            usage.add(suggestion.input_tokens, suggestion.output_tokens)
            self._emit(run, PipelineEvent(kind=EventKind.SUMMARIZED, url=url))
        self._check_cancelled(run)

        self._transition(run, PipelineState.PERSISTING)
        link = await asyncio.to_thread(
            self.store.create_link,
            url,
            title=title,
            content=self.extractor.truncate(text),
            summary=summary,
            fetched=True,
            summarized=bool(summary),
        )
        log_event(self.logger, "Saved", event="link_saved", url=url, record_id=link.id, title=title)

        self._transition(run, PipelineState.ASSOCIATING_METADATA)
        await asyncio.to_thread(self._associate, link.id, request, title, suggestion)

        cost = self._record_usage(url, usage)
        return IngestResult(
            record_id=link.id,
            title=title,
            preview_text=text,
            summary=summary,
            suggested_category=suggestion.category,
            suggested_tags=list(suggestion.tags),
            usage=usage,
            cost_estimate=cost,
        )

    async def _refresh(self, run: PipelineRun) -> IngestResult:
        url = run.url
        existing = await asyncio.to_thread(self.store.find_by_url, url)
        if existing is None:
            raise LinkNotFoundError(f"URL not found in database (use 'lm add' to add it first): {url}")

        title, text = await self._fetch_and_extract(run, mark_fetched=existing.id)

        usage = TokenUsage()
        summary = ""
        if self.summarizer.available:
            self._transition(run, PipelineState.SUMMARIZING)
            summary = await self._summarize(run, title, text, usage)
            self._emit(run, PipelineEvent(kind=EventKind.SUMMARIZED, url=url))
        self._check_cancelled(run)

        self._transition(run, PipelineState.PERSISTING)
        fields = {"title": title, "content": self.extractor.truncate(text)}
        if summary:
            fields["summary"] = summary
        link = await asyncio.to_thread(self.store.update_link, existing.id, **fields)
        if summary:
            await asyncio.to_thread(self.store.mark_summarized, existing.id)
        log_event(self.logger, "Updated", event="link_updated", url=url, record_id=link.id, title=title)

        cost = self._record_usage(url, usage)
        return IngestResult(
            record_id=link.id,
            title=title,
            preview_text=text,
            summary=link.summary or "",
            usage=usage,
            cost_estimate=cost,
            refreshed=True,
        )

    async def _fetch_and_extract(self, run: PipelineRun, mark_fetched: int | None = None) -> tuple[str, str]:
        self._transition(run, PipelineState.FETCHING)
        fetched = await self.fetcher.fetch(run.url, run.cancel_token)
        if mark_fetched is not None:
            await asyncio.to_thread(self.store.mark_fetched, mark_fetched)
        log_event(
            self.logger,
            "Fetched",
            level=logging.DEBUG,
            event="fetched",
            url=run.url,
            status_code=fetched.status_code,
            attempts=fetched.attempts,
        )
        self._emit(run, PipelineEvent(kind=EventKind.FETCHED, url=run.url))

        self._transition(run, PipelineState.EXTRACTING)
        title, text = await asyncio.to_thread(self.extractor.extract, fetched.text, run.url)
        self._emit(run, PipelineEvent(kind=EventKind.EXTRACTED, url=run.url))
        return title, text

    async def _summarize(self, run: PipelineRun, title: str, text: str, usage: TokenUsage) -> str:
        result = await race_cancel(self.summarizer.summarize(title, text), run.cancel_token, run.url)
        usage.add(result.input_tokens, result.output_tokens)
        return result.text

    def _check_cancelled(self, run: PipelineRun) -> None:
        if run.cancel_token.cancelled:
            raise PipelineCancelledError(run.url)

    def _record_usage(self, url: str, usage: TokenUsage) -> float:
        if usage.total == 0:
            return 0.0
        cost = estimate_cost(usage, self.cfg.pricing)
        log_event(
            self.logger,
            "LLM usage",
            event="llm_usage",
            url=url,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cost_usd=format_cost(cost),
        )
        return cost

    # -- metadata ----------------------------------------------------------------

    def _associate(
        self,
        link_id: int,
        request: IngestRequest,
        title: str,
        suggestion: MetadataSuggestion,
    ) -> None:
        # caller-supplied values win over suggestions
        category = (request.category or "").strip() or suggestion.category.strip()
        tags = normalize_tags(request.tags) or normalize_tags(suggestion.tags)
        self._save_metadata(link_id, category, tags)

        if request.link_type == "link":
            return
        name = (request.target_name or "").strip() or title or request.url
        if request.link_type == "task":
            task = self.store.get_or_create_task(name)
            self.store.link_task(link_id, task.id)
            log_event(self.logger, "Task linked", event="task_linked", record_id=link_id, task_id=task.id)
        else:
            activity = self.store.get_or_create_activity(name)
            self.store.link_activity(link_id, activity.id)
            log_event(
                self.logger, "Activity linked", event="activity_linked", record_id=link_id, activity_id=activity.id
            )

    def _save_metadata(self, link_id: int, category: str, tags: list[str]) -> tuple[Category | None, list[Tag]]:
        saved_category = None
        if category:
            saved_category = self.store.get_or_create_category(category)
            self.store.link_category(link_id, saved_category.id)
        saved_tags = []
        for name in tags:
            tag = self.store.get_or_create_tag(name)
            self.store.link_tag(link_id, tag.id)
            saved_tags.append(tag)
        return saved_category, saved_tags

    async def save_metadata(
        self,
        record_id: int,
        category: str | None,
        tags: str | list[str] | None,
    ) -> tuple[Category | None, list[Tag]]:
        """Attach a category and tags to a stored link.

        Missing category/tag rows are created; repeated calls are no-ops.
        Tags are lower-cased, the category name is kept as given.

        Raises:
            LinkNotFoundError: No link has ``record_id``
        """
        await asyncio.to_thread(self.store.get_link, record_id)
        return await asyncio.to_thread(
            self._save_metadata, record_id, (category or "").strip(), normalize_tags(tags)
        )
