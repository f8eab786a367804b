"""
Command-line interface for the link manager.

Uses Typer to expose the ingest, refresh, search and delete operations.
URLs may be passed as arguments or piped via stdin, one per line.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
import sys

import typer
from rich.console import Console

from .config import AppConfig, config_dir, get_db_path, load_config, load_env_file
from .core.types import EventKind, IngestRequest, LINK_TYPES, PipelineEvent, TokenUsage
from .llm.metadata import normalize_tags
from .llm.providers.factory import create_summarizer
from .llm.usage import estimate_cost, format_cost
from .logging_utils import get_logger, setup_logging
from .runner import Pipeline
from .store.database import ContentStore

app = typer.Typer(add_completion=False, help="Link manager")
console = Console()

_STAGE_MESSAGES = {
    EventKind.FETCHED: "Extracting content ...",
    EventKind.EXTRACTED: "Content extracted",
    EventKind.SUMMARIZED: "Summarised",
}


@dataclass
class _State:
    cfg: AppConfig


_state = _State(cfg=AppConfig())


@app.callback()
def main(
    config: Path | None = typer.Option(None, "--config", "-C", exists=True, help="YAML config file."),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    debug: bool = typer.Option(False, "--debug", "-d", help="Display debugging output."),
    log_file: bool | None = typer.Option(None, "--log-file/--no-log-file", help="Enable or disable file logging."),
):
    """Fetch, summarize and search saved web pages."""
    load_env_file()
    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    if debug:
        cfg.logging.level = "DEBUG"
    if log_file is not None:
        cfg.logging.file = log_file
    setup_logging(cfg.logging, config_dir())
    _state.cfg = cfg


def _open_store(cfg: AppConfig) -> ContentStore:
    return ContentStore(get_db_path(cfg.storage), logger=get_logger("store"))


def _build_pipeline(cfg: AppConfig, store: ContentStore) -> Pipeline:
    summarizer = create_summarizer(cfg.provider, cfg.summary, logger=get_logger("llm"))
    return Pipeline(store, summarizer=summarizer, cfg=cfg)


def _collect_urls(args: list[str] | None) -> list[str]:
    urls = list(args or [])
    if not sys.stdin.isatty():
        for line in sys.stdin:
            line = line.strip()
            if line and not line.startswith("#"):
                urls.append(line)
    return urls


async def _drive(run_submission) -> PipelineEvent:
    run = run_submission()
    async for event in run.stream():
        message = _STAGE_MESSAGES.get(event.kind)
        if message:
            console.print(message)
    return await run.result()


def _process(urls: list[str], submit, report) -> None:
    usage = TokenUsage()
    processed = skipped = 0
    multi = len(urls) > 1

    async def _run_all() -> None:
        nonlocal processed, skipped
        for i, url in enumerate(urls):
            if multi:
                console.print(f"\n[{i + 1}/{len(urls)}] {url}")
            console.print(f"Fetching {url} ...")
            event = await _drive(lambda: submit(url))
            if event.kind is EventKind.FAILED:
                console.print(f"[red]Error:[/red] {event.reason}")
                skipped += 1
                continue
            usage.add(event.result.usage.input_tokens, event.result.usage.output_tokens)
            report(event)
            processed += 1

    asyncio.run(_run_all())

    if multi:
        console.print("\n--- Summary ---")
        console.print(f"Processed: {processed}  Skipped: {skipped}")
    if usage.total > 0:
        cost = estimate_cost(usage, _state.cfg.pricing)
        console.print(
            f"LLM cost:  {format_cost(cost)}  ({usage.input_tokens} in + {usage.output_tokens} out tokens)"
        )


@app.command()
def add(
    urls: list[str] | None = typer.Argument(None, help="URLs to add."),
    category: str | None = typer.Option(None, "--category", "-c", help="Category to assign (created if missing)."),
    tags: str | None = typer.Option(None, "--tags", "-t", help="Comma-separated tags (created if missing)."),
    link_type: str = typer.Option("link", "--type", help="Association type: link, task, or activity."),
    task_name: str | None = typer.Option(None, "--task-name", help="Task name when --type task."),
    activity_name: str | None = typer.Option(None, "--activity-name", help="Activity name when --type activity."),
):
    """Fetch URLs, optionally summarise with AI, and save them."""
    if link_type not in LINK_TYPES:
        raise typer.BadParameter(f"invalid --type {link_type!r}: must be link, task, or activity")
    url_list = _collect_urls(urls)
    if not url_list:
        raise typer.BadParameter("no URLs provided: pass as arguments or pipe via stdin")

    target_name = task_name if link_type == "task" else activity_name if link_type == "activity" else None
    tag_list = normalize_tags(tags) or None
    cfg = _state.cfg
    with _open_store(cfg) as store:
        pipeline = _build_pipeline(cfg, store)

        def submit(url: str):
            request = IngestRequest(
                url=url,
                category=category,
                tags=tag_list,
                link_type=link_type,
                target_name=target_name,
            )
            return pipeline.submit_ingest(request)

        def report(event: PipelineEvent) -> None:
            result = event.result
            if result.duplicate:
                console.print(f"Already exists (id={result.record_id}): {result.title}", markup=False)
                return
            console.print(f"Saved: [{result.record_id}] {result.title}", markup=False)
            categories = store.categories_for_link(result.record_id)
            if categories:
                console.print(f"Category: {', '.join(c.name for c in categories)}")
            link_tags = store.tags_for_link(result.record_id)
            if link_tags:
                console.print(f"Tags: {', '.join(t.name for t in link_tags)}")
            if result.summary:
                console.print(f"\nSummary: {result.summary}", markup=False)

        _process(url_list, submit, report)


@app.command()
def refetch(urls: list[str] | None = typer.Argument(None, help="URLs to re-fetch.")):
    """Re-fetch, re-extract, and re-summarise existing links.

    Title, content and summary are updated in place; tags, categories and
    status are preserved. A page that yields no new summary keeps the old one.
    """
    url_list = _collect_urls(urls)
    if not url_list:
        raise typer.BadParameter("no URLs provided: pass as arguments or pipe via stdin")

    cfg = _state.cfg
    with _open_store(cfg) as store:
        pipeline = _build_pipeline(cfg, store)

        def report(event: PipelineEvent) -> None:
            result = event.result
            console.print(f"Updated: [{result.record_id}] {result.title}", markup=False)
            if result.summary:
                console.print(f"\nSummary: {result.summary}", markup=False)

        _process(url_list, pipeline.submit_refresh, report)


@app.command()
def search(
    text: str = typer.Argument(..., help="Text to search for."),
    category: str | None = typer.Option(None, "--category", "-c", help="Filter by category name."),
    tags: str | None = typer.Option(None, "--tags", "-t", help="Comma-separated tags (link must have all)."),
    link_type: str | None = typer.Option(None, "--type", help="Filter by type: link, task, or activity."),
    limit: int = typer.Option(100, "--limit", help="Maximum number of results."),
):
    """Search stored links."""
    if link_type is not None and link_type not in LINK_TYPES:
        raise typer.BadParameter(f"invalid --type {link_type!r}: must be link, task, or activity")
    with _open_store(_state.cfg) as store:
        if category and store.get_category_by_name(category) is None:
            console.print(f"Category {category!r} not found.")
            return
        links = store.search(
            text.strip(),
            category=category,
            tags=normalize_tags(tags),
            link_type=link_type,
            limit=limit,
        )

    if not links:
        console.print("No results found.")
        return
    console.print(f"Found {len(links)} result(s):\n")
    for i, link in enumerate(links, start=1):
        console.print(f"{i}. {link.title or link.url}", markup=False)
        console.print(f"   {link.url}", markup=False)
        if link.summary:
            console.print(f"   {_shorten(link.summary, 120)}", markup=False)
        console.print()


@app.command()
def delete(url: str = typer.Argument(..., help="URL of the link to delete.")):
    """Delete a link together with its associations."""
    with _open_store(_state.cfg) as store:
        link = store.find_by_url(url)
        if link is None:
            console.print(f"[red]Error:[/red] URL not found: {url}")
            raise typer.Exit(code=1)
        store.delete_link(link.id)
    console.print(f"Deleted: [{link.id}] {link.title or link.url}", markup=False)


def _shorten(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


if __name__ == "__main__":
    app()
