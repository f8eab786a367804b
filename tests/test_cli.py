"""Tests for the Typer command-line interface."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from link_manager import cli
from link_manager.runner import Pipeline
from link_manager.store.database import ContentStore
from conftest import FakeFetcher, FakeSummarizer

URL = "http://example.com/a"
PAGE = "<title>Hello</title><article><p>World of event loops</p></article>"


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return tmp_path


@pytest.fixture
def fake_pages(monkeypatch):
    pages = {URL: PAGE}
    summarizer = FakeSummarizer(summary="About event loops.", category="Tech", tags=["python"])

    def build(cfg, store):
        return Pipeline(store, fetcher=FakeFetcher(pages), summarizer=summarizer, cfg=cfg)

    monkeypatch.setattr(cli, "_build_pipeline", build)
    return pages


def _run(*args, stdin: str = ""):
    return CliRunner().invoke(cli.app, ["--no-log-file", *args], input=stdin)


def test_add_saves_link_and_reports(env, fake_pages):
    result = _run("add", URL, "--tags", "Async")

    assert result.exit_code == 0, result.output
    assert "Saved: [1] Hello" in result.output
    assert "Tags: async" in result.output
    assert "Category: Tech" in result.output
    assert "About event loops." in result.output
    assert "LLM cost:" in result.output

    with ContentStore(env / "cli.db") as store:
        link = store.find_by_url(URL)
        assert link.title == "Hello"
        assert [t.name for t in store.tags_for_link(link.id)] == ["async"]


def test_add_twice_reports_existing(env, fake_pages):
    _run("add", URL)
    result = _run("add", URL)

    assert result.exit_code == 0, result.output
    assert "Already exists (id=1): Hello" in result.output


def test_add_reads_urls_from_stdin_and_summarizes_batch(env, fake_pages):
    missing = "http://example.com/missing"

    result = _run("add", stdin=f"# comment\n{URL}\n\n{missing}\n")

    assert result.exit_code == 0, result.output
    assert "[1/2]" in result.output
    assert "Error: unexpected status code: 404" in result.output
    assert "Processed: 1  Skipped: 1" in result.output


def test_add_rejects_bad_type(env, fake_pages):
    result = _run("add", URL, "--type", "bookmark")

    assert result.exit_code != 0


def test_add_without_urls_fails(env, fake_pages):
    result = _run("add")

    assert result.exit_code != 0


def test_add_as_task_uses_task_name(env, fake_pages):
    result = _run("add", URL, "--type", "task", "--task-name", "Read this week")

    assert result.exit_code == 0, result.output
    with ContentStore(env / "cli.db") as store:
        link = store.find_by_url(URL)
        assert [t.name for t in store.tasks_for_link(link.id)] == ["Read this week"]


def test_refetch_updates_existing(env, fake_pages):
    _run("add", URL)
    fake_pages[URL] = "<title>Hello v2</title><article><p>Updated</p></article>"

    result = _run("refetch", URL)

    assert result.exit_code == 0, result.output
    assert "Updated: [1] Hello v2" in result.output


def test_refetch_unknown_url_reports_error(env, fake_pages):
    result = _run("refetch", URL)

    assert result.exit_code == 0
    assert "URL not found in database" in result.output


def test_search_and_delete(env, fake_pages):
    _run("add", URL)

    found = _run("search", "event")
    assert found.exit_code == 0, found.output
    assert "Found 1 result(s)" in found.output
    assert "1. Hello" in found.output
    assert URL in found.output

    empty = _run("search", "nonexistentterm")
    assert "No results found." in empty.output

    missing_category = _run("search", "event", "--category", "Nope")
    assert "Category 'Nope' not found." in missing_category.output

    deleted = _run("delete", URL)
    assert deleted.exit_code == 0, deleted.output
    assert "Deleted: [1] Hello" in deleted.output
    assert "No results found." in _run("search", "event").output


def test_delete_unknown_url_exits_nonzero(env):
    result = _run("delete", URL)

    assert result.exit_code == 1
    assert "URL not found" in result.output
