"""Tests for the HTTP fetcher retry policy and cancellation."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from link_manager.config import FetchConfig
from link_manager.core.errors import FetchError, PipelineCancelledError
from link_manager.fetch.fetcher import CancelToken, Fetcher, MAX_ATTEMPTS, race_cancel

URL = "http://example.com/page"


def _fetcher(handler, delay: float = 0.01) -> Fetcher:
    cfg = FetchConfig(accepted_retry_delay=delay, trust_env=False)
    return Fetcher(cfg, transport=httpx.MockTransport(handler))


def test_fetch_returns_body_and_sends_browser_headers():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="<html>ok</html>")

    result = asyncio.run(_fetcher(handler).fetch(URL))

    assert result.text == "<html>ok</html>"
    assert result.status_code == 200
    assert result.attempts == 1
    headers = seen[0].headers
    assert headers["Accept-Encoding"] == "identity"
    assert "Mozilla/5.0" in headers["User-Agent"]
    assert headers["Accept-Language"].startswith("en-US")
    assert "text/html" in headers["Accept"]


def test_always_accepted_fails_after_exactly_two_attempts():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(202)

    with pytest.raises(FetchError) as excinfo:
        asyncio.run(_fetcher(handler).fetch(URL))

    assert calls == MAX_ATTEMPTS == 2
    assert excinfo.value.status_code == 202
    assert excinfo.value.transient


def test_accepted_then_ok_succeeds_on_retry():
    responses = [httpx.Response(202), httpx.Response(200, text="ready")]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    result = asyncio.run(_fetcher(handler).fetch(URL))

    assert result.text == "ready"
    assert result.attempts == 2


def test_other_error_status_is_not_retried():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    with pytest.raises(FetchError, match="unexpected status code: 503") as excinfo:
        asyncio.run(_fetcher(handler).fetch(URL))

    assert calls == 1
    assert excinfo.value.status_code == 503
    assert not excinfo.value.transient


def test_network_error_is_terminal_transient_failure():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError) as excinfo:
        asyncio.run(_fetcher(handler).fetch(URL))

    assert calls == 1
    assert excinfo.value.status_code is None
    assert excinfo.value.transient


def test_cancel_during_retry_wait_aborts_immediately():
    calls = 0

    async def scenario():
        token = CancelToken()

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            token.cancel()
            return httpx.Response(202)

        fetcher = _fetcher(handler, delay=30.0)
        await asyncio.wait_for(fetcher.fetch(URL, token), timeout=5)

    with pytest.raises(PipelineCancelledError):
        asyncio.run(scenario())

    assert calls == 1


def test_already_cancelled_token_makes_no_request():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, text="never")

    async def scenario():
        token = CancelToken()
        token.cancel()
        await _fetcher(handler).fetch(URL, token)

    with pytest.raises(PipelineCancelledError):
        asyncio.run(scenario())

    assert calls == 0


def test_slow_body_hits_whole_request_ceiling():
    async def trickle():
        for _ in range(40):
            await asyncio.sleep(0.1)
            yield b"x"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=trickle())

    cfg = FetchConfig(timeout_seconds=0.5, trust_env=False)
    fetcher = Fetcher(cfg, transport=httpx.MockTransport(handler))

    async def scenario():
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch(URL)
        return excinfo.value, loop.time() - started

    error, elapsed = asyncio.run(scenario())

    assert elapsed < 2.0
    assert error.transient
    assert error.status_code is None
    assert "timed out" in str(error)


def test_race_cancel_stops_work_when_caller_is_cancelled():
    async def scenario():
        started = asyncio.Event()
        stopped = asyncio.Event()

        async def work():
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                stopped.set()
                raise

        outer = asyncio.ensure_future(race_cancel(work(), CancelToken(), URL))
        await started.wait()
        outer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await outer
        await asyncio.wait_for(stopped.wait(), timeout=1)
        return stopped.is_set()

    assert asyncio.run(scenario())
