"""
HTTP page fetching with a bounded retry policy.

A page is requested once. A ``202 Accepted`` answer means the server is
still preparing the document, so the request is repeated exactly once after
a short delay; every other non-2xx status is final. Both the request and
the delay race the caller's cancel token.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, TypeVar

import httpx

from ..config import FetchConfig
from ..core.errors import FetchError, PipelineCancelledError

T = TypeVar("T")

MAX_ATTEMPTS = 2


class CancelToken:
    """Cancellation signal shared between a caller and a running pipeline."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class FetchResult:
    """Result of a successful fetch.

    Attributes:
        url: The URL that was requested
        status_code: Final 2xx status code
        text: Decoded response body
        attempts: Number of HTTP requests made (1 or 2)
    """

    url: str
    status_code: int
    text: str
    attempts: int = 1


async def race_cancel(awaitable: Awaitable[T], cancel: CancelToken | None, url: str) -> T:
    """Await ``awaitable`` unless ``cancel`` fires first.

    Raises:
        PipelineCancelledError: The token was set before the awaitable finished
    """
    if cancel is None:
        return await awaitable
    if cancel.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise PipelineCancelledError(url)

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()
    if work.done():
        return work.result()
    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    raise PipelineCancelledError(url)


class Fetcher:
    """Async HTTP fetcher emulating a desktop browser.

    Args:
        cfg: Fetch configuration
        transport: Optional httpx transport, used by tests to stub the network
    """

    def __init__(self, cfg: FetchConfig | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.cfg = cfg or FetchConfig()
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        # identity encoding avoids compressed/decompressed length mismatches
        return {
            "User-Agent": self.cfg.user_agent,
            "Accept": self.cfg.accept,
            "Accept-Encoding": "identity",
            "Accept-Language": self.cfg.accept_language,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.cfg.timeout_seconds,
            headers=self._headers(),
            follow_redirects=True,
            trust_env=self.cfg.trust_env,
            transport=self._transport,
        )

    async def fetch(self, url: str, cancel: CancelToken | None = None) -> FetchResult:
        """Fetch ``url`` and return its body.

        Args:
            url: Page to fetch
            cancel: Optional cancel token observed during I/O and the retry wait

        Returns:
            FetchResult with the decoded body

        Raises:
            FetchError: Network failure, timeout, or non-2xx status (202 after the retry)
            PipelineCancelledError: The token was set while waiting
        """
        async with self._client() as client:
            for attempt in range(1, MAX_ATTEMPTS + 1):
                if cancel is not None and cancel.cancelled:
                    raise PipelineCancelledError(url)
                try:
                    # the client timeout applies per read; this bounds the whole request
                    request = asyncio.wait_for(client.get(url), self.cfg.timeout_seconds)
                    resp = await race_cancel(request, cancel, url)
                except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
                    raise FetchError(
                        f"failed to fetch URL: timed out after {self.cfg.timeout_seconds}s", url, transient=True
                    ) from exc
                except httpx.HTTPError as exc:
                    raise FetchError(
                        f"failed to fetch URL: {type(exc).__name__}: {exc}", url, transient=True
                    ) from exc

                if 200 <= resp.status_code < 300:
                    return FetchResult(url=url, status_code=resp.status_code, text=resp.text, attempts=attempt)

                if resp.status_code == httpx.codes.ACCEPTED and attempt < MAX_ATTEMPTS:
                    await race_cancel(asyncio.sleep(self.cfg.accepted_retry_delay), cancel, url)
                    continue

                raise FetchError(
                    f"unexpected status code: {resp.status_code}",
                    url,
                    status_code=resp.status_code,
                    transient=resp.status_code == httpx.codes.ACCEPTED,
                )

        raise FetchError("failed to fetch URL after retries", url, transient=True)
