# mirrorurl/crawler/fetcher.py
"""
Fetcher module: one HTTP GET per call, with per-host politeness, manual
redirect handling and conditional requests.

HTTP-level failures (404, 500, ...) are returned as data in
:class:`FetchResult`; only transport failures raise :class:`NetworkError`,
which the crawler may retry.
"""
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional
from urllib.parse import urljoin, urlsplit

from aiohttp import (
    ClientConnectionError,
    ClientConnectorError,
    ClientError,
    ClientPayloadError,
    ClientResponse,
    ClientSession,
    ClientTimeout,
    ServerDisconnectedError,
)

from mirrorurl.config import MirrorConfig
from mirrorurl.crawler.models import FetchResult
from mirrorurl.errors import MirrorError, NetworkError, RedirectError, SkipReason
from mirrorurl.logger import get_logger

log = get_logger("fetcher")

_REDIRECT_STATUS = (301, 302, 303, 307, 308)

RedirectGuard = Callable[[str], None]


class HostPoliteness:
    """Per-host concurrency cap and minimum spacing between request starts."""

    def __init__(self, per_host: int, delay: float) -> None:
        self.per_host = max(1, per_host)
        self.delay = max(0.0, delay)
        self._slots: Dict[str, asyncio.Semaphore] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._next_allowed: Dict[str, float] = {}

    def _slot(self, host: str) -> asyncio.Semaphore:
        if host not in self._slots:
            self._slots[host] = asyncio.Semaphore(self.per_host)
        return self._slots[host]

    async def _wait_turn(self, host: str) -> None:
        if self.delay <= 0:
            return
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            now = time.monotonic()
            wait = self._next_allowed.get(host, 0.0) - now
            if wait > 0:
                await asyncio.sleep(wait)
                now = time.monotonic()
            self._next_allowed[host] = now + self.delay

    @asynccontextmanager
    async def slot(self, url: str) -> AsyncIterator[None]:
        host = urlsplit(url).netloc
        async with self._slot(host):
            await self._wait_turn(host)
            yield


def _classify(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    if isinstance(exc, ClientConnectorError):
        return "connect"
    if isinstance(exc, ServerDisconnectedError):
        return "disconnect"
    if isinstance(exc, ClientPayloadError):
        return "payload"
    if isinstance(exc, ClientConnectionError):
        return "connect"
    return "other"


def parse_content_type(header: str) -> tuple[str, Optional[str]]:
    """Split a Content-Type header into (mime, charset)."""
    mime, _, params = header.partition(";")
    charset = None
    for param in params.split(";"):
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            charset = value.strip().strip("\"'")
    return mime.strip().lower(), charset


class Fetcher:
    """Handles HTTP fetching with politeness, redirects and per-attempt timeout."""

    def __init__(
        self,
        session: ClientSession,
        config: MirrorConfig,
        politeness: Optional[HostPoliteness] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.politeness = politeness or HostPoliteness(
            config.per_host_concurrency, config.politeness_delay
        )
        self.timeout = ClientTimeout(total=config.timeout, connect=config.connect_timeout)

    async def fetch(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
        redirect_guard: Optional[RedirectGuard] = None,
    ) -> FetchResult:
        """
        GET *url*, following up to ``max_redirects`` redirects.

        *redirect_guard* is called with every redirect target and may raise
        (typically :class:`~mirrorurl.errors.OutOfScope`) to stop the chain.
        """
        current = url
        hops: list[str] = []
        while True:
            headers = {"If-None-Match": etag} if etag and not hops else None
            async with self._request(current, headers) as resp:
                if resp.status in _REDIRECT_STATUS and "Location" in resp.headers:
                    target = urljoin(current, resp.headers["Location"]).split("#", 1)[0]
                    hops.append(target)
                    if len(hops) > self.config.max_redirects:
                        raise RedirectError(url, SkipReason.TOO_MANY_REDIRECTS, f"{len(hops)} hops")
                    if redirect_guard is not None:
                        try:
                            redirect_guard(target)
                        except MirrorError as exc:
                            raise RedirectError(
                                url, SkipReason.REDIRECT_OUT_OF_SCOPE, f"redirect to {target}"
                            ) from exc
                    log.info("%s was redirected to %s", current, target)
                    current = target
                    continue
                return await self._read(url, current, resp, tuple(hops))

    @asynccontextmanager
    async def _request(self, url: str, headers: Optional[dict]) -> AsyncIterator[ClientResponse]:
        async with self.politeness.slot(url):
            log.info("Fetching %s", url)
            try:
                async with self.session.get(
                    url,
                    headers=headers,
                    allow_redirects=False,
                    timeout=self.timeout,
                    raise_for_status=False,
                ) as resp:
                    yield resp
            except (ClientError, asyncio.TimeoutError) as exc:
                raise NetworkError(url, _classify(exc), str(exc) or type(exc).__name__) from exc

    async def _read(
        self, url: str, final_url: str, resp: ClientResponse, hops: tuple[str, ...]
    ) -> FetchResult:
        mime, charset = parse_content_type(resp.headers.get("Content-Type", ""))
        result = FetchResult(
            url=url,
            status=resp.status,
            content_type=mime,
            final_url=final_url if hops else None,
            charset=charset,
            etag=resp.headers.get("ETag"),
            redirects=hops,
        )
        if result.ok:
            result.payload = await resp.read()
            log.debug("Read %d bytes from %s (%s)", len(result.payload), final_url, mime or "no type")
        return result
