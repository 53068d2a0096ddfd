# === FILE: mirrorurl/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import os
import random
import time
from typing import Iterable, Optional, Tuple

from aiohttp import ClientSession

from mirrorurl.config import MirrorConfig
from mirrorurl.crawler.fetcher import Fetcher
from mirrorurl.crawler.frontier import CrawlState, Frontier
from mirrorurl.crawler.link_extractor import extract_links
from mirrorurl.crawler.models import CrawlTarget, FetchResult, SkipRecord
from mirrorurl.errors import (
    InvalidURL,
    MirrorError,
    MirrorIOError,
    NetworkError,
    OutOfScope,
    RedirectError,
    SetupError,
    SkipReason,
)
from mirrorurl.logger import logger
from mirrorurl.mirror.manifest import Manifest
from mirrorurl.mirror.writer import MirrorWriter
from mirrorurl.summary import RunSummary
from mirrorurl.urls import UrlNormalizer

__all__ = ("MirrorCrawler",)

# Skips that mean the URL is no longer part of the mirror; its manifest record goes.
_GONE = frozenset(
    {
        SkipReason.HTTP_STATUS,
        SkipReason.SKIP_LIST,
        SkipReason.TOO_MANY_REDIRECTS,
        SkipReason.REDIRECT_OUT_OF_SCOPE,
    }
)


class MirrorCrawler:
    """Асинхронный зеркальщик: пул воркеров поверх общего Frontier."""

    def __init__(self, config: MirrorConfig, *, session: Optional[ClientSession] = None) -> None:
        self.config = config
        try:
            self.normalizer = UrlNormalizer(str(config.start_url), config.scope, config.query_policy)
        except InvalidURL as exc:
            raise SetupError(f"Invalid start URL {config.start_url}: {exc.message}") from exc
        self.root_url = self.normalizer.root
        self.frontier = Frontier(config.max_pages)
        self.manifest = Manifest(config.output_dir)
        self.summary = RunSummary(start_url=self.root_url, output_dir=str(config.output_dir))
        self.session = session
        self._own_session = session is None
        self.fetcher: Optional[Fetcher] = None
        self.writer: Optional[MirrorWriter] = None
        self._skip: Tuple[str, ...] = tuple(p for p in config.skip if p)
        self._stop_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> MirrorCrawler:
        self._prepare_output_dir()
        try:
            previous = self.manifest.load()
        except OSError as exc:
            raise SetupError(f"Cannot read manifest {self.manifest.path}: {exc}") from exc
        self.writer = MirrorWriter(
            self.config.output_dir,
            self.normalizer,
            index_name=self.config.index_name,
            rewrite_links=self.config.rewrite_links,
            previous=previous,
        )
        if self.session is None:
            self.session = ClientSession(headers={"User-Agent": self.config.user_agent})
        self.fetcher = Fetcher(self.session, self.config)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._own_session and self.session and not self.session.closed:
            await self.session.close()

    # ------------------------------------------------------------------ #
    # Run                                                                 #
    # ------------------------------------------------------------------ #
    async def run(self) -> RunSummary:
        self._opened()
        logger.info("Старт зеркалирования: %s -> %s", self.root_url, self.config.output_dir)
        started = time.monotonic()
        cpu_started = time.process_time()

        await self.frontier.offer(CrawlTarget(self.root_url))
        self.frontier.start()
        workers = [asyncio.create_task(self._worker(i)) for i in range(self.config.concurrency)]
        try:
            await asyncio.gather(*workers)
            if self._stop_task is not None:
                await self._stop_task
            self.frontier.finish()
        except asyncio.CancelledError:
            self.summary.cancelled = True
            self._cancel(self.frontier.abandon())
            raise
        finally:
            self._finalize()
            self.summary.elapsed = time.monotonic() - started
            self.summary.cpu_time = time.process_time() - cpu_started
            fetched = self.summary.fetched
            logger.info(
                "Завершено: %d URL за %.2f с (%.2f URL/с)",
                fetched,
                self.summary.elapsed,
                fetched / self.summary.elapsed if self.summary.elapsed else 0,
            )
        return self.summary

    def stop(self) -> None:
        """Stop dequeuing; in-flight fetches finish and the mirror is still finalized."""
        if self._stop_task is not None:
            return
        logger.warning(
            "Остановка: дожидаемся текущих загрузок… (%d URL в работе и в очереди)",
            self.frontier.pending(),
        )
        self.summary.cancelled = True
        self._stop_task = asyncio.ensure_future(self._close_frontier())

    async def _close_frontier(self) -> None:
        self._cancel(await self.frontier.close())

    @property
    def state(self) -> CrawlState:
        return self.frontier.state

    async def _worker(self, idx: int) -> None:
        while True:
            target = await self.frontier.get()
            if target is None:
                return
            retry: Optional[CrawlTarget] = None
            try:
                retry = await self._process(target)
            except Exception as exc:
                logger.exception("Worker %d: unexpected error on %s", idx, target.url)
                self._fail(target, SkipReason.INTERNAL, f"{type(exc).__name__}: {exc}")
            finally:
                if retry is not None:
                    if not await self.frontier.defer(retry):
                        self._cancel([retry])
                else:
                    await self.frontier.task_done(target)

    # ------------------------------------------------------------------ #
    # One target                                                          #
    # ------------------------------------------------------------------ #
    async def _process(self, target: CrawlTarget) -> Optional[CrawlTarget]:
        """Fetch, store and expand one target. Returns a re-scheduled target to retry."""
        fetcher, writer = self._opened()
        url = target.url
        if self._in_skip_list(url):
            self._skip_url(target, SkipReason.SKIP_LIST)
            return None

        previous = self.manifest.get(url)
        etag = None
        if self.config.use_etags and previous is not None and previous.etag and not previous.is_html:
            etag = previous.etag
            logger.debug("Previous etag value for %s: %s", url, etag)

        try:
            result = await fetcher.fetch(url, etag=etag, redirect_guard=self.normalizer.normalize)
        except NetworkError as exc:
            if target.retry.attempt < self.config.retry_times:
                delay = self._backoff(target.retry.attempt + 1)
                logger.debug(
                    "Retry %d/%d for %s after %.2f s (%s)",
                    target.retry.attempt + 1, self.config.retry_times, url, delay, exc.kind,
                )
                return target.retried(delay)
            self._fail(target, SkipReason.NETWORK, exc.message)
            return None
        except RedirectError as exc:
            self._skip_url(target, exc.reason, exc.message)
            return None

        if result.final_url:
            result.final_url = self.normalizer.canonical(result.final_url)
            await self.frontier.claim(result.final_url)

        if result.not_modified and previous is not None:
            writer.keep(previous)
            self.summary.add_not_modified()
            logger.info("%s is not modified", url)
            return None

        if not result.ok:
            self._skip_url(target, SkipReason.HTTP_STATUS, str(result.status))
            return None

        try:
            writer.write(url, result)
        except MirrorIOError as exc:
            self._fail(target, SkipReason.IO, exc.message or str(exc))
            return None

        if result.is_html:
            self.summary.add_html(len(result.payload))
            if target.depth < self.config.max_depth:
                await self._enqueue_links(target, result)
            else:
                logger.debug("Depth limit %d reached at %s", self.config.max_depth, url)
        else:
            self.summary.add_download(len(result.payload))
        return None

    async def _enqueue_links(self, target: CrawlTarget, result: FetchResult) -> None:
        added = 0
        for link in extract_links(
            result.payload,
            result.location,
            charset=result.charset,
            query_policy=self.config.query_policy,
        ):
            try:
                self.normalizer.check_scope(link)
            except OutOfScope as exc:
                self.summary.add_filtered()
                logger.debug("Skipping %s: %s", link, exc.message)
                continue
            child = target.child(link)
            if self._in_skip_list(link):
                if await self.frontier.claim(link):
                    self._skip_url(child, SkipReason.SKIP_LIST)
                continue
            if await self.frontier.offer(child):
                added += 1
            elif self.frontier.closed:
                if await self.frontier.claim(link):
                    self._skip_url(child, SkipReason.CANCELLED)
            elif self.frontier.limit_reached and await self.frontier.claim(link):
                self._skip_url(child, SkipReason.PAGE_LIMIT, str(self.config.max_pages))
        logger.debug("%s: %d new link(s) queued at depth %d", target.url, added, target.depth + 1)

    # ------------------------------------------------------------------ #
    # Helpers                                                             #
    # ------------------------------------------------------------------ #
    def _finalize(self) -> None:
        _, writer = self._opened()
        if writer.staged:
            logger.info("Rewriting links in %d document(s)…", writer.staged)
        for url, exc in writer.finalize():
            self.summary.add_failed(SkipRecord(url, SkipReason.IO, exc.message or str(exc)))
        records = writer.records()
        self.manifest.merge(records)
        try:
            self.manifest.save()
        except MirrorError as exc:
            logger.error("Failed to save manifest: %s", exc)
        self.summary.records = records
        self.summary.files_written = writer.files_written
        self.summary.files_unchanged = writer.files_unchanged
        for line in self.summary.lines():
            logger.info(line)

    def _skip_url(self, target: CrawlTarget, reason: SkipReason, detail: Optional[str] = None) -> None:
        record = SkipRecord(target.url, reason, detail, target.referrer)
        self.summary.add_skipped(record)
        if reason in _GONE:
            self.manifest.discard(target.url)
        logger.info(record.describe())

    def _fail(self, target: CrawlTarget, reason: SkipReason, detail: Optional[str] = None) -> None:
        record = SkipRecord(target.url, reason, detail, target.referrer)
        self.summary.add_failed(record)
        logger.warning("Failed %s: %s", target.url, reason.describe(detail))

    def _cancel(self, targets: Iterable[CrawlTarget]) -> None:
        for target in targets:
            if target.retry.attempt:
                self._fail(target, SkipReason.NETWORK, f"retry {target.retry.attempt} dropped, run stopped")
            else:
                self._skip_url(target, SkipReason.CANCELLED)

    def _opened(self) -> Tuple[Fetcher, MirrorWriter]:
        if self.fetcher is None or self.writer is None:
            raise RuntimeError("MirrorCrawler must be used as an async context manager")
        return self.fetcher, self.writer

    def _in_skip_list(self, url: str) -> bool:
        if not self._skip:
            return False
        rel = self.normalizer.relative_path(url)
        return any(url.startswith(p) or rel.startswith(p.lstrip("/")) for p in self._skip)

    def _backoff(self, attempt: int) -> float:
        base = self.config.backoff_base
        return min(self.config.backoff_max, base * 2 ** (attempt - 1) + random.random() * base)

    def _prepare_output_dir(self) -> None:
        root = self.config.output_dir
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SetupError(f"Cannot create output directory {root}: {exc}") from exc
        if not root.is_dir() or not os.access(root, os.W_OK | os.X_OK):
            raise SetupError(f"Output directory {root} is not writable")
