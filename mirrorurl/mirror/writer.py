# File: mirrorurl/mirror/writer.py
"""mirrorurl.mirror.writer: persists fetched resources and rewrites HTML links.

Non-HTML resources are written as soon as they arrive. HTML documents are
saved unchanged under ``.mirrorurl/staging/`` and written to their place by
:meth:`MirrorWriter.finalize` once the crawl is over, because only then is it
known which links point at mirrored copies:

* an in-scope link whose target was mirrored becomes a relative path to
  the local file (the fragment is kept);
* every other link becomes the absolute original URL.

Every write is atomic and skipped when the file already holds the same
bytes, so an unchanged re-run leaves the mirror untouched.
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from mirrorurl.crawler.link_extractor import (
    SKIP_PREFIXES,
    document_base,
    iter_link_attributes,
    make_soup,
    rewrite_slot,
)
from mirrorurl.crawler.models import FetchResult, MirrorRecord
from mirrorurl.errors import InvalidURL, MirrorIOError
from mirrorurl.logger import get_logger
from mirrorurl.mirror.paths import STATE_DIR, PathMapper, PathRegistry, local_href
from mirrorurl.mirror.storage import (
    atomic_write,
    ensure_directory,
    resolve_inside,
    sha256_bytes,
    store_if_changed,
)
from mirrorurl.urls import UrlNormalizer

log = get_logger("writer")

__all__ = ("MirrorWriter",)

STAGING_DIR = "staging"


@dataclass(slots=True)
class _StagedPage:
    url: str
    path: str
    location: str
    charset: Optional[str]
    staged: Path


class MirrorWriter:
    """Maps URLs to files below *root* and writes them."""

    def __init__(
        self,
        root: Path,
        normalizer: UrlNormalizer,
        *,
        index_name: str = "index.html",
        rewrite_links: bool = True,
        previous: Optional[Dict[str, MirrorRecord]] = None,
    ) -> None:
        self.root = root
        self.normalizer = normalizer
        self.rewrite_links = rewrite_links
        self.staging_dir = root / STATE_DIR / STAGING_DIR
        self.mapper = PathMapper(normalizer.root, index_name)
        self.registry = PathRegistry()
        self._records: Dict[str, MirrorRecord] = {}
        self._staged: Dict[str, _StagedPage] = {}
        self._mirrored: set[str] = set()
        self.files_written = 0
        self.files_unchanged = 0
        # Paths chosen by earlier runs stay put.
        for url in sorted(previous or {}):
            self.registry.claim(url, previous[url].path)
            if previous[url].final_url:
                self.registry.claim(previous[url].final_url, previous[url].path)

    # ------------------------------------------------------------------ #
    # Queries                                                             #
    # ------------------------------------------------------------------ #
    def records(self) -> List[MirrorRecord]:
        return sorted(self._records.values(), key=lambda r: r.url)

    def local_path_of(self, url: str) -> Optional[str]:
        """Local path of *url* if it was mirrored in this run."""
        if url not in self._mirrored:
            return None
        return self.registry.lookup(url)

    @property
    def staged(self) -> int:
        return len(self._staged)

    # ------------------------------------------------------------------ #
    # Writing                                                             #
    # ------------------------------------------------------------------ #
    def write(self, url: str, result: FetchResult) -> MirrorRecord:
        """Persist *result* for *url* and return its record.

        HTML documents are only staged here (when link rewriting is on): the
        payload goes to a file under the staging directory and the returned
        record describes the fetched bytes until :meth:`finalize` replaces it.
        """
        location = result.location
        existing = self.registry.lookup(location) if location != url else None
        if existing is not None and location in self._records:
            self.registry.alias(url, existing)
            record = replace(self._records[location], url=url, final_url=location)
            self._records[url] = record
            self._mirrored.add(url)
            log.debug("%s redirects to already mirrored %s", url, location)
            return record

        rel = self.registry.claim(location, self.mapper.path_for(location, is_html=result.is_html))
        if location != url:
            self.registry.alias(url, rel)
        full = resolve_inside(self.root, rel)
        record = MirrorRecord(
            url=url,
            path=rel,
            sha256=sha256_bytes(result.payload),
            size=len(result.payload),
            content_type=result.content_type,
            etag=result.etag,
            fetched_at=time.time(),
            final_url=location if location != url else None,
        )
        self._records[url] = record
        self._mirrored.update((url, location))

        try:
            if result.is_html and self.rewrite_links:
                self._stage(url, rel, result)
            else:
                self._store(url, full, result.payload, record.sha256)
        except MirrorIOError:
            self.drop(url)
            raise
        return record

    def keep(self, record: MirrorRecord) -> MirrorRecord:
        """Register an unchanged (304) resource from the previous run."""
        rel = self.registry.claim(record.url, record.path)
        if rel != record.path:
            record = replace(record, path=rel)
        self._records[record.url] = record
        self._mirrored.add(record.url)
        return record

    def finalize(self) -> List[Tuple[str, MirrorIOError]]:
        """Rewrite and write all staged HTML documents. Returns (url, error) per failed page."""
        errors: List[Tuple[str, MirrorIOError]] = []
        for url in sorted(self._staged):
            page = self._staged[url]
            try:
                data = self._rewrite(page, self._read_staged(page))
                full = resolve_inside(self.root, page.path)
                digest = sha256_bytes(data)
                self._store(url, full, data, digest)
            except MirrorIOError as exc:
                log.error("Failed to write %s: %s", url, exc)
                self.drop(url)
                errors.append((url, exc))
                continue
            self._records[url] = replace(self._records[url], sha256=digest, size=len(data))
            self._unstage(page)
        self._staged.clear()
        # Not empty when a staged page could not be removed.
        with contextlib.suppress(OSError):
            self.staging_dir.rmdir()
        return errors

    def drop(self, url: str) -> None:
        """Forget *url* after a failed write."""
        record = self._records.pop(url, None)
        page = self._staged.pop(url, None)
        if page is not None:
            self._unstage(page)
        self._mirrored.discard(url)
        if record is not None and record.final_url:
            self._mirrored.discard(record.final_url)

    def _stage(self, url: str, rel: str, result: FetchResult) -> None:
        staged = self.staging_dir / f"{sha256_bytes(url.encode('utf-8'))[:24]}.html"
        ensure_directory(self.staging_dir)
        try:
            atomic_write(staged, result.payload)
        except OSError as exc:
            raise MirrorIOError(url, f"cannot stage page: {exc}") from exc
        self._staged[url] = _StagedPage(
            url=url, path=rel, location=result.location, charset=result.charset, staged=staged
        )
        log.debug("Staged %s as %s", url, rel)

    @staticmethod
    def _unstage(page: _StagedPage) -> None:
        try:
            page.staged.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("Cannot remove staged copy %s of %s: %s", page.staged, page.url, exc)

    @staticmethod
    def _read_staged(page: _StagedPage) -> bytes:
        try:
            return page.staged.read_bytes()
        except OSError as exc:
            raise MirrorIOError(page.url, f"cannot read staged page: {exc}") from exc

    def _store(self, url: str, full: Path, data: bytes, digest: str) -> None:
        if store_if_changed(full, data, digest):
            self.files_written += 1
            log.info("Wrote %s to %s (%d bytes)", url, full, len(data))
        else:
            self.files_unchanged += 1
            log.debug("%s is unchanged, not rewriting %s", url, full)

    # ------------------------------------------------------------------ #
    # Link rewriting                                                      #
    # ------------------------------------------------------------------ #
    def _rewrite(self, page: _StagedPage, payload: bytes) -> bytes:
        soup = make_soup(payload, page.charset)
        base = document_base(soup, page.location)

        def _replace(raw: str) -> Optional[str]:
            if not raw or raw.lower().startswith(SKIP_PREFIXES):
                return None
            try:
                canon = self.normalizer.canonical(raw, base)
            except InvalidURL:
                return None
            target = self.local_path_of(canon) if self.normalizer.in_scope(canon) else None
            if target is not None:
                return local_href(target, page.path, urlsplit(raw).fragment)
            if urlsplit(raw).scheme:
                return None
            return urljoin(base, raw)

        changed = False
        for slot in iter_link_attributes(soup):
            changed = rewrite_slot(slot, _replace) or changed
        if not changed:
            return payload
        for tag in soup.find_all("base", href=True):
            del tag["href"]
        return soup.encode(soup.original_encoding or "utf-8")
