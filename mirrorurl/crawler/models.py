# mirrorurl/crawler/models.py
"""
Data models shared by the crawler, the fetcher and the mirror writer.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from mirrorurl.errors import SkipReason

HTML_MIME_TYPES: Tuple[str, ...] = ("text/html", "application/xhtml+xml")


@dataclass(frozen=True, slots=True)
class RetryState:
    """Attempt counter and the earliest monotonic time of the next attempt."""

    attempt: int = 0
    not_before: float = 0.0

    def next(self, delay: float) -> RetryState:
        return RetryState(attempt=self.attempt + 1, not_before=time.monotonic() + delay)


@dataclass(frozen=True, slots=True)
class CrawlTarget:
    """A discovered URL waiting in the frontier."""

    url: str
    depth: int = 0
    referrer: Optional[str] = None
    retry: RetryState = field(default_factory=RetryState)

    def child(self, url: str) -> CrawlTarget:
        return CrawlTarget(url=url, depth=self.depth + 1, referrer=self.url)

    def retried(self, delay: float) -> CrawlTarget:
        return replace(self, retry=self.retry.next(delay))


@dataclass(slots=True)
class FetchResult:
    """Outcome of one HTTP GET (after redirects). HTTP errors are data here."""

    url: str
    status: int
    content_type: str = ""
    payload: bytes = b""
    final_url: Optional[str] = None
    charset: Optional[str] = None
    etag: Optional[str] = None
    redirects: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def not_modified(self) -> bool:
        return self.status == 304

    @property
    def location(self) -> str:
        """URL the payload really came from."""
        return self.final_url or self.url

    @property
    def is_html(self) -> bool:
        if self.content_type:
            return self.content_type in HTML_MIME_TYPES
        head = self.payload[:512].lstrip().lower()
        return head.startswith((b"<!doctype html", b"<html"))


@dataclass(frozen=True, slots=True)
class MirrorRecord:
    """One mirrored resource, as stored in the manifest."""

    url: str
    path: str
    sha256: str
    size: int
    content_type: str = ""
    etag: Optional[str] = None
    fetched_at: float = 0.0
    final_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MirrorRecord:
        return cls(
            url=str(data["url"]),
            path=str(data["path"]),
            sha256=str(data["sha256"]),
            size=int(data["size"]),
            content_type=str(data.get("content_type") or ""),
            etag=data.get("etag"),
            fetched_at=float(data.get("fetched_at") or 0.0),
            final_url=data.get("final_url"),
        )

    @property
    def is_html(self) -> bool:
        return self.content_type in HTML_MIME_TYPES


@dataclass(frozen=True, slots=True)
class SkipRecord:
    """A URL that was dropped, and why."""

    url: str
    reason: SkipReason
    detail: Optional[str] = None
    referrer: Optional[str] = None

    def describe(self) -> str:
        return f"Skipping {self.url}: {self.reason.describe(self.detail)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "reason": self.reason.value,
            "detail": self.detail,
            "referrer": self.referrer,
        }
