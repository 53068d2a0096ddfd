# File: mirrorurl/errors.py
"""mirrorurl.errors: exception taxonomy and skip reasons.

Only :class:`SetupError` is fatal for a whole run. Everything else is
isolated to a single URL: the crawler records it in the run summary and
moves on.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = (
    "SkipReason",
    "MirrorError",
    "InvalidURL",
    "OutOfScope",
    "NetworkError",
    "RedirectError",
    "MirrorIOError",
    "PathTraversalError",
    "ParseDegraded",
    "SetupError",
)


class SkipReason(str, Enum):
    """Why a URL was not mirrored."""

    OUT_OF_SCOPE = "out_of_scope"
    INVALID_URL = "invalid_url"
    HTTP_STATUS = "http_status"
    NETWORK = "network"
    IO = "io"
    SKIP_LIST = "skip_list"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    REDIRECT_OUT_OF_SCOPE = "redirect_out_of_scope"
    PAGE_LIMIT = "page_limit"
    INTERNAL = "internal_error"
    CANCELLED = "cancelled"

    def describe(self, detail: Optional[str] = None) -> str:
        text = _DESCRIPTIONS[self]
        return f"{text} ({detail})" if detail else text


_DESCRIPTIONS = {
    SkipReason.OUT_OF_SCOPE: "URL is outside the mirror scope",
    SkipReason.INVALID_URL: "URL is not valid",
    SkipReason.HTTP_STATUS: "Server answered with a non-success status",
    SkipReason.NETWORK: "Network failure",
    SkipReason.IO: "Failed to write the local copy",
    SkipReason.SKIP_LIST: "Path is in the skip list",
    SkipReason.TOO_MANY_REDIRECTS: "Too many redirects",
    SkipReason.REDIRECT_OUT_OF_SCOPE: "Redirect leaves the mirror scope",
    SkipReason.PAGE_LIMIT: "Page limit reached",
    SkipReason.INTERNAL: "Unexpected error",
    SkipReason.CANCELLED: "Run stopped before fetching",
}


class MirrorError(Exception):
    """Base class for all mirrorurl errors."""

    reason: SkipReason = SkipReason.INVALID_URL

    def __init__(self, url: str, message: str = "") -> None:
        self.url = url
        self.message = message
        super().__init__(f"{url}: {message}" if message else url)

    @property
    def detail(self) -> Optional[str]:
        return self.message or None


class InvalidURL(MirrorError):
    """The URL can not be parsed or uses an unsupported scheme."""

    reason = SkipReason.INVALID_URL


class OutOfScope(MirrorError):
    """Filter signal: the URL is valid but outside the configured scope."""

    reason = SkipReason.OUT_OF_SCOPE


class NetworkError(MirrorError):
    """Transport level failure. The only retryable error."""

    reason = SkipReason.NETWORK

    def __init__(self, url: str, kind: str, message: str = "") -> None:
        self.kind = kind
        super().__init__(url, f"{kind}: {message}" if message else kind)


class RedirectError(MirrorError):
    """Redirect chain left the scope or exceeded the hop limit."""

    def __init__(self, url: str, reason: SkipReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(url, message)


class MirrorIOError(MirrorError):
    """Filesystem failure while writing one resource."""

    reason = SkipReason.IO


class PathTraversalError(MirrorIOError):
    """Mapped local path resolves outside the output root."""


class ParseDegraded(MirrorError):
    """Part of a document could not be parsed. Never leaves the extractor."""


class SetupError(Exception):
    """Fatal configuration problem: invalid start URL, unusable output directory."""
