# File: mirrorurl/urls.py
"""mirrorurl.urls: URL canonicalisation and scope filtering.

Canonical form
--------------
* scheme and host are lower-cased, default ports (80/443) removed;
* dot segments are removed from the path, an empty path becomes ``/``;
* percent-escapes use upper-case hex, escaped unreserved characters are
  decoded and characters that may not appear in a URL are escaped;
* the fragment is always dropped;
* the query follows :class:`~mirrorurl.config.QueryPolicy`:
  ``preserve`` keeps it byte-for-byte (after escape normalisation),
  ``sort`` orders the ``key=value`` pairs, ``drop`` removes it.

The transformation is idempotent: ``normalize_url(normalize_url(u)) == normalize_url(u)``.
"""

from __future__ import annotations

import re
from typing import Sequence, Union
from urllib.parse import parse_qsl, quote, urlencode, urljoin, urlsplit, urlunsplit

from mirrorurl.config import QueryPolicy, ScopePolicy
from mirrorurl.errors import InvalidURL, OutOfScope

__all__: Sequence[str] = (
    "normalize_url",
    "UrlNormalizer",
    "registrable_host",
    "scope_prefix",
)

_SUPPORTED_SCHEMES = ("http", "https")
_DEFAULT_PORTS = {"http": 80, "https": 443}
_UNRESERVED = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~")
_PCT_RE = re.compile(r"%([0-9A-Fa-f]{2})")
# "%" stays safe so existing escapes are not double-encoded.
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = "/?%:@!$&'()*+,;=-._~"

_PolicyT = Union[QueryPolicy, str]


def _normalize_escapes(text: str, safe: str) -> str:
    def _fix(match: re.Match[str]) -> str:
        char = chr(int(match.group(1), 16))
        return char if char in _UNRESERVED else f"%{match.group(1).upper()}"

    text = _PCT_RE.sub(_fix, text)
    # A lone "%" that does not start an escape is itself escaped.
    text = re.sub(r"%(?![0-9A-Fa-f]{2})", "%25", text)
    return quote(text, safe=safe)


def _remove_dot_segments(path: str) -> str:
    """RFC 3986 section 5.2.4."""
    if "." not in path:
        return path
    output: list[str] = []
    segments = path.split("/")
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        if seg == ".":
            if last:
                output.append("")
            continue
        if seg == "..":
            if len(output) > 1:
                output.pop()
            if last:
                output.append("")
            continue
        output.append(seg)
    result = "/".join(output)
    if path.startswith("/") and not result.startswith("/"):
        result = "/" + result
    return result


def _normalize_query(query: str, policy: QueryPolicy) -> str:
    if policy is QueryPolicy.DROP or not query:
        return ""
    if policy is QueryPolicy.SORT:
        pairs = parse_qsl(query, keep_blank_values=True)
        pairs.sort()
        return urlencode(pairs)
    return _normalize_escapes(query, _QUERY_SAFE)


def normalize_url(
    raw: str,
    base: str | None = None,
    query_policy: _PolicyT = QueryPolicy.PRESERVE,
) -> str:
    """Resolve *raw* against *base* and return its canonical form.

    Raises :class:`InvalidURL` for unparseable URLs, URLs without a host and
    schemes other than http(s).
    """
    policy = QueryPolicy(query_policy)
    text = (raw or "").strip()
    try:
        absolute = urljoin(base, text) if base else text
        parts = urlsplit(absolute)
        port = parts.port
    except ValueError as exc:
        raise InvalidURL(text, str(exc)) from exc

    scheme = parts.scheme.lower()
    if scheme not in _SUPPORTED_SCHEMES:
        raise InvalidURL(absolute, f"unsupported scheme {scheme or '(none)'!r}")
    host = (parts.hostname or "").lower()
    if not host:
        raise InvalidURL(absolute, "missing host")

    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.netloc.rpartition("@")[0]
        host = f"{userinfo}@{host}"

    # Escapes first: "%2E%2E" decodes to a dot segment that must then be removed.
    path = _normalize_escapes(parts.path, _PATH_SAFE)
    path = _remove_dot_segments(path) or "/"
    query = _normalize_query(parts.query, policy)
    return urlunsplit((scheme, host, path, query, ""))


def registrable_host(host: str) -> str:
    """Host used for ``domain`` scope comparisons: lower-case, without ``www.``."""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def scope_prefix(url: str) -> str:
    """Directory part of *url*'s path, used by ``prefix`` scope."""
    path = urlsplit(url).path or "/"
    return path[: path.rfind("/") + 1]


class UrlNormalizer:
    """Canonicalises links and filters them against the scope of the start URL."""

    def __init__(
        self,
        root: str,
        scope: Union[ScopePolicy, str] = ScopePolicy.HOST,
        query_policy: _PolicyT = QueryPolicy.PRESERVE,
    ) -> None:
        self.query_policy = QueryPolicy(query_policy)
        self.scope = ScopePolicy(scope)
        self.root = normalize_url(root, query_policy=self.query_policy)
        parts = urlsplit(self.root)
        self._root_netloc = parts.netloc
        self._root_domain = registrable_host(parts.hostname or "")
        self._root_prefix = scope_prefix(self.root)

    def canonical(self, raw: str, base: str | None = None) -> str:
        """Canonical form without any scope check."""
        return normalize_url(raw, base, self.query_policy)

    def normalize(self, raw: str, base: str | None = None) -> str:
        """Canonical form of *raw*; raises :class:`OutOfScope` for foreign URLs."""
        url = self.canonical(raw, base)
        self.check_scope(url)
        return url

    def in_scope(self, url: str) -> bool:
        try:
            self.check_scope(url)
        except OutOfScope:
            return False
        return True

    def check_scope(self, url: str) -> None:
        parts = urlsplit(url)
        if self.scope is ScopePolicy.DOMAIN:
            host = registrable_host(parts.hostname or "")
            if host == self._root_domain or host.endswith("." + self._root_domain):
                return
            raise OutOfScope(url, f"host {parts.hostname} is not within {self._root_domain}")
        if parts.netloc != self._root_netloc:
            raise OutOfScope(url, f"host {parts.netloc} differs from {self._root_netloc}")
        if self.scope is ScopePolicy.PREFIX and not (parts.path or "/").startswith(self._root_prefix):
            raise OutOfScope(url, f"path is not below {self._root_prefix}")

    def relative_path(self, url: str) -> str:
        """Path plus query of *url* relative to the start URL's directory (for skip lists)."""
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.netloc == self._root_netloc and path.startswith(self._root_prefix):
            path = path[len(self._root_prefix):]
        else:
            path = path.lstrip("/")
        return f"{path}?{parts.query}" if parts.query else path
