# File: mirrorurl/mirror/paths.py
"""mirrorurl.mirror.paths: mapping of URLs to files below the output root.

Scheme
------
* the start host maps to the root itself, every other in-scope host to
  ``_hosts/<host>[_<port>]/``;
* the URL path keeps its hierarchy, percent-escapes decoded;
* an empty name or a trailing slash becomes the index name (``index.html``);
* HTML documents without an HTML suffix get ``.html`` appended;
* a query string turns into a ``_q<sha1[:10]>`` suffix on the file stem;
* characters unsafe on common filesystems become ``_`` and ``.``/``..``
  segments are neutralised;
* ``.mirrorurl/`` is reserved for the manifest.

Two distinct URLs that land on the same path are told apart by
:class:`PathRegistry` with a ``~<sha1(url)[:8]>`` suffix. A directory
segment that is already taken by a file gets a ``~<sha1(prefix)[:8]>``
suffix instead, so ``/data`` and ``/data/x.png`` can both be stored.
"""

from __future__ import annotations

import hashlib
import posixpath
import re
from typing import Dict, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

from mirrorurl.logger import get_logger

__all__ = ("STATE_DIR", "PathMapper", "PathRegistry", "local_href")

log = get_logger("paths")

STATE_DIR = ".mirrorurl"
HTML_SUFFIXES = (".html", ".htm", ".xhtml", ".shtml")
_UNSAFE_RE = re.compile(r'[\x00-\x1f<>:"/\\|?*]')
_MAX_SEGMENT = 200


def _digest(text: str, length: int) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:length]


def _split_name(name: str) -> Tuple[str, str]:
    stem, ext = posixpath.splitext(name)
    return (stem, ext) if stem else (name, "")


def _safe_segment(segment: str) -> str:
    segment = _UNSAFE_RE.sub("_", unquote(segment))
    if segment in (".", ".."):
        return "_" * len(segment)
    if len(segment) > _MAX_SEGMENT:
        stem, ext = _split_name(segment)
        segment = f"{stem[: _MAX_SEGMENT - 20]}_{_digest(segment, 10)}{ext[:9]}"
    return segment


class PathMapper:
    """Pure URL -> relative POSIX path function."""

    def __init__(self, root_url: str, index_name: str = "index.html") -> None:
        self.root_netloc = urlsplit(root_url).netloc
        self.index_name = index_name

    def path_for(self, url: str, *, is_html: bool = False) -> str:
        parts = urlsplit(url)
        prefix: list[str] = []
        if parts.netloc != self.root_netloc:
            prefix = ["_hosts", _safe_segment(parts.netloc.replace(":", "_"))]

        segments = parts.path.split("/")[1:] or [""]
        dirs = [_safe_segment(s) for s in segments[:-1] if s]
        name = _safe_segment(segments[-1]) if segments[-1] else self.index_name

        if is_html and not name.lower().endswith(HTML_SUFFIXES):
            name += ".html"
        if parts.query:
            stem, ext = _split_name(name)
            name = f"{stem}_q{_digest(parts.query, 10)}{ext}"
        if not prefix and dirs and dirs[0] == STATE_DIR:
            dirs[0] = "_" + STATE_DIR
        if not prefix and not dirs and name == STATE_DIR:
            name = "_" + STATE_DIR
        return "/".join(prefix + dirs + [name])


class PathRegistry:
    """Gives every URL exactly one local path; resolves collisions deterministically."""

    def __init__(self) -> None:
        self._by_url: Dict[str, str] = {}
        self._owners: Dict[str, str] = {}
        self._dirs: set[str] = {STATE_DIR}

    def __contains__(self, url: str) -> bool:
        return url in self._by_url

    def lookup(self, url: str) -> Optional[str]:
        return self._by_url.get(url)

    def _taken(self, path: str, url: str) -> bool:
        key = path.lower()
        owner = self._owners.get(key)
        return (owner is not None and owner != url) or key in self._dirs

    def _free_directories(self, path: str) -> str:
        """Rename every directory segment of *path* that is already a file."""
        segments = path.split("/")
        index = 1
        while index < len(segments):
            prefix = "/".join(segments[:index])
            if prefix.lower() in self._owners:
                segments[index - 1] = f"{segments[index - 1]}~{_digest(prefix, 8)}"
                continue
            index += 1
        return "/".join(segments)

    def claim(self, url: str, path: str) -> str:
        """Register *url* at *path* (or a disambiguated variant) and return it."""
        if url in self._by_url:
            return self._by_url[url]
        base = self._free_directories(path)
        candidate = base
        attempt = 0
        while self._taken(candidate, url):
            stem, ext = _split_name(posixpath.basename(base))
            tag = _digest(url if attempt == 0 else f"{url}#{attempt}", 8)
            candidate = posixpath.join(posixpath.dirname(base), f"{stem}~{tag}{ext}")
            attempt += 1
        if candidate != path:
            log.debug("Path %s already used, %s maps to %s", path, url, candidate)
        self._by_url[url] = candidate
        self._owners[candidate.lower()] = url
        parent = posixpath.dirname(candidate)
        while parent:
            self._dirs.add(parent.lower())
            parent = posixpath.dirname(parent)
        return candidate

    def alias(self, url: str, path: str) -> None:
        """Let *url* (e.g. a redirect source) share an existing path."""
        self._by_url.setdefault(url, path)


def local_href(target: str, source: str, fragment: str = "") -> str:
    """Relative, URL-escaped link from the file *source* to the file *target*."""
    start = posixpath.dirname(source) or "."
    rel = posixpath.relpath(target, start)
    href = quote(rel, safe="/~!$&'()*+,;=:@-._")
    if href.startswith(("/", "~")) or ":" in href.split("/", 1)[0]:
        href = "./" + href
    return f"{href}#{fragment}" if fragment else href
