# mirrorurl/crawler/link_extractor.py
"""
Link extraction for mirrorurl.

The same attribute table drives both discovery (:func:`extract_links`) and
the writer's link rewriting, so every URL that is followed can also be
rewritten to its local copy.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple, Union

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import Tag

from mirrorurl.config import QueryPolicy
from mirrorurl.errors import InvalidURL, ParseDegraded
from mirrorurl.logger import get_logger
from mirrorurl.urls import normalize_url

__all__ = (
    "LinkSlot",
    "make_soup",
    "document_base",
    "iter_link_attributes",
    "slot_values",
    "rewrite_slot",
    "extract_links",
)

log = get_logger("extractor")

# tag -> attributes holding a single URL
URL_ATTRIBUTES: dict[str, Tuple[str, ...]] = {
    "a": ("href",),
    "area": ("href",),
    "link": ("href",),
    "img": ("src",),
    "script": ("src",),
    "iframe": ("src",),
    "frame": ("src",),
    "embed": ("src",),
    "source": ("src",),
    "track": ("src",),
    "audio": ("src",),
    "video": ("src", "poster"),
    "input": ("src",),
    "object": ("data",),
}
SRCSET_TAGS = ("img", "source")

CSS_URL_RE = re.compile(r"url\(\s*([\"']?)([^)\"']+)\1\s*\)", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"@import\s+([\"'])([^\"']+)\1", re.IGNORECASE)
REFRESH_RE = re.compile(r"^(\s*[\d.]*\s*[;,]?\s*url\s*=\s*)(['\"]?)([^'\"]*)\2\s*$", re.IGNORECASE)
SKIP_PREFIXES = ("#", "mailto:", "javascript:", "data:", "tel:", "about:")

_HtmlT = Union[bytes, str]


@dataclass(frozen=True)
class LinkSlot:
    """A place in the document that holds link(s).

    ``kind`` is one of ``url`` (attribute is a URL), ``srcset``, ``css``
    (attribute or element text is CSS) or ``refresh`` (meta refresh content).
    ``attr`` is ``None`` for the text of a ``<style>`` element.
    """

    tag: Tag
    attr: Optional[str]
    kind: str


def make_soup(html: _HtmlT, charset: Optional[str] = None) -> BeautifulSoup:
    """Parse markup with the tolerant stdlib-backed parser."""
    if isinstance(html, bytes):
        return BeautifulSoup(html, "html.parser", from_encoding=charset)
    return BeautifulSoup(html, "html.parser")


def document_base(soup: BeautifulSoup, page_url: str) -> str:
    """Effective base URL: ``<base href>`` if present, else the page URL."""
    base = soup.find("base", href=True)
    if isinstance(base, Tag):
        href = base.get("href")
        if isinstance(href, str) and href.strip():
            try:
                return normalize_url(href, page_url)
            except InvalidURL:
                log.debug("Ignoring invalid <base href=%r> on %s", href, page_url)
    return page_url


def iter_link_attributes(soup: BeautifulSoup) -> Iterator[LinkSlot]:
    """Yield every link-bearing slot of the document in document order."""
    for tag in soup.find_all(True):
        if not isinstance(tag, Tag):
            continue
        name = tag.name.lower()
        for attr in URL_ATTRIBUTES.get(name, ()):
            if tag.has_attr(attr):
                yield LinkSlot(tag, attr, "url")
        if name in SRCSET_TAGS and tag.has_attr("srcset"):
            yield LinkSlot(tag, "srcset", "srcset")
        if tag.has_attr("style"):
            yield LinkSlot(tag, "style", "css")
        if name == "style" and tag.string:
            yield LinkSlot(tag, None, "css")
        if name == "meta" and str(tag.get("http-equiv", "")).lower() == "refresh" and tag.has_attr("content"):
            yield LinkSlot(tag, "content", "refresh")


def _slot_text(slot: LinkSlot) -> str:
    if slot.attr is None:
        return slot.tag.string or ""
    value = slot.tag.get(slot.attr)
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def _split_srcset(value: str) -> List[Tuple[str, str]]:
    candidates: List[Tuple[str, str]] = []
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        url, _, descriptor = chunk.partition(" ")
        candidates.append((url, descriptor.strip()))
    return candidates


def slot_values(slot: LinkSlot) -> List[str]:
    """Raw link values held by *slot* (unresolved)."""
    text = _slot_text(slot)
    if slot.kind == "url":
        return [text.strip()] if text.strip() else []
    if slot.kind == "srcset":
        return [url for url, _ in _split_srcset(text)]
    if slot.kind == "css":
        return [m.group(2).strip() for m in CSS_URL_RE.finditer(text)] + [
            m.group(2).strip() for m in CSS_IMPORT_RE.finditer(text)
        ]
    match = REFRESH_RE.match(text)
    if match and match.group(3).strip():
        return [match.group(3).strip()]
    return []


def rewrite_slot(slot: LinkSlot, replace: Callable[[str], Optional[str]]) -> bool:
    """Rewrite the links of *slot* in place.

    *replace* gets each raw value and returns the new value or ``None`` to
    keep it. Returns True if anything changed.
    """
    text = _slot_text(slot)
    changed = False

    def _sub(value: str) -> str:
        nonlocal changed
        new = replace(value)
        if new is None or new == value:
            return value
        changed = True
        return new

    if slot.kind == "url":
        new_text = _sub(text.strip())
    elif slot.kind == "srcset":
        parts = []
        for url, descriptor in _split_srcset(text):
            url = _sub(url)
            parts.append(f"{url} {descriptor}" if descriptor else url)
        new_text = ", ".join(parts)
    elif slot.kind == "css":
        new_text = CSS_URL_RE.sub(
            lambda m: f"url({m.group(1)}{_sub(m.group(2).strip())}{m.group(1)})", text
        )
        new_text = CSS_IMPORT_RE.sub(
            lambda m: f"@import {m.group(1)}{_sub(m.group(2).strip())}{m.group(1)}", new_text
        )
    else:
        match = REFRESH_RE.match(text)
        if not match:
            return False
        new_text = f"{match.group(1)}{match.group(2)}{_sub(match.group(3).strip())}{match.group(2)}"

    if not changed:
        return False
    if slot.attr is None:
        slot.tag.string = new_text
    else:
        slot.tag[slot.attr] = new_text
    return True


def extract_links(
    html: _HtmlT,
    base_url: str,
    *,
    charset: Optional[str] = None,
    query_policy: Union[QueryPolicy, str] = QueryPolicy.PRESERVE,
) -> Iterator[str]:
    """
    Lazily yield canonical absolute URLs referenced by *html*.

    Pure and total: malformed markup yields whatever could be recovered,
    invalid or unsupported links are dropped one by one. Scope filtering is
    left to the caller. Each URL is yielded once, in document order.
    """
    try:
        soup = make_soup(html, charset)
    except (ParserRejectedMarkup, LookupError, ValueError) as exc:
        log.debug("%s", ParseDegraded(base_url, f"markup rejected: {exc}"))
        return
    base = document_base(soup, base_url)
    seen: set[str] = set()
    for slot in iter_link_attributes(soup):
        for raw in slot_values(slot):
            if not raw or raw.lower().startswith(SKIP_PREFIXES):
                continue
            try:
                url = normalize_url(raw, base, query_policy)
            except InvalidURL as exc:
                log.debug("%s", ParseDegraded(base_url, f"dropped link {raw!r}: {exc.message}"))
                continue
            if url not in seen:
                seen.add(url)
                yield url
