# File: tests/test_urls.py
"""Тесты канонизации URL и фильтра области обхода."""
import pytest

from mirrorurl.config import QueryPolicy, ScopePolicy
from mirrorurl.errors import InvalidURL, OutOfScope
from mirrorurl.urls import UrlNormalizer, normalize_url, registrable_host, scope_prefix


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("HTTP://Example.COM:80/a/./b/../c", "http://example.com/a/c"),
        ("http://example.com", "http://example.com/"),
        ("https://example.com:443/x#frag", "https://example.com/x"),
        ("http://example.com:8080/", "http://example.com:8080/"),
        ("http://example.com/%7euser/%2fa%zz", "http://example.com/~user/%2Fa%25zz"),
        ("http://example.com/a b", "http://example.com/a%20b"),
        ("http://example.com/a/%2E%2E/b", "http://example.com/b"),
        ("http://example.com/a/..", "http://example.com/"),
        ("http://[::1]:8000/x", "http://[::1]:8000/x"),
    ],
)
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


def test_normalize_relative_against_base():
    base = "http://example.com/a/b/page.html"
    assert normalize_url("../img/x.png", base) == "http://example.com/a/img/x.png"
    assert normalize_url("//cdn.example.com/lib.js", base) == "http://cdn.example.com/lib.js"
    assert normalize_url("?page=2", base) == "http://example.com/a/b/page.html?page=2"


def test_query_policies():
    url = "http://example.com/list?b=2&a=1"
    assert normalize_url(url, query_policy=QueryPolicy.PRESERVE).endswith("?b=2&a=1")
    assert normalize_url(url, query_policy=QueryPolicy.SORT).endswith("?a=1&b=2")
    assert normalize_url(url, query_policy=QueryPolicy.DROP) == "http://example.com/list"


@pytest.mark.parametrize(
    "raw",
    [
        "ftp://example.com/file",
        "mailto:someone@example.com",
        "http://",
        "http://example.com:99999/",
        "not a url",
    ],
)
def test_invalid_urls(raw):
    with pytest.raises(InvalidURL):
        normalize_url(raw)


def test_normalize_is_idempotent():
    samples = [
        "HTTP://WWW.Example.com:80/%7Ea/./b/../c%2f?q=a b#x",
        "http://example.com/a/%2E%2E/%2e/b/",
        "https://example.com:443/%41%42%zz",
        "http://example.com/path;params?x=%3d",
    ]
    for raw in samples:
        once = normalize_url(raw)
        assert normalize_url(once) == once


def test_helpers():
    assert registrable_host("WWW.Example.com") == "example.com"
    assert registrable_host("cdn.example.com") == "cdn.example.com"
    assert scope_prefix("http://example.com/docs/guide.html") == "/docs/"
    assert scope_prefix("http://example.com/docs/") == "/docs/"


def test_host_scope():
    norm = UrlNormalizer("http://example.com/start/")
    assert norm.root == "http://example.com/start/"
    assert norm.normalize("/other", norm.root) == "http://example.com/other"
    assert not norm.in_scope("http://sub.example.com/")
    with pytest.raises(OutOfScope):
        norm.normalize("http://example.org/")


def test_domain_scope():
    norm = UrlNormalizer("http://www.example.com/", ScopePolicy.DOMAIN)
    assert norm.in_scope("http://cdn.example.com/x.js")
    assert norm.in_scope("https://example.com/")
    assert not norm.in_scope("http://example.org/")
    assert not norm.in_scope("http://notexample.com/")


def test_prefix_scope():
    norm = UrlNormalizer("http://example.com/docs/guide.html", ScopePolicy.PREFIX)
    assert norm.in_scope("http://example.com/docs/api/index.html")
    assert not norm.in_scope("http://example.com/blog/")
    assert not norm.in_scope("http://example.com/docsearch")


def test_relative_path():
    norm = UrlNormalizer("http://example.com/docs/")
    assert norm.relative_path("http://example.com/docs/private/a?x=1") == "private/a?x=1"
    assert norm.relative_path("http://example.com/top.html") == "top.html"
