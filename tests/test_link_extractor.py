# File: tests/test_link_extractor.py
from mirrorurl.config import QueryPolicy
from mirrorurl.crawler.link_extractor import (
    extract_links,
    iter_link_attributes,
    make_soup,
    rewrite_slot,
    slot_values,
)

PAGE = """<html><head>
<base href="http://example.com/sub/">
<link rel="stylesheet" href="style.css">
<style>body { background: url('bg.png') } @import "print.css";</style>
<meta http-equiv="refresh" content="5; url=next.html">
</head><body>
<a href="page.html#top">top</a>
<a href="mailto:someone@example.com">mail</a>
<a href="javascript:void(0)">js</a>
<img src="a.png" srcset="a-1x.png 1x, a-2x.png 2x">
<div style="background-image: url(div.png)"></div>
<a href="page.html">duplicate</a>
<a href="http://other.org/">external</a>
<a href="http://[bad">broken</a>
</body></html>"""


def test_extract_links_document_order():
    links = list(extract_links(PAGE, "http://example.com/index.html"))
    sub = "http://example.com/sub/"
    assert links == [
        sub + "style.css",
        sub + "bg.png",
        sub + "print.css",
        sub + "next.html",
        sub + "page.html",
        sub + "a.png",
        sub + "a-1x.png",
        sub + "a-2x.png",
        sub + "div.png",
        "http://other.org/",
    ]


def test_extract_links_from_bytes_with_charset():
    html = '<a href="café.html">x</a>'.encode("latin-1")
    links = list(extract_links(html, "http://example.com/", charset="latin-1"))
    assert links == ["http://example.com/caf%C3%A9.html"]


def test_extract_links_query_policy():
    html = '<a href="/list?b=2&amp;a=1">x</a><a href="/list?a=1&amp;b=2">y</a>'
    assert list(extract_links(html, "http://example.com/", query_policy=QueryPolicy.SORT)) == [
        "http://example.com/list?a=1&b=2"
    ]
    assert list(extract_links(html, "http://example.com/", query_policy="drop")) == [
        "http://example.com/list"
    ]


def test_extract_links_tolerates_malformed_markup():
    html = "<div><a href='one.html'>1<p><a href=two.html>2<img src=x.png>"
    assert list(extract_links(html, "http://example.com/")) == [
        "http://example.com/one.html",
        "http://example.com/two.html",
        "http://example.com/x.png",
    ]
    assert list(extract_links("", "http://example.com/")) == []


def test_extract_links_is_lazy():
    gen = extract_links('<a href="/a">a</a><a href="/b">b</a>', "http://example.com/")
    assert next(gen) == "http://example.com/a"


def test_slot_values_kinds():
    soup = make_soup(PAGE)
    kinds = {}
    for slot in iter_link_attributes(soup):
        kinds.setdefault(slot.kind, []).extend(slot_values(slot))
    assert kinds["srcset"] == ["a-1x.png", "a-2x.png"]
    assert kinds["refresh"] == ["next.html"]
    assert "div.png" in kinds["css"]


def test_rewrite_slot_srcset_and_css():
    soup = make_soup('<img srcset="a.png 1x, b.png 2x"><p style="background: url(&quot;c.png&quot;)"></p>')

    def replace(value):
        return "local/" + value if value in ("a.png", "c.png") else None

    changed = [rewrite_slot(slot, replace) for slot in iter_link_attributes(soup)]
    assert changed == [True, True]
    assert soup.img["srcset"] == "local/a.png 1x, b.png 2x"
    assert soup.p["style"] == 'background: url("local/c.png")'


def test_rewrite_slot_unchanged():
    soup = make_soup('<a href="x.html">x</a>')
    slot = next(iter_link_attributes(soup))
    assert rewrite_slot(slot, lambda value: None) is False
    assert soup.a["href"] == "x.html"
