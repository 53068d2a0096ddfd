# File: tests/test_fetcher.py
import asyncio
import time

import brotli
import pytest
from aiohttp import ClientSession, web

from conftest import serve_app
from mirrorurl.crawler.fetcher import Fetcher, HostPoliteness, parse_content_type
from mirrorurl.errors import NetworkError, OutOfScope, RedirectError, SkipReason


@pytest.mark.parametrize(
    "header,expected",
    [
        ("text/html; charset=UTF-8", ("text/html", "UTF-8")),
        ('Text/HTML;charset="iso-8859-1"', ("text/html", "iso-8859-1")),
        ("image/png", ("image/png", None)),
        ("", ("", None)),
    ],
)
def test_parse_content_type(header, expected):
    assert parse_content_type(header) == expected


@pytest.mark.asyncio()
async def test_politeness_spacing():
    polite = HostPoliteness(per_host=4, delay=0.1)
    starts = []

    async def hit():
        async with polite.slot("http://example.com/x"):
            starts.append(time.monotonic())

    await asyncio.gather(hit(), hit(), hit())
    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.09 for gap in gaps)


@pytest.mark.asyncio()
async def test_politeness_is_per_host():
    polite = HostPoliteness(per_host=1, delay=0.5)
    started = time.monotonic()

    async def hit(url):
        async with polite.slot(url):
            pass

    await asyncio.gather(hit("http://a.example/"), hit("http://b.example/"))
    assert time.monotonic() - started < 0.4


@pytest.mark.asyncio()
async def test_fetch_variants(unused_tcp_port: int, make_config):
    app = web.Application()

    async def page(_):
        return web.Response(text="<p>hi</p>", content_type="text/html", charset="utf-8")

    async def compressed(_):
        return web.Response(
            body=brotli.compress(b"squeezed"),
            headers={"Content-Encoding": "br", "Content-Type": "text/plain"},
        )

    async def tagged(request):
        if request.headers.get("If-None-Match") == '"t1"':
            return web.Response(status=304, headers={"ETag": '"t1"'})
        return web.Response(body=b"data", headers={"ETag": '"t1"'}, content_type="application/octet-stream")

    async def hop(_):
        raise web.HTTPFound("/page")

    async def away(_):
        raise web.HTTPFound("http://elsewhere.invalid/")

    async def slow(_):
        await asyncio.sleep(0.5)
        return web.Response(text="late")

    app.router.add_get("/page", page)
    app.router.add_get("/br", compressed)
    app.router.add_get("/tagged", tagged)
    app.router.add_get("/hop", hop)
    app.router.add_get("/away", away)
    app.router.add_get("/slow", slow)

    def guard(url):
        if "elsewhere" in url:
            raise OutOfScope(url, "foreign host")

    async for base in serve_app(app, unused_tcp_port):
        async with ClientSession() as session:
            fetcher = Fetcher(session, make_config(base, timeout=0.2))

            result = await fetcher.fetch(f"{base}/page")
            assert result.ok and result.is_html
            assert result.charset == "utf-8"
            assert result.payload == b"<p>hi</p>"
            assert result.final_url is None

            missing = await fetcher.fetch(f"{base}/nothing")
            assert missing.status == 404 and not missing.ok
            assert missing.payload == b""

            squeezed = await fetcher.fetch(f"{base}/br")
            assert squeezed.payload == b"squeezed"

            first = await fetcher.fetch(f"{base}/tagged")
            assert first.etag == '"t1"'
            again = await fetcher.fetch(f"{base}/tagged", etag=first.etag)
            assert again.not_modified

            hopped = await fetcher.fetch(f"{base}/hop", redirect_guard=guard)
            assert hopped.final_url == f"{base}/page"
            assert hopped.location == f"{base}/page"
            assert hopped.redirects == (f"{base}/page",)

            with pytest.raises(RedirectError) as exc_info:
                await fetcher.fetch(f"{base}/away", redirect_guard=guard)
            assert exc_info.value.reason is SkipReason.REDIRECT_OUT_OF_SCOPE

            with pytest.raises(NetworkError) as exc_info:
                await fetcher.fetch(f"{base}/slow")
            assert exc_info.value.kind == "timeout"


@pytest.mark.asyncio()
async def test_connection_refused(unused_tcp_port: int, make_config):
    async with ClientSession() as session:
        fetcher = Fetcher(session, make_config(f"http://127.0.0.1:{unused_tcp_port}"))
        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch(f"http://127.0.0.1:{unused_tcp_port}/")
    assert exc_info.value.kind == "connect"
    assert exc_info.value.reason is SkipReason.NETWORK
