# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any, Callable

import pytest
from aiohttp import web

from mirrorurl.config import MirrorConfig


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


def html_response(body: str, **kwargs: Any) -> web.Response:
    return web.Response(text=f"<html><body>{body}</body></html>", content_type="text/html", **kwargs)


@pytest.fixture()
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "mirror"


@pytest.fixture()
def make_config(output_dir: Path) -> Callable[..., MirrorConfig]:
    """
    Factory for a fast MirrorConfig pointing at *base* (a test server URL).
    """

    def _make(base: str, **overrides: Any) -> MirrorConfig:
        data: dict[str, Any] = {
            "start_url": f"{base}/",
            "output_dir": output_dir,
            "max_depth": 3,
            "concurrency": 4,
            "timeout": 5.0,
            "connect_timeout": 2.0,
            "retry_times": 0,
            "backoff_base": 0.01,
            "backoff_max": 0.05,
            "user_agent": "TestAgent/1.0",
        }
        data.update(overrides)
        return MirrorConfig(**data)

    return _make
