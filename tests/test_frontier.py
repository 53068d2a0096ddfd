# File: tests/test_frontier.py
import asyncio
import time

import pytest

from mirrorurl.crawler.frontier import CrawlState, Frontier
from mirrorurl.crawler.models import CrawlTarget


@pytest.mark.asyncio()
async def test_offer_is_atomic_under_contention():
    frontier = Frontier()
    target = CrawlTarget("http://example.com/a")
    results = await asyncio.gather(*(frontier.offer(target) for _ in range(50)))
    assert results.count(True) == 1
    assert frontier.visited_count == 1
    assert frontier.is_visited(target.url)


@pytest.mark.asyncio()
async def test_breadth_first_order():
    frontier = Frontier()
    await frontier.offer(CrawlTarget("http://e.com/deep", depth=2))
    await frontier.offer(CrawlTarget("http://e.com/root", depth=0))
    await frontier.offer(CrawlTarget("http://e.com/mid1", depth=1))
    await frontier.offer(CrawlTarget("http://e.com/mid2", depth=1))
    frontier.start()
    order = []
    for _ in range(4):
        target = await frontier.get()
        order.append(target.url)
    assert order == ["http://e.com/root", "http://e.com/mid1", "http://e.com/mid2", "http://e.com/deep"]


@pytest.mark.asyncio()
async def test_page_limit():
    frontier = Frontier(max_pages=2)
    assert await frontier.offer(CrawlTarget("http://e.com/1"))
    assert await frontier.offer(CrawlTarget("http://e.com/2"))
    assert not await frontier.offer(CrawlTarget("http://e.com/3"))
    assert frontier.limit_reached


@pytest.mark.asyncio()
async def test_drains_when_nothing_left():
    frontier = Frontier()
    root = CrawlTarget("http://e.com/")
    await frontier.offer(root)
    frontier.start()
    assert frontier.state is CrawlState.RUNNING
    assert await frontier.get() == root
    await frontier.task_done(root)
    assert await frontier.get() is None
    assert frontier.state is CrawlState.DRAINING
    frontier.finish()
    assert frontier.state is CrawlState.DONE


@pytest.mark.asyncio()
async def test_waiting_worker_gets_new_work():
    frontier = Frontier()
    root = CrawlTarget("http://e.com/")
    await frontier.offer(root)
    frontier.start()
    assert await frontier.get() == root

    waiter = asyncio.create_task(frontier.get())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    child = root.child("http://e.com/child")
    assert await frontier.offer(child)
    assert await asyncio.wait_for(waiter, 1) == child
    assert child.depth == 1 and child.referrer == root.url


@pytest.mark.asyncio()
async def test_deferred_retry_becomes_due():
    frontier = Frontier()
    target = CrawlTarget("http://e.com/flaky")
    await frontier.offer(target)
    frontier.start()
    assert await frontier.get() == target

    started = time.monotonic()
    assert await frontier.defer(target.retried(0.05))
    assert frontier.pending() == 1
    again = await asyncio.wait_for(frontier.get(), 1)
    assert again.url == target.url
    assert again.retry.attempt == 1
    assert time.monotonic() - started >= 0.04


@pytest.mark.asyncio()
async def test_close_stops_handing_out_work():
    frontier = Frontier()
    await frontier.offer(CrawlTarget("http://e.com/a"))
    await frontier.offer(CrawlTarget("http://e.com/b"))
    frontier.start()
    dropped = await frontier.close()
    assert [t.url for t in dropped] == ["http://e.com/a", "http://e.com/b"]
    assert frontier.state is CrawlState.DRAINING and frontier.closed
    assert await frontier.get() is None
    assert not await frontier.offer(CrawlTarget("http://e.com/c"))
    assert not frontier.limit_reached
    assert await frontier.close() == []


@pytest.mark.asyncio()
async def test_close_returns_deferred_retries_and_refuses_new_ones():
    frontier = Frontier()
    first = CrawlTarget("http://e.com/first")
    second = CrawlTarget("http://e.com/second")
    await frontier.offer(first)
    await frontier.offer(second)
    frontier.start()
    assert await frontier.get() == first
    assert await frontier.get() == second
    assert await frontier.defer(first.retried(10))

    dropped = await frontier.close()
    assert [(t.url, t.retry.attempt) for t in dropped] == [(first.url, 1)]
    assert not await frontier.defer(second.retried(0))
    assert frontier.pending() == 0
    frontier.finish()


@pytest.mark.asyncio()
async def test_abandon_empties_the_queue():
    frontier = Frontier()
    await frontier.offer(CrawlTarget("http://e.com/a"))
    frontier.start()
    assert [t.url for t in frontier.abandon()] == ["http://e.com/a"]
    assert frontier.closed
    assert await frontier.get() is None


@pytest.mark.asyncio()
async def test_claim_marks_visited():
    frontier = Frontier()
    assert await frontier.claim("http://e.com/redirected")
    assert not await frontier.claim("http://e.com/redirected")
    assert not await frontier.offer(CrawlTarget("http://e.com/redirected"))


@pytest.mark.asyncio()
async def test_lifecycle_errors():
    frontier = Frontier()
    target = CrawlTarget("http://e.com/")
    await frontier.offer(target)
    frontier.start()
    with pytest.raises(RuntimeError):
        frontier.start()
    await frontier.get()
    with pytest.raises(RuntimeError):
        frontier.finish()
