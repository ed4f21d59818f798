"""Tests for live feed subscriptions."""

import asyncio

import pytest

from signal_admin.api.streaming import stream_subscription
from signal_admin.errors import ConnectivityError
from signal_admin.realtime.notifier import ChangeNotifier
from signal_admin.realtime.subscriptions import Subscription


class FakeSource:
    """Scripted snapshot source; each value is returned (or raised) once, the last repeats."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        value = self.values.pop(0) if len(self.values) > 1 else self.values[0]
        if isinstance(value, Exception):
            raise value
        return value


async def _take(feed, timeout=2):
    return await asyncio.wait_for(feed.__anext__(), timeout=timeout)


@pytest.mark.asyncio
async def test_emits_first_snapshot_then_only_changes():
    source = FakeSource({"total": 1}, {"total": 1}, {"total": 1}, {"total": 2})
    subscription = Subscription("test", source.fetch, collection="signals", poll_interval=0.01)
    feed = subscription.__aiter__()

    assert await _take(feed) == {"total": 1}
    assert await _take(feed) == {"total": 2}
    assert source.calls >= 4

    subscription.cancel()
    with pytest.raises(StopAsyncIteration):
        await _take(feed)


@pytest.mark.asyncio
async def test_keeps_listening_after_errors():
    source = FakeSource(
        {"total": 1},
        ConnectivityError("store unreachable", operation="compute_snapshot_stats"),
        OSError("connection reset"),
        {"total": 3},
    )
    subscription = Subscription("test", source.fetch, collection="signals", poll_interval=0.01)

    received = []
    async with subscription:
        async for snapshot in subscription:
            received.append(snapshot)
            if len(received) == 2:
                break

    assert received == [{"total": 1}, {"total": 3}]
    assert subscription.cancelled


@pytest.mark.asyncio
async def test_cancel_wakes_a_waiting_consumer():
    source = FakeSource("same")
    subscription = Subscription("test", source.fetch, collection="signals", poll_interval=60)
    feed = subscription.__aiter__()
    assert await _take(feed) == "same"

    pending = asyncio.ensure_future(feed.__anext__())
    await asyncio.sleep(0.05)
    subscription.cancel()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=2)


@pytest.mark.asyncio
async def test_cancelled_subscription_yields_nothing():
    source = FakeSource("x")
    subscription = Subscription("test", source.fetch, collection="signals")
    subscription.cancel()

    assert [s async for s in subscription] == []
    assert source.calls == 0


@pytest.mark.asyncio
async def test_notifier_change_wakes_feed_before_poll_interval():
    notifier = ChangeNotifier(redis_url="redis://unused")
    source = FakeSource(1)
    subscription = Subscription(
        "test", source.fetch, collection="signals", poll_interval=60, notifier=notifier
    )
    feed = subscription.__aiter__()

    assert await _take(feed) == 1
    # Registered while open
    assert notifier.listener_count("signals") == 1

    # Unchanged snapshot: the feed is now waiting out its poll interval
    pending = asyncio.ensure_future(feed.__anext__())
    await asyncio.sleep(0.05)
    assert not pending.done()

    source.values = [3]
    notifier._dispatch("collectors")
    await asyncio.sleep(0.05)
    assert not pending.done()

    notifier._dispatch("signals")
    assert await asyncio.wait_for(pending, timeout=2) == 3

    subscription.cancel()
    assert notifier.listener_count("signals") == 0
    await feed.aclose()


class FakeRequest:
    def __init__(self, disconnect_after: int):
        self.checks = 0
        self.disconnect_after = disconnect_after

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.disconnect_after


@pytest.mark.asyncio
async def test_sse_stream_releases_subscription_on_disconnect():
    source = FakeSource({"total": 1}, {"total": 2}, {"total": 3})
    subscription = Subscription("test", source.fetch, collection="signals", poll_interval=0.01)
    response = stream_subscription(FakeRequest(disconnect_after=2), subscription, lambda s: str(s["total"]))

    chunks = [chunk async for chunk in response.body_iterator]

    assert chunks == ["event: snapshot\ndata: 1\n\n", "event: snapshot\ndata: 2\n\n"]
    assert subscription.cancelled
    assert response.media_type == "text/event-stream"
