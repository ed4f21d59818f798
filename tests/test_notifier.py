"""Tests for Redis change notifications."""

import asyncio
import uuid

import pytest
import redis.asyncio as redis

from signal_admin.config import settings
from signal_admin.realtime.notifier import CHANNEL_COLLECTORS, CHANNEL_SIGNALS, ChangeNotifier


async def _redis_available() -> bool:
    try:
        client = await redis.from_url(settings.redis_url, decode_responses=True)
        await client.ping()
        await client.aclose()
        return True
    except Exception:
        return False


def test_listeners_are_per_collection():
    notifier = ChangeNotifier(redis_url="redis://unused")
    calls = []

    def on_signals():
        calls.append("signals")

    notifier.add_listener(CHANNEL_SIGNALS, on_signals)
    notifier._dispatch(CHANNEL_COLLECTORS)
    notifier._dispatch(CHANNEL_SIGNALS)
    assert calls == ["signals"]

    notifier.remove_listener(CHANNEL_SIGNALS, on_signals)
    notifier.remove_listener(CHANNEL_SIGNALS, on_signals)
    notifier._dispatch(CHANNEL_SIGNALS)
    assert calls == ["signals"]
    assert notifier.listener_count(CHANNEL_SIGNALS) == 0


@pytest.mark.asyncio
async def test_publish_without_redis_reports_failure():
    notifier = ChangeNotifier(redis_url="redis://127.0.0.1:1/0")
    try:
        assert await notifier.publish(CHANNEL_SIGNALS) is False
    finally:
        await notifier.close()


@pytest.mark.asyncio
async def test_publish_reaches_other_instance():
    if not await _redis_available():
        pytest.skip("Redis not available")

    prefix = f"test:{uuid.uuid4().hex}"
    listener = ChangeNotifier(redis_url=settings.redis_url, prefix=prefix)
    publisher = ChangeNotifier(redis_url=settings.redis_url, prefix=prefix)
    woken = asyncio.Event()
    listener.add_listener(CHANNEL_SIGNALS, woken.set)

    await listener.start()
    try:
        # Give the pattern subscription a moment to register
        await asyncio.sleep(0.1)
        assert await publisher.publish(CHANNEL_COLLECTORS) is True
        assert await publisher.publish(CHANNEL_SIGNALS) is True

        await asyncio.wait_for(woken.wait(), timeout=2)
    finally:
        await listener.close()
        await publisher.close()
