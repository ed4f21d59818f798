"""Cancellable live feeds that deliver full snapshots."""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from signal_admin import metrics
from signal_admin.config import settings
from signal_admin.errors import SignalAdminError
from signal_admin.realtime.notifier import ChangeNotifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET = object()


class Subscription(Generic[T]):
    """
    A live query over the store.

    Iterating yields the full current snapshot returned by ``fetch``: once
    immediately, then again whenever the snapshot differs from the last one
    delivered. The store is re-read every ``poll_interval`` seconds, or
    sooner when the notifier reports a change on ``collection``.

    Failed refreshes are logged and retried on the next interval; the feed
    only ends when ``cancel()`` is called (or the ``async with`` block exits).

    Example:
        >>> async with subscribe_stats(AsyncSessionLocal) as feed:
        ...     async for stats in feed:
        ...         render(stats)
    """

    def __init__(
        self,
        feed: str,
        fetch: Callable[[], Awaitable[T]],
        collection: str,
        poll_interval: Optional[float] = None,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.feed = feed
        self.collection = collection
        self.poll_interval = poll_interval or settings.subscription_poll_interval_seconds
        self._fetch = fetch
        self._notifier = notifier
        self._wake = asyncio.Event()
        self._last = _UNSET
        self._registered = False
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _on_change(self):
        self._wake.set()

    def _register(self):
        if self._registered:
            return
        self._registered = True
        if self._notifier is not None:
            self._notifier.add_listener(self.collection, self._on_change)
        metrics.active_subscriptions.labels(feed=self.feed).inc()
        logger.debug(f"Subscription opened: {self.feed}")

    def _release(self):
        if not self._registered:
            return
        self._registered = False
        if self._notifier is not None:
            self._notifier.remove_listener(self.collection, self._on_change)
        metrics.active_subscriptions.labels(feed=self.feed).dec()
        logger.debug(f"Subscription released: {self.feed}")

    def cancel(self):
        """Stop the feed and release its notifier registration."""
        self._cancelled = True
        self._wake.set()
        self._release()

    async def __aenter__(self) -> "Subscription[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.cancel()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[T]:
        if self._cancelled:
            return
        self._register()
        try:
            while not self._cancelled:
                try:
                    snapshot = await self._fetch()
                except (SignalAdminError, SQLAlchemyError, OSError) as e:
                    metrics.subscription_errors_total.labels(feed=self.feed).inc()
                    logger.warning(f"Error in {self.feed} subscription, still listening: {e}")
                else:
                    if self._last is _UNSET or snapshot != self._last:
                        self._last = snapshot
                        metrics.subscription_emissions_total.labels(feed=self.feed).inc()
                        yield snapshot
                        continue
                await self._wait()
        finally:
            self._release()

    async def _wait(self):
        if self._cancelled:
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()
