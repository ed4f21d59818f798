"""Server-Sent Events delivery for live feeds."""

import logging
from typing import AsyncIterator, Callable, TypeVar

from fastapi import Request
from fastapi.responses import StreamingResponse

from signal_admin.realtime.subscriptions import Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")


def sse_event(data: str, event: str = "snapshot") -> str:
    return f"event: {event}\ndata: {data}\n\n"


async def _stream_events(
    request: Request,
    subscription: Subscription[T],
    serialize: Callable[[T], str],
) -> AsyncIterator[str]:
    try:
        async for snapshot in subscription:
            if await request.is_disconnected():
                break
            yield sse_event(serialize(snapshot))
    finally:
        # Release the feed as soon as the client goes away
        subscription.cancel()
        logger.debug(f"Closed {subscription.feed} stream")


def stream_subscription(
    request: Request,
    subscription: Subscription[T],
    serialize: Callable[[T], str],
) -> StreamingResponse:
    """Stream every snapshot of ``subscription`` to the client as SSE."""
    return StreamingResponse(
        _stream_events(request, subscription, serialize),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
