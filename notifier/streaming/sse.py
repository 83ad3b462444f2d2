"""Server-Sent-Events streamed responses."""
import time
from typing import AsyncIterator
import orjson
import structlog
from fastapi import Request
from fastapi.responses import StreamingResponse
from .registry import SubscriberRegistry, registry as default_registry
from .subscribers import CLOSED, StreamSubscriber

log = structlog.get_logger()

KEEPALIVE_BLOCK = ": keepalive\n\n"


def connected_block(subscriber: StreamSubscriber) -> str:
    body = orjson.dumps({
        "type": "connected",
        "message": "Connected to notification stream",
        "subscriber_id": subscriber.id,
    }).decode()
    return f"event: connected\ndata: {body}\n\n"


async def event_stream(
    subscriber: StreamSubscriber,
    registry: SubscriberRegistry | None = None,
    keepalive_seconds: float = 25.0,
    request: Request | None = None,
) -> AsyncIterator[str]:
    """
    Yield SSE blocks for one subscriber until it disconnects or is dropped.

    The subscriber is registered when iteration starts and always
    unregistered when the generator finishes or is closed.

    Args:
        subscriber: Verified stream subscriber
        registry: Registry to join (defaults to the global registry)
        keepalive_seconds: Interval between unlabeled keepalive blocks
        request: Originating request, polled for client disconnect
    """
    registry = default_registry if registry is None else registry
    registry.register(subscriber)
    last_keepalive = time.monotonic()
    try:
        yield connected_block(subscriber)
        while True:
            timeout = max(0.0, keepalive_seconds - (time.monotonic() - last_keepalive))
            message = await subscriber.next_message(timeout=timeout)
            if message is CLOSED:
                log.info("sse.subscriber_dropped", subscriber_id=subscriber.id)
                return
            if request is not None and await request.is_disconnected():
                log.info("sse.client_disconnected", subscriber_id=subscriber.id)
                return
            if message is not None:
                yield message
            # Fixed interval, independent of event traffic
            if time.monotonic() - last_keepalive >= keepalive_seconds:
                yield KEEPALIVE_BLOCK
                last_keepalive = time.monotonic()
    finally:
        subscriber.close()
        registry.unregister(subscriber)


def stream_response(
    request: Request,
    identity: str | None,
    registry: SubscriberRegistry | None = None,
    keepalive_seconds: float = 25.0,
    buffer_size: int = 100,
) -> StreamingResponse:
    """Build the long-lived text/event-stream response for a verified client."""
    subscriber = StreamSubscriber(identity=identity, buffer_size=buffer_size)
    return StreamingResponse(
        event_stream(subscriber, registry, keepalive_seconds, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
