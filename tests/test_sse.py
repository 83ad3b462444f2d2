"""Tests for Server-Sent-Events streaming."""
import asyncio
from unittest.mock import AsyncMock, MagicMock
import orjson
import pytest
from fastapi.testclient import TestClient
from notifier.main import app
from notifier.streaming.broadcaster import Broadcaster
from notifier.streaming.registry import SubscriberRegistry
from notifier.streaming.sse import KEEPALIVE_BLOCK, event_stream, stream_response
from notifier.streaming.subscribers import StreamSubscriber

client = TestClient(app)


@pytest.mark.asyncio
async def test_stream_emits_connected_then_labeled_event(canonical_event):
    """Test a returned-book broadcast arrives as an event block."""
    registry = SubscriberRegistry()
    subscriber = StreamSubscriber(identity="42")
    stream = event_stream(subscriber, registry, keepalive_seconds=5)

    first = await stream.__anext__()
    assert first.startswith("event: connected\ndata: ")
    assert subscriber in registry

    Broadcaster(registry).broadcast(canonical_event(kind="book.returned"))
    block = await stream.__anext__()

    assert block.endswith("\n\n")
    event_line, data_line = block.rstrip("\n").split("\n")
    assert event_line == "event: book.returned"
    payload = orjson.loads(data_line[len("data: "):])
    assert payload["type"] == "book.returned"
    assert payload["data"]["correlation_id"] == "7"

    await stream.aclose()
    assert subscriber not in registry


@pytest.mark.asyncio
async def test_idle_stream_sends_keepalive():
    """Test an unlabeled comment block is sent when no events arrive."""
    registry = SubscriberRegistry()
    stream = event_stream(StreamSubscriber(), registry, keepalive_seconds=0.01)

    await stream.__anext__()
    assert await stream.__anext__() == KEEPALIVE_BLOCK
    assert KEEPALIVE_BLOCK.startswith(":")

    await stream.aclose()


@pytest.mark.asyncio
async def test_dropped_subscriber_ends_stream():
    """Test the stream finishes once the subscriber is closed."""
    registry = SubscriberRegistry()
    subscriber = StreamSubscriber()
    stream = event_stream(subscriber, registry, keepalive_seconds=5)
    await stream.__anext__()

    subscriber.close()

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert subscriber not in registry


@pytest.mark.asyncio
async def test_client_disconnect_ends_stream():
    """Test a disconnected request stops the stream and unregisters."""
    registry = SubscriberRegistry()
    subscriber = StreamSubscriber()
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=True)
    stream = event_stream(subscriber, registry, keepalive_seconds=0.01, request=request)
    await stream.__anext__()

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert subscriber not in registry
    assert subscriber.closed


@pytest.mark.asyncio
async def test_delivery_after_close_fails(canonical_event):
    """Test the broadcaster sees a closed stream subscriber as dead."""
    registry = SubscriberRegistry()
    subscriber = StreamSubscriber()
    stream = event_stream(subscriber, registry, keepalive_seconds=5)
    await stream.__anext__()
    await stream.aclose()

    result = Broadcaster(registry).broadcast(canonical_event())
    assert result.attempted == 0
    assert subscriber.deliver(MagicMock()) is False


def test_stream_response_headers():
    """Test the response is an uncached event stream."""
    response = stream_response(MagicMock(), identity="42", registry=SubscriberRegistry())

    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"


def test_stream_requires_token():
    """Test a missing bearer token is rejected with 401."""
    r = client.get("/notifications/stream")
    assert r.status_code == 401


def test_stream_rejects_invalid_token():
    """Test an unverifiable bearer token is rejected with 403."""
    r = client.get("/notifications/stream", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 403


def test_stream_rejects_token_signed_with_other_secret(make_token):
    """Test a token from a different issuer is rejected with 403."""
    token = make_token(secret="someone-elses-secret")
    r = client.get("/notifications/stream", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_keepalive_sent_on_schedule_during_steady_traffic(canonical_event):
    """Test events arriving do not postpone the keepalive."""
    registry = SubscriberRegistry()
    broadcaster = Broadcaster(registry)
    stream = event_stream(StreamSubscriber(), registry, keepalive_seconds=0.2)
    await stream.__anext__()

    blocks = []
    for i in range(12):
        broadcaster.broadcast(canonical_event(correlation_id=str(i)))
        blocks.append(await stream.__anext__())
        await asyncio.sleep(0.1)

    assert blocks.count(KEEPALIVE_BLOCK) >= 3
    assert len([b for b in blocks if b.startswith("event: book.borrowed")]) >= 3

    await stream.aclose()
