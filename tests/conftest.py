"""Shared fixtures for notifier tests."""
import time
import jwt
import orjson
import pytest
from notifier.config import get_settings
from notifier.event_models import CanonicalEvent
from notifier.streaming.subscribers import Subscriber


class RecordingSubscriber(Subscriber):
    """Subscriber that records every delivery attempt."""

    protocol = "websocket"

    def __init__(self, fail: bool = False):
        super().__init__(identity="test")
        self.fail = fail
        self.attempts = []

    def render(self, serialized):
        return serialized.push_frame

    def deliver(self, serialized):
        self.attempts.append(serialized)
        return not self.fail


@pytest.fixture
def recording_subscriber():
    """Factory for subscribers that record delivery attempts."""
    return RecordingSubscriber


@pytest.fixture
def make_token():
    """Factory for JWTs signed like the user service signs them."""
    settings = get_settings()

    def _make(claims=None, secret=None, expires_in=3600):
        payload = {"id": 42, "email": "reader@example.com", "exp": int(time.time()) + expires_in}
        payload.update(claims or {})
        return jwt.encode(payload, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    return _make


@pytest.fixture
def raw_event():
    """Factory for borrow-service payloads as published on both transports."""

    def _make(kind="book.borrowed", borrow_id=7, timestamp="2025-01-01T00:00:00Z", **extra):
        payload = {
            "event": kind,
            "borrow_id": borrow_id,
            "user_id": 3,
            "book_id": 11,
            "timestamp": timestamp,
        }
        payload.update(extra)
        return orjson.dumps(payload)

    return _make


@pytest.fixture
def canonical_event():
    """Factory for canonical events."""

    def _make(kind="book.borrowed", correlation_id="7", occurred_at="2025-01-01T00:00:00Z", origin="broker", **attributes):
        return CanonicalEvent(
            kind=kind,
            correlation_id=correlation_id,
            occurred_at=occurred_at,
            attributes=attributes or {"user_id": 3, "book_id": 11},
            origin=origin,
        )

    return _make
