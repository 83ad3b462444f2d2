"""Tests for payload normalization and the canonical event model."""
from datetime import datetime, timezone
import orjson
import pytest
from pydantic import ValidationError
from notifier.errors import MalformedEventError
from notifier.event_models import CanonicalEvent
from notifier.normalizer import normalize


def test_normalize_borrow_payload(raw_event):
    """Test the borrow service payload maps onto canonical fields."""
    event = normalize(raw_event(), "broker")

    assert event.kind == "book.borrowed"
    assert event.correlation_id == "7"
    assert event.occurred_at == "2025-01-01T00:00:00Z"
    assert event.origin == "broker"
    assert event.attributes == {"user_id": 3, "book_id": 11}


def test_normalize_accepts_str_and_mapping(raw_event):
    """Test decoded and text payloads are accepted."""
    body = raw_event()
    from_text = normalize(body.decode(), "log")
    from_mapping = normalize(orjson.loads(body), "log")

    assert from_text.dedup_key == from_mapping.dedup_key


def test_normalize_field_aliases():
    """Test alternative field names for identity fields."""
    event = normalize(
        {"kind": "book.reserved", "correlationId": "abc", "occurredAt": "2025-02-01T10:00:00+00:00", "note": "x"},
        "log",
    )

    assert event.kind == "book.reserved"
    assert event.correlation_id == "abc"
    assert event.occurred_at == "2025-02-01T10:00:00+00:00"
    assert event.attributes == {"note": "x"}


def test_unknown_kind_passes_through(raw_event):
    """Test kinds outside the known set are not rejected."""
    event = normalize(raw_event(kind="book.lost"), "broker")
    assert event.kind == "book.lost"


@pytest.mark.parametrize(
    "body",
    [
        b"{not json",
        b"[1, 2, 3]",
        b'"just a string"',
        b'{"borrow_id": 7, "timestamp": "2025-01-01T00:00:00Z"}',
        b'{"event": "", "borrow_id": 7, "timestamp": "2025-01-01T00:00:00Z"}',
        b'{"event": "book.borrowed", "timestamp": "2025-01-01T00:00:00Z"}',
        b'{"event": "book.borrowed", "borrow_id": true, "timestamp": "2025-01-01T00:00:00Z"}',
        b'{"event": "book.borrowed", "borrow_id": {"id": 7}, "timestamp": "2025-01-01T00:00:00Z"}',
        b'{"event": "book.borrowed", "borrow_id": 7}',
        b'{"event": "book.borrowed", "borrow_id": 7, "timestamp": "yesterday"}',
    ],
)
def test_malformed_payloads_rejected(body):
    """Test payloads without a usable identity raise MalformedEventError."""
    with pytest.raises(MalformedEventError):
        normalize(body, "broker")


def test_dedup_key_ignores_origin(raw_event):
    """Test the same payload from both transports has one identity."""
    from_broker = normalize(raw_event(), "broker")
    from_log = normalize(raw_event(), "log")

    assert from_broker.dedup_key == from_log.dedup_key
    assert from_broker.dedup_key == "book.borrowed|7|2025-01-01T00:00:00Z"


def test_canonical_event_is_immutable(canonical_event):
    """Test fields cannot be reassigned after construction."""
    event = canonical_event()
    with pytest.raises(ValidationError):
        event.kind = "book.returned"


def test_outbound_payload_shape(canonical_event):
    """Test the payload pushed to subscribers."""
    event = canonical_event(kind="book.returned", origin="log")
    received_at = datetime(2025, 1, 1, 0, 0, 5, tzinfo=timezone.utc)

    payload = event.to_outbound(received_at)

    assert payload["type"] == "book.returned"
    assert payload["timestamp"] == "2025-01-01T00:00:05.000Z"
    assert payload["data"] == {
        "user_id": 3,
        "book_id": 11,
        "kind": "book.returned",
        "correlation_id": "7",
        "occurred_at": "2025-01-01T00:00:00Z",
        "source": "log",
    }


def test_attributes_are_read_only(canonical_event):
    """Test attributes cannot be changed through the mapping."""
    event = canonical_event()
    with pytest.raises(TypeError):
        event.attributes["user_id"] = 99
    assert event.attributes["user_id"] == 3


def test_attributes_copied_from_input():
    """Test later changes to the source dict do not reach the event."""
    attributes = {"note": "x"}
    event = CanonicalEvent(
        kind="book.reserved",
        correlation_id="1",
        occurred_at="2025-01-01T00:00:00Z",
        attributes=attributes,
        origin="log",
    )
    attributes["note"] = "changed"

    assert event.attributes == {"note": "x"}
