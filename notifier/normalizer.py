"""Turns raw transport payloads into canonical events."""
from datetime import datetime
from typing import Any, Mapping
import orjson
from .errors import MalformedEventError
from .event_models import CanonicalEvent, EventOrigin

# Field aliases accepted from producers, in precedence order
KIND_FIELDS = ("event", "kind", "type")
CORRELATION_FIELDS = ("borrow_id", "correlation_id", "correlationId")
TIMESTAMP_FIELDS = ("timestamp", "occurred_at", "occurredAt")


def _pick(payload: Mapping[str, Any], fields: tuple[str, ...]) -> tuple[str | None, Any]:
    for name in fields:
        if payload.get(name) is not None:
            return name, payload[name]
    return None, None


def _decode(raw: bytes | bytearray | str | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MalformedEventError(f"Payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedEventError("Payload must be a JSON object")
    return payload


def normalize(raw: bytes | bytearray | str | Mapping[str, Any], origin: EventOrigin) -> CanonicalEvent:
    """
    Parse and validate a raw payload from either transport.

    Args:
        raw: Message body (JSON bytes/str) or an already-decoded mapping
        origin: Which ingest path delivered the payload

    Returns:
        CanonicalEvent with unrecognized fields kept as attributes

    Raises:
        MalformedEventError: If the payload is not JSON or lacks identity fields
    """
    payload = _decode(raw)

    kind_field, kind = _pick(payload, KIND_FIELDS)
    if not isinstance(kind, str) or not kind.strip():
        raise MalformedEventError("Missing event kind")

    correlation_field, correlation_id = _pick(payload, CORRELATION_FIELDS)
    if isinstance(correlation_id, bool) or not isinstance(correlation_id, (str, int)):
        raise MalformedEventError("Missing or non-scalar correlation id")
    correlation_id = str(correlation_id)
    if not correlation_id:
        raise MalformedEventError("Empty correlation id")

    timestamp_field, occurred_at = _pick(payload, TIMESTAMP_FIELDS)
    if not isinstance(occurred_at, str):
        raise MalformedEventError("Missing event timestamp")
    try:
        # fromisoformat only accepts a trailing Z from Python 3.11 onwards
        datetime.fromisoformat(occurred_at.replace("Z", "+00:00"))
    except ValueError as e:
        raise MalformedEventError(f"Timestamp is not ISO-8601: {occurred_at!r}") from e

    consumed = {kind_field, correlation_field, timestamp_field}
    attributes = {k: v for k, v in payload.items() if k not in consumed}

    return CanonicalEvent(
        kind=kind,
        correlation_id=correlation_id,
        occurred_at=occurred_at,
        attributes=attributes,
        origin=origin,
    )
