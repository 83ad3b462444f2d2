"""Fan-out of canonical events to every registered subscriber."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
import orjson
import structlog
from ..event_models import CanonicalEvent
from .registry import SubscriberRegistry, registry as default_registry
from .subscribers import SerializedEvent, Subscriber

log = structlog.get_logger()


@dataclass
class BroadcastResult:
    attempted: int = 0
    delivered: int = 0
    failed: list[Subscriber] = field(default_factory=list)


def serialize_event(event: CanonicalEvent, received_at: datetime) -> SerializedEvent:
    """Render the outbound payload once per delivery protocol."""
    body = orjson.dumps(event.to_outbound(received_at)).decode()
    return SerializedEvent(
        kind=event.kind,
        push_frame=body,
        stream_block=f"event: {event.kind}\ndata: {body}\n\n",
    )


class Broadcaster:
    """
    Pushes each event to a snapshot of the registry.

    Every subscriber present at broadcast start gets exactly one delivery
    attempt. Failed subscribers are closed and unregistered once the
    iteration is over.
    """

    def __init__(self, registry: SubscriberRegistry | None = None, metrics=None):
        self._registry = default_registry if registry is None else registry
        self._metrics = metrics

    def set_metrics(self, metrics) -> None:
        self._metrics = metrics

    def broadcast(self, event: CanonicalEvent, received_at: datetime | None = None) -> BroadcastResult:
        """
        Broadcast an event to all connected clients.

        Args:
            event: Event to broadcast
            received_at: Receipt time stamped on the payload (defaults to now)

        Returns:
            BroadcastResult with the subscribers that failed
        """
        serialized = serialize_event(event, received_at or datetime.now(timezone.utc))
        result = BroadcastResult()

        for subscriber in self._registry.snapshot():
            result.attempted += 1
            try:
                ok = subscriber.deliver(serialized)
            except Exception as e:
                log.warning("subscriber.deliver_error", subscriber_id=subscriber.id, error=str(e))
                ok = False
            if ok:
                result.delivered += 1
            else:
                result.failed.append(subscriber)

        for subscriber in result.failed:
            log.warning(
                "subscriber.delivery_failed",
                subscriber_id=subscriber.id,
                protocol=subscriber.protocol,
            )
            subscriber.close()
            self._registry.unregister(subscriber)
            if self._metrics:
                self._metrics.delivery_failures_total.labels(protocol=subscriber.protocol).inc()

        if self._metrics:
            self._metrics.broadcasts_total.labels(kind=event.kind).inc()

        log.info(
            "event.broadcast",
            kind=event.kind,
            correlation_id=event.correlation_id,
            origin=event.origin,
            attempted=result.attempted,
            delivered=result.delivered,
            failed=len(result.failed),
        )
        return result


# Global broadcaster instance
broadcaster = Broadcaster()
