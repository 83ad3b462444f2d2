"""Thread-safe registry of active subscriber streams."""
import threading
from collections import Counter
from typing import Dict, Set
import structlog
from .subscribers import Subscriber

log = structlog.get_logger()


class SubscriberRegistry:
    """
    Owns the set of active subscribers.

    Subscribers are keyed by reference identity. Callers never see the
    underlying set; broadcast iterates a snapshot instead.
    """

    def __init__(self):
        self._subscribers: Set[Subscriber] = set()
        self._lock = threading.Lock()

    def register(self, subscriber: Subscriber) -> bool:
        """
        Add a subscriber.

        Returns:
            True if it was added, False if it was already registered
        """
        with self._lock:
            if subscriber in self._subscribers:
                return False
            self._subscribers.add(subscriber)
            total = len(self._subscribers)
        log.info(
            "subscriber.registered",
            subscriber_id=subscriber.id,
            protocol=subscriber.protocol,
            identity=subscriber.identity,
            total_subscribers=total,
        )
        return True

    def unregister(self, subscriber: Subscriber) -> bool:
        """
        Remove a subscriber. Safe to call repeatedly.

        Returns:
            True if it was removed, False if it was not registered
        """
        with self._lock:
            if subscriber not in self._subscribers:
                return False
            self._subscribers.discard(subscriber)
            total = len(self._subscribers)
        log.info(
            "subscriber.unregistered",
            subscriber_id=subscriber.id,
            protocol=subscriber.protocol,
            total_subscribers=total,
        )
        return True

    def snapshot(self) -> list[Subscriber]:
        """Consistent copy of the active subscribers."""
        with self._lock:
            return list(self._subscribers)

    def counts_by_protocol(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(s.protocol for s in self._subscribers))

    def __contains__(self, subscriber: Subscriber) -> bool:
        with self._lock:
            return subscriber in self._subscribers

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


# Global registry instance
registry = SubscriberRegistry()
