"""Base interface for deduplication cache backends."""
from abc import ABC, abstractmethod
from ..event_models import CanonicalEvent


class DedupCache(ABC):
    """Abstract time-bounded membership set keyed by event identity."""

    def __init__(self, ttl_seconds: float):
        if ttl_seconds <= 0:
            raise ValueError("Dedup TTL must be positive")
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def should_process(self, event: CanonicalEvent) -> bool:
        """
        Atomically decide whether an event is seen for the first time.

        Args:
            event: Canonical event to check

        Returns:
            True if the key was not present (it is now recorded),
            False if it is a duplicate within the TTL window
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass
