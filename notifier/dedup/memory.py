"""In-memory deduplication cache with lazy expiry."""
import threading
import time
from typing import Callable, Dict
import structlog
from .base import DedupCache
from ..event_models import CanonicalEvent

log = structlog.get_logger()


class InMemoryDedupCache(DedupCache):
    """
    Thread-safe in-process dedup cache.

    Entries map a dedup key to its expiry time. Expired entries are swept
    on every lookup, so no background thread is needed.
    """

    def __init__(self, ttl_seconds: float = 120, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            ttl_seconds: How long a key suppresses repeats
            clock: Monotonic time source, injectable for tests
        """
        super().__init__(ttl_seconds)
        self._entries: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def check_and_insert(self, key: str) -> bool:
        """Return True and record the key if unseen or expired; False otherwise."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if key in self._entries:
                return False
            self._entries[key] = now + self.ttl_seconds
            return True

    async def should_process(self, event: CanonicalEvent) -> bool:
        return self.check_and_insert(event.dedup_key)

    async def health_check(self) -> bool:
        """In-memory cache is always healthy."""
        return True

    def _sweep(self, now: float) -> None:
        expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug("dedup.swept", removed=len(expired), remaining=len(self._entries))

    def __len__(self) -> int:
        with self._lock:
            self._sweep(self._clock())
            return len(self._entries)
