"""Redis-backed deduplication cache."""
import math
import structlog
from redis import Redis
from redis.exceptions import RedisError
from .base import DedupCache
from ..event_models import CanonicalEvent

log = structlog.get_logger()


class RedisDedupCache(DedupCache):
    """Redis implementation of the dedup cache.

    Uses SET NX EX, so the check-and-insert is atomic across every
    service replica sharing the same Redis. Redis expires keys itself.
    """

    def __init__(self, redis_url: str, ttl_seconds: float = 120, key_prefix: str = "notifier:dedup:"):
        """
        Initialize Redis dedup cache.

        Args:
            redis_url: Redis connection URL
            ttl_seconds: How long a key suppresses repeats
            key_prefix: Namespace for dedup keys
        """
        super().__init__(ttl_seconds)
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    async def should_process(self, event: CanonicalEvent) -> bool:
        """
        Record the event key in Redis if absent.

        A Redis failure fails open: the event is treated as new so that a
        cache outage never suppresses notifications.
        """
        key = self.key_prefix + event.dedup_key
        try:
            client = self._get_client()
            created = client.set(key, b"1", nx=True, ex=max(1, math.ceil(self.ttl_seconds)))
            return bool(created)
        except RedisError as e:
            log.error("redis.dedup_failed", error=str(e), key=event.dedup_key)
            return True

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            client = self._get_client()
            return client.ping()
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
