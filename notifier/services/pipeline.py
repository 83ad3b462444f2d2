"""Normalize, deduplicate and broadcast inbound events."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping
import structlog
from ..config import get_settings
from ..dedup.base import DedupCache
from ..dedup.memory import InMemoryDedupCache
from ..dedup.redis_store import RedisDedupCache
from ..errors import MalformedEventError
from ..event_models import EventOrigin
from ..normalizer import normalize
from ..streaming.broadcaster import Broadcaster, broadcaster as default_broadcaster

log = structlog.get_logger()
settings = get_settings()


class PipelineOutcome(str, Enum):
    BROADCAST = "broadcast"
    DUPLICATE = "duplicate"


class NotificationPipeline:
    """
    Shared hand-off point for both ingest adapters.

    Adapters await handle() once per message, so each transport's order is
    preserved into broadcast.
    """

    def __init__(self, dedup: DedupCache | None = None, broadcaster: Broadcaster | None = None, metrics=None):
        """
        Initialize pipeline.

        Args:
            dedup: Dedup cache (defaults to configured backend)
            broadcaster: Fan-out broadcaster (defaults to the global one)
            metrics: Optional Metrics instance
        """
        self.dedup = create_dedup_cache() if dedup is None else dedup
        self.broadcaster = default_broadcaster if broadcaster is None else broadcaster
        self._metrics = metrics

    def set_metrics(self, metrics) -> None:
        self._metrics = metrics
        self.broadcaster.set_metrics(metrics)

    async def handle(self, raw: bytes | str | Mapping[str, Any], origin: EventOrigin) -> PipelineOutcome:
        """
        Process one raw transport payload.

        Returns:
            Whether the event was broadcast or suppressed as a duplicate

        Raises:
            MalformedEventError: If the payload cannot be normalized
        """
        received_at = datetime.now(timezone.utc)
        if self._metrics:
            self._metrics.events_received_total.labels(origin=origin).inc()

        try:
            event = normalize(raw, origin)
        except MalformedEventError:
            if self._metrics:
                self._metrics.events_malformed_total.labels(origin=origin).inc()
            raise

        if not await self.dedup.should_process(event):
            log.debug(
                "event.duplicate",
                kind=event.kind,
                correlation_id=event.correlation_id,
                origin=origin,
            )
            if self._metrics:
                self._metrics.events_duplicate_total.labels(origin=origin).inc()
            return PipelineOutcome.DUPLICATE

        self.broadcaster.broadcast(event, received_at=received_at)
        return PipelineOutcome.BROADCAST


def create_dedup_cache() -> DedupCache:
    """
    Create the dedup cache based on configuration.

    Returns:
        DedupCache instance based on DEDUP_BACKEND setting
    """
    if settings.DEDUP_BACKEND == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "dedup.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemoryDedupCache(ttl_seconds=settings.DEDUP_TTL_SECONDS)

        log.info("dedup.selected", type="redis", url=str(settings.REDIS_URL))
        return RedisDedupCache(str(settings.REDIS_URL), ttl_seconds=settings.DEDUP_TTL_SECONDS)
    else:
        log.info("dedup.selected", type="memory", ttl_seconds=settings.DEDUP_TTL_SECONDS)
        return InMemoryDedupCache(ttl_seconds=settings.DEDUP_TTL_SECONDS)


# Global pipeline instance
pipeline = NotificationPipeline()
