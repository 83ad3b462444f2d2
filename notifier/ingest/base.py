"""Reconnecting ingest adapter base."""
import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import ClassVar
import structlog
from ..errors import MalformedEventError
from ..event_models import EventOrigin
from ..services.pipeline import NotificationPipeline

log = structlog.get_logger()


class AdapterState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    DISABLED = "disabled"


class IngestAdapter(ABC):
    """
    Consumes one transport and feeds every message to the pipeline.

    run() drives the reconnect state machine:
    disconnected -> connecting -> subscribed -> (error) disconnected,
    sleeping a fixed interval after each failure and never giving up.
    """

    origin: ClassVar[EventOrigin]
    transport: ClassVar[str]

    def __init__(self, pipeline: NotificationPipeline, retry_seconds: float = 5.0, metrics=None):
        self.pipeline = pipeline
        self.retry_seconds = retry_seconds
        self.state = AdapterState.DISCONNECTED
        self.attempts = 0
        self._metrics = metrics

    def set_metrics(self, metrics) -> None:
        self._metrics = metrics

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def _consume(self) -> None:
        """
        Connect, subscribe and consume until the connection ends.

        Implementations call _set_state(SUBSCRIBED) once subscribed and
        process() for each message. Returning or raising both lead to a
        reconnect.
        """
        pass

    async def run(self) -> None:
        """Consume forever, reconnecting after any failure."""
        if not self.enabled:
            self._set_state(AdapterState.DISABLED)
            log.info("ingest.disabled", transport=self.transport)
            return

        while True:
            self.attempts += 1
            self._set_state(AdapterState.CONNECTING)
            try:
                await self._consume()
                log.warning("ingest.stream_ended", transport=self.transport)
            except asyncio.CancelledError:
                self._set_state(AdapterState.DISCONNECTED)
                log.info("ingest.cancelled", transport=self.transport)
                raise
            except Exception as e:
                log.warning(
                    "ingest.connection_failed",
                    transport=self.transport,
                    error=str(e),
                    error_type=type(e).__name__,
                    attempt=self.attempts,
                    retry_in_seconds=self.retry_seconds,
                )
            self._set_state(AdapterState.DISCONNECTED)
            await asyncio.sleep(self.retry_seconds)

    async def process(self, raw: bytes | None) -> None:
        """
        Hand one message to the pipeline.

        Never raises for bad input, so the caller can always ack/commit.
        """
        try:
            await self.pipeline.handle(raw if raw is not None else b"", self.origin)
        except MalformedEventError as e:
            log.warning("ingest.malformed_event", transport=self.transport, error=str(e))
        except Exception as e:
            log.error(
                "ingest.pipeline_error",
                transport=self.transport,
                error=str(e),
                exc_info=True,
            )

    def _set_state(self, state: AdapterState) -> None:
        if state != self.state:
            log.info("ingest.state_changed", transport=self.transport, previous=self.state.value, state=state.value)
        self.state = state
        if self._metrics:
            self._metrics.ingest_connected.labels(transport=self.transport).set(
                1 if state == AdapterState.SUBSCRIBED else 0
            )
