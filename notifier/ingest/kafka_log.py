"""Kafka consumer-group ingest adapter."""
import structlog
from aiokafka import AIOKafkaConsumer
from .base import AdapterState, IngestAdapter
from ..services.pipeline import NotificationPipeline

log = structlog.get_logger()


class KafkaLogAdapter(IngestAdapter):
    """Consumes the event topic from the latest offset.

    Disabled when no bootstrap servers are configured. Offsets are
    committed after every message, duplicate or malformed included.
    Stopping the consumer (also on cancellation) leaves the group cleanly.
    """

    origin = "log"
    transport = "kafka"

    def __init__(
        self,
        pipeline: NotificationPipeline,
        bootstrap_servers: list[str],
        topic: str = "library-events",
        group_id: str = "notification-service",
        client_id: str = "notifier",
        retry_seconds: float = 5.0,
        metrics=None,
    ):
        super().__init__(pipeline, retry_seconds, metrics)
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.group_id = group_id
        self.client_id = client_id

    @property
    def enabled(self) -> bool:
        return bool(self.bootstrap_servers)

    def _build_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            self.topic,
            bootstrap_servers=self.bootstrap_servers,
            group_id=self.group_id,
            client_id=self.client_id,
            # Historical backlog is not replayed
            auto_offset_reset="latest",
            enable_auto_commit=False,
        )

    async def _consume(self) -> None:
        consumer = self._build_consumer()
        try:
            await consumer.start()
            self._set_state(AdapterState.SUBSCRIBED)
            log.info(
                "ingest.connected",
                transport=self.transport,
                topic=self.topic,
                group_id=self.group_id,
                bootstrap_servers=self.bootstrap_servers,
            )

            async for record in consumer:
                log.debug(
                    "ingest.message_received",
                    transport=self.transport,
                    partition=record.partition,
                    offset=record.offset,
                )
                await self.process(record.value)
                await consumer.commit()
        finally:
            await consumer.stop()
            log.info("ingest.consumer_stopped", transport=self.transport, group_id=self.group_id)
