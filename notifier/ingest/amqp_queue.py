"""RabbitMQ topic-exchange ingest adapter."""
import asyncio
import aio_pika
import structlog
from aio_pika.abc import AbstractIncomingMessage
from .base import AdapterState, IngestAdapter
from ..services.pipeline import NotificationPipeline

log = structlog.get_logger()


class AmqpQueueAdapter(IngestAdapter):
    """Consumes a durable queue bound to a topic exchange.

    Messages are acked after hand-off to the pipeline whether they were
    new, duplicate or malformed; a malformed message is dropped rather than
    redelivered.
    """

    origin = "broker"
    transport = "amqp"

    def __init__(
        self,
        pipeline: NotificationPipeline,
        url: str,
        exchange: str = "library.events",
        queue: str = "notification-service",
        routing_key: str = "book.*",
        prefetch_count: int = 1,
        retry_seconds: float = 5.0,
        metrics=None,
    ):
        """
        Initialize broker adapter.

        Args:
            pipeline: Pipeline receiving every message body
            url: AMQP connection URL
            exchange: Durable topic exchange name
            queue: Durable queue name
            routing_key: Binding pattern covering all event kinds
            prefetch_count: Unacked messages in flight (1 keeps queue order)
            retry_seconds: Flat delay between reconnect attempts
        """
        super().__init__(pipeline, retry_seconds, metrics)
        self.url = url
        self.exchange_name = exchange
        self.queue_name = queue
        self.routing_key = routing_key
        self.prefetch_count = prefetch_count

    async def _consume(self) -> None:
        connection = await aio_pika.connect(self.url)
        try:
            closed = asyncio.Event()
            connection.close_callbacks.add(lambda *args: closed.set())

            channel = await connection.channel()
            # Channel-level errors stop consumption while the connection stays up
            channel.close_callbacks.add(lambda *args: closed.set())
            await channel.set_qos(prefetch_count=self.prefetch_count)
            exchange = await channel.declare_exchange(
                self.exchange_name, aio_pika.ExchangeType.TOPIC, durable=True
            )
            queue = await channel.declare_queue(self.queue_name, durable=True)
            await queue.bind(exchange, routing_key=self.routing_key)
            await queue.consume(self._on_message)

            self._set_state(AdapterState.SUBSCRIBED)
            log.info(
                "ingest.connected",
                transport=self.transport,
                exchange=self.exchange_name,
                queue=self.queue_name,
                routing_key=self.routing_key,
            )

            await closed.wait()
            raise ConnectionError("Broker channel or connection closed")
        finally:
            if not connection.is_closed:
                await connection.close()

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        log.debug(
            "ingest.message_received",
            transport=self.transport,
            routing_key=message.routing_key,
            redelivered=message.redelivered,
        )
        await self.process(message.body)
        await message.ack()
