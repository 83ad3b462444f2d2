"""
Notification fan-out service.

Features:
- Consumes library events from RabbitMQ and (optionally) Kafka
- Deduplicates deliveries from both transports
- Pushes notifications to WebSocket and Server-Sent-Events clients
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
import asyncio
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .api.ws_router import router as ws_router
from .middleware import CorrelationIdMiddleware, ErrorHandlerMiddleware, MetricsMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .ingest.amqp_queue import AmqpQueueAdapter
from .ingest.kafka_log import KafkaLogAdapter
from .services.pipeline import pipeline
from .streaming.registry import registry

SERVICE_NAME = "notifier"
VERSION = "0.1.0"

# Initialize configuration
settings = get_settings()

# Setup logging
setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME, level=settings.LOG_LEVEL)
logger = get_logger()

# Initialize metrics
metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
metrics.track_subscribers(registry)
pipeline.set_metrics(metrics)

# Ingest adapters
broker_adapter = AmqpQueueAdapter(
    pipeline,
    url=settings.RABBITMQ_URL,
    exchange=settings.BROKER_EXCHANGE,
    queue=settings.BROKER_QUEUE,
    routing_key=settings.BROKER_ROUTING_KEY,
    prefetch_count=settings.BROKER_PREFETCH,
    retry_seconds=settings.BROKER_RETRY_SECONDS,
    metrics=metrics,
)
log_adapter = KafkaLogAdapter(
    pipeline,
    bootstrap_servers=settings.kafka_bootstrap_servers,
    topic=settings.KAFKA_TOPIC,
    group_id=settings.KAFKA_GROUP_ID,
    client_id=SERVICE_NAME,
    retry_seconds=settings.KAFKA_RETRY_SECONDS,
    metrics=metrics,
)
ingest_tasks: list[asyncio.Task] = []

# Initialize health checker
health_checker = HealthChecker(
    service_name=SERVICE_NAME,
    version=VERSION,
    adapters=[broker_adapter, log_adapter],
    dedup=pipeline.dedup,
    check_dedup=settings.DEDUP_BACKEND == "redis",
)

# Create FastAPI app
app = FastAPI(
    title="Library Notification Service",
    version=VERSION,
    description="Real-time fan-out of library events to WebSocket and SSE clients",
)

# Starlette runs the last added middleware first
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(CorrelationIdMiddleware)

# Include API routes
app.include_router(router)
app.include_router(ws_router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - comprehensive health check.

    Returns:
        200: At least one transport is subscribed and dependencies are up
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    metrics.update_system_metrics()
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.

    Starts one long-running task per ingest adapter.
    """
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        kafka_enabled=log_adapter.enabled,
        dedup_backend=settings.DEDUP_BACKEND,
    )
    for adapter in (broker_adapter, log_adapter):
        ingest_tasks.append(asyncio.create_task(adapter.run(), name=f"ingest-{adapter.transport}"))


@app.on_event("shutdown")
async def shutdown_event():
    """
    Shutdown event handler.

    Cancels ingest tasks; the Kafka consumer leaves its group on the way out.
    Closes the dedup backend connection if it holds one.
    """
    logger.info("service_stopping")
    for task in ingest_tasks:
        task.cancel()
    await asyncio.gather(*ingest_tasks, return_exceptions=True)
    ingest_tasks.clear()

    close_dedup = getattr(pipeline.dedup, "close", None)
    if close_dedup is not None:
        close_dedup()
    metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "notifier.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
    )
