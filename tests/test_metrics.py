"""Tests for Prometheus metrics."""
import pytest
from httpx import AsyncClient, ASGITransport
from prometheus_client import CollectorRegistry
from notifier.dedup.memory import InMemoryDedupCache
from notifier.ingest.base import AdapterState
from notifier.ingest.kafka_log import KafkaLogAdapter
from notifier.main import app, metrics as app_metrics
from notifier.metrics import Metrics
from notifier.services.pipeline import NotificationPipeline
from notifier.streaming.broadcaster import Broadcaster
from notifier.streaming.registry import SubscriberRegistry
from notifier.streaming.subscribers import PushSubscriber, StreamSubscriber


@pytest.fixture
def metrics():
    return Metrics(registry=CollectorRegistry())


@pytest.mark.asyncio
async def test_metrics_endpoint_exists():
    """Test that /metrics serves the Prometheus exposition format."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/health")
        response = await client.get("/metrics/")
        assert response.status_code == 200
        content = response.text
        assert "http_requests_total" in content
        assert "app_up" in content
        assert "notifier_subscribers_active" in content
        assert "notifier_process_resident_memory_bytes" in content


@pytest.mark.asyncio
async def test_http_requests_counted():
    """Test the middleware records requests by path and status."""
    labels = {"service": "notifier", "method": "GET", "path": "/health", "status": "200"}
    before = app_metrics.registry.get_sample_value("http_requests_total", labels) or 0

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/health")

    assert app_metrics.registry.get_sample_value("http_requests_total", labels) == before + 1


def test_app_up_and_info(metrics):
    """Test service identity metrics."""
    sample = metrics.registry.get_sample_value
    assert sample("app_up", {"service": "notifier", "version": "0.1.0"}) == 1
    assert sample("app_info", {"service": "notifier", "version": "0.1.0"}) == 1


def test_subscriber_gauge_follows_registry(metrics):
    """Test active subscribers are read from the registry at scrape time."""
    registry = SubscriberRegistry()
    metrics.track_subscribers(registry)
    push = PushSubscriber()
    registry.register(push)
    registry.register(StreamSubscriber())
    registry.register(StreamSubscriber())

    sample = metrics.registry.get_sample_value
    assert sample("notifier_subscribers_active", {"protocol": "websocket"}) == 1
    assert sample("notifier_subscribers_active", {"protocol": "sse"}) == 2

    registry.unregister(push)
    assert sample("notifier_subscribers_active", {"protocol": "websocket"}) == 0


def test_delivery_failures_counted(metrics, recording_subscriber, canonical_event):
    """Test dropped subscribers are counted by protocol."""
    registry = SubscriberRegistry()
    registry.register(recording_subscriber(fail=True))
    Broadcaster(registry, metrics=metrics).broadcast(canonical_event())

    sample = metrics.registry.get_sample_value
    assert sample("notifier_delivery_failures_total", {"protocol": "websocket"}) == 1
    assert sample("notifier_broadcasts_total", {"kind": "book.borrowed"}) == 1


def test_ingest_connected_gauge(metrics):
    """Test the transport gauge tracks the adapter state."""
    pipeline = NotificationPipeline(dedup=InMemoryDedupCache(), broadcaster=Broadcaster(SubscriberRegistry()))
    adapter = KafkaLogAdapter(pipeline, bootstrap_servers=["kafka:9092"], metrics=metrics)

    adapter._set_state(AdapterState.SUBSCRIBED)
    assert metrics.registry.get_sample_value("notifier_ingest_connected", {"transport": "kafka"}) == 1

    adapter._set_state(AdapterState.DISCONNECTED)
    assert metrics.registry.get_sample_value("notifier_ingest_connected", {"transport": "kafka"}) == 0


def test_update_system_metrics(metrics):
    """Test psutil-backed process metrics are populated."""
    metrics.update_system_metrics()
    rss = metrics.registry.get_sample_value("notifier_process_resident_memory_bytes", {"service": "notifier"})
    assert rss > 0
