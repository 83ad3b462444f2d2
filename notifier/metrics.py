"""
Prometheus metrics for the notification service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os
import structlog

log = structlog.get_logger()


class Metrics:
    """
    Centralized metrics for the notification service.
    """

    def __init__(self, service_name: str = "notifier", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Ingest
        self.events_received_total = Counter(
            "notifier_events_received_total",
            "Raw events received from a transport",
            ["origin"],
            registry=self.registry,
        )

        self.events_malformed_total = Counter(
            "notifier_events_malformed_total",
            "Raw events dropped because they could not be normalized",
            ["origin"],
            registry=self.registry,
        )

        self.events_duplicate_total = Counter(
            "notifier_events_duplicate_total",
            "Events suppressed by the dedup cache",
            ["origin"],
            registry=self.registry,
        )

        self.ingest_connected = Gauge(
            "notifier_ingest_connected",
            "Ingest transport subscribed (1) or not (0)",
            ["transport"],
            registry=self.registry,
        )

        # Fan-out
        self.broadcasts_total = Counter(
            "notifier_broadcasts_total",
            "Events broadcast to subscribers",
            ["kind"],
            registry=self.registry,
        )

        self.delivery_failures_total = Counter(
            "notifier_delivery_failures_total",
            "Subscribers dropped after a failed delivery",
            ["protocol"],
            registry=self.registry,
        )

        self.subscribers_active = Gauge(
            "notifier_subscribers_active",
            "Connected subscribers",
            ["protocol"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def track_subscribers(self, registry) -> None:
        """Report subscriber counts from a SubscriberRegistry at scrape time."""
        for protocol in ("websocket", "sse"):
            self.subscribers_active.labels(protocol=protocol).set_function(
                lambda p=protocol: registry.counts_by_protocol().get(p, 0)
            )

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_cpu_seconds = Counter(
            "notifier_process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

        self.process_memory_bytes = Gauge(
            "notifier_process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "notifier_process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self._last_cpu_total = 0.0
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())

            cpu_times = process.cpu_times()
            cpu_total = cpu_times.user + cpu_times.system
            cpu_diff = cpu_total - self._last_cpu_total
            if cpu_diff > 0:
                self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
            self._last_cpu_total = cpu_total

            memory_info = process.memory_info()
            self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

            try:
                num_fds = process.num_fds()
                self.process_open_fds.labels(service=self.service_name).set(num_fds)
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error as e:
            log.warning("metrics.system_update_failed", error=str(e))
