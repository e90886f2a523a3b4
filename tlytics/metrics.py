"""
Prometheus metrics for the tlytics service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, ProcessCollector


class Metrics:
    """
    Centralized metrics for the tlytics service.

    Each instance owns its registry so several apps (or a server and a
    client in one process) can coexist.
    """

    def __init__(self, service_name: str = "tlytics", version: str = "0.1.0", registry=None):
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

        # Pipeline metrics, labelled by buffer name ("server", "client")
        self.events_emitted_total = Counter(
            "tlytics_events_emitted_total",
            "Events accepted into an ingestion buffer",
            ["buffer"],
            registry=self.registry,
        )

        self.events_flushed_total = Counter(
            "tlytics_events_flushed_total",
            "Events delivered to a sink",
            ["buffer"],
            registry=self.registry,
        )

        self.batches_failed_total = Counter(
            "tlytics_batches_failed_total",
            "Batches whose every delivery attempt failed",
            ["buffer"],
            registry=self.registry,
        )

        self.events_dropped_total = Counter(
            "tlytics_events_dropped_total",
            "Events discarded after delivery gave up",
            ["buffer"],
            registry=self.registry,
        )

        self.events_spilled_total = Counter(
            "tlytics_events_spilled_total",
            "Events written to the spill file after delivery gave up",
            ["buffer"],
            registry=self.registry,
        )

        self.buffer_depth = Gauge(
            "tlytics_buffer_depth",
            "Events waiting in an ingestion buffer",
            ["buffer"],
            registry=self.registry,
        )

        self.flush_duration = Histogram(
            "tlytics_flush_duration_seconds",
            "Time spent delivering one drained batch",
            ["buffer"],
            registry=self.registry,
        )

        # System Metrics
        ProcessCollector(registry=self.registry)

    def record_emitted(self, buffer: str, depth: int):
        self.events_emitted_total.labels(buffer=buffer).inc()
        self.buffer_depth.labels(buffer=buffer).set(depth)

    def record_flushed(self, buffer: str, count: int, duration: float):
        self.events_flushed_total.labels(buffer=buffer).inc(count)
        self.flush_duration.labels(buffer=buffer).observe(duration)
