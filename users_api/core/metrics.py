"""
Prometheus instrumentation for the users API.

Every instrument lives on a registry owned by a ``Metrics`` instance
rather than on prometheus_client's global default registry, so each
application context (and each test) gets an isolated set of values.

Exposed series:

    http_requests_total{method,route,status}
    http_request_duration_seconds{method,route,status}
    http_requests_active
    db_queries_total{query_type,status}
    db_query_duration_seconds{query_type}
    errors_total{type,endpoint}

plus the default process, platform and GC collectors.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

HTTP_DURATION_BUCKETS = (0.1, 0.5, 1, 2, 5)
DB_DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1)


class Metrics:
    """
    Process-wide counters, histograms and gauges.

    prometheus_client guards every value with a lock, so handlers running
    on the event loop and queries finishing on pool threads can update
    the same series without losing increments.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        *,
        default_collectors: bool = True
    ):
        self.registry = registry if registry is not None else CollectorRegistry()

        if default_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status"],
            registry=self.registry
        )
        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "route", "status"],
            buckets=HTTP_DURATION_BUCKETS,
            registry=self.registry
        )
        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            registry=self.registry
        )
        self.db_queries_total = Counter(
            "db_queries_total",
            "Total database queries",
            ["query_type", "status"],
            registry=self.registry
        )
        self.db_query_duration = Histogram(
            "db_query_duration_seconds",
            "Database query duration in seconds",
            ["query_type"],
            buckets=DB_DURATION_BUCKETS,
            registry=self.registry
        )
        self.errors_total = Counter(
            "errors_total",
            "Total errors",
            ["type", "endpoint"],
            registry=self.registry
        )

    # ============================================================
    # Recording
    # ============================================================

    def request_started(self) -> None:
        self.http_requests_active.inc()

    def request_finished(
        self,
        method: str,
        route: str,
        status: int,
        duration: float
    ) -> None:
        """
        Completion hook for one HTTP request.

        Must be called exactly once per request that went through
        ``request_started``.
        """
        self.http_requests_active.dec()
        self.http_requests_total.labels(method, route, str(status)).inc()
        self.http_request_duration.labels(method, route, str(status)).observe(duration)

    def record_error(self, kind: str, endpoint: str) -> None:
        self.errors_total.labels(kind, endpoint).inc()

    @asynccontextmanager
    async def track_query(self, query_type: str) -> AsyncIterator[None]:
        """
        Time one database query and count it as a success or an error.

        The exception, if any, is re-raised unchanged.
        """
        start = time.perf_counter()
        status = "error"
        try:
            yield
            status = "success"
        finally:
            self.db_query_duration.labels(query_type).observe(time.perf_counter() - start)
            self.db_queries_total.labels(query_type, status).inc()

    # ============================================================
    # Exposition
    # ============================================================

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def render(self) -> bytes:
        """Render every collector in the text exposition format."""
        return generate_latest(self.registry)
