"""Prometheus counters for the request path and the stock movement core.

All series live on a private registry so tests can ``reset()`` them. Every
recorder is a no-op when ``METRICS_ENABLED`` is off.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from app.stockroom.core.config import settings

_LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


@dataclass
class MetricsSnapshot:
    content: bytes
    content_type: str


def _when_enabled(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        if self.enabled:
            method(self, *args, **kwargs)

    return wrapper


class Metrics:
    def __init__(self) -> None:
        self.enabled = settings.METRICS_ENABLED
        self._registry: CollectorRegistry | None = None
        if self.enabled:
            self._build()

    def _build(self) -> None:
        registry = CollectorRegistry()
        http_labels = ["route", "method", "status"]
        self._http_requests = Counter(
            "http_requests_total", "HTTP requests by route, method and status.", http_labels, registry=registry
        )
        self._http_latency = Histogram(
            "http_request_duration_ms",
            "HTTP request latency in milliseconds.",
            http_labels,
            buckets=_LATENCY_BUCKETS_MS,
            registry=registry,
        )
        self._replays = Counter("idempotency_replay_total", "Stored responses replayed.", registry=registry)
        self._lock_timeouts = Counter("lock_wait_timeout_total", "Row lock waits that timed out.", registry=registry)
        self._cas_retries = Counter(
            "ledger_conflict_retries_total",
            "Balance compare-and-swap attempts lost to a concurrent writer.",
            ["operation"],
            registry=registry,
        )
        self._transitions = Counter(
            "transfer_transitions_total", "Transfers entering each status.", ["to_status"], registry=registry
        )
        self._insufficient = Counter(
            "insufficient_stock_total", "Operations refused for lack of available stock.", registry=registry
        )
        self._reaped = Counter(
            "holds_reaped_total", "Transfers cancelled because their stock holds expired.", registry=registry
        )
        self._registry = registry

    def reset(self) -> None:
        if self.enabled:
            self._build()

    @_when_enabled
    def record_http_request(self, *, route: str, method: str, status_code: int, latency_ms: float) -> None:
        labels = (route, method, str(status_code))
        self._http_requests.labels(*labels).inc()
        self._http_latency.labels(*labels).observe(latency_ms)

    @_when_enabled
    def increment_idempotency_replay(self) -> None:
        self._replays.inc()

    @_when_enabled
    def increment_lock_wait_timeout(self) -> None:
        self._lock_timeouts.inc()

    @_when_enabled
    def increment_ledger_conflict_retry(self, operation: str) -> None:
        self._cas_retries.labels(operation).inc()

    @_when_enabled
    def record_transfer_transition(self, to_status: str) -> None:
        self._transitions.labels(to_status).inc()

    @_when_enabled
    def increment_insufficient_stock(self) -> None:
        self._insufficient.inc()

    @_when_enabled
    def increment_holds_reaped(self, count: int = 1) -> None:
        if count:
            self._reaped.inc(count)

    def render(self) -> MetricsSnapshot:
        if not self.enabled:
            return MetricsSnapshot(content=b"metrics_disabled\n", content_type="text/plain")
        return MetricsSnapshot(content=generate_latest(self._registry), content_type=CONTENT_TYPE_LATEST)


metrics = Metrics()
