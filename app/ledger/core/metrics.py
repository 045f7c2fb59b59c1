from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from app.ledger.core.config import settings


@dataclass
class MetricsSnapshot:
    content: bytes
    content_type: str


class Metrics:
    def __init__(self) -> None:
        self.enabled = bool(settings.METRICS_ENABLED)
        self._registry = None
        self._http_requests_total = None
        self._http_request_duration_ms = None
        self._idempotency_replay_total = None
        self._lock_wait_timeout_total = None
        self._authorization_denied_total = None
        self._invariants_violation_total = None
        self._movements_recorded_total = None
        self._reconciliations_total = None
        self._notifications_failed_total = None
        if self.enabled:
            self._initialize_registry()

    def _initialize_registry(self) -> None:
        self._registry = CollectorRegistry()
        self._http_requests_total = Counter(
            "http_requests_total",
            "HTTP requests by route/method/status.",
            ["route", "method", "status"],
            registry=self._registry,
        )
        self._http_request_duration_ms = Histogram(
            "http_request_duration_ms",
            "HTTP request latency in milliseconds.",
            ["route", "method", "status"],
            buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
            registry=self._registry,
        )
        self._idempotency_replay_total = Counter(
            "idempotency_replay_total",
            "Idempotent replay responses.",
            registry=self._registry,
        )
        self._lock_wait_timeout_total = Counter(
            "lock_wait_timeout_total",
            "Lock wait timeout occurrences.",
            registry=self._registry,
        )
        self._authorization_denied_total = Counter(
            "authorization_denied_total",
            "Operations rejected for authorization reasons.",
            ["code"],
            registry=self._registry,
        )
        self._invariants_violation_total = Counter(
            "invariants_violation_total",
            "Ledger invariant violations found by the auditor.",
            ["check_id"],
            registry=self._registry,
        )
        self._movements_recorded_total = Counter(
            "ledger_movements_recorded_total",
            "Movements appended to the ledger.",
            ["kind", "method"],
            registry=self._registry,
        )
        self._reconciliations_total = Counter(
            "ledger_reconciliations_total",
            "Reconciliations by outcome.",
            ["status", "difference_type"],
            registry=self._registry,
        )
        self._notifications_failed_total = Counter(
            "ledger_notifications_failed_total",
            "Notification sink failures.",
            ["event"],
            registry=self._registry,
        )

    def reset(self) -> None:
        if not self.enabled:
            return
        self._initialize_registry()

    def record_http_request(self, *, route: str, method: str, status_code: int, latency_ms: float) -> None:
        if not self.enabled:
            return
        labels = {"route": route, "method": method, "status": str(status_code)}
        self._http_requests_total.labels(**labels).inc()
        self._http_request_duration_ms.labels(**labels).observe(latency_ms)

    def increment_idempotency_replay(self) -> None:
        if not self.enabled:
            return
        self._idempotency_replay_total.inc()

    def increment_lock_wait_timeout(self) -> None:
        if not self.enabled:
            return
        self._lock_wait_timeout_total.inc()

    def increment_authorization_denied(self, code: str) -> None:
        if not self.enabled:
            return
        self._authorization_denied_total.labels(code=code).inc()

    def increment_invariant_violation(self, check_id: str, count: int = 1) -> None:
        if not self.enabled:
            return
        self._invariants_violation_total.labels(check_id=check_id).inc(count)

    def increment_movement_recorded(self, kind: str, method: str) -> None:
        if not self.enabled:
            return
        self._movements_recorded_total.labels(kind=kind, method=method).inc()

    def increment_reconciliation(self, status: str, difference_type: str) -> None:
        if not self.enabled:
            return
        self._reconciliations_total.labels(status=status, difference_type=difference_type).inc()

    def increment_notification_failed(self, event: str) -> None:
        if not self.enabled:
            return
        self._notifications_failed_total.labels(event=event).inc()

    def render(self) -> MetricsSnapshot:
        if not self.enabled:
            return MetricsSnapshot(content=b"metrics_disabled\n", content_type="text/plain")
        return MetricsSnapshot(content=generate_latest(self._registry), content_type=CONTENT_TYPE_LATEST)


metrics = Metrics()
