"""
Metrics Collection with Prometheus.

Exposes purchase flow metrics for monitoring.
"""

import time
from enum import Enum

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

from purchasekit.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    STATE = "state"
    OUTCOME = "outcome"
    ERROR_KIND = "error_kind"
    OPERATION = "operation"
    REASON = "reason"


class PurchaseMetrics:
    """
    Centralized metrics for the purchase tracking layer.

    Covers:
    - Transactions (delivered by state, finished, parked for retry)
    - Ledger (writes, persistence failures)
    - Catalog lookups (rate, outcome, duration)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY, enabled: bool = True) -> None:
        """Initialize all Prometheus metrics."""
        self.enabled = enabled

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "purchasekit",
            "Purchase tracking information",
            registry=registry,
        )
        self.service_info.info(
            {
                "version": settings.version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # Transaction Metrics
        # ====================================================================
        self.transactions_total = Counter(
            "purchasekit_transactions_total",
            "Transactions delivered by the payment queue",
            [MetricLabels.STATE],
            registry=registry,
        )

        self.transactions_finished_total = Counter(
            "purchasekit_transactions_finished_total",
            "Transactions acknowledged to the payment queue",
            [MetricLabels.STATE],
            registry=registry,
        )

        self.transactions_parked_total = Counter(
            "purchasekit_transactions_parked_total",
            "Transactions left unfinished for a later retry",
            [MetricLabels.REASON],
            registry=registry,
        )

        self.transactions_pending = Gauge(
            "purchasekit_transactions_pending",
            "Transactions currently parked awaiting hooks or re-delivery",
            registry=registry,
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.ledger_writes_total = Counter(
            "purchasekit_ledger_writes_total",
            "Purchases recorded in the ledger",
            registry=registry,
        )

        # ====================================================================
        # Catalog Metrics
        # ====================================================================
        self.catalog_loads_total = Counter(
            "purchasekit_catalog_loads_total",
            "Catalog lookups by outcome",
            [MetricLabels.OUTCOME],
            registry=registry,
        )

        self.catalog_load_duration_seconds = Histogram(
            "purchasekit_catalog_load_duration_seconds",
            "Catalog lookup duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=registry,
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "purchasekit_errors_total",
            "Total errors by kind",
            [MetricLabels.ERROR_KIND, MetricLabels.OPERATION],
            registry=registry,
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_transaction(self, state: str) -> None:
        """Record a delivered transaction."""
        if self.enabled:
            self.transactions_total.labels(state=state).inc()

    def record_finished(self, state: str) -> None:
        """Record an acknowledged transaction."""
        if self.enabled:
            self.transactions_finished_total.labels(state=state).inc()

    def record_parked(self, reason: str, pending: int) -> None:
        """Record a transaction left unfinished and the new pending count."""
        if self.enabled:
            self.transactions_parked_total.labels(reason=reason).inc()
            self.transactions_pending.set(pending)

    def set_pending(self, pending: int) -> None:
        """Update the pending transaction gauge."""
        if self.enabled:
            self.transactions_pending.set(pending)

    def record_ledger_write(self) -> None:
        """Record a ledger write."""
        if self.enabled:
            self.ledger_writes_total.inc()

    def record_catalog_load(self, outcome: str, duration: float) -> None:
        """Record catalog lookup metrics."""
        if self.enabled:
            self.catalog_loads_total.labels(outcome=outcome).inc()
            self.catalog_load_duration_seconds.observe(duration)

    def record_error(self, error_kind: str, operation: str) -> None:
        """Record error occurrence."""
        if self.enabled:
            self.errors_total.labels(error_kind=error_kind, operation=operation).inc()


# Global metrics instance
metrics = PurchaseMetrics(enabled=settings.metrics_enabled)


class track_catalog_load:
    """
    Context manager for timing a catalog lookup.

    Usage:
        with track_catalog_load() as tracker:
            products = await lookup.request_products(ids)
            tracker.set_outcome("success")
    """

    def __init__(self) -> None:
        self.outcome = "success"
        self.start_time: float = 0.0

    def set_outcome(self, outcome: str) -> None:
        """Set the lookup outcome label."""
        self.outcome = outcome

    def __enter__(self) -> "track_catalog_load":
        """Start tracking."""
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Record metrics."""
        duration = time.monotonic() - self.start_time
        if exc_type is not None and self.outcome == "success":
            self.outcome = "error"
        metrics.record_catalog_load(self.outcome, duration)
