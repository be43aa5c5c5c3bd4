"""
Prometheus metrics for the arbitrage scanner and analytics operations.

Use a private CollectorRegistry in tests so instances do not collide on
metric names.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)


class ScannerMetrics:
    """
    Scanner and operation metrics.

    Covers:
    - Scan cycles and their duration
    - Opportunities detected, published and suppressed as duplicates
    - Large-opportunity alerts and significant price moves
    - Per-operation latency and errors (fed by the metrics middleware)
    - De-duplication set size
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()
        self._server_started = False

        # Thread-safe access
        self._lock = threading.RLock()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === CYCLE METRICS ===
        self.scan_cycles_total = Counter(
            "dex_analytics_scan_cycles_total",
            "Total number of scan cycles by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.scan_cycle_duration_seconds = Histogram(
            "dex_analytics_scan_cycle_duration_seconds",
            "Duration of complete scan cycles",
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

        # === OPPORTUNITY METRICS ===
        self.opportunities_detected_total = Counter(
            "dex_analytics_opportunities_detected_total",
            "Opportunities returned by scans",
            ["kind"],
            registry=self.registry,
        )

        self.opportunities_published_total = Counter(
            "dex_analytics_opportunities_published_total",
            "Opportunities published as new",
            ["kind"],
            registry=self.registry,
        )

        self.opportunities_suppressed_total = Counter(
            "dex_analytics_opportunities_suppressed_total",
            "Opportunities suppressed as duplicates",
            ["kind"],
            registry=self.registry,
        )

        self.large_alerts_total = Counter(
            "dex_analytics_large_alerts_total",
            "Large arbitrage alerts published",
            registry=self.registry,
        )

        self.price_changes_total = Counter(
            "dex_analytics_significant_price_changes_total",
            "Significant price change events published",
            registry=self.registry,
        )

        self.best_net_profit_usd = Gauge(
            "dex_analytics_best_net_profit_usd",
            "Net profit of the best opportunity in the last cycle",
            registry=self.registry,
        )

        self.dedup_set_size = Gauge(
            "dex_analytics_dedup_set_size",
            "Number of opportunity hashes currently remembered",
            registry=self.registry,
        )

        # === OPERATION METRICS ===
        self.operation_duration_seconds = Histogram(
            "dex_analytics_operation_duration_seconds",
            "Latency of wrapped operations",
            ["operation"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry,
        )

        self.operation_errors_total = Counter(
            "dex_analytics_operation_errors_total",
            "Wrapped operations that raised",
            ["operation", "error_type"],
            registry=self.registry,
        )

    def record_cycle(self, outcome: str, duration_seconds: float):
        with self._lock:
            self.scan_cycles_total.labels(outcome=outcome).inc()
            self.scan_cycle_duration_seconds.observe(duration_seconds)

    def record_detected(self, kind: str, count: int = 1):
        with self._lock:
            self.opportunities_detected_total.labels(kind=kind).inc(count)

    def record_published(self, kind: str, large: bool = False):
        with self._lock:
            self.opportunities_published_total.labels(kind=kind).inc()
            if large:
                self.large_alerts_total.inc()

    def record_suppressed(self, kind: str):
        with self._lock:
            self.opportunities_suppressed_total.labels(kind=kind).inc()

    def record_price_change(self):
        with self._lock:
            self.price_changes_total.inc()

    def set_best_net_profit(self, value: float):
        with self._lock:
            self.best_net_profit_usd.set(value)

    def set_dedup_size(self, size: int):
        with self._lock:
            self.dedup_set_size.set(size)

    def record_operation(self, operation: str, duration_seconds: float):
        with self._lock:
            self.operation_duration_seconds.labels(operation=operation).observe(
                duration_seconds
            )

    def record_operation_error(self, operation: str, error_type: str):
        with self._lock:
            self.operation_errors_total.labels(
                operation=operation, error_type=error_type
            ).inc()

    def start_server(self, port: int, host: str = "0.0.0.0"):
        """Expose /metrics over HTTP on a background thread."""
        if self._server_started:
            return
        start_http_server(port, addr=host, registry=self.registry)
        self._server_started = True
        logger.info(f"Metrics server listening on {host}:{port}")

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get current metrics summary"""
        return {
            "metrics_available": True,
            "server_started": self._server_started,
            "timestamp": time.time(),
        }


_global_metrics: Optional[ScannerMetrics] = None


def get_metrics() -> ScannerMetrics:
    """Get or create global metrics instance"""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = ScannerMetrics()
    return _global_metrics
