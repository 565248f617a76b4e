"""
Metrics Collector
=================

Prometheus metrics for lookup refreshes.

Every collector owns its own registry so that several generators (or
tests) can run in one process without clashing on metric names.
"""

import time
import logging
import threading
from typing import Dict, Optional
from contextlib import contextmanager

from prometheus_client import (
    Counter, Gauge, Histogram,
    CollectorRegistry, push_to_gateway,
    generate_latest
)

logger = logging.getLogger(__name__)


class LookupMetrics:
    """
    Collects refresh metrics per lookup.

    Usage:
        metrics = LookupMetrics()
        with metrics.timed("country_names", "full"):
            ...
        metrics.record_refresh("country_names", "full", rows_loaded=250)
    """

    METRIC_DEFINITIONS = {
        "lookup_refresh_total": {
            "type": "counter",
            "description": "Lookup refreshes by outcome mode",
            "labels": ["lookup", "mode"]
        },
        "lookup_refresh_errors_total": {
            "type": "counter",
            "description": "Lookup refreshes that raised",
            "labels": ["lookup"]
        },
        "lookup_rows_loaded_total": {
            "type": "counter",
            "description": "Rows read from the source table",
            "labels": ["lookup", "mode"]
        },
        "lookup_refresh_duration_seconds": {
            "type": "histogram",
            "description": "Duration of lookup refreshes",
            "labels": ["lookup", "mode"]
        },
        "lookup_cache_entries": {
            "type": "gauge",
            "description": "Entries in the latest generation",
            "labels": ["lookup"]
        }
    }

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        pushgateway_url: Optional[str] = None,
        job_name: str = "lookup_refresh"
    ):
        """
        Initialize metrics collector.

        Args:
            registry: Registry to register into (a private one by default)
            pushgateway_url: Prometheus Pushgateway URL
            job_name: Job name for Prometheus
        """
        self.registry = registry if registry is not None else CollectorRegistry()
        self.pushgateway_url = pushgateway_url
        self.job_name = job_name
        self._metrics: Dict = {}
        self._lock = threading.Lock()

        for name, definition in self.METRIC_DEFINITIONS.items():
            metric_type = definition["type"]
            description = definition["description"]
            labels = definition.get("labels", [])

            if metric_type == "counter":
                self._metrics[name] = Counter(name, description, labels, registry=self.registry)
            elif metric_type == "gauge":
                self._metrics[name] = Gauge(name, description, labels, registry=self.registry)
            elif metric_type == "histogram":
                self._metrics[name] = Histogram(name, description, labels, registry=self.registry)

    def record_counter(self, metric_name: str, value: float = 1, labels: Optional[Dict] = None):
        with self._lock:
            self._metrics[metric_name].labels(**(labels or {})).inc(value)

    def record_gauge(self, metric_name: str, value: float, labels: Optional[Dict] = None):
        with self._lock:
            self._metrics[metric_name].labels(**(labels or {})).set(value)

    def record_histogram(self, metric_name: str, value: float, labels: Optional[Dict] = None):
        with self._lock:
            self._metrics[metric_name].labels(**(labels or {})).observe(value)

    def record_refresh(
        self,
        lookup: str,
        mode: str,
        rows_loaded: int = 0,
        cache_entries: Optional[int] = None
    ):
        """
        Record a finished refresh.

        Args:
            lookup: Lookup name
            mode: 'full', 'incremental' or 'skipped'
            rows_loaded: Rows fetched from the database
            cache_entries: Size of the generation produced, if any
        """
        labels = {"lookup": lookup, "mode": mode}
        self.record_counter("lookup_refresh_total", 1, labels)
        if rows_loaded > 0:
            self.record_counter("lookup_rows_loaded_total", rows_loaded, labels)
        if cache_entries is not None:
            self.record_gauge("lookup_cache_entries", cache_entries, {"lookup": lookup})

    def record_failure(self, lookup: str):
        self.record_counter("lookup_refresh_errors_total", 1, {"lookup": lookup})

    @contextmanager
    def timed(self, lookup: str, mode: str):
        """Observe the duration of the enclosed block, even if it raises."""
        start = time.time()
        try:
            yield
        finally:
            self.record_histogram(
                "lookup_refresh_duration_seconds",
                time.time() - start,
                {"lookup": lookup, "mode": mode}
            )

    def push_to_prometheus(self) -> bool:
        """Push metrics to Prometheus Pushgateway."""
        if not self.pushgateway_url:
            logger.warning("Pushgateway URL not configured")
            return False

        try:
            push_to_gateway(self.pushgateway_url, job=self.job_name, registry=self.registry)
            logger.info("Metrics pushed to Prometheus Pushgateway")
            return True
        except OSError as e:
            logger.error(f"Failed to push metrics: {e}")
            return False

    def get_prometheus_metrics(self) -> str:
        """Get metrics in Prometheus exposition format."""
        return generate_latest(self.registry).decode('utf-8')
