"""
Lookup Observability Module
===========================

Logging and metrics for lookup refreshes.

Components:
- metrics: Prometheus metrics per lookup (refreshes, rows, durations)
- logging: JSON logging with thread-local context

Usage:
    from observability import LookupMetrics, log_context, setup_logging

    setup_logging({"level": "INFO", "json_format": True})

    metrics = LookupMetrics()
    metrics.record_refresh("country_names", "full", rows_loaded=250)

    with log_context(lookup="country_names"):
        logger.info("Refreshing")
"""

from .metrics.collector import LookupMetrics
from .logging.structured_logger import JsonFormatter, log_context, setup_logging

__version__ = "1.0.0"
__all__ = ["LookupMetrics", "JsonFormatter", "log_context", "setup_logging"]
