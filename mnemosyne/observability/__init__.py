"""
Observability Module

Structured logging and Prometheus-style metrics.
"""

from mnemosyne.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    LogLevel,
    StructuredLogger,
    configure_logging,
    get_logger,
    log_context,
)
from mnemosyne.observability.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsCollector,
    get_metrics_collector,
    timed,
)

__all__ = [
    # Logging
    "BufferHandler",
    "ConsoleHandler",
    "LogLevel",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "log_context",
    # Metrics
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsCollector",
    "get_metrics_collector",
    "timed",
]
