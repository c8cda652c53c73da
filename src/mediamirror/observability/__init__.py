"""
Observability module for MediaMirror.

Prometheus metrics and structured logging.
"""

from mediamirror.observability.metrics import MetricsRegistry, get_metrics_registry
from mediamirror.observability.structured_logging import (
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
)

__all__ = [
    # Metrics
    "MetricsRegistry",
    "get_metrics_registry",
    # Structured Logging
    "StructuredFormatter",
    "add_correlation_id",
    "get_correlation_id",
]
