"""
obsfacade - Swappable metrics and tracing backends behind one facade
"""

__version__ = "0.1.0"

from .metrics import NULL_METRICS, Metrics, NullMetrics, new_prometheus_metrics, new_statsd_metrics
from .tracing import Client, new_tracing_client

__all__ = [
    "Metrics",
    "NullMetrics",
    "NULL_METRICS",
    "new_statsd_metrics",
    "new_prometheus_metrics",
    "Client",
    "new_tracing_client",
]
