"""
Metrics facade — one contract, three backends.

- ``NullMetrics`` / ``NULL_METRICS``: discard everything
- ``new_statsd_metrics``: DogStatsd client with service/env constant tags
- ``new_prometheus_metrics``: on-demand Prometheus counters and histograms
"""

from .base import NULL_METRICS, Metrics, NullMetrics, TagMismatchError, exponential_buckets
from .prometheus import DEFAULT_BUCKETS, PrometheusMetrics, new_prometheus_metrics
from .statsd import MetricsConfigError, StatsDMetrics, new_statsd_metrics

__all__ = [
    "Metrics",
    "NullMetrics",
    "NULL_METRICS",
    "StatsDMetrics",
    "PrometheusMetrics",
    "new_statsd_metrics",
    "new_prometheus_metrics",
    "exponential_buckets",
    "DEFAULT_BUCKETS",
    "MetricsConfigError",
    "TagMismatchError",
]
