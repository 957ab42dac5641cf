"""
Centralised constants for the obsfacade package.

Metric naming suffixes, backend defaults and logging limits live here so
they can be imported by any module without circular dependencies.
"""

# ── Version ──────────────────────────────────────────────────────
APP_VERSION = "0.1.0"

# ── Metric naming ────────────────────────────────────────────────
TIMING_SUFFIX = "_seconds"
COUNTER_SUFFIX = "_total"
TAG_SEPARATOR = ":"

# Histogram buckets: 1µs, growing by 10x, 7 buckets (1e-6 .. 1 seconds)
DEFAULT_BUCKET_START = 1e-6
DEFAULT_BUCKET_FACTOR = 10
DEFAULT_BUCKET_COUNT = 7

# ── StatsD ───────────────────────────────────────────────────────
DEFAULT_STATSD_PORT = 8125
STATSD_SAMPLE_RATE = 1

# ── Tracing ──────────────────────────────────────────────────────
ZIPKIN_SPANS_PATH = "/api/v2/spans"
TRACER_NAME = "obsfacade"

# ── Config ───────────────────────────────────────────────────────
DEFAULT_CONFIG_PATH = "obsfacade.json"
METRICS_BACKENDS = frozenset({"null", "statsd", "prometheus"})

# ── Logging ──────────────────────────────────────────────────────
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
