"""
Prometheus backend, via ``prometheus_client``.

Instruments are created on demand from the dotted names call sites use:
``http.request.latency`` becomes the histogram
``http_request_latency_seconds`` and ``cache.miss`` the counter
``cache_miss_total``.  Each normalized name maps to exactly one
instrument for the life of the process; the first emission decides its
label keys (taken from the ``key:value`` tags).

Registering two instruments of different kinds under the same name is a
programming error and ``prometheus_client`` raises ``ValueError`` for
it.  That error is deliberately left to propagate, as is
``TagMismatchError`` when a metric's tag keys change between calls.
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from ..constants import (
    COUNTER_SUFFIX,
    DEFAULT_BUCKET_COUNT,
    DEFAULT_BUCKET_FACTOR,
    DEFAULT_BUCKET_START,
    TIMING_SUFFIX,
)
from .base import Duration, Metrics, TagMismatchError, Tags, exponential_buckets, parse_tags, to_seconds

logger = logging.getLogger(__name__)

# 1µs .. 1s
DEFAULT_BUCKETS = tuple(
    exponential_buckets(DEFAULT_BUCKET_START, DEFAULT_BUCKET_FACTOR, DEFAULT_BUCKET_COUNT)
)

_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")

Instrument = Union[Counter, Histogram]


@dataclass(frozen=True)
class _Entry:
    """An instrument together with the label keys it was declared with."""

    instrument: Instrument
    label_names: Tuple[str, ...]


def normalize_name(name: str, suffix: str) -> str:
    """``a.b.c`` → ``a_b_c<suffix>``."""
    return name.replace(".", "_") + suffix


def label_name(tag_key: str) -> str:
    """Turn a tag key into a legal Prometheus label name."""
    cleaned = _INVALID_LABEL_CHARS.sub("_", tag_key)
    if not cleaned or cleaned[0].isdigit() or cleaned.startswith("__"):
        cleaned = "tag_" + cleaned.lstrip("_")
    return cleaned


def tags_to_labels(tags: Tags) -> Dict[str, str]:
    return {label_name(k): v for k, v in parse_tags(tags).items()}


class PrometheusMetrics(Metrics):
    """Thread-safe, lazily populated Prometheus instruments.

    Args:
        registry: Registry instruments are registered with.  Defaults to
            the process-wide ``prometheus_client.REGISTRY``.
        buckets: Optional per-metric bucket bounds, keyed by the dotted
            timing name call sites use (``"db.query"``, not
            ``"db_query_seconds"``).  Timings not listed use
            ``DEFAULT_BUCKETS``.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        buckets: Optional[Mapping[str, Sequence[float]]] = None,
    ):
        self.registry = registry if registry is not None else REGISTRY
        self._counters: Dict[str, _Entry] = {}
        self._timers: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._buckets: Dict[str, Tuple[float, ...]] = {}
        for name, bounds in (buckets or {}).items():
            self._buckets[normalize_name(name, TIMING_SUFFIX)] = tuple(bounds)

    # ── Metrics contract ─────────────────────────────────────────

    def timing(self, name: str, duration: Duration, tags: Tags = None) -> None:
        metric = normalize_name(name, TIMING_SUFFIX)
        labels = tags_to_labels(tags)
        entry = self._get_or_create(self._timers, metric, labels, self._new_histogram)
        _bind(entry, labels).observe(to_seconds(duration))

    def increment(self, name: str, tags: Tags = None) -> None:
        metric = normalize_name(name, COUNTER_SUFFIX)
        labels = tags_to_labels(tags)
        entry = self._get_or_create(self._counters, metric, labels, self._new_counter)
        _bind(entry, labels).inc()

    # ── Introspection ────────────────────────────────────────────

    @property
    def counters(self) -> Dict[str, Instrument]:
        with self._lock:
            return {k: e.instrument for k, e in self._counters.items()}

    @property
    def timers(self) -> Dict[str, Instrument]:
        with self._lock:
            return {k: e.instrument for k, e in self._timers.items()}

    def buckets_for(self, metric: str) -> Tuple[float, ...]:
        """Bucket bounds used for the normalized timing name *metric*."""
        return self._buckets.get(metric, DEFAULT_BUCKETS)

    # ── Instrument creation ──────────────────────────────────────

    def _get_or_create(self, instruments: Dict[str, _Entry], metric: str, labels, factory) -> _Entry:
        label_names = tuple(sorted(labels))

        entry = instruments.get(metric)
        if entry is None:
            with self._lock:
                entry = instruments.get(metric)
                if entry is None:
                    entry = _Entry(factory(metric, label_names), label_names)
                    instruments[metric] = entry
                    logger.debug("Registered %s with labels %s", metric, list(label_names))

        if entry.label_names != label_names:
            raise TagMismatchError(
                f"Metric {metric} was created with tag keys {list(entry.label_names)}, "
                f"got {list(label_names)}"
            )
        return entry

    def _new_histogram(self, metric: str, label_names: Tuple[str, ...]) -> Histogram:
        return Histogram(
            metric,
            metric,
            labelnames=label_names,
            buckets=self.buckets_for(metric),
            registry=self.registry,
        )

    def _new_counter(self, metric: str, label_names: Tuple[str, ...]) -> Counter:
        return Counter(metric, metric, labelnames=label_names, registry=self.registry)

    def __repr__(self) -> str:
        return f"PrometheusMetrics(counters={len(self._counters)}, timers={len(self._timers)})"


def _bind(entry: _Entry, labels: Dict[str, str]):
    if entry.label_names:
        return entry.instrument.labels(**labels)
    return entry.instrument


def new_prometheus_metrics(
    registry: Optional[CollectorRegistry] = None,
    buckets: Optional[Mapping[str, Sequence[float]]] = None,
) -> PrometheusMetrics:
    """Build a Prometheus-backed ``Metrics``.  See ``PrometheusMetrics``."""
    return PrometheusMetrics(registry=registry, buckets=buckets)
