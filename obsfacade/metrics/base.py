"""
The metrics contract shared by every backend.

Call sites depend only on ``Metrics``; which backend sits behind it
(nothing, StatsD, Prometheus) is decided once at startup.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Union

from ..constants import TAG_SEPARATOR

Duration = Union[timedelta, float, int]
Tags = Optional[Sequence[str]]


class TagMismatchError(ValueError):
    """Raised when a metric is emitted with a different set of tag keys
    than the one it was first created with."""


class Metrics(ABC):
    """Fire-and-forget counter and timing emission.

    Implementations never return a value and never raise because a
    backend is unhealthy.
    """

    @abstractmethod
    def timing(self, name: str, duration: Duration, tags: Tags = None) -> None:
        """Record one observation of *duration* against the timing *name*."""

    @abstractmethod
    def increment(self, name: str, tags: Tags = None) -> None:
        """Add 1 to the counter *name*."""


class NullMetrics(Metrics):
    """Discards everything.  Used in tests and when metrics are disabled."""

    def timing(self, name: str, duration: Duration, tags: Tags = None) -> None:
        pass

    def increment(self, name: str, tags: Tags = None) -> None:
        pass

    def __repr__(self) -> str:
        return "NullMetrics()"


NULL_METRICS = NullMetrics()


# ── Helpers ──────────────────────────────────────────────────────


def to_seconds(duration: Duration) -> float:
    """Convert a ``timedelta`` or a number of seconds to float seconds."""
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


def parse_tags(tags: Tags) -> Dict[str, str]:
    """Split ``key:value`` tag strings into a dict.

    Only the first ``:`` separates key from value, so ``url:http://x``
    keeps its scheme.  A tag without a separator maps to ``""``.
    Duplicate keys: the last one wins.
    """
    parsed: Dict[str, str] = {}
    for tag in tags or ():
        key, _, value = tag.partition(TAG_SEPARATOR)
        parsed[key] = value
    return parsed


def exponential_buckets(start: float, factor: float, count: int) -> List[float]:
    """Return *count* bucket bounds, the first at *start*, each next one
    *factor* times the previous."""
    if count < 1:
        raise ValueError(f"bucket count must be positive, got {count}")
    if start <= 0:
        raise ValueError(f"bucket start must be positive, got {start}")
    if factor <= 1:
        raise ValueError(f"bucket factor must be greater than 1, got {factor}")

    buckets = []
    bound = start
    for _ in range(count):
        buckets.append(bound)
        bound *= factor
    return buckets
