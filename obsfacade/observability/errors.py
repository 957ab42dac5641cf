"""
Tracking of failures the facade swallows.

Metric emission must never raise into the caller, so backend failures
(unreachable StatsD socket, client library errors) are caught at the
facade boundary and handed to the ``ErrorTracker`` instead.  Captured
errors are:

1. Logged via the structured logger at WARNING.
2. Stored in a bounded in-memory ring buffer for the ``/errors`` routes.
3. Counted per fingerprint so repeated failures collapse into one entry.
"""

import sys
import threading
import traceback
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .logging import current_trace_ids, get_log_context, setup_structured_logger

# ── Error record ─────────────────────────────────────────────────


@dataclass
class ErrorRecord:
    """A single captured error event."""

    timestamp: str
    error_type: str
    message: str
    traceback: str
    context: Dict[str, Any] = field(default_factory=dict)
    fingerprint: str = ""  # for dedup grouping

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "error_type": self.error_type,
            "message": self.message,
            "traceback": self.traceback,
            "context": self.context,
            "fingerprint": self.fingerprint,
        }


# ── Error Tracker ────────────────────────────────────────────────

# Maximum number of recent errors kept in memory
_MAX_ERROR_BUFFER = 200


class ErrorTracker:
    """Singleton that captures, deduplicates, and stores swallowed errors.

    Usage::

        tracker = ErrorTracker()
        try:
            client.timing(name, ms, tags)
        except Exception as exc:
            tracker.capture_exception(exc, extra={"backend": "statsd", "metric": name})
    """

    _instance: Optional["ErrorTracker"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ErrorTracker":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._buffer: deque[ErrorRecord] = deque(maxlen=_MAX_ERROR_BUFFER)
        self._counts: Dict[str, int] = {}  # fingerprint -> count
        self._counts_lock = threading.Lock()
        self._logger = setup_structured_logger("obsfacade.errors")
        self._callbacks: List[Callable[[ErrorRecord], None]] = []

    # ── Capture methods ──────────────────────────────────────────

    def capture_exception(
        self,
        exc: Optional[BaseException] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[ErrorRecord]:
        """Capture an exception with full context.

        Args:
            exc: The exception. If ``None``, uses ``sys.exc_info()``.
            extra: Additional context to attach.

        Returns:
            The ``ErrorRecord``, or ``None`` if nothing to capture.
        """
        if exc is None:
            exc_info = sys.exc_info()
            if exc_info[0] is None:
                return None
            exc = exc_info[1]
        else:
            exc_info = (type(exc), exc, exc.__traceback__)

        tb = "".join(traceback.format_exception(*exc_info))

        ctx: Dict[str, Any] = {}
        ctx.update(current_trace_ids())
        ctx.update(get_log_context())
        if extra:
            ctx.update(extra)

        # Same failure against the same backend collapses into one entry
        fingerprint = f"{type(exc).__name__}:{ctx.get('backend', _extract_location(exc_info))}"

        record = ErrorRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            error_type=type(exc).__name__,
            message=str(exc),
            traceback=tb,
            context=ctx,
            fingerprint=fingerprint,
        )

        with self._counts_lock:
            self._buffer.append(record)
            self._counts[fingerprint] = self._counts.get(fingerprint, 0) + 1

        self._logger.warning(
            "Suppressed %s: %s",
            record.error_type,
            record.message,
            extra={"error_type": record.error_type, "fingerprint": fingerprint, **ctx},
        )

        for cb in self._callbacks:
            try:
                cb(record)
            except Exception:
                self._logger.exception("Error callback %r failed", cb)

        return record

    def on_error(self, callback: Callable[[ErrorRecord], None]) -> None:
        """Register a callback invoked on every captured error."""
        self._callbacks.append(callback)

    # ── Query methods ────────────────────────────────────────────

    def recent_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return the most recent errors as dicts, newest first."""
        with self._counts_lock:
            items = list(self._buffer)[-limit:]
        items.reverse()
        return [e.to_dict() for e in items]

    def error_summary(self) -> Dict[str, Any]:
        """Return dedup counts and totals."""
        with self._counts_lock:
            counts = dict(self._counts)
        return {
            "total_captured": sum(counts.values()),
            "unique_errors": len(counts),
            "top_errors": sorted(
                [{"fingerprint": fp, "count": c} for fp, c in counts.items()],
                key=lambda x: x["count"],
                reverse=True,
            )[:20],
        }

    # ── Reset (testing) ──────────────────────────────────────────

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None


def _extract_location(exc_info) -> str:
    """Extract file:line from the innermost traceback frame."""
    tb = exc_info[2]
    if tb is None:
        return "unknown"
    while tb.tb_next:
        tb = tb.tb_next
    return f"{tb.tb_frame.f_code.co_filename}:{tb.tb_lineno}"
