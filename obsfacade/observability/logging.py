"""
Structured JSON logging with context enrichment.

Every JSON log line is a single object with guaranteed keys:
``timestamp``, ``level``, ``logger``, ``message``, ``service``, and
optional contextual fields (``trace_id``, ``span_id``, ``metric``,
``backend``, ...).  When an OpenTelemetry span is current on the logging
thread its ids are attached automatically.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from opentelemetry import trace

from ..constants import APP_VERSION, LOG_BACKUP_COUNT, LOG_MAX_BYTES

# Thread-local storage for per-request context (request_id, route, etc.)
_context = threading.local()

# Default service name — overridable via LOG_SERVICE_NAME env var
SERVICE_NAME: str = os.environ.get("LOG_SERVICE_NAME", "obsfacade")


def set_log_context(**kwargs: Any) -> None:
    """Attach key-value pairs to the current thread's log context.

    Typical usage inside Flask ``before_request``::

        set_log_context(method=request.method, path=request.path)
    """
    if not hasattr(_context, "data"):
        _context.data = {}
    _context.data.update(kwargs)


def clear_log_context() -> None:
    """Remove all per-request context from the current thread."""
    _context.data = {}


def get_log_context() -> Dict[str, Any]:
    """Return a *copy* of the current thread's context dict."""
    return dict(getattr(_context, "data", {}))


def current_trace_ids() -> Dict[str, str]:
    """Return hex ``trace_id`` / ``span_id`` of the current span, if any."""
    span_ctx = trace.get_current_span().get_span_context()
    if not span_ctx.is_valid:
        return {}
    return {
        "trace_id": trace.format_trace_id(span_ctx.trace_id),
        "span_id": trace.format_span_id(span_ctx.span_id),
    }


# ── JSON Formatter ───────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit each record as a single-line JSON object."""

    # Keys that are promoted from ``extra`` to the top-level JSON.
    _PROMOTE_KEYS = frozenset(
        {
            "trace_id",
            "span_id",
            "operation",
            "duration_ms",
            "status_code",
            "method",
            "path",
            "error_type",
            "fingerprint",
            "metric",
            "backend",
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
            "version": APP_VERSION,
            "thread": record.threadName,
        }

        # Add source location for DEBUG / ERROR+
        if record.levelno <= logging.DEBUG or record.levelno >= logging.ERROR:
            entry["func"] = record.funcName
            entry["line"] = record.lineno
            entry["file"] = record.pathname

        entry.update(current_trace_ids())

        # Merge thread-local context
        ctx = get_log_context()
        if ctx:
            entry.update(ctx)

        # Promote well-known extra keys
        for key in self._PROMOTE_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        # Exception info
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
            entry["error_type"] = record.exc_info[0].__name__

        return json.dumps(entry, default=str, ensure_ascii=False)


# ── Plain Formatter (dev / console) ─────────────────────────────


class _DevFormatter(logging.Formatter):
    """Human-readable coloured output for local development."""

    _COLORS = {
        "DEBUG": "\033[36m",     # cyan
        "INFO": "\033[32m",      # green
        "WARNING": "\033[33m",   # yellow
        "ERROR": "\033[31m",     # red
        "CRITICAL": "\033[35m",  # magenta
    }
    _RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        tid = current_trace_ids().get("trace_id", "")
        prefix = f"[{tid[:8]}] " if tid else ""
        base = (
            f"{color}{ts} {record.levelname:<8}{self._RESET} "
            f"{record.name} {prefix}{record.getMessage()}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


# ── Logger Factory ───────────────────────────────────────────────


def setup_structured_logger(
    name: str,
    log_file: Optional[str] = None,
    *,
    level: Optional[int] = None,
    debug: bool = False,
) -> logging.Logger:
    """Create (or retrieve) a structured logger.

    A console handler is only attached when the root logger has none;
    otherwise records reach the application's handlers by propagation.

    Args:
        name: Logger name.
        log_file: Optional path of a rotating JSON log file.
        level: Explicit level (overrides *debug*).
        debug: If ``True``, sets level to ``DEBUG``.

    Returns:
        A configured ``logging.Logger``.
    """
    if level is None:
        level = logging.DEBUG if debug else logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        return logger

    # ── JSON file handler ────────────────────────────────────────
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(_JsonFormatter())
        logger.addHandler(file_handler)

    # ── Console handler — JSON in prod, coloured in dev ──────────
    if logging.getLogger().handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    use_json_console = os.environ.get("LOG_FORMAT", "").lower() == "json"
    if use_json_console:
        console_handler.setFormatter(_JsonFormatter())
    else:
        console_handler.setFormatter(_DevFormatter())

    logger.addHandler(console_handler)

    return logger
