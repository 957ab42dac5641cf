"""
Observability of the facade itself — structured logging and tracking of
the backend failures that emission swallows.

Provides:
- ``setup_structured_logger``: JSON / coloured console logging
- ``set_log_context`` / ``clear_log_context``: thread-local log fields
- ``ErrorTracker``: ring buffer and counts of suppressed errors
"""

from .errors import ErrorRecord, ErrorTracker
from .logging import clear_log_context, get_log_context, set_log_context, setup_structured_logger

__all__ = [
    "setup_structured_logger",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "ErrorTracker",
    "ErrorRecord",
]
