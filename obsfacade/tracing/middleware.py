"""
Flask middleware composing the two facades around every request.

For each request it:
1. Starts a span ``"<METHOD> <path>"`` through the tracing ``Client``
   and makes it the current span while the request is handled.
2. Pushes method / path into the structured log context.
3. Emits ``http.request`` / ``http.error`` counters and the
   ``http.request.duration`` timing through the ``Metrics`` facade.
4. Ends the span at teardown, marking 5xx responses and unhandled
   exceptions as errors.

Both collaborators are optional; without them the middleware still
measures latency and logs.
"""

import time
from typing import Optional

from flask import Flask, g, request
from opentelemetry import context, trace
from opentelemetry.trace import Status, StatusCode

from ..metrics.base import NULL_METRICS, Metrics
from ..observability.logging import clear_log_context, set_log_context
from .client import Client


class RequestTracer:
    """Flask middleware: one span and one set of HTTP metrics per request.

    Usage::

        RequestTracer(app, client=tracing_client, metrics=metrics)
    """

    TRACE_ID_HEADER = "X-Trace-ID"

    def __init__(
        self,
        app: Flask,
        *,
        client: Optional[Client] = None,
        metrics: Optional[Metrics] = None,
        logger=None,
    ):
        """
        Args:
            app: The Flask application.
            client: Tracing client spans are started from.
            metrics: Metrics facade for traffic, error and latency metrics.
            logger: Optional logger for per-request logs.
        """
        self.app = app
        self.client = client
        self.metrics = metrics if metrics is not None else NULL_METRICS
        self.logger = logger
        self._install(app)

    # ── installation ─────────────────────────────────────────────

    def _install(self, app: Flask) -> None:
        app.before_request(self._before)
        app.after_request(self._after)
        app.teardown_request(self._teardown)

    # ── hooks ────────────────────────────────────────────────────

    def _before(self) -> None:
        g.request_start = time.monotonic()
        g.span = None
        g.span_token = None

        if self.client is not None:
            span, ctx = self.client.start_span_from_context(
                None, f"{request.method} {request.path}"
            )
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.route", request.path)
            g.span = span
            # Current for the rest of the request so handler spans and logs join it
            g.span_token = context.attach(ctx)

        set_log_context(method=request.method, path=request.path)

    def _after(self, response):
        start = g.get("request_start")
        if start is None:
            return response
        elapsed = time.monotonic() - start
        tags = [f"method:{request.method}", f"status:{response.status_code}"]

        self.metrics.timing("http.request.duration", elapsed, tags)
        self.metrics.increment("http.request", tags)
        if response.status_code >= 400:
            self.metrics.increment("http.error", tags)

        span = g.get("span")
        if span is not None:
            span.set_attribute("http.status_code", response.status_code)
            if response.status_code >= 500:
                span.set_status(Status(StatusCode.ERROR))
            response.headers[self.TRACE_ID_HEADER] = trace.format_trace_id(
                span.get_span_context().trace_id
            )

        if self.logger:
            log_method = (
                self.logger.warning if response.status_code >= 400 else self.logger.info
            )
            log_method(
                "%s %s %s %.1fms",
                request.method,
                request.path,
                response.status_code,
                elapsed * 1000,
                extra={
                    "duration_ms": round(elapsed * 1000, 2),
                    "status_code": response.status_code,
                },
            )

        return response

    def _teardown(self, exc=None) -> None:
        token = g.pop("span_token", None)
        if token is not None:
            context.detach(token)

        span = g.pop("span", None)
        if span is not None:
            if exc is not None:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.end()
        clear_log_context()
