"""
Observability routes — scrape endpoint, health check, suppressed errors.

Endpoints:
    GET /metrics         — Prometheus exposition format
    GET /healthz         — JSON liveness probe
    GET /errors/recent   — Recent suppressed emission errors
    GET /errors/summary  — Error dedup summary

The scraped registry is ``app.config["PROMETHEUS_REGISTRY"]`` when set,
otherwise the process-wide ``prometheus_client.REGISTRY``.
"""

import time

from flask import Blueprint, Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..constants import APP_VERSION
from ..observability.errors import ErrorTracker

observability_bp = Blueprint("observability", __name__)

_START_TIME = time.time()


# ── Metrics ──────────────────────────────────────────────────────


@observability_bp.route("/metrics")
def metrics_prometheus():
    """Prometheus text exposition format."""
    registry = current_app.config.get("PROMETHEUS_REGISTRY") or REGISTRY
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)


# ── Health ───────────────────────────────────────────────────────


@observability_bp.route("/healthz")
def healthz():
    """Liveness probe.  Reports suppressed-error totals but never fails on them."""
    summary = ErrorTracker().error_summary()
    return jsonify(
        {
            "status": "healthy",
            "version": APP_VERSION,
            "uptime_seconds": round(time.time() - _START_TIME, 1),
            "suppressed_errors": summary["total_captured"],
        }
    )


# ── Errors ───────────────────────────────────────────────────────


@observability_bp.route("/errors/recent")
def errors_recent():
    """Return the most recent suppressed errors."""
    limit = int(current_app.config.get("ERROR_DISPLAY_LIMIT", 50))
    return jsonify(ErrorTracker().recent_errors(limit))


@observability_bp.route("/errors/summary")
def errors_summary():
    """Return deduplicated error counts."""
    return jsonify(ErrorTracker().error_summary())
