"""
Turn a loaded configuration into ready-to-use facades.

Example ``obsfacade.json``::

    {
        "metrics": {
            "backend": "statsd",
            "service_name": "checkout",
            "environment": "${ENVIRONMENT:-dev}",
            "uri": "${STATSD_URI:-127.0.0.1:8125}"
        },
        "tracing": {
            "enabled": true,
            "collector_uri": "http://zipkin:9411",
            "service_name": "checkout",
            "service_uri": "127.0.0.1:8080"
        }
    }
"""

import logging
from typing import Any, Dict, Optional, Tuple

from .config import ConfigError, load_config, validate_config
from .constants import DEFAULT_CONFIG_PATH
from .metrics import NULL_METRICS, Metrics, new_prometheus_metrics, new_statsd_metrics
from .tracing import ZipkinTracingClient, new_tracing_client

logger = logging.getLogger(__name__)


def _check(config: Dict[str, Any]) -> None:
    errors = validate_config(config)
    if errors:
        raise ConfigError("Invalid observability config:\n  " + "\n  ".join(errors))


def build_metrics(config: Dict[str, Any]) -> Metrics:
    """Return the ``Metrics`` backend selected by ``config["metrics"]``.

    A missing section, or ``backend: "null"``, yields ``NULL_METRICS``.
    """
    _check(config)
    section = config.get("metrics") or {}
    backend = section.get("backend", "null")

    if backend == "statsd":
        return new_statsd_metrics(section["service_name"], section["environment"], section["uri"])
    if backend == "prometheus":
        return new_prometheus_metrics(buckets=section.get("buckets"))

    logger.info("Metrics disabled")
    return NULL_METRICS


def build_tracing(config: Dict[str, Any]) -> Optional[ZipkinTracingClient]:
    """Return a tracing client for ``config["tracing"]``, or ``None`` when
    the section is absent or ``enabled`` is false."""
    _check(config)
    section = config.get("tracing")
    if not section or not section.get("enabled", True):
        logger.info("Tracing disabled")
        return None

    return new_tracing_client(
        section["collector_uri"],
        section["service_name"],
        section["service_uri"],
        install_global=section.get("install_global", True),
    )


def load_facades(
    config_path: str = DEFAULT_CONFIG_PATH,
) -> Tuple[Metrics, Optional[ZipkinTracingClient]]:
    """Load *config_path* and build both facades from it."""
    config = load_config(config_path)
    return build_metrics(config), build_tracing(config)
