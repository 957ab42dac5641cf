"""
StatsD backend, via the DataDog ``DogStatsd`` client.

Every emission carries two constant tags, ``service:<name>`` and
``env:<environment>``, ahead of whatever the call site supplies.  The
client sends UDP (or unix-socket) datagrams and never waits for the
agent; any error it does raise is swallowed here and recorded on the
``ErrorTracker``.
"""

import logging
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from datadog.dogstatsd import DogStatsd

from ..config import ConfigError
from ..constants import DEFAULT_STATSD_PORT, STATSD_SAMPLE_RATE
from ..observability.errors import ErrorTracker
from .base import Duration, Metrics, Tags, to_seconds

logger = logging.getLogger(__name__)


class MetricsConfigError(ConfigError):
    """Raised when a metrics backend cannot be constructed."""


class StatsDMetrics(Metrics):
    """Forwards timings and counters to a ``DogStatsd`` client."""

    def __init__(self, client: DogStatsd, service_name: str, environment: str):
        self.client = client
        self.service_name = service_name
        self.environment = environment
        # Replaces any DD_ENV / DD_SERVICE derived tags the client picked up
        self.client.constant_tags = default_tags(service_name, environment)

    @property
    def tags(self) -> List[str]:
        return list(self.client.constant_tags)

    def timing(self, name: str, duration: Duration, tags: Tags = None) -> None:
        try:
            self.client.timing(
                name,
                to_seconds(duration) * 1000.0,
                tags=list(tags) if tags else None,
                sample_rate=STATSD_SAMPLE_RATE,
            )
        except Exception as exc:
            ErrorTracker().capture_exception(exc, extra={"backend": "statsd", "metric": name})

    def increment(self, name: str, tags: Tags = None) -> None:
        try:
            self.client.increment(
                name,
                tags=list(tags) if tags else None,
                sample_rate=STATSD_SAMPLE_RATE,
            )
        except Exception as exc:
            ErrorTracker().capture_exception(exc, extra={"backend": "statsd", "metric": name})

    def __repr__(self) -> str:
        return f"StatsDMetrics(service={self.service_name!r}, env={self.environment!r})"


def default_tags(service_name: str, environment: str) -> List[str]:
    return [f"service:{service_name}", f"env:{environment}"]


def parse_statsd_uri(uri: str) -> Tuple[Optional[str], Optional[int], Optional[str]]:
    """Split a StatsD address into ``(host, port, socket_path)``.

    Accepted forms: ``host``, ``host:port``, ``udp://host:port`` and
    ``unix:///path/to/dsd.socket``.

    Raises:
        MetricsConfigError: If the address is empty or the port is invalid.
    """
    if not uri or not uri.strip():
        raise MetricsConfigError("StatsD URI must not be empty")

    uri = uri.strip()
    if uri.startswith("unix://"):
        path = uri[len("unix://"):]
        if not path:
            raise MetricsConfigError(f"StatsD unix socket URI has no path: {uri!r}")
        return None, None, path

    if "://" not in uri:
        uri = f"udp://{uri}"

    parts = urlsplit(uri)
    if parts.scheme != "udp":
        raise MetricsConfigError(f"Unsupported StatsD URI scheme {parts.scheme!r} in {uri!r}")

    try:
        port = parts.port
    except ValueError as exc:
        raise MetricsConfigError(f"Invalid StatsD port in {uri!r}: {exc}") from exc

    if not parts.hostname:
        raise MetricsConfigError(f"StatsD URI has no host: {uri!r}")

    return parts.hostname, port if port is not None else DEFAULT_STATSD_PORT, None


def new_statsd_metrics(service_name: str, environment: str, uri: str) -> StatsDMetrics:
    """Build a StatsD-backed ``Metrics``.

    Args:
        service_name: Value of the ``service:`` constant tag.
        environment: Value of the ``env:`` constant tag.
        uri: Agent address, see ``parse_statsd_uri``.

    Raises:
        MetricsConfigError: If *uri* is malformed or the client rejects it.
            An address that is well-formed but unreachable is not an error.
    """
    host, port, socket_path = parse_statsd_uri(uri)

    try:
        if socket_path:
            client = DogStatsd(socket_path=socket_path, disable_telemetry=True)
        else:
            client = DogStatsd(host=host, port=port, disable_telemetry=True)
    except Exception as exc:
        raise MetricsConfigError(f"Unable to create StatsD client for {uri!r}: {exc}") from exc

    logger.info(
        "StatsD metrics enabled: %s (service=%s, env=%s)", uri, service_name, environment
    )
    return StatsDMetrics(client, service_name, environment)
