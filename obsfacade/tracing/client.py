"""
Distributed tracing client — OpenTelemetry spans reported to Zipkin.

``new_tracing_client`` wires an OpenTelemetry ``TracerProvider`` to a
Zipkin v2 JSON exporter posting to ``<collector>/api/v2/spans``.  Spans
are handed to a ``BatchSpanProcessor`` when they end, so the HTTP call
happens on the processor's worker thread and never on the caller's.

The client keeps its own provider and tracer.  Installing the provider
as the process-wide default is optional (and on by default) so a test
suite can run several clients side by side.

Ending a span (and everything recorded on it before that) is the
caller's job.
"""

import ipaddress
import logging
import socket
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Tuple
from urllib.parse import urlsplit

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.zipkin.json import ZipkinExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import ConfigError
from ..constants import TRACER_NAME, ZIPKIN_SPANS_PATH

logger = logging.getLogger(__name__)


class TracingConfigError(ConfigError):
    """Raised when the tracer cannot be built.  Treat as fatal at startup."""


@dataclass(frozen=True)
class LocalEndpoint:
    """The identity attached to every span this process reports."""

    service_name: str
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    port: Optional[int] = None


class Client(ABC):
    """Span factory used by application code."""

    @abstractmethod
    def start_span_from_context(
        self, ctx: Optional[Context], operation: str
    ) -> Tuple[trace.Span, Context]:
        """Start *operation* as a child of the span carried by *ctx*.

        Returns the new span and a context derived from *ctx* in which
        it is the current span.
        """

    @abstractmethod
    def start_span(self, operation: str, **opts: Any) -> trace.Span:
        """Start *operation* as a root span unless *opts* name a parent."""


class ZipkinTracingClient(Client):
    """``Client`` backed by an OpenTelemetry SDK provider and a Zipkin exporter."""

    def __init__(
        self,
        provider: TracerProvider,
        exporter: ZipkinExporter,
        local_endpoint: LocalEndpoint,
    ):
        self.provider = provider
        self.exporter = exporter
        self.local_endpoint = local_endpoint
        self.tracer = provider.get_tracer(TRACER_NAME)

    @property
    def service_name(self) -> str:
        return self.local_endpoint.service_name

    @property
    def endpoint(self) -> str:
        """URL spans are POSTed to."""
        return self.exporter.endpoint

    def start_span_from_context(
        self, ctx: Optional[Context], operation: str
    ) -> Tuple[trace.Span, Context]:
        # ctx=None means the ambient context of the calling thread
        span = self.tracer.start_span(operation, context=ctx)
        return span, trace.set_span_in_context(span, ctx)

    def start_span(self, operation: str, **opts: Any) -> trace.Span:
        opts.setdefault("context", Context())
        return self.tracer.start_span(operation, **opts)

    @contextmanager
    def span(self, operation: str, ctx: Optional[Context] = None, **attributes: Any) -> Iterator[trace.Span]:
        """Start a span, make it current for the block, and end it afterwards.

        An exception escaping the block is recorded on the span and its
        status set to error before it propagates.
        """
        span, _ = self.start_span_from_context(ctx, operation)
        for key, value in attributes.items():
            span.set_attribute(key, value)
        with trace.use_span(span, end_on_exit=True):
            yield span

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Export every ended span still queued in the batch processor."""
        return self.provider.force_flush(timeout_millis)

    def shutdown(self) -> None:
        self.provider.shutdown()

    def __repr__(self) -> str:
        return f"ZipkinTracingClient(service={self.service_name!r}, endpoint={self.endpoint!r})"


# ── Construction ─────────────────────────────────────────────────


def collector_endpoint(collector_uri: str) -> str:
    """``http://zipkin:9411/`` → ``http://zipkin:9411/api/v2/spans``."""
    return collector_uri.rstrip("/") + ZIPKIN_SPANS_PATH


def new_local_endpoint(service_name: str, service_uri: str) -> LocalEndpoint:
    """Resolve ``service_uri`` (``host:port``, optionally with a scheme)
    into the local endpoint of *service_name*.

    A host that is not an IP literal is looked up; the first IPv4 and
    the first IPv6 address found are used.  An empty *service_uri*
    yields an endpoint carrying only the service name.

    Raises:
        TracingConfigError: On an empty service name, a bad port, or a
            host that cannot be resolved.
    """
    if not service_name:
        raise TracingConfigError("Local endpoint requires a service name")

    if not service_uri or service_uri == ":0":
        return LocalEndpoint(service_name)

    parts = urlsplit(service_uri if "://" in service_uri else f"//{service_uri}")
    try:
        port = parts.port
    except ValueError as exc:
        raise TracingConfigError(f"Invalid port in service URI {service_uri!r}: {exc}") from exc

    host = parts.hostname
    if not host:
        raise TracingConfigError(f"Service URI has no host: {service_uri!r}")

    ipv4, ipv6 = _resolve_host(host)
    return LocalEndpoint(service_name, ipv4=ipv4, ipv6=ipv6, port=port or None)


def _resolve_host(host: str) -> Tuple[Optional[str], Optional[str]]:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return (str(addr), None) if addr.version == 4 else (None, str(addr))

    try:
        infos = socket.getaddrinfo(host, None)
    except socket.gaierror as exc:
        raise TracingConfigError(f"Unable to resolve service host {host!r}: {exc}") from exc

    ipv4 = next((info[4][0] for info in infos if info[0] == socket.AF_INET), None)
    ipv6 = next((info[4][0] for info in infos if info[0] == socket.AF_INET6), None)
    return ipv4, ipv6


def new_tracing_client(
    collector_uri: str,
    service_name: str,
    service_uri: str,
    *,
    install_global: bool = True,
) -> ZipkinTracingClient:
    """Build a tracing client reporting to the Zipkin collector at *collector_uri*.

    Args:
        collector_uri: Base URL of the collector, e.g. ``http://zipkin:9411``.
        service_name: Local service name stamped on every span.
        service_uri: ``host:port`` this service listens on.
        install_global: Also install the provider as the global
            OpenTelemetry tracer provider.  OpenTelemetry only honours
            the first installation in a process.

    Raises:
        TracingConfigError: If the local endpoint or the tracer cannot
            be built.  A service without a usable tracer is misconfigured
            and should not start.
    """
    endpoint = collector_endpoint(collector_uri)

    try:
        local = new_local_endpoint(service_name, service_uri)
    except TracingConfigError as exc:
        logger.critical("unable to create local endpoint: %s", exc)
        raise

    try:
        exporter = ZipkinExporter(
            endpoint=endpoint,
            local_node_ipv4=local.ipv4,
            local_node_ipv6=local.ipv6,
            local_node_port=local.port,
        )
        provider = TracerProvider(resource=Resource.create({SERVICE_NAME: local.service_name}))
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as exc:
        logger.critical("unable to create tracer: %s", exc)
        raise TracingConfigError(f"Unable to create tracer for {endpoint}: {exc}") from exc

    if install_global:
        trace.set_tracer_provider(provider)

    logger.info(
        "Tracing enabled: %s → %s (%s)", service_name, endpoint, service_uri or "no address"
    )
    return ZipkinTracingClient(provider, exporter, local)
