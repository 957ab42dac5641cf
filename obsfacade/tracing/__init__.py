"""
Tracing facade — OpenTelemetry spans reported to a Zipkin collector.

- ``new_tracing_client``: build a ``ZipkinTracingClient``
- ``RequestTracer``: Flask middleware tracing and measuring each request
"""

from .client import (
    Client,
    LocalEndpoint,
    TracingConfigError,
    ZipkinTracingClient,
    new_local_endpoint,
    new_tracing_client,
)
from .middleware import RequestTracer

__all__ = [
    "Client",
    "ZipkinTracingClient",
    "LocalEndpoint",
    "TracingConfigError",
    "new_tracing_client",
    "new_local_endpoint",
    "RequestTracer",
]
