"""
Test fixtures and configuration for pytest
"""

import os
import socket

import pytest
from prometheus_client import CollectorRegistry


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Auto-use guard: strip DataDog agent variables so DogStatsd never
    picks up tags or addresses from the machine running the tests, and
    start each test with an empty ``ErrorTracker``.
    """
    from obsfacade.observability.errors import ErrorTracker

    for key in list(os.environ):
        if key.startswith("DD_"):
            monkeypatch.delenv(key, raising=False)
    ErrorTracker.reset()
    yield
    ErrorTracker.reset()


@pytest.fixture
def registry():
    """A private Prometheus registry, so tests never touch the global one."""
    return CollectorRegistry()


@pytest.fixture
def udp_listener():
    """A bound UDP socket on localhost standing in for a StatsD agent."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()
