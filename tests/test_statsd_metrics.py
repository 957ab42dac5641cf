"""Tests for the StatsD backend: default tags, forwarding, swallowed failures."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from obsfacade.metrics import MetricsConfigError, StatsDMetrics, new_statsd_metrics
from obsfacade.metrics.statsd import parse_statsd_uri
from obsfacade.observability.errors import ErrorTracker


class TestParseStatsdUri:
    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("127.0.0.1:8125", ("127.0.0.1", 8125, None)),
            ("statsd.local:9125", ("statsd.local", 9125, None)),
            ("udp://agent:8126", ("agent", 8126, None)),
            ("agent", ("agent", 8125, None)),
            ("unix:///var/run/datadog/dsd.socket", (None, None, "/var/run/datadog/dsd.socket")),
        ],
    )
    def test_valid(self, uri, expected):
        assert parse_statsd_uri(uri) == expected

    @pytest.mark.parametrize(
        "uri",
        ["", "   ", "host:notaport", "host:99999", "tcp://host:8125", "unix://", ":8125"],
    )
    def test_invalid(self, uri):
        with pytest.raises(MetricsConfigError):
            parse_statsd_uri(uri)


class TestStatsDMetrics:
    def test_default_tags_are_exact(self, monkeypatch):
        monkeypatch.setenv("DD_ENV", "staging")
        monkeypatch.setenv("DD_SERVICE", "other")
        metrics = new_statsd_metrics("svc", "prod", "127.0.0.1:8125")

        assert isinstance(metrics, StatsDMetrics)
        assert metrics.tags == ["service:svc", "env:prod"]
        assert metrics.client.constant_tags == ["service:svc", "env:prod"]

    def test_malformed_uri_raises(self):
        with pytest.raises(MetricsConfigError, match="Invalid StatsD port"):
            new_statsd_metrics("svc", "prod", "localhost:abc")

    def test_timing_forwards_milliseconds(self):
        client = MagicMock()
        metrics = StatsDMetrics(client, "svc", "prod")
        metrics.timing("db.query", timedelta(milliseconds=5), ["table:users"])

        client.timing.assert_called_once()
        args, kwargs = client.timing.call_args
        assert args[0] == "db.query"
        assert args[1] == pytest.approx(5.0)
        assert kwargs["tags"] == ["table:users"]
        assert kwargs["sample_rate"] == 1

    def test_increment_forwards(self):
        client = MagicMock()
        metrics = StatsDMetrics(client, "svc", "prod")
        metrics.increment("cache.miss", None)

        client.increment.assert_called_once_with("cache.miss", tags=None, sample_rate=1)

    def test_client_failure_is_swallowed_and_tracked(self):
        client = MagicMock()
        client.timing.side_effect = OSError("network down")
        client.increment.side_effect = RuntimeError("client closed")
        metrics = StatsDMetrics(client, "svc", "prod")

        assert metrics.timing("x", 0.001) is None
        assert metrics.increment("y") is None

        recent = ErrorTracker().recent_errors()
        assert [e["error_type"] for e in recent] == ["RuntimeError", "OSError"]
        assert recent[0]["context"]["metric"] == "y"
        assert recent[1]["context"]["backend"] == "statsd"

    def test_unreachable_agent_does_not_raise(self):
        metrics = new_statsd_metrics("svc", "prod", "127.0.0.1:1")
        for _ in range(3):
            metrics.timing("http.latency", timedelta(milliseconds=3), [])
            metrics.increment("http.request", [])

    def test_unresolvable_agent_does_not_raise(self):
        metrics = new_statsd_metrics("svc", "prod", "nonexistent-host.invalid:8125")
        assert metrics.tags == ["service:svc", "env:prod"]
        for _ in range(3):
            metrics.timing("http.latency", timedelta(milliseconds=3), [])
            metrics.increment("http.request", [])


class TestStatsDWire:
    def test_increment_datagram(self, udp_listener):
        port = udp_listener.getsockname()[1]
        metrics = new_statsd_metrics("svc", "prod", f"127.0.0.1:{port}")
        metrics.increment("cache.miss", ["tier:l1"])

        payload, _ = udp_listener.recvfrom(4096)
        assert payload.startswith(b"cache.miss:1|c")
        assert b"tier:l1" in payload
        assert b"service:svc" in payload
        assert b"env:prod" in payload

    def test_timing_datagram(self, udp_listener):
        port = udp_listener.getsockname()[1]
        metrics = new_statsd_metrics("svc", "prod", f"127.0.0.1:{port}")
        metrics.timing("http.latency", 0.25, [])

        payload, _ = udp_listener.recvfrom(4096)
        assert payload.startswith(b"http.latency:250")
        assert b"|ms" in payload
        assert b"service:svc" in payload
