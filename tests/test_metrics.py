"""Tests for the metrics contract, the null backend and shared helpers."""

from datetime import timedelta

import pytest

from obsfacade.metrics import NULL_METRICS, Metrics, NullMetrics, exponential_buckets
from obsfacade.metrics.base import parse_tags, to_seconds


class TestNullMetrics:
    def test_is_a_metrics_backend(self):
        assert isinstance(NULL_METRICS, Metrics)
        assert isinstance(NULL_METRICS, NullMetrics)

    def test_thousand_increments_have_no_effect(self):
        from obsfacade.observability.errors import ErrorTracker

        for _ in range(1000):
            assert NULL_METRICS.increment("x", None) is None

        assert ErrorTracker().error_summary()["total_captured"] == 0

    def test_timing_accepts_any_duration(self):
        NULL_METRICS.timing("x", timedelta(milliseconds=5), ["a:b"])
        NULL_METRICS.timing("x", 0.005)
        NULL_METRICS.timing("x", 0)

    def test_contract_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            Metrics()


class TestToSeconds:
    def test_timedelta(self):
        assert to_seconds(timedelta(milliseconds=5)) == pytest.approx(0.005)

    def test_number_is_seconds(self):
        assert to_seconds(2) == 2.0
        assert to_seconds(0.25) == 0.25


class TestParseTags:
    def test_key_value_pairs(self):
        assert parse_tags(["route:/a", "method:GET"]) == {"route": "/a", "method": "GET"}

    def test_only_first_separator_splits(self):
        assert parse_tags(["url:http://x:80"]) == {"url": "http://x:80"}

    def test_bare_tag_has_empty_value(self):
        assert parse_tags(["canary"]) == {"canary": ""}

    def test_last_duplicate_wins(self):
        assert parse_tags(["a:1", "a:2"]) == {"a": "2"}

    def test_none_and_empty(self):
        assert parse_tags(None) == {}
        assert parse_tags([]) == {}


class TestExponentialBuckets:
    def test_default_series(self):
        buckets = exponential_buckets(1e-6, 10, 7)
        assert len(buckets) == 7
        assert buckets == pytest.approx([1e-6, 1e-5, 1e-4, 1e-3, 1e-2, 1e-1, 1.0])

    @pytest.mark.parametrize(
        "start,factor,count",
        [(1e-6, 10, 0), (0, 10, 3), (-1, 10, 3), (1e-6, 1, 3)],
    )
    def test_rejects_invalid_arguments(self, start, factor, count):
        with pytest.raises(ValueError):
            exponential_buckets(start, factor, count)
