"""Tests for histogram quantile estimation."""

import math

import pytest

from pec_monitoring.quantile import HistogramBucket, histogram_quantile, sort_buckets
from pec_monitoring.registry import MetricsRegistry
from pec_monitoring.parser import aggregate_histogram_buckets, parse_samples


def _buckets(*pairs):
    return [HistogramBucket(le, count) for le, count in pairs]


def test_no_data_returns_none():
    """Empty bucket lists and zero totals have no quantile."""
    assert histogram_quantile([], 0.5) is None
    assert histogram_quantile(_buckets((1, 0), (math.inf, 0)), 0.5) is None


def test_linear_interpolation():
    """The value interpolates inside the containing bucket."""
    buckets = _buckets((0.1, 2), (0.2, 6), (math.inf, 8))

    assert histogram_quantile(buckets, 0.25) == pytest.approx(0.1)
    assert histogram_quantile(buckets, 0.5) == pytest.approx(0.15)
    assert histogram_quantile(buckets, 0.125) == pytest.approx(0.05)


def test_inf_bucket_returns_last_finite_bound():
    """Targets in the +Inf bucket report the previous finite bound."""
    buckets = _buckets((0.1, 2), (0.2, 6), (math.inf, 8))

    assert histogram_quantile(buckets, 0.99) == pytest.approx(0.2)


def test_quantile_is_clamped():
    """Quantiles outside [0, 1] are clamped."""
    buckets = _buckets((0.1, 2), (0.2, 6), (math.inf, 6))

    assert histogram_quantile(buckets, -1) == histogram_quantile(buckets, 0)
    assert histogram_quantile(buckets, 2) == histogram_quantile(buckets, 1)


def test_quantile_bounds_are_ordered():
    """q=0 <= q=0.5 <= q=1 for a valid bucket list."""
    buckets = _buckets((0.01, 1), (0.05, 1), (0.1, 5), (1, 9), (math.inf, 10))

    low = histogram_quantile(buckets, 0)
    mid = histogram_quantile(buckets, 0.5)
    high = histogram_quantile(buckets, 1)

    assert low <= mid <= high


def test_sort_buckets_puts_inf_last():
    """Sorting orders finite bounds ascending then +Inf."""
    ordered = sort_buckets(_buckets((math.inf, 3), (1, 2), (0.5, 1)))

    assert [bucket.le for bucket in ordered] == [0.5, 1, math.inf]


def test_latency_scenario_from_registry():
    """Observations 10ms, 50ms, 50ms, 800ms against the default ladder."""
    registry = MetricsRegistry()
    for value in (0.01, 0.05, 0.05, 0.8):
        registry.observe_histogram(
            "app_api_request_duration_seconds", {"route": "/x", "method": "GET"}, value
        )
    buckets = aggregate_histogram_buckets(
        parse_samples(registry.render()), "app_api_request_duration_seconds"
    )

    p50 = histogram_quantile(buckets, 0.5)
    p95 = histogram_quantile(buckets, 0.95)

    # Median falls inside the 50ms bucket, between its lower (25ms) and upper bound.
    assert p50 == pytest.approx(0.0375)
    assert 0.025 < p50 < 0.05
    # 3.8 of 4 observations sits inside the (500ms, 1s] bucket.
    assert p95 == pytest.approx(0.9)
    assert p95 >= 0.5
