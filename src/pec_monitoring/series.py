"""Per-interval monitoring series derived from consecutive snapshots."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .quantile import HistogramBucket, histogram_quantile
from .snapshot import MetricsSnapshot

MONITORING_WINDOW_MS = 24 * 60 * 60 * 1000
ONE_MB = 1024 * 1024


@dataclass(frozen=True)
class MonitoringSeriesPoint:
    """Rates and gauges for the interval ending at ``timestamp`` (epoch ms).

    Rate fields are None for the first point and for intervals spanning a
    counter reset, which is distinct from a measured rate of zero.
    """

    timestamp: int
    requests_per_min: float | None
    error_rate_percent: float | None
    p50_latency_ms: float | None
    p95_latency_ms: float | None
    cpu_percent: float | None
    ram_mb: float | None
    uptime_seconds: float | None


def counter_delta(current: float | None, previous: float | None) -> float | None:
    """Increase of a counter; None when unknown or when the counter was reset."""
    if current is None or previous is None:
        return None
    delta = current - previous
    return delta if delta >= 0 else None


def _sum_optional(left: float | None, right: float | None) -> float | None:
    if left is None and right is None:
        return None
    return (left or 0.0) + (right or 0.0)


def build_histogram_delta(
    current: Sequence[HistogramBucket],
    previous: Sequence[HistogramBucket] | None = None,
) -> list[HistogramBucket]:
    """Bucket counts observed between two scrapes.

    If any bucket went down (process restart) the current cumulative buckets
    are returned as-is instead of a negative difference.
    """
    if not previous:
        return list(current)

    previous_counts = {bucket.le: bucket.count for bucket in previous}
    raw = [
        HistogramBucket(bucket.le, bucket.count - previous_counts.get(bucket.le, 0.0))
        for bucket in current
    ]
    if any(bucket.count < 0 for bucket in raw):
        return list(current)

    running = 0.0
    delta: list[HistogramBucket] = []
    for bucket in raw:
        running = max(running, bucket.count)
        delta.append(HistogramBucket(bucket.le, running))
    return delta


def rate_per_min(delta: float | None, elapsed_seconds: float) -> float | None:
    if delta is None or elapsed_seconds <= 0:
        return None
    return delta * 60 / elapsed_seconds


def cpu_percent(delta_cpu_seconds: float | None, elapsed_seconds: float) -> float | None:
    if delta_cpu_seconds is None or elapsed_seconds <= 0:
        return None
    return delta_cpu_seconds / elapsed_seconds * 100


def error_rate_percent(requests_delta: float | None, errors_delta: float | None) -> float | None:
    """Errors as a share of requests; 0 when no request was served."""
    if requests_delta is None or errors_delta is None:
        return None
    if requests_delta <= 0:
        return 0.0
    return errors_delta / requests_delta * 100


def _seconds_to_ms(value: float | None) -> float | None:
    return value * 1000 if value is not None else None


def build_series_point(
    snapshot: MetricsSnapshot, previous: MetricsSnapshot | None
) -> MonitoringSeriesPoint:
    """Derive the point for ``snapshot`` relative to the snapshot before it."""
    if previous is not None:
        elapsed_seconds = max(0.0, (snapshot.captured_at - previous.captured_at) / 1000)
        requests_delta = counter_delta(snapshot.api_requests_total, previous.api_requests_total)
        errors_delta = counter_delta(snapshot.api_errors_total, previous.api_errors_total)
        cpu_delta = counter_delta(
            _sum_optional(snapshot.cpu_user_seconds_total, snapshot.cpu_system_seconds_total),
            _sum_optional(previous.cpu_user_seconds_total, previous.cpu_system_seconds_total),
        )
        latency = build_histogram_delta(snapshot.api_latency_buckets, previous.api_latency_buckets)
    else:
        elapsed_seconds = 0.0
        requests_delta = errors_delta = cpu_delta = None
        latency = list(snapshot.api_latency_buckets)

    return MonitoringSeriesPoint(
        timestamp=snapshot.captured_at,
        requests_per_min=rate_per_min(requests_delta, elapsed_seconds),
        error_rate_percent=error_rate_percent(requests_delta, errors_delta),
        p50_latency_ms=_seconds_to_ms(histogram_quantile(latency, 0.5)),
        p95_latency_ms=_seconds_to_ms(histogram_quantile(latency, 0.95)),
        cpu_percent=cpu_percent(cpu_delta, elapsed_seconds),
        ram_mb=(
            snapshot.resident_memory_bytes / ONE_MB
            if snapshot.resident_memory_bytes is not None
            else None
        ),
        uptime_seconds=snapshot.uptime_seconds,
    )


def build_monitoring_series(
    history: Sequence[MetricsSnapshot],
    window_ms: int = MONITORING_WINDOW_MS,
) -> list[MonitoringSeriesPoint]:
    """Turn a snapshot history into one point per snapshot within ``window_ms``.

    The window is measured back from the newest snapshot. The first point of
    the window has no previous snapshot and therefore no rates.
    """
    if not history:
        return []

    ordered = sorted(history, key=lambda snapshot: snapshot.captured_at)
    latest = ordered[-1].captured_at
    windowed = [snapshot for snapshot in ordered if latest - snapshot.captured_at <= window_ms]

    return [
        build_series_point(snapshot, windowed[index - 1] if index > 0 else None)
        for index, snapshot in enumerate(windowed)
    ]


def get_observed_window_ms(series: Sequence[MonitoringSeriesPoint]) -> int:
    """Time covered by the series, 0 with fewer than two points."""
    if len(series) < 2:
        return 0
    return max(0, series[-1].timestamp - series[0].timestamp)
