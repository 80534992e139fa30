"""Scrape snapshots and the bounded, time-ordered snapshot history."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from .config import MonitoringSettings
from .parser import (
    SummaryOverrides,
    aggregate_histogram_buckets,
    parse_samples,
    read_first_value,
    sum_metric_samples,
)
from .quantile import HistogramBucket

logger = structlog.get_logger(__name__)

MAX_HISTORY_POINTS = 24 * 60
DEBOUNCE_MS = 30_000
API_LATENCY_METRIC = "app_api_request_duration_seconds"


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


def _pick(preferred: float | None, fallback: float | None) -> float | None:
    chosen = _finite_or_none(preferred)
    return chosen if chosen is not None else _finite_or_none(fallback)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class MetricsSnapshot:
    """One parsed scrape.

    ``captured_at`` is in epoch milliseconds. Totals are None when the scrape
    did not carry the metric.
    """

    captured_at: int
    scrape_requests_total: float | None = None
    api_requests_total: float | None = None
    api_errors_total: float | None = None
    business_messages_total: float | None = None
    uptime_seconds: float | None = None
    resident_memory_bytes: float | None = None
    cpu_user_seconds_total: float | None = None
    cpu_system_seconds_total: float | None = None
    api_latency_buckets: tuple[HistogramBucket, ...] = field(default_factory=tuple)

    def same_headline_totals(self, other: MetricsSnapshot) -> bool:
        return (
            self.api_requests_total == other.api_requests_total
            and self.api_errors_total == other.api_errors_total
            and self.scrape_requests_total == other.scrape_requests_total
        )


def create_metrics_snapshot(
    raw_metrics: str | None,
    summary: SummaryOverrides | None = None,
    captured_at: int | None = None,
) -> MetricsSnapshot | None:
    """Parse one scrape into a snapshot.

    Headline totals from ``summary`` win over the parsed sums when present.

    Returns:
        The snapshot, or None when the text is empty or holds no samples.
    """
    if not isinstance(raw_metrics, str) or not raw_metrics.strip():
        return None

    samples = parse_samples(raw_metrics)
    if not samples:
        logger.debug("snapshot_without_samples", chars=len(raw_metrics))
        return None

    summary = summary or SummaryOverrides()
    return MetricsSnapshot(
        captured_at=now_ms() if captured_at is None else captured_at,
        scrape_requests_total=_pick(
            summary.scrape_requests_total,
            sum_metric_samples(samples, "metrics_endpoint_requests_total"),
        ),
        api_requests_total=_pick(
            summary.api_requests_total, sum_metric_samples(samples, "app_api_requests_total")
        ),
        api_errors_total=_pick(
            summary.api_errors_total, sum_metric_samples(samples, "app_api_errors_total")
        ),
        business_messages_total=_pick(
            summary.business_messages_total,
            sum_metric_samples(samples, "app_business_messages_total"),
        ),
        uptime_seconds=_finite_or_none(read_first_value(samples, "process_uptime_seconds")),
        resident_memory_bytes=_finite_or_none(
            read_first_value(samples, "process_resident_memory_bytes")
        ),
        cpu_user_seconds_total=_finite_or_none(
            read_first_value(samples, "process_cpu_user_seconds_total")
        ),
        cpu_system_seconds_total=_finite_or_none(
            read_first_value(samples, "process_cpu_system_seconds_total")
        ),
        api_latency_buckets=tuple(aggregate_histogram_buckets(samples, API_LATENCY_METRIC)),
    )


def append_metrics_snapshot(
    history: Sequence[MetricsSnapshot],
    snapshot: MetricsSnapshot,
    max_points: int = MAX_HISTORY_POINTS,
    debounce_ms: int = DEBOUNCE_MS,
) -> list[MetricsSnapshot]:
    """Return a new history with ``snapshot`` folded in.

    The snapshot is dropped when it repeats the last capture time, or when it
    lands within ``debounce_ms`` of the last entry with unchanged headline
    totals. Late snapshots are inserted in time order. The oldest entries
    are trimmed beyond ``max_points``.
    """
    if history:
        last = history[-1]
        if last.captured_at == snapshot.captured_at:
            return list(history)
        if (
            snapshot.captured_at - last.captured_at < debounce_ms
            and last.same_headline_totals(snapshot)
        ):
            return list(history)

    next_history = [*history, snapshot]
    if history and snapshot.captured_at < history[-1].captured_at:
        next_history.sort(key=lambda entry: entry.captured_at)

    if len(next_history) <= max_points:
        return next_history
    trimmed = len(next_history) - max_points
    logger.debug("history_trimmed", dropped=trimmed, kept=max_points)
    return next_history[trimmed:]


class MetricsHistory:
    """Thread-safe holder for the snapshot history.

    Writers swap in a new tuple under a lock; readers get the current tuple,
    which is never mutated afterwards.
    """

    def __init__(
        self,
        max_points: int = MAX_HISTORY_POINTS,
        debounce_ms: int = DEBOUNCE_MS,
    ) -> None:
        self._max_points = max_points
        self._debounce_ms = debounce_ms
        self._snapshots: tuple[MetricsSnapshot, ...] = ()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: MonitoringSettings) -> MetricsHistory:
        return cls(max_points=settings.max_history_points, debounce_ms=settings.debounce_ms)

    def __len__(self) -> int:
        return len(self._snapshots)

    def snapshots(self) -> tuple[MetricsSnapshot, ...]:
        return self._snapshots

    def latest(self) -> MetricsSnapshot | None:
        snapshots = self._snapshots
        return snapshots[-1] if snapshots else None

    def append(self, snapshot: MetricsSnapshot) -> bool:
        """Fold a snapshot in; returns False when it was dropped as a duplicate."""
        with self._lock:
            updated = append_metrics_snapshot(
                self._snapshots,
                snapshot,
                max_points=self._max_points,
                debounce_ms=self._debounce_ms,
            )
            accepted = any(entry is snapshot for entry in updated)
            self._snapshots = tuple(updated)

        if accepted:
            logger.debug("snapshot_appended", captured_at=snapshot.captured_at, points=len(updated))
        else:
            logger.debug("snapshot_skipped", captured_at=snapshot.captured_at)
        return accepted

    def ingest(
        self,
        raw_metrics: str | None,
        summary: SummaryOverrides | None = None,
        captured_at: int | None = None,
    ) -> MetricsSnapshot | None:
        """Parse a scrape and append it; returns the snapshot if one was built."""
        snapshot = create_metrics_snapshot(raw_metrics, summary, captured_at)
        if snapshot is not None:
            self.append(snapshot)
        return snapshot
