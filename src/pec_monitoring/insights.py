"""Trend, peak and insight generation over a monitoring series."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple

import structlog

from .config import MonitoringSettings
from .series import MonitoringSeriesPoint, get_observed_window_ms

logger = structlog.get_logger(__name__)

MIN_TREND_SAMPLES = 4


class TrendDirection(str, Enum):
    """Direction of a first-half vs second-half comparison."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class InsightTone(str, Enum):
    """How an insight should be presented."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    WARNING = "warning"


@dataclass(frozen=True)
class TrendDelta:
    """Comparison of the average of the newer half of samples against the older half."""

    direction: TrendDirection
    percentage: float | None
    current: float | None
    previous: float | None


@dataclass(frozen=True)
class MonitoringInsight:
    """One human-readable conclusion for the operator dashboard."""

    id: str
    title: str
    description: str
    tone: InsightTone

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "tone": self.tone.value,
        }


class TimedValue(NamedTuple):
    timestamp: int
    value: float


def finite_values(values: Sequence[float | None]) -> list[float]:
    return [value for value in values if value is not None and math.isfinite(value)]


def average(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return math.fsum(values) / len(values)


def compute_period_delta(
    values: Sequence[float | None], noise_floor: float = 0.02
) -> TrendDelta:
    """Classify a series as rising, falling or flat.

    Needs at least four finite samples; below that the direction is flat
    with no percentage. Differences within ``noise_floor`` of the older
    average (at least an absolute ``noise_floor``) count as flat.
    """
    finite = finite_values(values)
    if not finite:
        return TrendDelta(TrendDirection.FLAT, None, None, None)
    if len(finite) < MIN_TREND_SAMPLES:
        return TrendDelta(TrendDirection.FLAT, None, finite[-1], None)

    pivot = len(finite) // 2
    previous_avg = average(finite[:pivot])
    current_avg = average(finite[pivot:])
    if previous_avg is None or current_avg is None:
        return TrendDelta(TrendDirection.FLAT, None, current_avg, previous_avg)

    difference = current_avg - previous_avg
    epsilon = max(abs(previous_avg), 1) * noise_floor
    if abs(difference) <= epsilon:
        direction = TrendDirection.FLAT
    else:
        direction = TrendDirection.UP if difference > 0 else TrendDirection.DOWN

    percentage: float | None = None
    if abs(previous_avg) > 1e-6:
        percentage = difference / abs(previous_avg) * 100
        if not math.isfinite(percentage):
            percentage = None

    return TrendDelta(direction, percentage, current_avg, previous_avg)


def detect_peaks(
    points: Sequence[TimedValue], min_threshold: float, max_peaks: int = 3
) -> list[TimedValue]:
    """Find local maxima at or above ``min_threshold``.

    Falls back to the global maximum when no interior point qualifies. The
    ``max_peaks`` highest peaks are returned in chronological order.
    """
    detected: list[TimedValue] = []
    for index in range(1, len(points) - 1):
        previous, current, following = points[index - 1], points[index], points[index + 1]
        if (
            current.value >= min_threshold
            and current.value >= previous.value
            and current.value >= following.value
        ):
            detected.append(current)

    if not detected and points:
        highest = max(points, key=lambda point: point.value)
        if highest.value >= min_threshold:
            detected.append(highest)

    strongest = sorted(detected, key=lambda point: point.value, reverse=True)[:max_peaks]
    return sorted(strongest, key=lambda point: point.timestamp)


def format_observed_window(window_ms: int) -> str:
    """Render an observed window as ``collecting``, minutes, hours or days."""
    if window_ms <= 0:
        return "collecting"

    minutes = round(window_ms / 60_000)
    if minutes < 120:
        return f"{max(1, minutes)} min"

    hours = minutes / 60
    if hours < 48:
        precision = 0 if hours >= 10 else 1
        return f"{hours:.{precision}f} h"

    return f"{hours / 24:.1f} d"


def format_percent(value: float) -> str:
    return f"{abs(value):.1f}%"


def format_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%H:%M")


InsightCheck = Callable[[Sequence[MonitoringSeriesPoint], str], "MonitoringInsight | None"]


class InsightEngine:
    """Runs the fixed insight checks in order: traffic, peaks, latency, errors."""

    def __init__(self, settings: MonitoringSettings | None = None) -> None:
        self._settings = settings or MonitoringSettings()
        self._checks: list[tuple[str, InsightCheck]] = [
            ("traffic", self._traffic_insight),
            ("peaks", self._peaks_insight),
            ("latency", self._latency_insight),
            ("errors", self._errors_insight),
        ]

    def evaluate(self, series: Sequence[MonitoringSeriesPoint]) -> list[MonitoringInsight]:
        """Build insights for a series, keeping the first ``max_insights`` found."""
        if not series:
            return [
                MonitoringInsight(
                    id="collecting",
                    title="Collecting data",
                    description="No usable samples yet to derive insights.",
                    tone=InsightTone.NEUTRAL,
                )
            ]

        window_label = format_observed_window(get_observed_window_ms(series))
        insights: list[MonitoringInsight] = []
        for name, check in self._checks:
            try:
                insight = check(series, window_label)
            except Exception as e:
                logger.warning("insight_check_failed", check=name, error=str(e))
                continue
            if insight is not None:
                insights.append(insight)

        return insights[: self._settings.max_insights]

    def _trend(self, values: Sequence[float | None]) -> TrendDelta:
        return compute_period_delta(values, noise_floor=self._settings.trend_noise_floor)

    def _traffic_insight(
        self, series: Sequence[MonitoringSeriesPoint], window_label: str
    ) -> MonitoringInsight:
        delta = self._trend([point.requests_per_min for point in series])
        if delta.current is None:
            return MonitoringInsight(
                "traffic",
                "Traffic consolidating",
                f"More samples are needed over {window_label}.",
                InsightTone.NEUTRAL,
            )
        if delta.direction is TrendDirection.UP and delta.percentage is not None:
            return MonitoringInsight(
                "traffic",
                "Traffic rising",
                f"Traffic is up {format_percent(delta.percentage)} over {window_label}.",
                InsightTone.POSITIVE,
            )
        if delta.direction is TrendDirection.DOWN and delta.percentage is not None:
            return MonitoringInsight(
                "traffic",
                "Traffic falling",
                f"Traffic is down {format_percent(delta.percentage)} over {window_label}.",
                InsightTone.WARNING,
            )
        return MonitoringInsight(
            "traffic",
            "Traffic stable",
            f"Volume holds steady over {window_label}.",
            InsightTone.NEUTRAL,
        )

    def _peaks_insight(
        self, series: Sequence[MonitoringSeriesPoint], window_label: str
    ) -> MonitoringInsight:
        points = [
            TimedValue(point.timestamp, point.requests_per_min)
            for point in series
            if point.requests_per_min is not None and math.isfinite(point.requests_per_min)
        ]
        mean = average([point.value for point in points])
        threshold = max((mean or 0.0) * self._settings.peak_threshold_ratio, 1)
        peaks = detect_peaks(points, threshold, self._settings.max_peaks)

        if peaks:
            times = ", ".join(format_time(peak.timestamp) for peak in peaks)
            return MonitoringInsight(
                "peaks", "Peaks detected", f"Traffic peaks at {times}.", InsightTone.NEUTRAL
            )
        return MonitoringInsight(
            "peaks",
            "No notable peaks",
            "No significant traffic peak in the current window.",
            InsightTone.POSITIVE,
        )

    def _latency_insight(
        self, series: Sequence[MonitoringSeriesPoint], window_label: str
    ) -> MonitoringInsight:
        delta = self._trend([point.p95_latency_ms for point in series])
        if delta.current is None:
            return MonitoringInsight(
                "latency",
                "Latency under observation",
                "Not enough volume to evaluate P95 latency.",
                InsightTone.NEUTRAL,
            )
        if delta.direction is TrendDirection.UP and delta.percentage is not None:
            return MonitoringInsight(
                "latency",
                "Latency degrading",
                f"P95 latency is up {format_percent(delta.percentage)} over {window_label}.",
                InsightTone.WARNING,
            )
        if delta.direction is TrendDirection.DOWN and delta.percentage is not None:
            return MonitoringInsight(
                "latency",
                "Latency improving",
                f"P95 latency is down {format_percent(delta.percentage)} over {window_label}.",
                InsightTone.POSITIVE,
            )
        return MonitoringInsight(
            "latency",
            "Latency stable",
            "P95 latency holds steady over the observed window.",
            InsightTone.NEUTRAL,
        )

    def _errors_insight(
        self, series: Sequence[MonitoringSeriesPoint], window_label: str
    ) -> MonitoringInsight | None:
        mean = average(finite_values([point.error_rate_percent for point in series]))
        if mean is None:
            return None
        if mean >= self._settings.error_rate_warning_percent:
            return MonitoringInsight(
                "errors",
                "Errors to watch",
                f"Average error rate is {mean:.2f}%.",
                InsightTone.WARNING,
            )
        return MonitoringInsight(
            "errors",
            "Error rate contained",
            f"Average error rate stays low at {mean:.2f}%.",
            InsightTone.POSITIVE,
        )


def build_monitoring_insights(
    series: Sequence[MonitoringSeriesPoint],
    settings: MonitoringSettings | None = None,
) -> list[MonitoringInsight]:
    """Narrate traffic, peaks, latency and error rate for a series."""
    return InsightEngine(settings).evaluate(series)
