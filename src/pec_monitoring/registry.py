"""In-process counter and histogram store, exposed through prometheus_client."""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import structlog
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, HistogramMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector
from prometheus_client.utils import floatToGoString

from .config import RegistrySettings
from .definitions import (
    COUNTER_DEFINITIONS,
    HISTOGRAM_DEFINITIONS,
    MetricDefinition,
    MetricKind,
    UnknownMetricError,
)
from .labels import labels_key, normalize_labels
from .types import LabelInput, Labels

logger = structlog.get_logger(__name__)


def _is_finite_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class CounterSeries:
    """Cumulative value for one label set of a counter."""

    def __init__(self, labels: Labels) -> None:
        self.labels = labels
        self._value: float = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self, amount: float) -> None:
        with self._lock:
            self._value += amount


@dataclass(frozen=True)
class HistogramState:
    """Point-in-time copy of a histogram series."""

    count: int
    sum: float
    bucket_counts: tuple[int, ...]


class HistogramSeries:
    """Observation count, sum and cumulative bucket counts for one label set.

    ``bucket_counts[i]`` counts observations ``<= bounds[i]``; the implicit
    ``+Inf`` bucket equals ``count``.
    """

    def __init__(self, labels: Labels, bounds: tuple[float, ...]) -> None:
        self.labels = labels
        self._bounds = bounds
        self._count = 0
        self._sum = 0.0
        self._bucket_counts = [0] * len(bounds)
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            self._count += 1
            self._sum += value
            for index, bound in enumerate(self._bounds):
                if value <= bound:
                    self._bucket_counts[index] += 1

    def state(self) -> HistogramState:
        with self._lock:
            return HistogramState(self._count, self._sum, tuple(self._bucket_counts))


class MetricsRegistry(Collector):
    """Live counter and histogram state for one process.

    The registry is constructed once by the composition root and handed to
    instrumented code. Increments lock only the touched series; the registry
    lock guards creation of new series and the series listing used by
    :meth:`collect`. Rendering goes through a private ``CollectorRegistry`` so
    the process-wide default registry is never touched.

    A disabled registry (client-side contexts) ignores every mutation and
    renders nothing.
    """

    def __init__(
        self,
        counters: Iterable[MetricDefinition] = COUNTER_DEFINITIONS,
        histograms: Iterable[MetricDefinition] = HISTOGRAM_DEFINITIONS,
        enabled: bool = True,
    ) -> None:
        self._enabled = enabled
        self._counter_defs: dict[str, MetricDefinition] = {}
        self._histogram_defs: dict[str, MetricDefinition] = {}
        for definition in counters:
            self._register(self._counter_defs, definition, MetricKind.COUNTER)
        for definition in histograms:
            self._register(self._histogram_defs, definition, MetricKind.HISTOGRAM)

        self._counters: dict[str, dict[str, CounterSeries]] = {
            name: {} for name in self._counter_defs
        }
        self._histograms: dict[str, dict[str, HistogramSeries]] = {
            name: {} for name in self._histogram_defs
        }
        self._lock = threading.Lock()
        self._exposition_registry = CollectorRegistry(auto_describe=False)
        self._exposition_registry.register(self)

    @classmethod
    def from_settings(cls, settings: RegistrySettings) -> MetricsRegistry:
        """Build a registry with the default inventory."""
        return cls(enabled=settings.enabled)

    def _register(
        self,
        target: dict[str, MetricDefinition],
        definition: MetricDefinition,
        kind: MetricKind,
    ) -> None:
        if definition.kind is not kind:
            raise ValueError(f"Metric '{definition.name}' is not a {kind.value}")
        if definition.name in self._counter_defs or definition.name in self._histogram_defs:
            raise ValueError(f"Duplicate metric name '{definition.name}'")
        target[definition.name] = definition

    @property
    def enabled(self) -> bool:
        return self._enabled

    def counter_definition(self, metric: str | MetricDefinition) -> MetricDefinition:
        name = metric.name if isinstance(metric, MetricDefinition) else metric
        definition = self._counter_defs.get(name)
        if definition is None:
            raise UnknownMetricError(name, MetricKind.COUNTER)
        return definition

    def histogram_definition(self, metric: str | MetricDefinition) -> MetricDefinition:
        name = metric.name if isinstance(metric, MetricDefinition) else metric
        definition = self._histogram_defs.get(name)
        if definition is None:
            raise UnknownMetricError(name, MetricKind.HISTOGRAM)
        return definition

    def increment_counter(
        self,
        metric: str | MetricDefinition,
        labels: LabelInput | None = None,
        amount: float = 1,
    ) -> None:
        """Add ``amount`` to the counter series addressed by ``labels``.

        Non-finite and non-positive amounts are ignored.
        """
        if not self._enabled:
            return
        definition = self.counter_definition(metric)
        if not _is_finite_number(amount) or amount <= 0:
            logger.debug("counter_amount_ignored", metric=definition.name, amount=repr(amount))
            return

        normalized = normalize_labels(definition.label_names, labels)
        series_by_key = self._counters[definition.name]
        key = labels_key(normalized)
        series = series_by_key.get(key)
        if series is None:
            with self._lock:
                series = series_by_key.get(key)
                if series is None:
                    series = CounterSeries(normalized)
                    series_by_key[key] = series
                    logger.debug("metric_series_created", metric=definition.name, key=key)
        series.inc(amount)

    def observe_histogram(
        self,
        metric: str | MetricDefinition,
        labels: LabelInput | None,
        value: float,
    ) -> None:
        """Record one observation in the histogram series addressed by ``labels``.

        Non-finite and negative values are ignored.
        """
        if not self._enabled:
            return
        definition = self.histogram_definition(metric)
        if not _is_finite_number(value) or value < 0:
            logger.debug("histogram_value_ignored", metric=definition.name, value=repr(value))
            return

        normalized = normalize_labels(definition.label_names, labels)
        series_by_key = self._histograms[definition.name]
        key = labels_key(normalized)
        series = series_by_key.get(key)
        if series is None:
            with self._lock:
                series = series_by_key.get(key)
                if series is None:
                    series = HistogramSeries(normalized, definition.buckets)
                    series_by_key[key] = series
                    logger.debug("metric_series_created", metric=definition.name, key=key)
        series.observe(value)

    def counter_value(
        self, metric: str | MetricDefinition, labels: LabelInput | None = None
    ) -> float | None:
        """Current value of one counter series, or None if it was never incremented."""
        definition = self.counter_definition(metric)
        key = labels_key(normalize_labels(definition.label_names, labels))
        series = self._counters[definition.name].get(key)
        return series.value if series is not None else None

    def histogram_state(
        self, metric: str | MetricDefinition, labels: LabelInput | None = None
    ) -> HistogramState | None:
        """Current state of one histogram series, or None if never observed."""
        definition = self.histogram_definition(metric)
        key = labels_key(normalize_labels(definition.label_names, labels))
        series = self._histograms[definition.name].get(key)
        return series.state() if series is not None else None

    def _sorted_series(self, series_by_key: dict[str, CounterSeries | HistogramSeries]) -> list:
        with self._lock:
            items = list(series_by_key.items())
        return [series for _, series in sorted(items, key=lambda item: item[0])]

    def collect(self) -> Iterator[Metric]:
        """Yield one metric family per definition, series in canonical key order.

        Each series is read atomically; different series may reflect slightly
        different instants.
        """
        if not self._enabled:
            return

        for name, definition in self._counter_defs.items():
            label_names = sorted(definition.label_names)
            family = CounterMetricFamily(name, definition.help, labels=label_names)
            for series in self._sorted_series(self._counters[name]):
                family.add_metric([series.labels[label] for label in label_names], series.value)
            yield family

        for name, definition in self._histogram_defs.items():
            label_names = sorted(definition.label_names)
            family = HistogramMetricFamily(name, definition.help, labels=label_names)
            for series in self._sorted_series(self._histograms[name]):
                state = series.state()
                buckets = [
                    (floatToGoString(bound), count)
                    for bound, count in zip(definition.buckets, state.bucket_counts)
                ]
                buckets.append(("+Inf", state.count))
                family.add_metric(
                    [series.labels[label] for label in label_names], buckets, state.sum
                )
            yield family

    def render(self) -> str:
        """Render every metric in the text exposition format.

        Each metric gets its HELP/TYPE header even without series.
        """
        if not self._enabled:
            return ""
        return generate_latest(self._exposition_registry).decode("utf-8")
