"""Embedded metrics registry and scrape analysis engine.

The serving process records counters and histograms in a
:class:`MetricsRegistry` and renders them in the text exposition format.
The dashboard side parses scrapes into snapshots, derives per-interval
rates and latency quantiles, and narrates trends as insights.

Modules:
    registry: Counter/histogram store and exposition rendering
    instrumentation: Measure-and-record wrappers for call sites
    endpoint: Full scrape document with process gauges
    parser: Best-effort exposition parser
    snapshot: Scrape snapshots and bounded history
    series: Per-interval rates, error ratio and latency
    insights: Trends, peaks and operator insights

Example:
    Analyze captured scrapes::

        $ pec-metrics-analyze scrape-*.txt --interval 60
"""

__version__ = "0.1.0"

from .config import Settings, get_settings
from .endpoint import MetricsEndpoint
from .insights import (
    InsightTone,
    MonitoringInsight,
    TrendDelta,
    TrendDirection,
    build_monitoring_insights,
    compute_period_delta,
)
from .instrumentation import Instrumentor
from .parser import ParsedSample, SummaryOverrides, parse_samples
from .quantile import HistogramBucket, histogram_quantile
from .registry import MetricsRegistry
from .series import MonitoringSeriesPoint, build_monitoring_series
from .snapshot import (
    MetricsHistory,
    MetricsSnapshot,
    append_metrics_snapshot,
    create_metrics_snapshot,
)

__all__ = [
    "HistogramBucket",
    "InsightTone",
    "Instrumentor",
    "MetricsEndpoint",
    "MetricsHistory",
    "MetricsRegistry",
    "MetricsSnapshot",
    "MonitoringInsight",
    "MonitoringSeriesPoint",
    "ParsedSample",
    "Settings",
    "SummaryOverrides",
    "TrendDelta",
    "TrendDirection",
    "__version__",
    "append_metrics_snapshot",
    "build_monitoring_insights",
    "build_monitoring_series",
    "compute_period_delta",
    "create_metrics_snapshot",
    "get_settings",
    "histogram_quantile",
    "parse_samples",
]
