"""Best-effort parser for the text exposition format.

Malformed lines are skipped rather than raising: the parser runs over text
produced by another process and must never take the dashboard down.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

import structlog

from .quantile import HistogramBucket, sort_buckets
from .types import Labels

logger = structlog.get_logger(__name__)

# Braces inside quoted label values do not close the label block.
SAMPLE_LINE_RE = re.compile(
    r"^([a-zA-Z_:][a-zA-Z0-9_:]*)"
    r'(?:\{((?:[^"}]|"(?:\\.|[^"\\])*")*)\})?'
    r"\s+(-?(?:\d+(?:\.\d+)?|\.\d+)(?:[eE][+-]?\d+)?)$"
)
LABEL_RE = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:\\.|[^"\\])*)"')
_ESCAPE_RE = re.compile(r"\\(.)")
_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n"}


@dataclass(frozen=True)
class ParsedSample:
    """One decoded sample line."""

    name: str
    labels: Labels
    value: float


@dataclass(frozen=True)
class SummaryOverrides:
    """Headline totals read ahead of a full parse; preferred when present."""

    scrape_requests_total: float | None = None
    api_requests_total: float | None = None
    api_errors_total: float | None = None
    business_messages_total: float | None = None


def unescape_label_value(raw: str) -> str:
    """Undo ``\\\\``, ``\\"`` and ``\\n`` escapes; unknown escapes are kept verbatim."""
    return _ESCAPE_RE.sub(lambda match: _UNESCAPES.get(match.group(1), match.group(0)), raw)


def parse_labels(raw_labels: str | None) -> Labels:
    """Decode the inside of a ``{...}`` label block."""
    if not raw_labels:
        return {}
    return {
        match.group(1): unescape_label_value(match.group(2))
        for match in LABEL_RE.finditer(raw_labels)
    }


def parse_samples(raw_metrics: str) -> list[ParsedSample]:
    """Parse exposition text into samples, in input order.

    Comments, blank lines and lines that do not match
    ``name{labels} value`` are skipped.
    """
    samples: list[ParsedSample] = []
    skipped = 0

    for line in raw_metrics.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue

        match = SAMPLE_LINE_RE.match(trimmed)
        if match is None:
            skipped += 1
            continue

        value = float(match.group(3))
        if not math.isfinite(value):
            skipped += 1
            continue

        samples.append(ParsedSample(match.group(1), parse_labels(match.group(2)), value))

    if skipped:
        logger.debug("exposition_lines_skipped", skipped=skipped, parsed=len(samples))
    return samples


def sum_metric_samples(samples: list[ParsedSample], metric_name: str) -> float | None:
    """Sum every series of a metric; None if the metric has no samples."""
    values = [sample.value for sample in samples if sample.name == metric_name]
    return math.fsum(values) if values else None


def read_first_value(samples: list[ParsedSample], metric_name: str) -> float | None:
    """Value of the first sample of a metric (for single-series gauges)."""
    for sample in samples:
        if sample.name == metric_name:
            return sample.value
    return None


def _parse_bound(raw_le: str | None) -> float | None:
    if not raw_le:
        return None
    if raw_le == "+Inf":
        return math.inf
    try:
        bound = float(raw_le)
    except ValueError:
        return None
    return bound if math.isfinite(bound) else None


def aggregate_histogram_buckets(
    samples: list[ParsedSample], metric_name: str
) -> list[HistogramBucket]:
    """Merge every series of a histogram into one cumulative bucket list.

    Counts are summed per ``le`` bound across label sets, sorted with ``+Inf``
    last, then passed through a running max so the result is non-decreasing
    even when the source text is not.
    """
    bucket_name = f"{metric_name}_bucket"
    counts: dict[float, float] = {}

    for sample in samples:
        if sample.name != bucket_name:
            continue
        bound = _parse_bound(sample.labels.get("le"))
        if bound is None:
            continue
        counts[bound] = counts.get(bound, 0.0) + sample.value

    buckets = sort_buckets(HistogramBucket(le, count) for le, count in counts.items())

    running = 0.0
    monotonic: list[HistogramBucket] = []
    for bucket in buckets:
        running = max(running, bucket.count)
        monotonic.append(HistogramBucket(bucket.le, running))
    return monotonic


def read_metric_value(metrics_text: str, metric_name: str) -> float | None:
    """Value of the first line starting with ``metric_name``, without a full parse."""
    for line in metrics_text.split("\n"):
        if not (line.startswith(f"{metric_name} ") or line.startswith(f"{metric_name}{{")):
            continue
        chunks = line.strip().split()
        try:
            value = float(chunks[-1])
        except (ValueError, IndexError):
            return None
        return value if math.isfinite(value) else None
    return None


def summarize_exposition(metrics_text: str) -> SummaryOverrides:
    """Quick headline totals from the first line of each headline metric."""
    return SummaryOverrides(
        scrape_requests_total=read_metric_value(metrics_text, "metrics_endpoint_requests_total"),
        api_requests_total=read_metric_value(metrics_text, "app_api_requests_total"),
        api_errors_total=read_metric_value(metrics_text, "app_api_errors_total"),
        business_messages_total=read_metric_value(metrics_text, "app_business_messages_total"),
    )
