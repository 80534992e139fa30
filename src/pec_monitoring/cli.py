"""CLI tools for offline scrape analysis and a registry smoke run."""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

import structlog

from .config import get_settings
from .endpoint import MetricsEndpoint
from .insights import build_monitoring_insights
from .instrumentation import Instrumentor
from .logging import setup_logging
from .registry import MetricsRegistry
from .series import build_monitoring_series
from .snapshot import MetricsHistory

logger = structlog.get_logger(__name__)


def _format_optional(value: float | None, suffix: str = "") -> str:
    return "-" if value is None else f"{value:.2f}{suffix}"


def _capture_times(paths: list[Path], interval_seconds: float | None) -> list[int]:
    if interval_seconds is None:
        return [int(path.stat().st_mtime * 1000) for path in paths]
    return [int(index * interval_seconds * 1000) for index in range(len(paths))]


def _run_analyze(
    paths: list[Path],
    interval_seconds: float | None,
    window_minutes: float | None,
    as_json: bool,
) -> int:
    settings = get_settings()
    setup_logging(settings.app)
    history = MetricsHistory.from_settings(settings.monitoring)

    try:
        captured = _capture_times(paths, interval_seconds)
        if len(set(captured)) < len(captured):
            print(
                "Warning: some files share a capture time and only the first of each "
                "is kept; pass --interval to space them out",
                file=sys.stderr,
            )
        for path, captured_at in zip(paths, captured):
            snapshot = history.ingest(path.read_text(encoding="utf-8"), captured_at=captured_at)
            if snapshot is None:
                print(f"Warning: no samples in {path}", file=sys.stderr)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if len(history) == 0:
        print("Error: no usable snapshot", file=sys.stderr)
        return 1

    window_ms = settings.monitoring.window_ms
    if window_minutes is not None:
        window_ms = int(window_minutes * 60_000)
    series = build_monitoring_series(history.snapshots(), window_ms)
    insights = build_monitoring_insights(series, settings.monitoring)
    logger.info("analysis_complete", snapshots=len(history), points=len(series))

    if as_json:
        output = {
            "series": [asdict(point) for point in series],
            "insights": [insight.to_dict() for insight in insights],
        }
        print(json.dumps(output, indent=2))
        return 0

    print(f"{len(series)} points:\n")
    for point in series:
        print(f"t={point.timestamp}")
        print(f"  Requests/min: {_format_optional(point.requests_per_min)}")
        print(f"  Error rate:   {_format_optional(point.error_rate_percent, '%')}")
        print(f"  P50 / P95:    {_format_optional(point.p50_latency_ms, ' ms')}"
              f" / {_format_optional(point.p95_latency_ms, ' ms')}")
        print(f"  CPU:          {_format_optional(point.cpu_percent, '%')}")
        print(f"  RAM:          {_format_optional(point.ram_mb, ' MB')}")

    print("\nInsights:")
    for insight in insights:
        print(f"  [{insight.tone.value}] {insight.title}: {insight.description}")
    return 0


def analyze() -> None:
    """CLI entry point for offline scrape analysis.

    Usage:
        pec-metrics-analyze scrape1.txt scrape2.txt ... [--interval 60] [--json]
    """
    parser = argparse.ArgumentParser(
        description="Derive a monitoring series and insights from captured scrapes"
    )
    parser.add_argument("files", type=Path, nargs="+", help="Exposition text files, oldest first")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between captures (default: use file modification times)",
    )
    parser.add_argument(
        "--window-minutes",
        type=float,
        default=None,
        help="Series window in minutes (default: MONITORING_WINDOW_MS)",
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")

    args = parser.parse_args()

    if args.interval is not None and args.interval <= 0:
        print("Error: interval must be positive", file=sys.stderr)
        sys.exit(1)

    sys.exit(_run_analyze(args.files, args.interval, args.window_minutes, args.json))


class _DemoResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


async def _drive_demo(instrumentor: Instrumentor, requests: int, errors: int) -> None:
    async def ok() -> _DemoResponse:
        return _DemoResponse(200)

    async def failed() -> _DemoResponse:
        return _DemoResponse(500)

    for _ in range(requests):
        await instrumentor.track_api_request("/api/demo", "GET", ok)
    for _ in range(errors):
        await instrumentor.track_api_request("/api/demo", "GET", failed)
    instrumentor.record_business_message(
        kind="text", author_role="client", source="demo", token_cost=1
    )


def demo() -> None:
    """CLI entry point printing the scrape document of an instrumented registry.

    Usage:
        pec-metrics-demo [--requests 100] [--errors 1]
    """
    parser = argparse.ArgumentParser(description="Print the metrics a demo workload produces")
    parser.add_argument("--requests", type=int, default=100, help="Successful requests to record")
    parser.add_argument("--errors", type=int, default=1, help="Failed requests to record")

    args = parser.parse_args()

    if args.requests < 0 or args.errors < 0:
        print("Error: counts must be non-negative", file=sys.stderr)
        sys.exit(1)

    settings = get_settings()
    setup_logging(settings.app)

    registry = MetricsRegistry.from_settings(settings.registry)
    endpoint = MetricsEndpoint(registry, settings.registry)
    asyncio.run(_drive_demo(Instrumentor(registry), args.requests, args.errors))
    sys.stdout.write(endpoint.render())
