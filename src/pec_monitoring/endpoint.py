"""Scrape document assembly: process gauges, scrape counters and the registry."""

from __future__ import annotations

import os
import platform
import threading
import time
from collections.abc import Callable, Iterator

import structlog
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.process_collector import ProcessCollector
from prometheus_client.registry import Collector

from .config import RegistrySettings
from .registry import MetricsRegistry

logger = structlog.get_logger(__name__)

# Same content type prometheus_client serves from its own exporters.
CONTENT_TYPE = CONTENT_TYPE_LATEST


class MetricsEndpoint(Collector):
    """Builds the full text served to scrapers.

    Holds the scrape counter and last scrape duration, which are themselves
    part of the rendered document. Process start time and resident memory
    come from ``ProcessCollector``; where it has no ``/proc`` to read, the
    start time falls back to when the endpoint was built and resident memory
    is omitted. Transport (HTTP routing, headers) is left to the caller;
    :data:`CONTENT_TYPE` is the value to send.
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        settings: RegistrySettings | None = None,
        clock: Callable[[], float] = time.perf_counter,
        wall_clock: Callable[[], float] = time.time,
        process_collector: Collector | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or RegistrySettings()
        self._clock = clock
        self._wall_clock = wall_clock
        self._built_at = wall_clock()
        self._process_collector = process_collector or ProcessCollector(registry=None)
        self._lock = threading.Lock()
        self._scrape_requests_total = 0
        self._last_duration_seconds = 0.0

        self._exposition_registry = CollectorRegistry(auto_describe=False)
        self._exposition_registry.register(self)
        self._exposition_registry.register(registry)

    @property
    def scrape_requests_total(self) -> int:
        with self._lock:
            return self._scrape_requests_total

    def _process_samples(self) -> dict[str, float]:
        return {
            sample.name: sample.value
            for family in self._process_collector.collect()
            for sample in family.samples
        }

    def _process_families(self) -> Iterator[Metric]:
        process = self._process_samples()
        start_time = process.get("process_start_time_seconds", self._built_at)
        cpu = os.times()

        build_info = GaugeMetricFamily(
            "app_build_info", "Static info about this service.", labels=["env", "service"]
        )
        build_info.add_metric([self._settings.environment, self._settings.service_name], 1)
        yield build_info

        yield GaugeMetricFamily(
            "process_start_time_seconds",
            "Start time of the current process since unix epoch in seconds.",
            value=start_time,
        )
        yield GaugeMetricFamily(
            "process_uptime_seconds",
            "Uptime of the current process in seconds.",
            value=max(0.0, self._wall_clock() - start_time),
        )

        resident = process.get("process_resident_memory_bytes")
        if resident is not None:
            yield GaugeMetricFamily(
                "process_resident_memory_bytes", "Resident memory size in bytes.", value=resident
            )

        yield CounterMetricFamily(
            "process_cpu_user_seconds_total",
            "Total user CPU time consumed by the process.",
            value=cpu.user,
        )
        yield CounterMetricFamily(
            "process_cpu_system_seconds_total",
            "Total system CPU time consumed by the process.",
            value=cpu.system,
        )

        python_info = GaugeMetricFamily(
            "python_info", "Python version running this service.", labels=["version"]
        )
        python_info.add_metric([platform.python_version()], 1)
        yield python_info

    def collect(self) -> Iterator[Metric]:
        """Count one scrape and yield the process and scrape families."""
        started_at = self._clock()
        with self._lock:
            self._scrape_requests_total += 1

        yield from self._process_families()

        with self._lock:
            self._last_duration_seconds = max(0.0, self._clock() - started_at)
            scrape_total = self._scrape_requests_total
            last_duration = self._last_duration_seconds

        yield CounterMetricFamily(
            "metrics_endpoint_requests_total",
            "Total number of scrapes on the metrics endpoint.",
            value=scrape_total,
        )
        yield GaugeMetricFamily(
            "metrics_endpoint_last_duration_seconds",
            "Last scrape duration in seconds.",
            value=last_duration,
        )

    def render(self) -> str:
        """Render the complete exposition document: this block, then the registry."""
        text = generate_latest(self._exposition_registry).decode("utf-8")
        logger.debug("metrics_scraped", scrape_total=self.scrape_requests_total, size=len(text))
        return text
