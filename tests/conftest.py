"""Pytest configuration and fixtures."""

from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from pec_monitoring.registry import MetricsRegistry  # noqa: E402
from pec_monitoring.snapshot import MetricsSnapshot  # noqa: E402


@pytest.fixture
def registry():
    """Fresh registry with the default metric inventory."""
    return MetricsRegistry()


@pytest.fixture
def make_snapshot():
    """Factory for snapshots with only the fields a test cares about."""

    def _make(captured_at: int, **fields) -> MetricsSnapshot:
        return MetricsSnapshot(captured_at=captured_at, **fields)

    return _make


@pytest.fixture
def sample_scrape():
    """Scrape text as served by the metrics endpoint."""
    return "\n".join(
        [
            "# HELP process_uptime_seconds Uptime of the current process in seconds.",
            "# TYPE process_uptime_seconds gauge",
            "process_uptime_seconds 3600.5",
            "process_resident_memory_bytes 104857600",
            "process_cpu_user_seconds_total 12.5",
            "process_cpu_system_seconds_total 2.5",
            "metrics_endpoint_requests_total 7",
            "# HELP app_api_requests_total Total number of API requests handled.",
            "# TYPE app_api_requests_total counter",
            'app_api_requests_total{method="GET",route="/a",status="200"} 90',
            'app_api_requests_total{method="POST",route="/b",status="500"} 10',
            'app_api_errors_total{method="POST",route="/b",status_class="5xx"} 10',
            'app_business_messages_total{author_role="client",kind="text",source="web"} 4',
            'app_api_request_duration_seconds_bucket{le="0.1",method="GET",route="/a"} 50',
            'app_api_request_duration_seconds_bucket{le="1",method="GET",route="/a"} 90',
            'app_api_request_duration_seconds_bucket{le="+Inf",method="GET",route="/a"} 90',
            'app_api_request_duration_seconds_bucket{le="0.1",method="POST",route="/b"} 0',
            'app_api_request_duration_seconds_bucket{le="1",method="POST",route="/b"} 10',
            'app_api_request_duration_seconds_bucket{le="+Inf",method="POST",route="/b"} 10',
            "",
        ]
    )
