"""Tests for the measure-and-record instrumentation wrappers."""

import itertools

import pytest

from pec_monitoring.instrumentation import Instrumentor, response_status
from pec_monitoring.registry import MetricsRegistry


class FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


def _stepping_clock(step: float = 0.2):
    ticks = itertools.count()
    return lambda: next(ticks) * step


@pytest.fixture
def instrumentor(registry):
    return Instrumentor(registry, clock=_stepping_clock())


def test_response_status_reads_known_attributes():
    """status_code and status are both understood; anything else defaults."""

    class AiohttpLike:
        status = 404

    assert response_status(FakeResponse(201)) == 201
    assert response_status(AiohttpLike()) == 404
    assert response_status({"ok": True}) == 200


class TestTrackApiRequest:
    async def test_success_records_once(self, instrumentor, registry):
        """A successful request is counted once with its duration."""

        async def handler():
            return FakeResponse(200)

        response = await instrumentor.track_api_request("/x", "GET", handler)

        assert response.status_code == 200
        labels = {"route": "/x", "method": "GET"}
        assert registry.counter_value("app_api_requests_total", {**labels, "status": "200"}) == 1
        assert registry.counter_value(
            "app_api_errors_total", {**labels, "status_class": "2xx"}
        ) is None
        state = registry.histogram_state("app_api_request_duration_seconds", labels)
        assert state.count == 1
        assert state.sum == pytest.approx(0.2)

    async def test_error_status_counts_error(self, instrumentor, registry):
        """Responses with status >= 400 also count an error by class."""

        async def handler():
            return FakeResponse(404)

        await instrumentor.track_api_request("/x", "GET", handler)

        assert registry.counter_value(
            "app_api_errors_total", {"route": "/x", "method": "GET", "status_class": "4xx"}
        ) == 1

    async def test_exception_records_500_and_reraises(self, instrumentor, registry):
        """A raising handler is recorded as a 500 and the error propagates."""

        async def handler():
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError, match="db down"):
            await instrumentor.track_api_request("/x", "POST", handler)

        labels = {"route": "/x", "method": "POST"}
        assert registry.counter_value("app_api_requests_total", {**labels, "status": "500"}) == 1
        assert registry.counter_value(
            "app_api_errors_total", {**labels, "status_class": "5xx"}
        ) == 1
        assert registry.histogram_state("app_api_request_duration_seconds", labels).count == 1


class TestTrackDatastoreCall:
    async def test_ok_and_error(self, instrumentor, registry):
        """Operations are counted as ok or error with a duration each."""

        async def read():
            return {"id": 1}

        async def fail():
            raise ValueError("missing")

        assert await instrumentor.track_datastore_call("get", "users", read) == {"id": 1}
        with pytest.raises(ValueError):
            await instrumentor.track_datastore_call("get", "users", fail)

        base = {"operation": "get", "collection": "users"}
        assert registry.counter_value(
            "app_firestore_operations_total", {**base, "status": "ok"}
        ) == 1
        assert registry.counter_value(
            "app_firestore_operations_total", {**base, "status": "error"}
        ) == 1
        assert registry.histogram_state("app_firestore_operation_duration_seconds", base).count == 2

    async def test_disabled_registry_just_runs(self):
        """Without a live registry the work still runs."""
        registry = MetricsRegistry(enabled=False)

        async def read():
            return "value"

        assert await Instrumentor(registry).track_datastore_call("get", "x", read) == "value"
        assert registry.render() == ""


class TestTrackExternalCall:
    async def test_network_failure(self, instrumentor, registry):
        """A raised exception is a network error, counted exactly once."""

        async def call():
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError):
            await instrumentor.track_external_call("openai", "chat", call)

        base = {"provider": "openai", "endpoint": "chat"}
        assert registry.counter_value(
            "app_external_api_requests_total", {**base, "status": "network_error"}
        ) == 1
        assert registry.counter_value(
            "app_external_api_errors_total", {**base, "status_class": "network_error"}
        ) == 1
        state = registry.histogram_state("app_external_api_request_duration_seconds", base)
        assert state.count == 1

    async def test_http_error_status(self, instrumentor, registry):
        """An HTTP error response is counted under its status class."""

        async def call():
            return FakeResponse(503)

        await instrumentor.track_external_call("gemini", "generate", call)

        base = {"provider": "gemini", "endpoint": "generate"}
        assert registry.counter_value(
            "app_external_api_requests_total", {**base, "status": "503"}
        ) == 1
        assert registry.counter_value(
            "app_external_api_errors_total", {**base, "status_class": "5xx"}
        ) == 1
        assert registry.counter_value(
            "app_external_api_errors_total", {**base, "status_class": "network_error"}
        ) is None

    async def test_success_has_no_error(self, instrumentor, registry):
        """A 200 response records no error."""

        async def call():
            return FakeResponse(200)

        await instrumentor.track_external_call("openai", "chat", call)

        assert "app_external_api_errors_total{" not in registry.render()


class TestBusinessCounters:
    def test_message_with_token_cost(self, instrumentor, registry):
        """Messages are counted and their token cost accumulated."""
        instrumentor.record_business_message(
            kind="text", author_role="client", source="web", token_cost=3
        )
        instrumentor.record_business_message(kind="text", author_role="client", source="web")

        assert registry.counter_value(
            "app_business_messages_total",
            {"kind": "text", "author_role": "client", "source": "web"},
        ) == 2
        assert registry.counter_value(
            "app_business_tokens_spent_total", {"kind": "text", "source": "web"}
        ) == 3

    def test_message_defaults_missing_labels(self, instrumentor, registry):
        """Missing labels become 'unknown'; bad costs are ignored."""
        instrumentor.record_business_message(token_cost=float("nan"))

        assert registry.counter_value(
            "app_business_messages_total",
            {"kind": "unknown", "author_role": "unknown", "source": "unknown"},
        ) == 1
        assert "app_business_tokens_spent_total{" not in registry.render()

    @pytest.mark.parametrize("amount", [None, 0, -5, "abc"])
    def test_tokens_granted_rejects_non_positive(self, instrumentor, registry, amount):
        """Only positive finite grants are counted."""
        instrumentor.record_tokens_granted(source="admin", amount=amount)

        assert registry.counter_value(
            "app_business_tokens_granted_total", {"source": "admin"}
        ) is None

    def test_tokens_granted(self, instrumentor, registry):
        """Grants accumulate per source."""
        instrumentor.record_tokens_granted(source="admin", amount=50)
        instrumentor.record_tokens_granted(source="admin", amount="25")

        assert registry.counter_value(
            "app_business_tokens_granted_total", {"source": "admin"}
        ) == 75
