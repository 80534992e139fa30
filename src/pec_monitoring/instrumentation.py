"""Measure-and-record wrappers used at instrumentation call sites.

Each wrapper starts a monotonic timer, awaits the caller's unit of work and
records count, outcome and duration in a ``finally`` block, so the metric is
recorded exactly once per call whether the work returns or raises. Errors
from the work are re-raised unchanged.
"""

from __future__ import annotations

import math
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from .definitions import (
    API_ERRORS_TOTAL,
    API_REQUEST_DURATION,
    API_REQUESTS_TOTAL,
    BUSINESS_MESSAGES_TOTAL,
    BUSINESS_TOKENS_GRANTED_TOTAL,
    BUSINESS_TOKENS_SPENT_TOTAL,
    DATASTORE_OPERATION_DURATION,
    DATASTORE_OPERATIONS_TOTAL,
    EXTERNAL_ERRORS_TOTAL,
    EXTERNAL_REQUEST_DURATION,
    EXTERNAL_REQUESTS_TOTAL,
)
from .labels import normalize_label_value, status_class
from .registry import MetricsRegistry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NETWORK_ERROR_STATUS = "network_error"


def response_status(response: object, default: int = 200) -> int:
    """Read the HTTP status of a response object (``status_code`` or ``status``)."""
    for attr in ("status_code", "status"):
        status = getattr(response, attr, None)
        if isinstance(status, int) and not isinstance(status, bool):
            return status
    return default


def _coerce_amount(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) and amount > 0 else None


class Instrumentor:
    """Records API, datastore, external-call and business metrics into a registry."""

    def __init__(
        self,
        registry: MetricsRegistry,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._registry = registry
        self._clock = clock

    @property
    def registry(self) -> MetricsRegistry:
        return self._registry

    def _elapsed_seconds(self, started_at: float) -> float:
        return max(0.0, self._clock() - started_at)

    async def track_api_request(
        self,
        route: str,
        method: str,
        handler: Callable[[], Awaitable[T]],
    ) -> T:
        """Run an inbound request handler and record count, duration and errors.

        The status is read from the handler's response; a raised exception
        counts as status 500.
        """
        started_at = self._clock()
        status = 500
        try:
            response = await handler()
            status = response_status(response)
            return response
        except BaseException:
            status = 500
            raise
        finally:
            self._registry.increment_counter(
                API_REQUESTS_TOTAL, {"route": route, "method": method, "status": str(status)}
            )
            self._registry.observe_histogram(
                API_REQUEST_DURATION,
                {"route": route, "method": method},
                self._elapsed_seconds(started_at),
            )
            if status >= 400:
                self._registry.increment_counter(
                    API_ERRORS_TOTAL,
                    {"route": route, "method": method, "status_class": status_class(status)},
                )

    async def track_datastore_call(
        self,
        operation: str,
        collection: str,
        run: Callable[[], Awaitable[T]],
    ) -> T:
        """Run a datastore operation and record its outcome (``ok``/``error``) and duration."""
        if not self._registry.enabled:
            return await run()

        started_at = self._clock()
        status = "ok"
        try:
            return await run()
        except BaseException:
            status = "error"
            raise
        finally:
            self._registry.increment_counter(
                DATASTORE_OPERATIONS_TOTAL,
                {"operation": operation, "collection": collection, "status": status},
            )
            self._registry.observe_histogram(
                DATASTORE_OPERATION_DURATION,
                {"operation": operation, "collection": collection},
                self._elapsed_seconds(started_at),
            )

    async def track_external_call(
        self,
        provider: str,
        endpoint: str,
        run: Callable[[], Awaitable[T]],
    ) -> T:
        """Run an outgoing HTTP call and record count, duration and errors.

        A raised exception is a network failure (``status_class="network_error"``);
        a response with status >= 400 is counted under its HTTP status class.
        """
        if not self._registry.enabled:
            return await run()

        started_at = self._clock()
        status = NETWORK_ERROR_STATUS
        try:
            response = await run()
            status = str(response_status(response))
            return response
        except BaseException:
            self._registry.increment_counter(
                EXTERNAL_ERRORS_TOTAL,
                {"provider": provider, "endpoint": endpoint, "status_class": NETWORK_ERROR_STATUS},
            )
            raise
        finally:
            self._registry.increment_counter(
                EXTERNAL_REQUESTS_TOTAL,
                {"provider": provider, "endpoint": endpoint, "status": status},
            )
            self._registry.observe_histogram(
                EXTERNAL_REQUEST_DURATION,
                {"provider": provider, "endpoint": endpoint},
                self._elapsed_seconds(started_at),
            )
            if status.isdigit() and int(status) >= 400:
                self._registry.increment_counter(
                    EXTERNAL_ERRORS_TOTAL,
                    {
                        "provider": provider,
                        "endpoint": endpoint,
                        "status_class": status_class(int(status)),
                    },
                )

    def record_business_message(
        self,
        kind: str | None = None,
        author_role: str | None = None,
        source: str | None = None,
        token_cost: float | None = None,
    ) -> None:
        """Count a persisted business message and the tokens it cost."""
        if not self._registry.enabled:
            return

        normalized_kind = normalize_label_value(kind)
        normalized_source = normalize_label_value(source)
        self._registry.increment_counter(
            BUSINESS_MESSAGES_TOTAL,
            {
                "kind": normalized_kind,
                "author_role": normalize_label_value(author_role),
                "source": normalized_source,
            },
        )

        cost = _coerce_amount(token_cost)
        if cost is not None:
            self._registry.increment_counter(
                BUSINESS_TOKENS_SPENT_TOTAL,
                {"kind": normalized_kind, "source": normalized_source},
                cost,
            )

    def record_tokens_granted(self, source: str | None = None, amount: float | None = None) -> None:
        """Count tokens granted by an admin; non-positive amounts are ignored."""
        if not self._registry.enabled:
            return

        granted = _coerce_amount(amount)
        if granted is None:
            logger.debug("tokens_granted_ignored", source=source, amount=repr(amount))
            return
        self._registry.increment_counter(
            BUSINESS_TOKENS_GRANTED_TOTAL,
            {"source": normalize_label_value(source)},
            granted,
        )
