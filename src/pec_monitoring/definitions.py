"""Metric definitions for the marketplace backend.

Every metric the process can emit is declared here once, with its help text,
fixed label schema, and (for histograms) its bucket ladder. Call sites never
invent metric names; the registry rejects anything not in this inventory.
"""

from dataclasses import dataclass
from enum import Enum


class MetricKind(str, Enum):
    """Exposition type of a metric."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class MetricDefinition:
    """Immutable description of one named metric."""

    name: str
    help: str
    kind: MetricKind
    label_names: tuple[str, ...]
    buckets: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if self.kind is MetricKind.HISTOGRAM:
            if not self.buckets:
                raise ValueError(f"Histogram '{self.name}' needs at least one bucket")
            if list(self.buckets) != sorted(set(self.buckets)):
                raise ValueError(f"Histogram '{self.name}' buckets must be strictly ascending")
        if "le" in self.label_names:
            raise ValueError(f"Metric '{self.name}' cannot use reserved label 'le'")


class UnknownMetricError(KeyError):
    """Raised when a metric name is not part of the registry inventory."""

    def __init__(self, name: str, kind: MetricKind) -> None:
        super().__init__(f"Unknown {kind.value} metric '{name}'")
        self.metric_name = name
        self.kind = kind


DEFAULT_DURATION_BUCKETS: tuple[float, ...] = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1,
    2,
    5,
    10,
)


def counter(name: str, help: str, label_names: tuple[str, ...]) -> MetricDefinition:
    return MetricDefinition(name, help, MetricKind.COUNTER, label_names)


def histogram(
    name: str,
    help: str,
    label_names: tuple[str, ...],
    buckets: tuple[float, ...] = DEFAULT_DURATION_BUCKETS,
) -> MetricDefinition:
    return MetricDefinition(name, help, MetricKind.HISTOGRAM, label_names, buckets)


# -- API --
API_REQUESTS_TOTAL = counter(
    "app_api_requests_total",
    "Total number of API requests handled.",
    ("route", "method", "status"),
)
API_ERRORS_TOTAL = counter(
    "app_api_errors_total",
    "Total number of API errors by status class.",
    ("route", "method", "status_class"),
)
API_REQUEST_DURATION = histogram(
    "app_api_request_duration_seconds",
    "API request duration in seconds.",
    ("route", "method"),
)

# -- Datastore --
DATASTORE_OPERATIONS_TOTAL = counter(
    "app_firestore_operations_total",
    "Total number of Firestore operations.",
    ("operation", "collection", "status"),
)
DATASTORE_OPERATION_DURATION = histogram(
    "app_firestore_operation_duration_seconds",
    "Firestore operation duration in seconds.",
    ("operation", "collection"),
)

# -- External APIs --
EXTERNAL_REQUESTS_TOTAL = counter(
    "app_external_api_requests_total",
    "Total number of outgoing external API requests.",
    ("provider", "endpoint", "status"),
)
EXTERNAL_ERRORS_TOTAL = counter(
    "app_external_api_errors_total",
    "Total number of outgoing external API errors.",
    ("provider", "endpoint", "status_class"),
)
EXTERNAL_REQUEST_DURATION = histogram(
    "app_external_api_request_duration_seconds",
    "Outgoing external API request duration in seconds.",
    ("provider", "endpoint"),
)

# -- Business --
BUSINESS_MESSAGES_TOTAL = counter(
    "app_business_messages_total",
    "Total number of business messages persisted.",
    ("kind", "author_role", "source"),
)
BUSINESS_TOKENS_SPENT_TOTAL = counter(
    "app_business_tokens_spent_total",
    "Total amount of business tokens spent.",
    ("kind", "source"),
)
BUSINESS_TOKENS_GRANTED_TOTAL = counter(
    "app_business_tokens_granted_total",
    "Total amount of business tokens granted by admins.",
    ("source",),
)

# Render order follows declaration order: counters first, then histograms.
COUNTER_DEFINITIONS: tuple[MetricDefinition, ...] = (
    API_REQUESTS_TOTAL,
    API_ERRORS_TOTAL,
    DATASTORE_OPERATIONS_TOTAL,
    EXTERNAL_REQUESTS_TOTAL,
    EXTERNAL_ERRORS_TOTAL,
    BUSINESS_MESSAGES_TOTAL,
    BUSINESS_TOKENS_SPENT_TOTAL,
    BUSINESS_TOKENS_GRANTED_TOTAL,
)
HISTOGRAM_DEFINITIONS: tuple[MetricDefinition, ...] = (
    API_REQUEST_DURATION,
    DATASTORE_OPERATION_DURATION,
    EXTERNAL_REQUEST_DURATION,
)
