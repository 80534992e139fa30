"""Label normalization and canonical series keys."""

from collections.abc import Mapping, Sequence

from .types import LabelInput, Labels

UNKNOWN_LABEL_VALUE = "unknown"


def normalize_label_value(value: object) -> str:
    """Stringify and trim a label value; empty or missing becomes ``unknown``."""
    normalized = "" if value is None else str(value).strip()
    return normalized or UNKNOWN_LABEL_VALUE


def normalize_labels(label_names: Sequence[str], labels: LabelInput | None = None) -> Labels:
    """Project loose label input onto a fixed label schema.

    Labels not named in ``label_names`` are dropped and missing ones default
    to ``unknown``, so every series of a metric carries the same label set.
    """
    source = labels or {}
    return {name: normalize_label_value(source.get(name)) for name in label_names}


def labels_key(labels: Mapping[str, str]) -> str:
    """Build the canonical key identifying a series: sorted ``name=value`` pairs."""
    return "|".join(f"{name}={value}" for name, value in sorted(labels.items()))


def status_class(status: int) -> str:
    """Bucket an HTTP status code into its class (``2xx``, ``4xx``, ...)."""
    if status >= 500:
        return "5xx"
    if status >= 400:
        return "4xx"
    if status >= 300:
        return "3xx"
    if status >= 200:
        return "2xx"
    return "other"
