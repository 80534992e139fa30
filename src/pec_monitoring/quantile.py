"""Quantile estimation from cumulative histogram buckets."""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import NamedTuple


class HistogramBucket(NamedTuple):
    """Cumulative count of observations ``<= le``; ``le`` may be ``math.inf``."""

    le: float
    count: float


def sort_buckets(buckets: Iterable[HistogramBucket]) -> list[HistogramBucket]:
    """Sort buckets by bound, ``+Inf`` last."""
    return sorted(buckets, key=lambda bucket: (math.isinf(bucket.le), bucket.le))


def histogram_quantile(buckets: list[HistogramBucket], quantile: float) -> float | None:
    """Estimate the value at ``quantile`` from non-decreasing cumulative buckets.

    Linear interpolation inside the first bucket whose count reaches
    ``quantile * total``, with the lower edge of the first bucket at 0. When
    the target falls in the ``+Inf`` bucket the highest finite bound is
    returned, since nothing is known above it.

    Args:
        buckets: Buckets sorted by bound, the last one holding the total count.
        quantile: Requested quantile, clamped to ``[0, 1]``.

    Returns:
        Estimated value in the buckets' unit, or None without observations.
    """
    if not buckets:
        return None

    clamped = min(1.0, max(0.0, quantile))
    total = buckets[-1].count
    if not math.isfinite(total) or total <= 0:
        return None

    target = clamped * total
    previous_count = 0.0
    previous_le = 0.0

    for bucket in buckets:
        if bucket.count >= target:
            if math.isinf(bucket.le):
                return previous_le
            if bucket.count <= previous_count:
                return bucket.le

            ratio = (target - previous_count) / (bucket.count - previous_count)
            clamped_ratio = min(1.0, max(0.0, ratio))
            return previous_le + (bucket.le - previous_le) * clamped_ratio

        previous_count = bucket.count
        if math.isfinite(bucket.le):
            previous_le = bucket.le

    finite = [bucket.le for bucket in buckets if math.isfinite(bucket.le)]
    return finite[-1] if finite else None
