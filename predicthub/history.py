"""
Price-history helpers shared by the platform clients.

Every series is a list of PricePoint(time=epoch seconds, value=percent),
sorted by time. When a venue has no usable history, estimate_history() builds a
random walk that ends exactly at the current probability; callers tag those
results with source="estimated" so they are never mistaken for real trades.
"""

from __future__ import annotations

import math
import random
import time
from enum import Enum

from predicthub.config import ESTIMATED_HISTORY_STEP, HISTORY_DEDUPE_SECONDS
from predicthub.models import PricePoint


class HistoryRange(str, Enum):
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"
    ALL = "all"


_RANGE_SECONDS: dict[HistoryRange, int] = {
    HistoryRange.DAY: 24 * 3600,
    HistoryRange.WEEK: 7 * 24 * 3600,
    HistoryRange.MONTH: 30 * 24 * 3600,
}

# (points, interval seconds) for the estimated series
_ESTIMATE_SHAPE: dict[HistoryRange, tuple[int, int]] = {
    HistoryRange.DAY: (24, 3600),
    HistoryRange.WEEK: (28, 6 * 3600),
    HistoryRange.MONTH: (30, 24 * 3600),
    HistoryRange.ALL: (52, 7 * 24 * 3600),
}


def parse_range(value: str | HistoryRange | None) -> HistoryRange:
    """Unknown or missing range strings fall back to 7d."""
    if isinstance(value, HistoryRange):
        return value
    try:
        return HistoryRange(value)
    except ValueError:
        return HistoryRange.WEEK


def range_start(
    history_range: HistoryRange,
    now: float | None = None,
    all_lookback_days: int | None = None,
) -> int:
    """
    Epoch seconds at which *history_range* begins.

    "all" means everything (0) unless all_lookback_days is given, for venues
    whose history endpoint needs an explicit start.
    """
    now = time.time() if now is None else now
    if history_range == HistoryRange.ALL:
        if all_lookback_days is None:
            return 0
        return int(now - all_lookback_days * 24 * 3600)
    return int(now - _RANGE_SECONDS[history_range])


def clean_history(points: list[PricePoint]) -> list[PricePoint]:
    """Drop NaN and out-of-range points, sort by time."""
    valid = [
        p for p in points
        if not math.isnan(p.value) and 0.0 <= p.value <= 100.0
    ]
    return sorted(valid, key=lambda p: p.time)


def hourly_dedupe(points: list[PricePoint], bucket_seconds: int = HISTORY_DEDUPE_SECONDS) -> list[PricePoint]:
    """Keep the last point in each bucket (one per hour by default)."""
    buckets: dict[int, PricePoint] = {}
    for point in sorted(points, key=lambda p: p.time):
        buckets[point.time // bucket_seconds * bucket_seconds] = point
    return clean_history(list(buckets.values()))


def estimate_history(
    current: float,
    history_range: HistoryRange,
    rng: random.Random | None = None,
    step: float = ESTIMATED_HISTORY_STEP,
    now: int | None = None,
) -> list[PricePoint]:
    """
    Random walk backwards from *current*, one point per interval.

    The newest point is *current* itself; the walk moves at most step/2 per
    interval going back, and older values are clamped to [1, 99]. Pass a
    seeded rng for reproducible output.
    """
    rng = rng or random.Random()
    now = int(time.time()) if now is None else now
    count, interval = _ESTIMATE_SHAPE[history_range]

    values = [current]
    price = current
    for _ in range(count):
        price += (rng.random() - 0.5) * step
        values.append(max(1.0, min(99.0, price)))
    values.reverse()

    return [PricePoint(time=now - (count - i) * interval, value=v) for i, v in enumerate(values)]
