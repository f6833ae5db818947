"""
Market list filtering and sorting.

apply_filters() runs the checks in a fixed order:
  1. platform set
  2. single category (None = all)
  3. volume range, probability range (inclusive)
  4. ending-within window; markets with no or unparseable end date pass
  5. category set
  6. case-insensitive question substring search
then sorts by the requested field. The input list is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from predicthub.config import (
    DEFAULT_PROBABILITY_RANGE,
    DEFAULT_VOLUME_RANGE,
    SIMILAR_MARKETS_LIMIT,
)
from predicthub.models import Category, Platform, UnifiedMarket
from predicthub.platform_client import parse_iso


class SortField(str, Enum):
    VOLUME = "volume"
    PROBABILITY = "probability"
    END_DATE = "endDate"
    PLATFORM = "platform"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class EndingWithin(str, Enum):
    ALL = "all"
    DAY = "24h"
    WEEK = "week"
    MONTH = "month"


_ENDING_WITHIN_HOURS: dict[EndingWithin, float] = {
    EndingWithin.DAY: 24,
    EndingWithin.WEEK: 24 * 7,
    EndingWithin.MONTH: 24 * 30,
}


@dataclass
class FilterState:
    platforms: set[Platform] = field(default_factory=lambda: set(Platform))
    category: Category | None = None
    categories: set[Category] = field(default_factory=lambda: set(Category))
    volume_range: tuple[float, float] = DEFAULT_VOLUME_RANGE
    probability_range: tuple[float, float] = DEFAULT_PROBABILITY_RANGE
    ending_within: EndingWithin = EndingWithin.ALL
    search: str = ""
    sort_field: SortField = SortField.VOLUME
    sort_direction: SortDirection = SortDirection.DESC

    def toggle_sort(self, sort_field: SortField) -> None:
        """Same field flips direction; a new field starts descending."""
        if sort_field == self.sort_field:
            self.sort_direction = (
                SortDirection.ASC if self.sort_direction == SortDirection.DESC else SortDirection.DESC
            )
        else:
            self.sort_field = sort_field
            self.sort_direction = SortDirection.DESC

    def toggle_platform(self, platform: Platform) -> None:
        if platform in self.platforms:
            self.platforms.discard(platform)
        else:
            self.platforms.add(platform)


def apply_filters(
    markets: list[UnifiedMarket],
    state: FilterState,
    now: datetime | None = None,
) -> list[UnifiedMarket]:
    now = now or datetime.now(timezone.utc)
    query = state.search.strip().lower()
    vol_lo, vol_hi = state.volume_range
    prob_lo, prob_hi = state.probability_range

    result = []
    for m in markets:
        if m.platform not in state.platforms:
            continue
        if state.category is not None and m.category != state.category:
            continue
        if not vol_lo <= m.volume <= vol_hi:
            continue
        if not prob_lo <= m.probability <= prob_hi:
            continue
        if not _ends_within(m, state.ending_within, now):
            continue
        if m.category not in state.categories:
            continue
        if query and query not in m.question.lower():
            continue
        result.append(m)

    return sort_markets(result, state.sort_field, state.sort_direction)


def sort_markets(
    markets: list[UnifiedMarket],
    sort_field: SortField = SortField.VOLUME,
    direction: SortDirection = SortDirection.DESC,
) -> list[UnifiedMarket]:
    """Stable sort. Markets without an end date sort last ascending, first descending."""
    return sorted(markets, key=_SORT_KEYS[sort_field], reverse=direction == SortDirection.DESC)


def category_counts(
    markets: list[UnifiedMarket],
    platforms: set[Platform] | None = None,
) -> dict[str, int]:
    """Per-category counts plus "all", over markets on the selected platforms."""
    counts: dict[str, int] = {"all": 0}
    for category in Category:
        counts[category.value] = 0

    for m in markets:
        if platforms is not None and m.platform not in platforms:
            continue
        counts[m.category.value] += 1
        counts["all"] += 1
    return counts


def similar_markets(
    market: UnifiedMarket,
    markets: list[UnifiedMarket],
    limit: int = SIMILAR_MARKETS_LIMIT,
) -> list[UnifiedMarket]:
    """Same-category markets on other platforms, in snapshot order."""
    similar = [
        m for m in markets
        if m.id != market.id
        and m.platform != market.platform
        and m.category == market.category
    ]
    return similar[:limit]


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------

def _ends_within(market: UnifiedMarket, window: EndingWithin, now: datetime) -> bool:
    if window == EndingWithin.ALL or not market.end_date:
        return True
    end = parse_iso(market.end_date)
    if end is None:
        return True
    hours_left = (end - now).total_seconds() / 3600
    return hours_left <= _ENDING_WITHIN_HOURS[window]


def _end_date_key(market: UnifiedMarket) -> tuple[int, float]:
    end = parse_iso(market.end_date) if market.end_date else None
    if end is None:
        return (1, 0.0)
    return (0, end.timestamp())


_SORT_KEYS = {
    SortField.VOLUME: lambda m: m.volume,
    SortField.PROBABILITY: lambda m: m.probability,
    SortField.END_DATE: _end_date_key,
    SortField.PLATFORM: lambda m: m.platform.value,
}
