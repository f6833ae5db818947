"""Shared data models for the PredictHub aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Platform(str, Enum):
    POLYMARKET = "polymarket"
    KALSHI = "kalshi"
    MANIFOLD = "manifold"
    METACULUS = "metaculus"


class Category(str, Enum):
    POLITICS = "politics"
    CRYPTO = "crypto"
    SPORTS = "sports"
    SCIENCE = "science"
    ECONOMICS = "economics"
    ENTERTAINMENT = "entertainment"
    TECHNOLOGY = "technology"
    WORLD = "world"
    OTHER = "other"


PLATFORM_NAMES: dict[Platform, str] = {
    Platform.POLYMARKET: "Polymarket",
    Platform.KALSHI: "Kalshi",
    Platform.MANIFOLD: "Manifold",
    Platform.METACULUS: "Metaculus",
}

CATEGORY_LABELS: dict[Category, str] = {
    Category.POLITICS: "Politics",
    Category.CRYPTO: "Crypto",
    Category.SPORTS: "Sports",
    Category.SCIENCE: "Science",
    Category.ECONOMICS: "Economics",
    Category.ENTERTAINMENT: "Entertainment",
    Category.TECHNOLOGY: "Technology",
    Category.WORLD: "World Events",
    Category.OTHER: "Other",
}


@dataclass(frozen=True)
class UnifiedMarket:
    """
    Platform-agnostic representation of a binary prediction market.

    Every platform adapter converts its raw payload to this shape before the
    grouping and arbitrage passes see it. Immutable once produced.

      - id:          "{platform}-{native id}", unique within a snapshot
      - probability: implied YES probability in percent (0-100)
      - volume:      platform units (USDC, USD, mana, forecasters), see volume_label
      - category:    inferred from the question text, never platform-native
    """
    id: str
    question: str
    platform: Platform
    probability: float
    volume: float
    volume_label: str
    category: Category
    end_date: str | None
    url: str
    image_url: str | None = None
    is_play_money: bool = False
    history_id: str | None = None   # Platform-native id accepted by the history endpoint


@dataclass
class EventGroup:
    """
    Markets judged to reference the same real-world event.

    markets is sorted by volume descending; a group of one is an unmatched market.
    All members share one category.
    """
    id: str
    name: str
    markets: list[UnifiedMarket]
    total_volume: float
    avg_probability: float
    platforms: list[Platform]
    category: Category


@dataclass
class ArbitrageLeg:
    platform: Platform
    market: UnifiedMarket
    price: float


@dataclass
class ArbitrageOpportunity:
    """
    A probability spread across platform-matched markets for the same event.

    potential_profit mirrors price_difference as a percent-per-$1 figure. It is
    illustrative only and not a tradeable P&L estimate.
    """
    id: str
    event_name: str
    markets: list[ArbitrageLeg]
    price_difference: float
    potential_profit: float
    lowest_price: float
    highest_price: float
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class FetchResult:
    """Outcome of one adapter fetch. error is None on success, markets is [] on failure."""
    platform: Platform
    markets: list[UnifiedMarket] = field(default_factory=list)
    error: str | None = None


@dataclass
class PricePoint:
    time: int       # Unix epoch seconds
    value: float    # Probability in percent


@dataclass
class HistoryResult:
    points: list[PricePoint] = field(default_factory=list)
    source: str | None = None    # "clob", "kalshi", "bets", "metaculus", "estimated", ...
    error: str | None = None


@dataclass
class Position:
    """One open holding in a public account. Prices are per-share in 0-1, P&L in the venue's currency."""
    id: str
    platform: Platform
    market: str
    outcome: str            # "YES" / "NO"
    size: float             # Shares held
    avg_price: float
    current_price: float
    pnl: float
    pnl_percent: float
    url: str


@dataclass
class PortfolioResult:
    positions: list[Position] = field(default_factory=list)
    total_value: float = 0.0
    total_pnl: float = 0.0
    error: str | None = None
