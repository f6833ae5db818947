"""
Snapshot aggregation across every configured platform.

All clients are fetched concurrently. Results are concatenated in client
order (not completion order), and duplicate unified ids are dropped with the
first occurrence kept, so every snapshot satisfies the one-id-one-market rule
that grouping and arbitrage rely on.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone

from predicthub.models import FetchResult, Platform, UnifiedMarket
from predicthub.platform_client import PlatformClient

log = logging.getLogger(__name__)


@dataclass
class PlatformStatus:
    platform: Platform
    market_count: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Snapshot:
    markets: list[UnifiedMarket]
    statuses: list[PlatformStatus]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def errors(self) -> dict[Platform, str]:
        return {s.platform: s.error for s in self.statuses if s.error}


class MarketAggregator:
    """Fetches one unified snapshot from a fixed list of platform clients."""

    def __init__(self, clients: list[PlatformClient]) -> None:
        self.clients = clients

    def refresh(self) -> Snapshot:
        if not self.clients:
            return Snapshot(markets=[], statuses=[])

        with ThreadPoolExecutor(max_workers=len(self.clients)) as pool:
            results: list[FetchResult] = list(pool.map(_safe_fetch, self.clients))

        markets: list[UnifiedMarket] = []
        seen: set[str] = set()
        statuses: list[PlatformStatus] = []
        duplicates = 0

        for result in results:
            statuses.append(PlatformStatus(result.platform, len(result.markets), result.error))
            for market in result.markets:
                if market.id in seen:
                    duplicates += 1
                    continue
                seen.add(market.id)
                markets.append(market)

        if duplicates:
            log.warning("Aggregator: dropped %d duplicate market ids", duplicates)

        log.info(
            "Aggregator: %d markets | %s",
            len(markets),
            " ".join(
                f"{s.platform.value}={s.market_count}" + ("(err)" if s.error else "")
                for s in statuses
            ),
        )
        return Snapshot(markets=markets, statuses=statuses)


def _safe_fetch(client: PlatformClient) -> FetchResult:
    """fetch_markets() already reports HTTP trouble; this also contains programming errors."""
    try:
        return client.fetch_markets()
    except Exception as exc:
        log.exception("Aggregator: %s client raised", client.platform.value)
        return FetchResult(platform=client.platform, error=str(exc) or exc.__class__.__name__)
