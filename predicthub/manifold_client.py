"""Manifold Markets connector (play-money, mana-denominated)."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from predicthub.categories import infer_category
from predicthub.config import (
    MANIFOLD_API_URL,
    MANIFOLD_BETS_LIMIT,
    MANIFOLD_MARKET_URL,
    MANIFOLD_PAGE_LIMIT,
)
from predicthub.history import HistoryRange, estimate_history, hourly_dedupe, range_start
from predicthub.models import HistoryResult, Platform, PricePoint, UnifiedMarket
from predicthub.platform_client import (
    PlatformClient,
    epoch_ms_to_iso,
    fraction_to_percent,
    round_half_up,
    to_float,
)

log = logging.getLogger(__name__)


class ManifoldClient(PlatformClient):
    """
    Open binary Manifold markets, most liquid first.

    History is rebuilt from the bets feed (probAfter per bet, one point per hour)
    with the current probability appended as the latest point.
    """

    platform = Platform.MANIFOLD

    def _fetch_markets(self) -> list[UnifiedMarket]:
        params = {"term": "", "sort": "liquidity", "filter": "open", "limit": MANIFOLD_PAGE_LIMIT}
        data = self._get_json(f"{MANIFOLD_API_URL}/search-markets", params=params)
        raw = data if isinstance(data, list) else []
        log.info("Manifold: search returned %d raw markets", len(raw))
        return self._normalize_all(raw, _normalize_manifold_market)

    def _fetch_market(self, native_id: str) -> UnifiedMarket | None:
        data = self._get_json(f"{MANIFOLD_API_URL}/market/{native_id}")
        return _normalize_manifold_market(data)

    def _fetch_history(self, native_id: str, history_range: HistoryRange) -> HistoryResult:
        try:
            market = self._get_json(f"{MANIFOLD_API_URL}/market/{native_id}")
        except httpx.HTTPStatusError:
            return HistoryResult(error="Market not found")

        current = (to_float(market.get("probability")) or 0.5) * 100

        try:
            bets = self._get_json(
                f"{MANIFOLD_API_URL}/bets",
                params={"marketId": native_id, "limit": MANIFOLD_BETS_LIMIT},
            )
        except httpx.HTTPStatusError:
            bets = None

        if not isinstance(bets, list) or not bets:
            return HistoryResult(points=estimate_history(current, history_range), source="estimated")

        after_ms = range_start(history_range) * 1000
        points = _bets_to_points(bets, after_ms)
        points.append(PricePoint(time=int(time.time()), value=current))
        return HistoryResult(points=hourly_dedupe(points), source="bets")


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _normalize_manifold_market(raw: dict[str, Any]) -> UnifiedMarket | None:
    """Binary, unresolved markets only. Returns None for anything else."""
    outcome_type = raw.get("outcomeType")
    if outcome_type and outcome_type != "BINARY":
        return None
    if raw.get("isResolved"):
        return None

    question = (raw.get("question") or "").strip()
    if not question:
        return None

    probability = fraction_to_percent(raw.get("probability"))
    url = raw.get("url") or MANIFOLD_MARKET_URL.format(
        username=raw.get("creatorUsername", ""), slug=raw.get("slug", ""),
    )
    tags = raw.get("groupSlugs") or []

    return UnifiedMarket(
        id=f"manifold-{raw['id']}",
        question=question,
        platform=Platform.MANIFOLD,
        probability=probability,
        volume=float(round_half_up(to_float(raw.get("volume")) or 0.0)),
        volume_label="Mana (Play $)",
        category=infer_category(question, tags),
        end_date=epoch_ms_to_iso(raw.get("closeTime")),
        url=url,
        image_url=raw.get("coverImageUrl"),
        is_play_money=True,
        history_id=raw["id"],
    )


def _bets_to_points(bets: list[dict[str, Any]], after_ms: int) -> list[PricePoint]:
    points: list[PricePoint] = []
    for bet in bets:
        ts = to_float(bet.get("createdTime")) or to_float(bet.get("updatedTime"))
        if not ts or ts < after_ms:
            continue
        prob = bet.get("probAfter") or bet.get("probBefore")
        if isinstance(prob, (int, float)) and not isinstance(prob, bool):
            points.append(PricePoint(time=int(ts // 1000), value=prob * 100))
    return points
