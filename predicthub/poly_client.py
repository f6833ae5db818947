"""Polymarket connector: Gamma API for market discovery, CLOB for price history.

Gamma returns outcomePrices and clobTokenIds as stringified JSON arrays:
  outcomePrices: '["0.62", "0.38"]'  -> first entry is the YES price (0-1)
  clobTokenIds:  '["7132...", "4410..."]' -> first entry is the YES token, used for history
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from predicthub.categories import infer_category
from predicthub.config import (
    CLOB_API_URL,
    GAMMA_API_URL,
    HISTORY_ALL_LOOKBACK_DAYS,
    POLY_HISTORY_FIDELITY,
    POLY_MARKET_URL,
    POLY_PAGE_LIMIT,
    POLY_TOKEN_ID_MIN_LENGTH,
)
from predicthub.history import HistoryRange, clean_history, estimate_history, range_start
from predicthub.models import HistoryResult, Platform, PricePoint, UnifiedMarket
from predicthub.platform_client import (
    PlatformClient,
    fraction_to_percent,
    parse_iso,
    parse_json_field,
    to_float,
)

log = logging.getLogger(__name__)


class PolyClient(PlatformClient):
    """
    Fetches and normalizes Polymarket binary markets.

    Discovery: Gamma API (gamma-api.polymarket.com/markets), top markets by volume.
    History:   CLOB prices-history (clob.polymarket.com/prices-history?market=<token>).

    No authentication needed for read operations.
    """

    platform = Platform.POLYMARKET

    def _fetch_markets(self) -> list[UnifiedMarket]:
        params = {
            "limit": POLY_PAGE_LIMIT,
            "active": "true",
            "closed": "false",
            "order": "volume",
            "ascending": "false",
        }
        data = self._get_json(f"{GAMMA_API_URL}/markets", params=params)
        raw = data if isinstance(data, list) else []
        log.info("Polymarket: Gamma returned %d raw markets", len(raw))
        return self._normalize_all(raw, _normalize_gamma_market)

    def _fetch_market(self, native_id: str) -> UnifiedMarket | None:
        gm = self._get_json(f"{GAMMA_API_URL}/markets/{native_id}")
        return _normalize_gamma_market(gm, require_volume=False)

    def _fetch_history(self, native_id: str, history_range: HistoryRange) -> HistoryResult:
        token_id = self._resolve_token(native_id)
        if not token_id:
            return HistoryResult(error="Unable to resolve Polymarket market identifier")

        now = int(time.time())
        params = {
            "market": token_id,
            "startTs": range_start(history_range, now, all_lookback_days=HISTORY_ALL_LOOKBACK_DAYS),
            "endTs": now,
            "fidelity": POLY_HISTORY_FIDELITY,
        }
        try:
            data = self._get_json(f"{CLOB_API_URL}/prices-history", params=params)
        except httpx.HTTPStatusError:
            log.info("Polymarket: CLOB history unavailable for %s, estimating from Gamma", native_id)
            return self._estimated_from_gamma(native_id, history_range)

        return HistoryResult(points=_parse_clob_history(data), source="clob")

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _resolve_token(self, identifier: str) -> str | None:
        """A CLOB token id passes through; a Gamma id or slug resolves to its first token."""
        if len(identifier) >= POLY_TOKEN_ID_MIN_LENGTH:
            return identifier

        gm = self._lookup_gamma(identifier)
        if gm is None:
            return None
        token_ids = parse_json_field(gm.get("clobTokenIds")) or []
        if token_ids and isinstance(token_ids[0], str):
            return token_ids[0]
        return None

    def _lookup_gamma(self, identifier: str) -> dict[str, Any] | None:
        try:
            return self._get_json(f"{GAMMA_API_URL}/markets/{identifier}")
        except httpx.HTTPStatusError:
            log.debug("Polymarket: %s is not a Gamma id, trying slug", identifier)

        data = self._get_json(f"{GAMMA_API_URL}/markets", params={"slug": identifier, "limit": 1})
        if isinstance(data, list) and data:
            return data[0]
        return None

    def _estimated_from_gamma(self, native_id: str, history_range: HistoryRange) -> HistoryResult:
        try:
            gm = self._get_json(f"{GAMMA_API_URL}/markets/{native_id}")
        except httpx.HTTPStatusError:
            return HistoryResult(error="History not available for this market")

        prices = parse_json_field(gm.get("outcomePrices")) or []
        current = to_float(prices[0]) if prices else None
        current = 50.0 if current is None else current * 100
        return HistoryResult(points=estimate_history(current, history_range), source="gamma-estimated")


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _normalize_gamma_market(gm: dict[str, Any], require_volume: bool = True) -> UnifiedMarket | None:
    """
    Convert a Gamma market dict to a UnifiedMarket.

    Returns None for closed markets, markets without a question, and (for
    listings) markets with no traded volume.
    """
    if gm.get("closed") is True:
        return None

    question = (gm.get("question") or "").strip()
    volume = to_float(gm.get("volumeNum")) or to_float(gm.get("volume")) or 0.0
    if not question:
        return None
    if require_volume and volume <= 0:
        return None

    prices = parse_json_field(gm.get("outcomePrices")) or []
    probability = fraction_to_percent(prices[0]) if prices else 50

    token_ids = parse_json_field(gm.get("clobTokenIds")) or []
    history_id = str(token_ids[0]) if token_ids else None

    return UnifiedMarket(
        id=f"polymarket-{gm['id']}",
        question=question,
        platform=Platform.POLYMARKET,
        probability=probability,
        volume=volume,
        volume_label="USDC",
        category=infer_category(question),
        end_date=gm.get("endDateIso") or gm.get("endDate") or None,
        url=POLY_MARKET_URL.format(slug=_event_slug(gm)),
        image_url=gm.get("image"),
        is_play_money=False,
        history_id=history_id,
    )


def _event_slug(gm: dict[str, Any]) -> str:
    """
    Prefer the parent EVENT slug over the market slug; the event slug is the
    working polymarket.com permalink.
    """
    events = gm.get("events") or []
    if events:
        first = events[0] or {}
        return first.get("slug") or first.get("ticker") or gm.get("slug") or ""
    return gm.get("slug") or ""


def _parse_clob_history(data: Any) -> list[PricePoint]:
    """
    CLOB prices-history comes as {"history": [{"t": 1700000000, "p": 0.62}, ...]}
    (older responses are a bare list). Prices are 0-1 → percent.
    """
    raw = data.get("history") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        return []

    points: list[PricePoint] = []
    for point in raw:
        t = point.get("t", point.get("timestamp"))
        if isinstance(t, (int, float)):
            ts = int(t)
        else:
            dt = parse_iso(str(t)) if t is not None else None
            if dt is None:
                continue
            ts = int(dt.timestamp())
        price = to_float(point.get("p", point.get("price")))
        if price is None:
            continue
        points.append(PricePoint(time=ts, value=price * 100))

    return clean_history(points)
