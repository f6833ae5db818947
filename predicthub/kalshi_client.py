"""Kalshi REST API connector: event listing, per-event market fetch, normalization.

Kalshi prices are integer cents (0-100), which map 1:1 to percent.
Volume is reported in contracts of 1 cent notional, so volume / 100 is dollars.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import httpx

from predicthub.categories import infer_category
from predicthub.config import (
    FETCH_WORKERS,
    HISTORY_ALL_LOOKBACK_DAYS,
    KALSHI_BASE_URL,
    KALSHI_EVENT_LIMIT,
    KALSHI_MARKET_URL,
)
from predicthub.history import HistoryRange, clean_history, estimate_history, range_start
from predicthub.models import HistoryResult, Platform, PricePoint, UnifiedMarket
from predicthub.platform_client import (
    RECORD_ERRORS,
    PlatformClient,
    clamp,
    parse_iso,
    round_half_up,
    to_float,
)

log = logging.getLogger(__name__)


class KalshiClient(PlatformClient):
    """
    Fetches and normalizes Kalshi binary events.
    No authentication required for market reading.

    One UnifiedMarket per non-mutually-exclusive event: the event's "main"
    market is the one whose ticker equals the event ticker, otherwise the
    highest-volume market in the event.
    """

    platform = Platform.KALSHI

    def _fetch_markets(self) -> list[UnifiedMarket]:
        data = self._get_json(f"{KALSHI_BASE_URL}/events", params={"limit": KALSHI_EVENT_LIMIT})
        events = data.get("events") or []
        if not isinstance(events, list):
            raise ValueError(f"Kalshi events is a {type(events).__name__}, expected a list")
        binary = [e for e in events if not e.get("mutually_exclusive")]

        markets: list[UnifiedMarket] = []
        if binary:
            with ThreadPoolExecutor(max_workers=min(len(binary), FETCH_WORKERS)) as pool:
                for market in pool.map(self._fetch_event_market, binary):
                    if market is not None:
                        markets.append(market)

        markets.sort(key=lambda m: m.volume, reverse=True)
        log.info(
            "Kalshi: %d events → %d binary → %d markets",
            len(events), len(binary), len(markets),
        )
        return markets

    def _fetch_market(self, native_id: str) -> UnifiedMarket | None:
        data = self._get_json(f"{KALSHI_BASE_URL}/markets/{native_id}")
        market = data.get("market") or data
        return _normalize_single_market(market, native_id)

    def _fetch_history(self, native_id: str, history_range: HistoryRange) -> HistoryResult:
        try:
            data = self._get_json(f"{KALSHI_BASE_URL}/markets/{native_id}/history")
        except httpx.HTTPStatusError:
            data = None

        history = data.get("history") if isinstance(data, dict) else None
        if isinstance(history, list):
            start = range_start(history_range, all_lookback_days=HISTORY_ALL_LOOKBACK_DAYS)
            return HistoryResult(points=_parse_kalshi_history(history, start), source="kalshi")

        # No history endpoint data: estimate from the current price
        try:
            data = self._get_json(f"{KALSHI_BASE_URL}/markets/{native_id}")
        except httpx.HTTPStatusError:
            return HistoryResult(error="History not available")

        market = data.get("market") or data
        current = float(kalshi_probability(market))
        return HistoryResult(points=estimate_history(current, history_range), source="estimated")

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _fetch_event_market(self, event: dict[str, Any]) -> UnifiedMarket | None:
        """Fetch one event's markets and normalize its main market. None on any failure."""
        ticker = event.get("event_ticker", "")
        try:
            data = self._get_json(f"{KALSHI_BASE_URL}/markets", params={"event_ticker": ticker})
            return _normalize_event(event, data.get("markets") or [])
        except (httpx.HTTPError, *RECORD_ERRORS):
            log.debug("Kalshi: markets fetch failed for event %s", ticker, exc_info=True)
            return None


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _normalize_event(event: dict[str, Any], markets: list[dict[str, Any]]) -> UnifiedMarket | None:
    """Build the UnifiedMarket for one binary event from its market list."""
    main = pick_main_market(event.get("event_ticker"), markets)
    if main is None:
        return None

    title = event.get("title") or ""
    sub_title = event.get("sub_title") or ""
    if sub_title and sub_title.lower() not in title.lower():
        title = f"{title} ({sub_title})"
    if not title:
        return None

    category_tags = [event["category"]] if event.get("category") else []

    return UnifiedMarket(
        id=f"kalshi-{main['ticker']}",
        question=title,
        platform=Platform.KALSHI,
        probability=kalshi_probability(main),
        volume=(to_float(main.get("volume")) or 0.0) / 100,
        volume_label="USD",
        category=infer_category(title, category_tags),
        end_date=main.get("close_time") or main.get("expiration_time") or None,
        url=KALSHI_MARKET_URL.format(ticker=event.get("series_ticker") or main["ticker"]),
        is_play_money=False,
        history_id=main["ticker"],
    )


def _normalize_single_market(market: dict[str, Any], native_id: str) -> UnifiedMarket | None:
    """Direct market lookup (embed path). Uses the market's own title and ticker."""
    ticker = market.get("ticker") or native_id
    question = market.get("title") or market.get("subtitle") or "Unknown"
    return UnifiedMarket(
        id=f"kalshi-{ticker}",
        question=question,
        platform=Platform.KALSHI,
        probability=kalshi_probability(market),
        volume=(to_float(market.get("volume")) or 0.0) / 100,
        volume_label="USD",
        category=infer_category(question),
        end_date=market.get("close_time") or None,
        url=KALSHI_MARKET_URL.format(ticker=ticker),
        is_play_money=False,
        history_id=ticker,
    )


def pick_main_market(event_ticker: str | None, markets: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Market whose ticker equals the event ticker, else the highest-volume one."""
    if not markets:
        return None
    for m in markets:
        if m.get("ticker") == event_ticker:
            return m
    return max(markets, key=lambda m: to_float(m.get("volume")) or 0.0)


def kalshi_probability(market: dict[str, Any]) -> int:
    """
    YES probability in percent, clamped to [1, 99].

      1. last_price (cents) when > 0
      2. rounded yes_bid/yes_ask midpoint when > 0
      3. 50
    """
    probability = 50.0
    last = to_float(market.get("last_price"))
    bid = to_float(market.get("yes_bid"))
    ask = to_float(market.get("yes_ask"))

    if last is not None and last > 0:
        probability = last
    elif bid is not None and ask is not None:
        mid = round_half_up((bid + ask) / 2)
        if mid > 0:
            probability = mid

    return int(clamp(round_half_up(probability), 1, 99))


def _parse_kalshi_history(history: list[dict[str, Any]], start: int) -> list[PricePoint]:
    """
    History points carry ts/timestamp and yes_price/price. Prices <= 1 are
    treated as fractions, larger values as cents.
    """
    points: list[PricePoint] = []
    for point in history:
        ts = _history_time(point.get("ts", point.get("timestamp")))
        if ts is None or ts < start:
            continue
        price = to_float(point.get("yes_price")) or to_float(point.get("price")) or 0.5
        value = price * 100 if price <= 1 else price
        points.append(PricePoint(time=ts, value=value))
    return clean_history(points)


def _history_time(value: Any) -> int | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        dt = parse_iso(value)
        return int(dt.timestamp()) if dt else None
    return None
