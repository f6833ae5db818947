"""
Read-only portfolio positions for public accounts.

Polymarket positions are looked up by wallet address, trying the public
position endpoints in turn until one returns holdings. Manifold positions are
rebuilt from the user's bet history and priced at each market's current
probability. Kalshi portfolios need an authenticated session and are not
supported.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from typing import Any

import httpx

from predicthub.config import (
    CLOB_API_URL,
    FETCH_WORKERS,
    GAMMA_API_URL,
    HTTP_TIMEOUT,
    MANIFOLD_API_URL,
    MANIFOLD_BETS_LIMIT,
    POLY_DATA_API_URL,
    POLY_MARKET_URL,
    POLY_MIN_POSITION_SIZE,
    PORTFOLIO_MAX_POSITIONS,
    USER_AGENT,
)
from predicthub.models import Platform, PortfolioResult, Position
from predicthub.platform_client import RECORD_ERRORS, parse_json_field, to_float

log = logging.getLogger(__name__)

_POLY_POSITION_ENDPOINTS = (
    f"{POLY_DATA_API_URL}/positions",
    f"{CLOB_API_URL}/positions",
    f"{CLOB_API_URL}/data/positions",
    f"{GAMMA_API_URL}/positions",
)


class PortfolioClient:
    """Positions held by a Polymarket wallet or a Manifold user."""

    def __init__(self, http: httpx.Client | None = None) -> None:
        self._http = http or httpx.Client(
            timeout=HTTP_TIMEOUT,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Polymarket
    # ------------------------------------------------------------------

    def polymarket_positions(self, address: str) -> PortfolioResult:
        if not address:
            return PortfolioResult(error="Wallet address is required")

        user = address.lower()
        positions: list[Position] = []
        for endpoint in _POLY_POSITION_ENDPOINTS:
            try:
                data = self._get_json(endpoint, params={"user": user})
            except httpx.HTTPStatusError as exc:
                log.info("PORTFOLIO | polymarket | %s returned %d", endpoint, exc.response.status_code)
                continue
            except (httpx.HTTPError, ValueError) as exc:
                log.info("PORTFOLIO | polymarket | %s failed: %s", endpoint, exc)
                continue

            for raw in _position_list(data):
                try:
                    position = self._poly_position(raw)
                except RECORD_ERRORS:
                    log.debug("PORTFOLIO | polymarket | skipping unparseable position", exc_info=True)
                    continue
                if position is not None:
                    positions.append(position)

            if positions:
                log.info("PORTFOLIO | polymarket | %d positions from %s", len(positions), endpoint)
                break

        return _summarize(positions)

    def _poly_position(self, raw: dict[str, Any]) -> Position | None:
        size = to_float(_first(raw, "size", "balance", "amount", "shares", "totalShares", "quantity")) or 0.0
        if size < POLY_MIN_POSITION_SIZE:
            return None

        condition_id = str(_first(raw, "conditionId", "condition_id", "marketId", "market_id") or "")
        token_id = str(_first(raw, "asset", "tokenId", "token_id", "assetId") or "")

        outcome = _first(raw, "outcome", "side") or "YES"
        if isinstance(outcome, int):
            outcome = "YES" if outcome == 0 else "NO"
        outcome = str(outcome).upper()

        title = str(_first(raw, "title", "question", "marketTitle") or "")
        url = str(raw.get("url") or "")
        if not url and raw.get("eventSlug"):
            url = POLY_MARKET_URL.format(slug=raw["eventSlug"])
        current_price = to_float(_first(raw, "curPrice", "price", "currentPrice", "lastPrice"))
        if current_price is None:
            current_price = 0.5

        if (not title or not url) and condition_id:
            market = self._gamma_market(condition_id)
            if market:
                title = market.get("question") or title
                slug = market.get("slug") or market.get("conditionId")
                if slug:
                    url = POLY_MARKET_URL.format(slug=slug)
                prices = parse_json_field(market.get("outcomePrices"))
                if prices and len(prices) >= 2:
                    current_price = to_float(prices[0 if outcome == "YES" else 1]) or current_price

        avg_price = to_float(_first(raw, "avgPrice", "averagePrice", "entryPrice"))
        if avg_price is None:
            avg_price = 0.5

        key = condition_id or token_id
        return _position(
            id=f"poly-{key}-{outcome}",
            platform=Platform.POLYMARKET,
            market=title or f"Position {key[:8]}...",
            outcome=outcome,
            size=size,
            avg_price=avg_price,
            current_price=current_price,
            invested=size * avg_price,
            url=url or "https://polymarket.com",
        )

    def _gamma_market(self, condition_id: str) -> dict[str, Any] | None:
        try:
            data = self._get_json(
                f"{GAMMA_API_URL}/markets",
                params={"condition_id": condition_id, "_limit": 1},
            )
        except (httpx.HTTPError, ValueError):
            log.info("PORTFOLIO | polymarket | market lookup failed for %s", condition_id)
            return None
        market = data[0] if isinstance(data, list) and data else data
        return market if isinstance(market, dict) else None

    # ------------------------------------------------------------------
    # Manifold
    # ------------------------------------------------------------------

    def manifold_positions(self, username: str) -> PortfolioResult:
        if not username:
            return PortfolioResult(error="Username required")

        try:
            user = self._get_json(f"{MANIFOLD_API_URL}/user/{username}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return PortfolioResult(error="User not found")
            return PortfolioResult(error=f"Manifold API returned {exc.response.status_code}")
        except (httpx.HTTPError, ValueError) as exc:
            return PortfolioResult(error=str(exc) or exc.__class__.__name__)

        try:
            bets = self._get_json(
                f"{MANIFOLD_API_URL}/bets",
                params={"userId": user["id"], "limit": MANIFOLD_BETS_LIMIT},
            )
        except (httpx.HTTPError, *RECORD_ERRORS):
            log.warning("PORTFOLIO | manifold | bets unavailable for %s", username, exc_info=True)
            return PortfolioResult(error="Failed to fetch bets")

        holdings = _aggregate_bets(bets if isinstance(bets, list) else [])
        log.info("PORTFOLIO | manifold | %s | %d holdings", username, len(holdings))

        positions: list[Position] = []
        if holdings:
            with ThreadPoolExecutor(max_workers=min(len(holdings), FETCH_WORKERS)) as pool:
                for position in pool.map(self._manifold_position, holdings):
                    if position is not None:
                        positions.append(position)

        return _summarize(positions, limit=PORTFOLIO_MAX_POSITIONS)

    def _manifold_position(self, holding: dict[str, Any]) -> Position | None:
        probability = holding["probability"] or 0.5
        url = holding["url"] or ""
        question = holding["question"] or ""

        try:
            market = self._get_json(f"{MANIFOLD_API_URL}/market/{holding['contract_id']}")
        except (httpx.HTTPError, ValueError):
            market = None
        if isinstance(market, dict):
            if market.get("isResolved"):
                return None
            probability = to_float(market.get("probability")) or probability
            url = market.get("url") or url
            question = market.get("question") or question

        shares = holding["shares"]
        spent = holding["spent"]
        outcome = holding["outcome"]
        return _position(
            id=f"{holding['contract_id']}-{outcome}",
            platform=Platform.MANIFOLD,
            market=question,
            outcome=outcome,
            size=shares,
            avg_price=spent / shares,
            current_price=probability if outcome == "YES" else 1 - probability,
            invested=spent,
            url=url,
        )

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        resp = self._http.get(url, params=params)
        resp.raise_for_status()
        return resp.json()


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _first(raw: dict[str, Any], *keys: str) -> Any:
    """First truthy value among *keys*."""
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def _position_list(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("positions", "data"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


def _aggregate_bets(bets: list[Any]) -> list[dict[str, Any]]:
    """Collapse live bets into one holding per (contract, outcome), in first-seen order."""
    holdings: dict[tuple[str, str], dict[str, Any]] = {}
    for bet in bets:
        if not isinstance(bet, dict) or bet.get("isSold") or bet.get("isCancelled"):
            continue
        contract_id = bet.get("contractId")
        outcome = bet.get("outcome")
        if not contract_id or not outcome:
            continue
        holding = holdings.setdefault((contract_id, outcome), {
            "contract_id": contract_id,
            "outcome": outcome,
            "shares": 0.0,
            "spent": 0.0,
            "question": bet.get("question"),
            "url": bet.get("contractUrl"),
            "probability": None,
        })
        holding["shares"] += to_float(bet.get("shares")) or 0.0
        holding["spent"] += to_float(bet.get("amount")) or 0.0
        prob_after = to_float(bet.get("probAfter"))
        if prob_after:
            holding["probability"] = prob_after
    return [h for h in holdings.values() if h["shares"] > 0]


def _position(
    *,
    id: str,
    platform: Platform,
    market: str,
    outcome: str,
    size: float,
    avg_price: float,
    current_price: float,
    invested: float,
    url: str,
) -> Position:
    pnl = size * current_price - invested
    return Position(
        id=id,
        platform=platform,
        market=market,
        outcome=outcome,
        size=size,
        avg_price=avg_price,
        current_price=current_price,
        pnl=pnl,
        pnl_percent=pnl / invested * 100 if invested > 0 else 0.0,
        url=url,
    )


def _summarize(positions: list[Position], limit: int | None = None) -> PortfolioResult:
    """Totals cover every position; the list is sorted by absolute P&L and optionally truncated."""
    total_value = sum(p.size * p.current_price for p in positions)
    total_pnl = sum(p.pnl for p in positions)
    ordered = sorted(positions, key=lambda p: abs(p.pnl), reverse=True)
    if limit is not None:
        ordered = ordered[:limit]
    return PortfolioResult(positions=ordered, total_value=total_value, total_pnl=total_pnl)


def to_portfolio_payload(result: PortfolioResult) -> dict[str, Any]:
    """JSON shape: {positions: [...], totalValue, totalPnl, error}."""
    return {
        "positions": [
            {**asdict(p), "platform": p.platform.value} for p in result.positions
        ],
        "totalValue": result.total_value,
        "totalPnl": result.total_pnl,
        "error": result.error,
    }
