"""
PredictHub aggregator: polling loop.

Every REFRESH_SECONDS:
  → Fetches Polymarket, Kalshi, Manifold and Metaculus markets in parallel
  → Finds cross-platform arbitrage on the full snapshot
  → Applies the CLI filters and groups the filtered list into events
  → Evaluates saved price alerts
  → Logs groups/opportunities and appends opportunities to the NDJSON output

One-shot modes print JSON to stdout and exit:
  --embed MARKET_ID            widget payload for one market
  --portfolio-polymarket ADDR  open positions for a wallet
  --portfolio-manifold USER    open positions rebuilt from bets
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dotenv import load_dotenv

from predicthub.aggregator import MarketAggregator, Snapshot
from predicthub.alerts import AlertStore, check_alerts
from predicthub.arbitrage import ArbitrageFinder, format_opportunity_log
from predicthub.config import (
    ALERTS_FILE,
    ARBITRAGE_DEDUPE_ENABLED,
    ARBITRAGE_MIN_DIFFERENCE,
    DEFAULT_DATA_DIR,
    ENV_DATA_DIR,
    ENV_GROUPING_THRESHOLD,
    ENV_MIN_DIFFERENCE,
    ENV_REFRESH_SECONDS,
    GROUPING_THRESHOLD,
    LOG_FILE,
    OPPS_JSON_FILE,
    OPPS_LOG_FILE,
    REFRESH_SECONDS,
    WATCHLIST_FILE,
)
from predicthub.embed import MarketLookup, to_embed_payload
from predicthub.filters import FilterState, apply_filters
from predicthub.grouping import EventGrouper, get_multi_market_groups
from predicthub.kalshi_client import KalshiClient
from predicthub.manifold_client import ManifoldClient
from predicthub.metaculus_client import MetaculusClient
from predicthub.models import ArbitrageOpportunity, Category, EventGroup, Platform
from predicthub.platform_client import PlatformClient
from predicthub.poly_client import PolyClient
from predicthub.portfolio import PortfolioClient, to_portfolio_payload
from predicthub.watchlist import Watchlist

log = logging.getLogger(__name__)

_CLIENT_TYPES: dict[Platform, type[PlatformClient]] = {
    Platform.POLYMARKET: PolyClient,
    Platform.KALSHI: KalshiClient,
    Platform.MANIFOLD: ManifoldClient,
    Platform.METACULUS: MetaculusClient,
}


# ------------------------------------------------------------------
# Log filter: only refresh/group/opportunity/alert lines go to opportunities.log
# ------------------------------------------------------------------

class _OppsFilter(logging.Filter):
    _KEYWORDS = (
        "ARB OPPORTUNITY", "GROUPS |", "REFRESH", "ALERT |",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return any(kw in msg for kw in self._KEYWORDS)


# ------------------------------------------------------------------
# Setup
# ------------------------------------------------------------------

@dataclass
class Settings:
    grouping_threshold: float = GROUPING_THRESHOLD
    min_difference: float = ARBITRAGE_MIN_DIFFERENCE
    refresh_seconds: float = REFRESH_SECONDS
    data_dir: str = DEFAULT_DATA_DIR


def _load_env() -> None:
    """Load .env file from project root if present."""
    load_dotenv(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env"))


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Ignoring %s=%r (not a number), using %s", name, raw, default)
        return default


def load_settings(args: argparse.Namespace | None = None) -> Settings:
    """Constants, then environment overrides, then CLI flags."""
    settings = Settings(
        grouping_threshold=_env_float(ENV_GROUPING_THRESHOLD, GROUPING_THRESHOLD),
        min_difference=_env_float(ENV_MIN_DIFFERENCE, ARBITRAGE_MIN_DIFFERENCE),
        refresh_seconds=_env_float(ENV_REFRESH_SECONDS, REFRESH_SECONDS),
        data_dir=os.environ.get(ENV_DATA_DIR) or DEFAULT_DATA_DIR,
    )
    if args is not None:
        if args.threshold is not None:
            settings.grouping_threshold = args.threshold
        if args.min_diff is not None:
            settings.min_difference = args.min_diff
    return settings


def _setup_logging(data_dir: str) -> None:
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    main_handler = logging.FileHandler(os.path.join(data_dir, LOG_FILE), mode="a", encoding="utf-8")
    main_handler.setFormatter(fmt)

    opps_handler = logging.FileHandler(os.path.join(data_dir, OPPS_LOG_FILE), mode="a", encoding="utf-8")
    opps_handler.setFormatter(fmt)
    opps_handler.addFilter(_OppsFilter())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(fmt)

    logging.basicConfig(
        level=logging.INFO,
        handlers=[main_handler, opps_handler, console_handler],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Aggregate prediction markets, group events and flag cross-platform spreads"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single refresh and exit",
    )
    parser.add_argument(
        "--platform",
        action="append",
        choices=[p.value for p in Platform],
        help="Only fetch this platform (repeatable, default: all)",
    )
    parser.add_argument(
        "--category",
        choices=[c.value for c in Category],
        help="Only group markets in this category",
    )
    parser.add_argument(
        "--search",
        default="",
        help="Case-insensitive question filter applied before grouping",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help=f"Grouping similarity threshold (default {GROUPING_THRESHOLD})",
    )
    parser.add_argument(
        "--min-diff",
        type=float,
        default=None,
        help=f"Minimum arbitrage spread in percentage points (default {ARBITRAGE_MIN_DIFFERENCE})",
    )
    parser.add_argument(
        "--watchlist",
        action="store_true",
        help=f"Only group markets saved in {WATCHLIST_FILE}",
    )
    parser.add_argument(
        "--embed",
        metavar="MARKET_ID",
        help="Print the widget JSON for one market (e.g. kalshi-KXFED-25DEC) and exit",
    )
    parser.add_argument(
        "--portfolio-polymarket",
        metavar="ADDRESS",
        help="Print open Polymarket positions for a wallet address and exit",
    )
    parser.add_argument(
        "--portfolio-manifold",
        metavar="USERNAME",
        help="Print open Manifold positions for a username and exit",
    )
    return parser.parse_args(argv)


def build_clients(platforms: list[str] | None = None) -> list[PlatformClient]:
    selected = [Platform(p) for p in platforms] if platforms else list(Platform)
    # dict.fromkeys keeps order and drops repeats of the same --platform
    return [_CLIENT_TYPES[p]() for p in dict.fromkeys(selected)]


def build_filter_state(args: argparse.Namespace) -> FilterState:
    state = FilterState(search=args.search or "")
    if args.category:
        state.category = Category(args.category)
    return state


# ------------------------------------------------------------------
# Output
# ------------------------------------------------------------------

def _save_opportunities_json(
    opportunities: list[ArbitrageOpportunity],
    run_ts: datetime,
    path: str,
) -> None:
    """Append this refresh's opportunities to the NDJSON output file."""
    if not opportunities:
        return
    run_data = {
        "scan_timestamp": run_ts.isoformat(),
        "opportunity_count": len(opportunities),
        "opportunities": [
            {
                "id": opp.id,
                "event_name": opp.event_name,
                "price_difference": round(opp.price_difference, 2),
                "potential_profit": round(opp.potential_profit, 2),
                "lowest_price": opp.lowest_price,
                "highest_price": opp.highest_price,
                "detected_at": opp.detected_at.isoformat(),
                "markets": [
                    {
                        "platform": leg.platform.value,
                        "market_id": leg.market.id,
                        "question": leg.market.question,
                        "price": leg.price,
                        "url": leg.market.url,
                    }
                    for leg in opp.markets
                ],
            }
            for opp in opportunities
        ],
    }
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(run_data) + "\n")


def _log_groups(groups: list[EventGroup]) -> None:
    multi = get_multi_market_groups(groups)
    cross = [g for g in multi if len(g.platforms) >= 2]
    log.info(
        "GROUPS | %d groups | %d multi-market | %d cross-platform",
        len(groups), len(multi), len(cross),
    )
    for g in cross:
        log.info(
            "GROUPS | %s | %s | %d markets | avg %.1f%% | vol %.0f",
            g.name[:80], ",".join(p.value for p in g.platforms),
            len(g.markets), g.avg_probability, g.total_volume,
        )


# ------------------------------------------------------------------
# Refresh cycle
# ------------------------------------------------------------------

@dataclass
class CycleResult:
    snapshot: Snapshot
    groups: list[EventGroup]
    opportunities: list[ArbitrageOpportunity]


def run_cycle(
    aggregator: MarketAggregator,
    state: FilterState,
    settings: Settings,
    alert_store: AlertStore | None = None,
    watchlist: Watchlist | None = None,
) -> CycleResult:
    """One refresh: fetch, detect arbitrage on everything, group the filtered view, check alerts."""
    snapshot = aggregator.refresh()
    for platform, error in snapshot.errors.items():
        log.warning("REFRESH | %s unavailable: %s", platform.value, error)

    finder = ArbitrageFinder(settings.min_difference, dedupe=ARBITRAGE_DEDUPE_ENABLED)
    opportunities = finder.find_opportunities(snapshot.markets)

    filtered = apply_filters(snapshot.markets, state)
    if watchlist is not None:
        filtered = watchlist.filter(filtered)
    groups = EventGrouper(settings.grouping_threshold).group(filtered)
    _log_groups(groups)

    for opp in opportunities:
        log.info(format_opportunity_log(opp))
    _save_opportunities_json(
        opportunities, snapshot.fetched_at, os.path.join(settings.data_dir, OPPS_JSON_FILE),
    )

    if alert_store is not None:
        alerts = alert_store.load()
        if alerts:
            updated, fired = check_alerts(alerts, snapshot.markets)
            if fired:
                alert_store.save(updated)

    return CycleResult(snapshot=snapshot, groups=groups, opportunities=opportunities)


# ------------------------------------------------------------------
# One-shot modes
# ------------------------------------------------------------------

def embed_market(market_id: str, clients: list[PlatformClient]) -> dict[str, Any]:
    """Widget payload for one unified market id, or {"error": ...}."""
    lookup = MarketLookup({c.platform: c for c in clients})
    try:
        market = lookup.lookup(market_id)
    except ValueError as exc:
        return {"error": str(exc)}
    if market is None:
        return {"error": "Market not found"}
    return to_embed_payload(market)


def fetch_portfolios(
    client: PortfolioClient,
    polymarket_address: str | None = None,
    manifold_username: str | None = None,
) -> dict[str, Any]:
    report: dict[str, Any] = {}
    if polymarket_address:
        report[Platform.POLYMARKET.value] = to_portfolio_payload(
            client.polymarket_positions(polymarket_address)
        )
    if manifold_username:
        report[Platform.MANIFOLD.value] = to_portfolio_payload(
            client.manifold_positions(manifold_username)
        )
    return report


# ------------------------------------------------------------------
# Main loop
# ------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    _load_env()
    args = _parse_args(argv)
    settings = load_settings(args)
    os.makedirs(settings.data_dir, exist_ok=True)
    _setup_logging(settings.data_dir)

    if args.embed:
        clients = build_clients(args.platform)
        try:
            print(json.dumps(embed_market(args.embed, clients)))
        finally:
            for client in clients:
                client.close()
        return

    if args.portfolio_polymarket or args.portfolio_manifold:
        portfolio_client = PortfolioClient()
        try:
            report = fetch_portfolios(
                portfolio_client, args.portfolio_polymarket, args.portfolio_manifold,
            )
            print(json.dumps(report))
        finally:
            portfolio_client.close()
        return

    log.info("=" * 60)
    log.info("PredictHub aggregator starting")
    log.info(
        "Refresh every %.0fs | grouping threshold %.2f | min arb diff %.1f pts",
        settings.refresh_seconds, settings.grouping_threshold, settings.min_difference,
    )

    clients = build_clients(args.platform)
    aggregator = MarketAggregator(clients)
    state = build_filter_state(args)
    alert_store = AlertStore(os.path.join(settings.data_dir, ALERTS_FILE))
    watchlist = Watchlist(os.path.join(settings.data_dir, WATCHLIST_FILE)) if args.watchlist else None

    cycle = 0
    total_opportunities = 0

    try:
        while True:
            cycle_start = time.monotonic()
            cycle += 1
            log.info("=== REFRESH #%d starting ===", cycle)

            try:
                result = run_cycle(aggregator, state, settings, alert_store, watchlist)
                total_opportunities += len(result.opportunities)
                log.info(
                    "=== REFRESH #%d complete | %.2fs | %d markets | %d groups | "
                    "%d arb opportunities | %d lifetime ===",
                    cycle, time.monotonic() - cycle_start, len(result.snapshot.markets),
                    len(result.groups), len(result.opportunities), total_opportunities,
                )
            except Exception:
                log.exception("Refresh %d failed", cycle)

            if args.once:
                break

            elapsed = time.monotonic() - cycle_start
            time.sleep(max(0.0, settings.refresh_seconds - elapsed))

    except KeyboardInterrupt:
        log.info("Aggregator stopped by user.")
    finally:
        for client in clients:
            client.close()


if __name__ == "__main__":
    main()
