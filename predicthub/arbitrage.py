"""
Cross-platform arbitrage detection.

Re-derives its own "same event" clusters, independent of event grouping:

  are_same_event(m1, m2) requires
    1. different platforms
    2. same category
    3. similarity(terms(m1), terms(m2)) > SAME_EVENT_SIMILARITY (0.6, exclusive)

For every seed market i, all later markets j that satisfy are_same_event are
collected. When the cluster spans two or more markets and
max(probability) - min(probability) >= min_difference_percent, an opportunity
is reported. The caller's minimum only gates the price spread; the match
cutoff is fixed.

Matched markets are not removed from later seeding, so one event can surface
from several seeds (e.g. A~B~C gives [A, B, C] from A and [B, C] from B).
dedupe_opportunities() is the optional post-pass that collapses those.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from predicthub.config import ARBITRAGE_MIN_DIFFERENCE, SAME_EVENT_SIMILARITY
from predicthub.models import ArbitrageLeg, ArbitrageOpportunity, UnifiedMarket
from predicthub.terms import ARBITRAGE_STOP_WORDS, extract_key_terms, similarity

log = logging.getLogger(__name__)


class ArbitrageFinder:
    """
    Scans a market snapshot for probability spreads between platforms.

    An opportunity exists when a same-event cluster spans at least two markets
    and its price spread is >= min_difference_percent.
    """

    def __init__(
        self,
        min_difference_percent: float = ARBITRAGE_MIN_DIFFERENCE,
        dedupe: bool = False,
    ) -> None:
        self.min_difference_percent = min_difference_percent
        self.dedupe = dedupe

    def find_opportunities(self, markets: list[UnifiedMarket]) -> list[ArbitrageOpportunity]:
        """Returns opportunities sorted by price difference descending (widest first)."""
        if len(markets) < 2:
            return []

        terms_by_id: dict[str, list[str]] = {}
        opportunities: list[ArbitrageOpportunity] = []
        processed_pairs: set[tuple[str, str]] = set()
        now = datetime.now(timezone.utc)

        for i, seed in enumerate(markets):
            related: list[UnifiedMarket] = [seed]

            for other in markets[i + 1:]:
                pair_key = tuple(sorted((seed.id, other.id)))
                if pair_key in processed_pairs:
                    continue
                processed_pairs.add(pair_key)

                if _same_event(seed, other, terms_by_id):
                    related.append(other)

            if len(related) < 2:
                continue

            opp = _evaluate_cluster(seed, related, self.min_difference_percent, now)
            if opp is not None:
                opportunities.append(opp)

        opportunities.sort(key=lambda o: o.price_difference, reverse=True)

        if self.dedupe:
            before = len(opportunities)
            opportunities = dedupe_opportunities(opportunities)
            log.debug("ArbitrageFinder: dedupe %d → %d", before, len(opportunities))

        log.info(
            "ArbitrageFinder: %d markets → %d opportunities (min diff %.1f pts)",
            len(markets), len(opportunities), self.min_difference_percent,
        )
        return opportunities


def find_arbitrage_opportunities(
    markets: list[UnifiedMarket],
    min_difference_percent: float = ARBITRAGE_MIN_DIFFERENCE,
) -> list[ArbitrageOpportunity]:
    """Baseline detector: no cross-seed dedup."""
    return ArbitrageFinder(min_difference_percent).find_opportunities(markets)


def are_same_event(m1: UnifiedMarket, m2: UnifiedMarket) -> bool:
    """True when two markets on different platforms look like the same event."""
    return _same_event(m1, m2, {})


def dedupe_opportunities(opportunities: list[ArbitrageOpportunity]) -> list[ArbitrageOpportunity]:
    """
    Keep at most one opportunity per matched market set.

    Walks the list in order and drops any opportunity whose markets are all
    contained in an already-kept one. Pass a list sorted widest-first so the
    kept entry is the one with the largest spread.
    """
    kept: list[ArbitrageOpportunity] = []
    kept_sets: list[frozenset[str]] = []

    for opp in opportunities:
        ids = frozenset(leg.market.id for leg in opp.markets)
        if any(ids <= seen for seen in kept_sets):
            log.debug("ARB DEDUPE | dropping %s (covered)", opp.id)
            continue
        kept.append(opp)
        kept_sets.append(ids)

    return kept


def format_arbitrage_opportunity(opp: ArbitrageOpportunity) -> str:
    """
    One-line trading hint for the cheapest and dearest legs.

    Example:
      Buy YES on kalshi at 58.0%, Sell YES on polymarket at 62.0%
    """
    low = next((leg for leg in opp.markets if leg.price == opp.lowest_price), None)
    high = next((leg for leg in opp.markets if leg.price == opp.highest_price), None)
    if low is None or high is None:
        return ""
    return (
        f"Buy YES on {low.platform.value} at {low.price:.1f}%, "
        f"Sell YES on {high.platform.value} at {high.price:.1f}%"
    )


def format_opportunity_log(opp: ArbitrageOpportunity) -> str:
    """
    Multi-line log block with every leg and its URL.

    ARB OPPORTUNITY | diff=4.0 pts | Will Trump win the election?
      Buy YES on kalshi at 58.0%, Sell YES on polymarket at 62.0%
      polymarket  62.0%  https://polymarket.com/event/...
      kalshi      58.0%  https://kalshi.com/markets/...
    """
    lines = [
        f"ARB OPPORTUNITY | diff={opp.price_difference:.1f} pts | {opp.event_name[:100]}",
        f"  {format_arbitrage_opportunity(opp)}",
    ]
    for leg in opp.markets:
        lines.append(f"  {leg.platform.value:<11} {leg.price:5.1f}%  {leg.market.url}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------

def _terms(market: UnifiedMarket, cache: dict[str, list[str]]) -> list[str]:
    terms = cache.get(market.id)
    if terms is None:
        terms = extract_key_terms(market.question, ARBITRAGE_STOP_WORDS)
        cache[market.id] = terms
    return terms


def _same_event(
    m1: UnifiedMarket,
    m2: UnifiedMarket,
    cache: dict[str, list[str]],
) -> bool:
    if m1.platform == m2.platform:
        return False
    if m1.category != m2.category:
        return False
    return similarity(_terms(m1, cache), _terms(m2, cache)) > SAME_EVENT_SIMILARITY


def _evaluate_cluster(
    seed: UnifiedMarket,
    related: list[UnifiedMarket],
    min_difference_percent: float,
    now: datetime,
) -> ArbitrageOpportunity | None:
    """Build an opportunity for one cluster, or None when the spread is too small."""
    legs = [ArbitrageLeg(platform=m.platform, market=m, price=m.probability) for m in related]

    lowest = min(leg.price for leg in legs)
    highest = max(leg.price for leg in legs)
    difference = highest - lowest

    if difference < min_difference_percent:
        log.debug(
            "ARB SKIP | %s | diff=%.1f < %.1f", seed.id, difference, min_difference_percent,
        )
        return None

    return ArbitrageOpportunity(
        id=f"arb-{seed.id}",
        event_name=seed.question,
        markets=legs,
        price_difference=difference,
        # Percent return per $1, buying YES low and NO high. Illustrative only.
        potential_profit=difference,
        lowest_price=lowest,
        highest_price=highest,
        detected_at=now,
    )
