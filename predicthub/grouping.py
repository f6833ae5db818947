"""
Event grouping engine.

Partitions a market snapshot into groups that reference the same real-world
event. Greedy single pass, O(n^2) term-set comparisons:

  1. Key terms are extracted once per market.
  2. Markets are visited in input order; the first unassigned market seeds a group.
  3. Every later unassigned market joins the seed's group when
       - it has the same category, and
       - similarity(seed terms, candidate terms) >= threshold (inclusive).
  4. Groups are sorted by total volume, descending.

Membership depends on scan order (first seed wins). Every input market lands in
exactly one group; singletons are unmatched markets.
"""

from __future__ import annotations

import logging
import math

from predicthub.config import (
    DEFAULT_GROUPING_THRESHOLD,
    GROUP_NAME_MAX_TERMS,
    GROUP_NAME_MIN_SHARE,
)
from predicthub.models import EventGroup, UnifiedMarket
from predicthub.terms import GROUPING_STOP_WORDS, extract_key_terms, similarity

log = logging.getLogger(__name__)


class EventGrouper:
    """Groups unified markets by question similarity within a category."""

    def __init__(self, threshold: float = DEFAULT_GROUPING_THRESHOLD) -> None:
        self.threshold = threshold

    def group(self, markets: list[UnifiedMarket]) -> list[EventGroup]:
        if not markets:
            return []

        terms_by_id: dict[str, list[str]] = {
            m.id: extract_key_terms(m.question, GROUPING_STOP_WORDS) for m in markets
        }

        groups: list[EventGroup] = []
        assigned: set[str] = set()

        for i, seed in enumerate(markets):
            if seed.id in assigned:
                continue

            seed_terms = terms_by_id[seed.id]
            related: list[UnifiedMarket] = [seed]
            assigned.add(seed.id)

            for other in markets[i + 1:]:
                if other.id in assigned:
                    continue
                if other.category != seed.category:
                    continue
                score = similarity(seed_terms, terms_by_id[other.id])
                if score >= self.threshold:
                    log.debug(
                        "GROUP JOIN | %.2f | %s <- %s", score, seed.id, other.id,
                    )
                    related.append(other)
                    assigned.add(other.id)

            groups.append(_build_group(seed, related))

        groups.sort(key=lambda g: g.total_volume, reverse=True)

        multi = get_multi_market_groups(groups)
        cross = [g for g in multi if len(g.platforms) >= 2]
        log.info(
            "EventGrouper: %d markets → %d groups (%d multi-market, %d cross-platform) | threshold=%.2f",
            len(markets), len(groups), len(multi), len(cross), self.threshold,
        )
        return groups


def group_markets_by_event(
    markets: list[UnifiedMarket],
    threshold: float = DEFAULT_GROUPING_THRESHOLD,
) -> list[EventGroup]:
    """Partition *markets* into event groups. Empty input gives an empty list."""
    return EventGrouper(threshold).group(markets)


def extract_group_name(markets: list[UnifiedMarket]) -> str:
    """
    Synthesize a display name for a group.

    Counts term occurrences across all member questions, keeps the terms seen
    at least ceil(members * GROUP_NAME_MIN_SHARE) times, and title-cases the
    top GROUP_NAME_MAX_TERMS (ties keep first-seen order). Falls back to the
    shortest member question when no term qualifies.
    """
    if not markets:
        return "Unknown"
    if len(markets) == 1:
        return markets[0].question

    term_counts: dict[str, int] = {}
    for market in markets:
        for term in extract_key_terms(market.question, GROUPING_STOP_WORDS):
            term_counts[term] = term_counts.get(term, 0) + 1

    min_count = math.ceil(len(markets) * GROUP_NAME_MIN_SHARE)
    common = [(term, count) for term, count in term_counts.items() if count >= min_count]
    common.sort(key=lambda tc: tc[1], reverse=True)
    top_terms = [term for term, _ in common[:GROUP_NAME_MAX_TERMS]]

    if not top_terms:
        shortest = markets[0].question
        for m in markets[1:]:
            if len(m.question) < len(shortest):
                shortest = m.question
        return shortest

    return " ".join(term[:1].upper() + term[1:] for term in top_terms)


def get_multi_market_groups(groups: list[EventGroup]) -> list[EventGroup]:
    """Groups that matched two or more markets."""
    return [g for g in groups if len(g.markets) >= 2]


def get_ungrouped_markets(groups: list[EventGroup]) -> list[UnifiedMarket]:
    """Markets left in singleton groups."""
    return [g.markets[0] for g in groups if len(g.markets) == 1]


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------

def _build_group(seed: UnifiedMarket, related: list[UnifiedMarket]) -> EventGroup:
    if len(related) == 1:
        return EventGroup(
            id=f"single-{seed.id}",
            name=seed.question,
            markets=related,
            total_volume=seed.volume,
            avg_probability=seed.probability,
            platforms=[seed.platform],
            category=seed.category,
        )

    platforms = list(dict.fromkeys(m.platform for m in related))
    total_volume = sum(m.volume for m in related)
    avg_probability = sum(m.probability for m in related) / len(related)

    return EventGroup(
        id=f"group-{seed.id}",
        name=extract_group_name(related),
        markets=sorted(related, key=lambda m: m.volume, reverse=True),
        total_volume=total_volume,
        avg_probability=avg_probability,
        platforms=platforms,
        category=seed.category,
    )
