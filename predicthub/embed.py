"""
Single-market lookup for the embeddable widget.

A unified id is "{platform}-{native id}"; the native part may itself contain
dashes ("kalshi-KXFED-25DEC-T4.00"), so only the first dash splits.
Successful lookups are cached for EMBED_CACHE_TTL_SECONDS (at most
EMBED_CACHE_MAXSIZE entries); misses are not.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from cachetools import TTLCache

from predicthub.config import EMBED_CACHE_MAXSIZE, EMBED_CACHE_TTL_SECONDS
from predicthub.models import Platform, UnifiedMarket
from predicthub.platform_client import PlatformClient

log = logging.getLogger(__name__)


def split_market_id(market_id: str) -> tuple[Platform, str]:
    """
    "kalshi-KXFOO-25" -> (Platform.KALSHI, "KXFOO-25").

    Raises ValueError for an empty id, an unknown platform prefix, or a missing
    native part.
    """
    if not market_id:
        raise ValueError("Market ID is required")
    prefix, _, native_id = market_id.partition("-")
    try:
        platform = Platform(prefix)
    except ValueError:
        raise ValueError(f"Unknown platform in market id: {market_id!r}") from None
    if not native_id:
        raise ValueError(f"Market id has no native part: {market_id!r}")
    return platform, native_id


class MarketLookup:
    """Resolves unified ids through the owning platform client, with a TTL cache in front."""

    def __init__(
        self,
        clients: dict[Platform, PlatformClient],
        cache: TTLCache | None = None,
    ) -> None:
        self._clients = clients
        self._cache: TTLCache[str, UnifiedMarket] = (
            cache if cache is not None
            else TTLCache(maxsize=EMBED_CACHE_MAXSIZE, ttl=EMBED_CACHE_TTL_SECONDS)
        )
        self._cache_lock = threading.Lock()

    def lookup(self, market_id: str) -> UnifiedMarket | None:
        """
        Return the market, or None when the platform has no such market.
        ValueError from split_market_id propagates (malformed request).
        """
        platform, native_id = split_market_id(market_id)

        with self._cache_lock:
            cached = self._cache.get(market_id)
        if cached is not None:
            log.debug("EMBED | cache hit | %s", market_id)
            return cached

        client = self._clients.get(platform)
        if client is None:
            log.warning("EMBED | no client configured for %s", platform.value)
            return None

        market = client.fetch_market(native_id)
        if market is None:
            log.info("EMBED | not found | %s", market_id)
            return None

        with self._cache_lock:
            self._cache[market_id] = market
        return market


def to_embed_payload(market: UnifiedMarket) -> dict[str, Any]:
    """Widget JSON shape: {"market": {id, question, platform, probability, volume, url, endDate}}."""
    return {
        "market": {
            "id": market.id,
            "question": market.question,
            "platform": market.platform.value,
            "probability": market.probability,
            "volume": market.volume,
            "url": market.url,
            "endDate": market.end_date,
        }
    }
