"""Watched market ids, persisted as a JSON list."""

from __future__ import annotations

import json
import logging
import os

from predicthub.config import WATCHLIST_FILE
from predicthub.models import UnifiedMarket

log = logging.getLogger(__name__)


class Watchlist:
    """
    Set of unified market ids. Every mutation is written straight back to disk;
    a missing or corrupt file loads as an empty watchlist.
    """

    def __init__(self, path: str = WATCHLIST_FILE) -> None:
        self.path = path
        self._ids: set[str] = self._load()

    def add(self, market_id: str) -> None:
        self._ids.add(market_id)
        self._save()

    def remove(self, market_id: str) -> None:
        self._ids.discard(market_id)
        self._save()

    def toggle(self, market_id: str) -> bool:
        """Returns True when the market is watched after the call."""
        if market_id in self._ids:
            self._ids.discard(market_id)
        else:
            self._ids.add(market_id)
        self._save()
        return market_id in self._ids

    def is_watched(self, market_id: str) -> bool:
        return market_id in self._ids

    def clear(self) -> None:
        self._ids.clear()
        self._save()

    def filter(self, markets: list[UnifiedMarket]) -> list[UnifiedMarket]:
        return [m for m in markets if m.id in self._ids]

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, market_id: str) -> bool:
        return market_id in self._ids

    def _load(self) -> set[str]:
        if not os.path.exists(self.path):
            return set()
        try:
            with open(self.path, encoding="utf-8") as f:
                parsed = json.load(f)
        except (OSError, ValueError):
            log.warning("Watchlist %s unreadable, starting empty", self.path, exc_info=True)
            return set()
        if not isinstance(parsed, list):
            log.warning("Watchlist %s is not a list, starting empty", self.path)
            return set()
        return {str(x) for x in parsed}

    def _save(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(sorted(self._ids), f)
