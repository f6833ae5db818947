"""
Base class for the platform adapters.

Each adapter converts one venue's public REST payloads into UnifiedMarket
records. The public methods never raise on network or payload trouble:

  fetch_markets()  -> FetchResult with error set and markets == []
  fetch_market()   -> None
  fetch_history()  -> HistoryResult with error set

Subclasses implement the _fetch_* hooks and may raise freely inside them.
"""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx

from predicthub.config import HTTP_TIMEOUT, USER_AGENT
from predicthub.history import HistoryRange, parse_range
from predicthub.models import (
    PLATFORM_NAMES,
    FetchResult,
    HistoryResult,
    Platform,
    UnifiedMarket,
)

log = logging.getLogger(__name__)

# Record-level parse failures: one bad market is skipped, the batch survives
RECORD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


class PlatformClient(ABC):
    """Shared HTTP plumbing and error reporting for one prediction-market venue."""

    platform: Platform

    def __init__(self, http: httpx.Client | None = None) -> None:
        self._http = http or httpx.Client(
            timeout=HTTP_TIMEOUT,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    @property
    def name(self) -> str:
        return PLATFORM_NAMES[self.platform]

    def fetch_markets(self) -> FetchResult:
        """Fetch and normalize the venue's open binary markets."""
        log.info("%s: fetching markets...", self.name)
        try:
            markets = self._fetch_markets()
        except httpx.HTTPStatusError as exc:
            error = f"{self.name} API returned {exc.response.status_code}"
            log.error("%s: %s", self.name, error)
            return FetchResult(platform=self.platform, error=error)
        except (httpx.HTTPError, *RECORD_ERRORS) as exc:
            error = str(exc) or exc.__class__.__name__
            log.error("%s: fetch failed: %s", self.name, error)
            return FetchResult(platform=self.platform, error=error)

        log.info("%s: parsed %d markets", self.name, len(markets))
        return FetchResult(platform=self.platform, markets=markets)

    def fetch_market(self, native_id: str) -> UnifiedMarket | None:
        """Look up one market by its platform-native id. None when missing or unreadable."""
        try:
            return self._fetch_market(native_id)
        except httpx.HTTPStatusError as exc:
            log.info("%s: market %s not available (%d)", self.name, native_id, exc.response.status_code)
        except (httpx.HTTPError, *RECORD_ERRORS) as exc:
            log.warning("%s: market %s lookup failed: %s", self.name, native_id, exc)
        return None

    def fetch_history(
        self,
        native_id: str,
        history_range: str | HistoryRange = HistoryRange.WEEK,
    ) -> HistoryResult:
        """Price history for one market; falls back to an estimated series where the venue allows."""
        if not native_id:
            return HistoryResult(error="Market ID is required")
        try:
            return self._fetch_history(native_id, parse_range(history_range))
        except (httpx.HTTPError, *RECORD_ERRORS) as exc:
            log.warning("%s: history for %s failed: %s", self.name, native_id, exc)
            return HistoryResult(error="Failed to fetch history")

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _fetch_markets(self) -> list[UnifiedMarket]:
        ...

    @abstractmethod
    def _fetch_market(self, native_id: str) -> UnifiedMarket | None:
        ...

    @abstractmethod
    def _fetch_history(self, native_id: str, history_range: HistoryRange) -> HistoryResult:
        ...

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        resp = self._http.get(url, params=params)
        resp.raise_for_status()
        return resp.json()

    def _normalize_all(self, raw_items: list[Any], normalize) -> list[UnifiedMarket]:
        """Apply *normalize* to each record, skipping records it rejects or cannot parse."""
        markets: list[UnifiedMarket] = []
        for raw in raw_items:
            try:
                market = normalize(raw)
            except RECORD_ERRORS:
                log.debug("%s: skipping unparseable record", self.name, exc_info=True)
                continue
            if market is not None:
                markets.append(market)
        return markets


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def parse_iso(s: str) -> datetime | None:
    """Parse ISO 8601 UTC string to datetime. Returns None on failure."""
    for fmt in ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S"):
        try:
            dt = datetime.strptime(s, fmt)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)
        except (ValueError, TypeError):
            continue
    # fromisoformat handles microseconds and bare dates
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError, TypeError):
        return None


def epoch_ms_to_iso(value: Any) -> str | None:
    """Epoch milliseconds to an ISO 8601 UTC string ("2025-01-31T00:00:00.000Z")."""
    ms = to_float(value)
    if not ms:
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def to_float(value: Any) -> float | None:
    """Float from a number or numeric string. None when missing, unparseable or NaN."""
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) else f


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def fraction_to_percent(value: Any, default: int = 50) -> int:
    """0-1 probability to a whole percentage in [0, 100]; *default* when unparseable."""
    f = to_float(value)
    if f is None:
        return default
    return int(clamp(round_half_up(f * 100), 0, 100))


def parse_json_field(value: Any) -> list | None:
    """Parse a field that may be a stringified JSON list or already a list."""
    if value is None:
        return None
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return parsed
        except (json.JSONDecodeError, TypeError):
            pass
    return None
