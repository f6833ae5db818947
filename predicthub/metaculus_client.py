"""Metaculus connector: open binary forecasting questions.

Metaculus has no money at stake; "volume" is the forecaster count and the
probability is the community aggregate.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from predicthub.categories import infer_category
from predicthub.config import (
    METACULUS_API_URL,
    METACULUS_ESTIMATED_STEP,
    METACULUS_PAGE_LIMIT,
    METACULUS_QUESTION_API_URL,
    METACULUS_QUESTION_URL,
)
from predicthub.history import HistoryRange, clean_history, estimate_history, range_start
from predicthub.models import HistoryResult, Platform, PricePoint, UnifiedMarket
from predicthub.platform_client import PlatformClient, fraction_to_percent, parse_iso, to_float

log = logging.getLogger(__name__)


class MetaculusClient(PlatformClient):
    platform = Platform.METACULUS

    def _fetch_markets(self) -> list[UnifiedMarket]:
        params = {
            "limit": METACULUS_PAGE_LIMIT,
            "status": "open",
            "order_by": "-activity",
            "type": "forecast",
        }
        data = self._get_json(f"{METACULUS_API_URL}/questions/", params=params)
        raw = data.get("results") or []
        if not isinstance(raw, list):
            raise ValueError(f"Metaculus results is a {type(raw).__name__}, expected a list")
        log.info("Metaculus: API returned %d raw questions", len(raw))
        return self._normalize_all(raw, _normalize_question)

    def _fetch_market(self, native_id: str) -> UnifiedMarket | None:
        data = self._get_json(f"{METACULUS_QUESTION_API_URL}/questions/{native_id}/")
        return _normalize_question(data)

    def _fetch_history(self, native_id: str, history_range: HistoryRange) -> HistoryResult:
        try:
            data = self._get_json(f"{METACULUS_QUESTION_API_URL}/questions/{native_id}/")
        except httpx.HTTPStatusError:
            return HistoryResult(error="Question not found")

        community = data.get("community_prediction") or {}
        history = community.get("history")
        if isinstance(history, list) and history:
            points = _parse_prediction_history(history, range_start(history_range))
            if points:
                return HistoryResult(points=points, source="metaculus")

        current = (
            to_float((community.get("full") or {}).get("q2"))
            or to_float(((data.get("metaculus_prediction") or {}).get("full") or {}).get("q2"))
            or 0.5
        )
        points = estimate_history(current * 100, history_range, step=METACULUS_ESTIMATED_STEP)
        return HistoryResult(points=points, source="estimated")


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _normalize_question(item: dict[str, Any]) -> UnifiedMarket | None:
    """Skip resolved and non-binary questions."""
    if item.get("resolved"):
        return None

    question_data = item.get("question") or {}
    question_type = question_data.get("type")
    if question_type and question_type != "binary":
        return None

    title = item.get("title") or item.get("short_title")
    if not title:
        return None

    forecasters = (
        item.get("nr_forecasters")
        or item.get("forecasts_count")
        or item.get("number_of_forecasters")
        or 0
    )

    return UnifiedMarket(
        id=f"metaculus-{item['id']}",
        question=title,
        platform=Platform.METACULUS,
        probability=_question_probability(item),
        volume=float(forecasters),
        volume_label="Forecasters",
        category=infer_category(title),
        end_date=item.get("scheduled_close_time") or item.get("close_time") or None,
        url=METACULUS_QUESTION_URL.format(id=item["id"], slug=item.get("slug") or "") + "/",
        is_play_money=True,
        history_id=str(item["id"]),
    )


def _question_probability(item: dict[str, Any]) -> int:
    """
    Recency-weighted aggregate center when present (api2 listing shape),
    else the legacy community_prediction median, else 50.
    """
    aggregations = (item.get("question") or {}).get("aggregations") or {}
    latest = (aggregations.get("recency_weighted") or {}).get("latest") or {}
    centers = latest.get("centers") or []
    if centers:
        return fraction_to_percent(centers[0])

    q2 = ((item.get("community_prediction") or {}).get("full") or {}).get("q2")
    if q2 is not None:
        return fraction_to_percent(q2)
    return 50


def _parse_prediction_history(history: list[dict[str, Any]], start: int) -> list[PricePoint]:
    """Points come as {x: epoch, y: prob} or {time|t: iso, q2: median}."""
    points: list[PricePoint] = []
    for point in history:
        ts = _point_time(point)
        if ts is None or ts < start:
            continue
        if point.get("y") is not None:
            value = to_float(point["y"])
        else:
            value = to_float(point.get("q2"))
        if value is None:
            continue
        points.append(PricePoint(time=ts, value=value * 100))
    return clean_history(points)


def _point_time(point: dict[str, Any]) -> int | None:
    x = to_float(point.get("x"))
    if x:
        return int(x)
    raw = point.get("time") or point.get("t")
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return int(raw)
    dt = parse_iso(raw) if isinstance(raw, str) else None
    return int(dt.timestamp()) if dt else None
