"""
Price alerts on unified markets.

An alert fires once: when an untriggered alert's market is in the snapshot and
its probability is >= threshold ("above") or <= threshold ("below"), the alert
is marked triggered and stays that way. Alerts whose market is missing from the
snapshot are left unchanged.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from predicthub.models import Platform, UnifiedMarket

log = logging.getLogger(__name__)

_DEFAULT_OFFSET = 10.0   # Suggested threshold: current probability +/- 10 pts


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"


@dataclass(frozen=True)
class Alert:
    id: str
    market_id: str
    market_question: str
    platform: Platform
    condition: AlertCondition
    threshold: float
    created_at: str
    triggered: bool = False

    def is_met(self, probability: float) -> bool:
        if self.condition == AlertCondition.ABOVE:
            return probability >= self.threshold
        return probability <= self.threshold

    def to_dict(self) -> dict:
        d = asdict(self)
        d["platform"] = self.platform.value
        d["condition"] = self.condition.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Alert:
        return cls(
            id=d["id"],
            market_id=d["market_id"],
            market_question=d.get("market_question", ""),
            platform=Platform(d["platform"]),
            condition=AlertCondition(d["condition"]),
            threshold=float(d["threshold"]),
            created_at=d.get("created_at", ""),
            triggered=bool(d.get("triggered", False)),
        )


def new_alert(
    market: UnifiedMarket,
    condition: AlertCondition = AlertCondition.ABOVE,
    threshold: float | None = None,
) -> Alert:
    """
    Create an untriggered alert for *market*.

    Without an explicit threshold, suggests the current probability moved
    10 points in the alert's direction, rounded and kept within [0, 100].
    """
    if threshold is None:
        offset = _DEFAULT_OFFSET if condition == AlertCondition.ABOVE else -_DEFAULT_OFFSET
        threshold = float(max(0, min(100, round(market.probability + offset))))

    return Alert(
        id=f"alert-{uuid.uuid4().hex}",
        market_id=market.id,
        market_question=market.question,
        platform=market.platform,
        condition=condition,
        threshold=threshold,
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def check_alerts(
    alerts: list[Alert],
    markets: list[UnifiedMarket],
) -> tuple[list[Alert], list[Alert]]:
    """
    Evaluate alerts against a snapshot.

    Returns (updated, newly_triggered): updated has one entry per input alert,
    in the same order; newly_triggered holds only alerts that fired this call.
    """
    by_id = {m.id: m for m in markets}
    updated: list[Alert] = []
    fired: list[Alert] = []

    for alert in alerts:
        market = by_id.get(alert.market_id)
        if alert.triggered or market is None or not alert.is_met(market.probability):
            updated.append(alert)
            continue

        hit = replace(alert, triggered=True)
        updated.append(hit)
        fired.append(hit)
        log.info(
            "ALERT | %s | %s %.0f%% | now %.1f%% | %s",
            alert.market_id, alert.condition.value, alert.threshold,
            market.probability, market.question[:80],
        )

    return updated, fired


class AlertStore:
    """Alerts persisted as a JSON list. A missing or unreadable file loads as empty."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> list[Alert]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            return [Alert.from_dict(d) for d in raw]
        except (OSError, ValueError, KeyError, TypeError):
            log.warning("Alert file %s unreadable, starting empty", self.path, exc_info=True)
            return []

    def save(self, alerts: list[Alert]) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([a.to_dict() for a in alerts], f, indent=2)

    def add(self, alert: Alert) -> list[Alert]:
        alerts = self.load() + [alert]
        self.save(alerts)
        return alerts

    def delete(self, alert_id: str) -> list[Alert]:
        alerts = [a for a in self.load() if a.id != alert_id]
        self.save(alerts)
        return alerts
