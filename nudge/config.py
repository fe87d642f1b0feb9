"""Engine configuration: thresholds, priority weights and tier cut points.

Loaded from ``planner/settings.yaml``; every key is optional.

    timezone: Europe/Berlin
    day_start_hour: 3
    health:
      near_deadline_days: 3
      waiting_stale_days: 14
      stale_days: 21
    priority:
      deadline_lookahead_days: 14
      weights: {deadline: 40, importance: 25}
      tiers: {critical: 60, high: 40, medium: 20}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nudge.clock import today_iso
from nudge.fileio import read_yaml
from nudge.workspace import settings_path

logger = logging.getLogger(__name__)


def _section(d: dict[str, Any], key: str) -> dict[str, Any]:
    value = d.get(key)
    return value if isinstance(value, dict) else {}


@dataclass
class PriorityWeights:
    """Points each normalized factor contributes at full strength."""

    deadline: float = 40.0
    importance: float = 25.0
    energy: float = 10.0
    staleness: float = 15.0
    target: float = 15.0
    source: float = 20.0
    defer: float = 10.0
    streak: float = 12.0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PriorityWeights:
        if not d or not isinstance(d, dict):
            return cls()
        defaults = cls()
        return cls(**{
            f.name: float(d.get(f.name, getattr(defaults, f.name)))
            for f in fields(cls)
        })

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class TierThresholds:
    critical: float = 60.0
    high: float = 40.0
    medium: float = 20.0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TierThresholds:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            critical=float(d.get("critical", 60.0)),
            high=float(d.get("high", 40.0)),
            medium=float(d.get("medium", 20.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"critical": self.critical, "high": self.high, "medium": self.medium}


@dataclass
class EngineConfig:
    timezone: str | None = None  # IANA name; None = host local time
    day_start_hour: int = 0
    # scan bounds
    rollover_scan_days: int = 90
    streak_scan_days: int = 3660
    # health
    near_deadline_days: int = 3
    waiting_stale_days: int = 14
    stale_days: int = 21
    # priority
    deadline_lookahead_days: int = 14
    target_lookahead_days: int = 7
    staleness_ceiling_days: int = 30
    defer_ceiling: int = 3
    streak_ceiling: int = 8
    weights: PriorityWeights = field(default_factory=PriorityWeights)
    tiers: TierThresholds = field(default_factory=TierThresholds)
    # queue
    queue_stale_days: int = 3

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> EngineConfig:
        if not d or not isinstance(d, dict):
            return cls()
        health = _section(d, "health")
        priority = _section(d, "priority")
        queue = _section(d, "queue")
        hour = int(d.get("day_start_hour", 0) or 0)
        if not 0 <= hour <= 23:
            logger.warning("day_start_hour %s out of range, using 0", hour)
            hour = 0
        return cls(
            timezone=d.get("timezone") or None,
            day_start_hour=hour,
            rollover_scan_days=int(d.get("rollover_scan_days", 90)),
            streak_scan_days=int(d.get("streak_scan_days", 3660)),
            near_deadline_days=int(health.get("near_deadline_days", 3)),
            waiting_stale_days=int(health.get("waiting_stale_days", 14)),
            stale_days=int(health.get("stale_days", 21)),
            deadline_lookahead_days=int(priority.get("deadline_lookahead_days", 14)),
            target_lookahead_days=int(priority.get("target_lookahead_days", 7)),
            staleness_ceiling_days=int(priority.get("staleness_ceiling_days", 30)),
            defer_ceiling=int(priority.get("defer_ceiling", 3)),
            streak_ceiling=int(priority.get("streak_ceiling", 8)),
            weights=PriorityWeights.from_dict(_section(priority, "weights")),
            tiers=TierThresholds.from_dict(_section(priority, "tiers")),
            queue_stale_days=int(queue.get("stale_days", 3)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.timezone:
            d["timezone"] = self.timezone
        d.update({
            "day_start_hour": self.day_start_hour,
            "rollover_scan_days": self.rollover_scan_days,
            "streak_scan_days": self.streak_scan_days,
            "health": {
                "near_deadline_days": self.near_deadline_days,
                "waiting_stale_days": self.waiting_stale_days,
                "stale_days": self.stale_days,
            },
            "priority": {
                "deadline_lookahead_days": self.deadline_lookahead_days,
                "target_lookahead_days": self.target_lookahead_days,
                "staleness_ceiling_days": self.staleness_ceiling_days,
                "defer_ceiling": self.defer_ceiling,
                "streak_ceiling": self.streak_ceiling,
                "weights": self.weights.to_dict(),
                "tiers": self.tiers.to_dict(),
            },
            "queue": {"stale_days": self.queue_stale_days},
        })
        return d

    @property
    def tz(self) -> ZoneInfo | None:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, falling back to host local time", self.timezone)
            return None

    def today(self, now: int) -> str:
        """Logical today for *now* under this config's timezone and day start."""
        return today_iso(now, self.day_start_hour, self.tz)


DEFAULT_CONFIG = EngineConfig()


def load_config(root: Path | None = None) -> EngineConfig:
    """Load settings.yaml into an EngineConfig (defaults if missing)."""
    return EngineConfig.from_dict(read_yaml(settings_path(root)))
