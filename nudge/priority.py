"""Priority scoring: a weighted sum of normalized factors mapped to a tier.

Each factor is normalized to [0, 1] and multiplied by its weight from
``EngineConfig.weights``. Energy is the exception: a mismatch is 0, an
unset or neutral pairing is 0.5 and a match is 1.0, so it shifts scores
without a separate penalty term.

Ordering within a list is total and stable across calls: higher score,
then earlier deadline, then earlier creation, then id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nudge.clock import add_days, days_between, days_since
from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.health import is_deferred
from nudge.instances import calculate_streak
from nudge.models import Task

TIERS = ("critical", "high", "medium", "low")
FILTER_MODES = ("all", "matching", "hide_mismatched")

IMPORTANCE_FACTORS = {
    "must_do": 1.0,
    "should_do": 0.6,
    "could_do": 0.2,
    "would_like_to": 0.0,
}
UNSET_IMPORTANCE = 0.4

ENERGY_FACTORS = {"match": 1.0, "neutral": 0.5, "mismatch": 0.0}
EXTERNAL_SOURCES = {"email", "calendar", "shared"}

_NO_DEADLINE = "9999-12-31"


@dataclass(frozen=True)
class PriorityInfo:
    score: float
    tier: str
    effective_deadline: str | None = None
    breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": round(self.score, 2),
            "tier": self.tier,
            "effectiveDeadline": self.effective_deadline,
            "breakdown": {k: round(v, 2) for k, v in self.breakdown.items()},
        }


@dataclass
class RankedTask:
    task: Task
    info: PriorityInfo

    def to_dict(self) -> dict[str, Any]:
        d = self.task.to_dict()
        d["priorityInfo"] = self.info.to_dict()
        return d


# ── Factors ───────────────────────────────────────────────────


def get_effective_deadline(task: Task) -> str | None:
    """Deadline pulled earlier by the task's lead time."""
    if not task.deadline_date:
        return None
    return add_days(task.deadline_date, -max(0, task.lead_time_days))


def _linear_pressure(today: str, due: str | None, window_days: int) -> float:
    if not due:
        return 0.0
    remaining = days_between(today, due)
    if remaining < 0:
        return 1.0
    if window_days <= 0:
        return 1.0 if remaining == 0 else 0.0
    return max(0.0, 1.0 - remaining / window_days)


def deadline_factor(task: Task, today: str, config: EngineConfig) -> float:
    return _linear_pressure(today, get_effective_deadline(task), config.deadline_lookahead_days)


def target_factor(task: Task, today: str, config: EngineConfig) -> float:
    return _linear_pressure(today, task.target_date, config.target_lookahead_days)


def importance_factor(importance: str | None) -> float:
    return IMPORTANCE_FACTORS.get(importance or "", UNSET_IMPORTANCE)


def staleness_factor(updated_at: int, now: int, config: EngineConfig) -> float:
    if config.staleness_ceiling_days <= 0:
        return 0.0
    return min(1.0, max(0.0, days_since(updated_at, now) / config.staleness_ceiling_days))


def source_factor(task: Task) -> float:
    if task.importance_source == "partner":
        return 1.0
    if task.source in EXTERNAL_SOURCES:
        return 0.75
    return 0.0


def defer_factor(deferred_count: int, config: EngineConfig) -> float:
    if config.defer_ceiling <= 0:
        return 0.0
    return min(1.0, max(0, deferred_count) / config.defer_ceiling)


def streak_factor(task: Task, now: int, config: EngineConfig) -> float:
    """A long streak on a recurring task is worth protecting."""
    if task.recurrence is None or config.streak_ceiling <= 0:
        return 0.0
    return min(1.0, calculate_streak(task, now, config) / config.streak_ceiling)


def get_energy_match_status(task_energy: str | None, user_energy: str | None) -> str:
    """'match', 'mismatch' or 'neutral'.

    High energy suits draining tasks and low energy suits energizing ones.
    Medium energy, neutral tasks and anything unset are neutral.
    """
    if not task_energy or not user_energy:
        return "neutral"
    if task_energy == "neutral" or user_energy == "medium":
        return "neutral"
    if user_energy == "high":
        if task_energy == "draining":
            return "match"
        if task_energy == "energizing":
            return "mismatch"
    if user_energy == "low":
        if task_energy == "energizing":
            return "match"
        if task_energy == "draining":
            return "mismatch"
    return "neutral"


def energy_factor(task_energy: str | None, user_energy: str | None) -> float:
    return ENERGY_FACTORS[get_energy_match_status(task_energy, user_energy)]


# ── Score & tier ──────────────────────────────────────────────


def get_priority_tier(score: float, config: EngineConfig | None = None) -> str:
    tiers = (config or DEFAULT_CONFIG).tiers
    if score >= tiers.critical:
        return "critical"
    if score >= tiers.high:
        return "high"
    if score >= tiers.medium:
        return "medium"
    return "low"


def get_task_priority_info(
    task: Task, user_energy: str | None, now: int, config: EngineConfig | None = None
) -> PriorityInfo:
    config = config or DEFAULT_CONFIG
    today = config.today(now)
    w = config.weights
    breakdown = {
        "deadline": w.deadline * deadline_factor(task, today, config),
        "importance": w.importance * importance_factor(task.importance),
        "energy": w.energy * energy_factor(task.energy_type, user_energy),
        "staleness": w.staleness * staleness_factor(task.updated_at, now, config),
        "target": w.target * target_factor(task, today, config),
        "source": w.source * source_factor(task),
        "defer": w.defer * defer_factor(task.deferred_count, config),
        "streak": w.streak * streak_factor(task, now, config),
    }
    score = round(sum(breakdown.values()), 6)
    return PriorityInfo(
        score=score,
        tier=get_priority_tier(score, config),
        effective_deadline=get_effective_deadline(task),
        breakdown=breakdown,
    )


def priority_sort_key(ranked: RankedTask) -> tuple[float, str, int, str]:
    return (
        -ranked.info.score,
        ranked.task.deadline_date or _NO_DEADLINE,
        ranked.task.created_at,
        ranked.task.id,
    )


def rank_tasks(
    tasks: list[Task], user_energy: str | None, now: int, config: EngineConfig | None = None
) -> list[RankedTask]:
    ranked = [RankedTask(t, get_task_priority_info(t, user_energy, now, config)) for t in tasks]
    ranked.sort(key=priority_sort_key)
    return ranked


def get_tasks_for_priority_queue(
    tasks: list[Task], user_energy: str | None, now: int, config: EngineConfig | None = None
) -> list[RankedTask]:
    """Rank every open task that is not soft-deleted or deferred past today."""
    config = config or DEFAULT_CONFIG
    today = config.today(now)
    candidates = [
        t for t in tasks
        if t.status not in ("complete", "archived") and not t.is_deleted and not is_deferred(t, today)
    ]
    return rank_tasks(candidates, user_energy, now, config)


def group_by_tier(ranked: list[RankedTask]) -> dict[str, list[RankedTask]]:
    groups: dict[str, list[RankedTask]] = {tier: [] for tier in TIERS}
    for item in ranked:
        groups[item.info.tier].append(item)
    return groups


def filter_tasks_by_energy(
    ranked: list[RankedTask], user_energy: str | None, mode: str = "all"
) -> tuple[list[RankedTask], list[RankedTask]]:
    """Split into (visible, hidden). Critical tasks are always visible.

    ``hide_mismatched`` hides hard mismatches only; ``matching`` keeps only
    exact matches.
    """
    if mode not in FILTER_MODES:
        raise ValueError(f"Invalid energy filter mode: {mode}")
    if mode == "all" or not user_energy:
        return list(ranked), []

    visible: list[RankedTask] = []
    hidden: list[RankedTask] = []
    for item in ranked:
        status = get_energy_match_status(item.task.energy_type, user_energy)
        if item.info.tier == "critical":
            visible.append(item)
        elif mode == "hide_mismatched":
            (hidden if status == "mismatch" else visible).append(item)
        else:
            (visible if status == "match" else hidden).append(item)
    return visible, hidden
