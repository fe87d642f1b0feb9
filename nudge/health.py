"""Health classification: which tasks are at risk of being neglected."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from nudge.clock import MS_PER_DAY, days_between
from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.models import Task

HEALTHY = "healthy"
AT_RISK = "at_risk"
CRITICAL = "critical"

_SEVERITY = {CRITICAL: 0, AT_RISK: 1, HEALTHY: 2}


@dataclass(frozen=True)
class HealthInfo:
    status: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "reason": self.reason}


def is_active(task: Task) -> bool:
    """Tasks the classifier applies to: in the pool and not soft-deleted."""
    return task.status == "pool" and not task.is_deleted


def active_tasks(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if is_active(t)]


def is_deferred(task: Task, today: str) -> bool:
    return task.deferred_until is not None and task.deferred_until > today


def has_resurfaced(task: Task, today: str) -> bool:
    """Deferred date has arrived; the task is back in active views."""
    return task.deferred_until is not None and task.deferred_until <= today


def is_waiting_on(task: Task) -> bool:
    return task.waiting_on is not None


def compute_health_status(task: Task, now: int, config: EngineConfig | None = None) -> HealthInfo:
    """Classify *task*; the first matching rule wins.

    1. critical  overdue           deadline strictly before today
    2. critical  waiting_too_long  blocked longer than waiting_stale_days with no update since
    3. at_risk   deadline_near     deadline within near_deadline_days
    4. at_risk   stale             untouched for stale_days, not deferred or waiting
    5. healthy   ok

    Assumes the caller already filtered to active tasks.
    """
    config = config or DEFAULT_CONFIG
    today = config.today(now)
    deadline = task.deadline_date

    if deadline and deadline < today:
        return HealthInfo(CRITICAL, "overdue")

    if task.waiting_on is not None:
        since = max(task.waiting_on.since or 0, task.updated_at)
        if now - since > config.waiting_stale_days * MS_PER_DAY:
            return HealthInfo(CRITICAL, "waiting_too_long")

    if deadline and days_between(today, deadline) <= config.near_deadline_days:
        return HealthInfo(AT_RISK, "deadline_near")

    if (
        not is_deferred(task, today)
        and not is_waiting_on(task)
        and now - task.updated_at > config.stale_days * MS_PER_DAY
    ):
        return HealthInfo(AT_RISK, "stale")

    return HealthInfo(HEALTHY, "ok")


def tasks_needing_attention(
    tasks: list[Task], now: int, config: EngineConfig | None = None
) -> list[tuple[Task, HealthInfo]]:
    """Active tasks that are not healthy, most severe first."""
    flagged = []
    for task in active_tasks(tasks):
        info = compute_health_status(task, now, config)
        if info.status != HEALTHY:
            flagged.append((task, info))
    flagged.sort(key=lambda pair: (_SEVERITY[pair[1].status], pair[0].deadline_date or "9999-12-31", pair[0].created_at))
    return flagged


def health_summary(tasks: list[Task], now: int, config: EngineConfig | None = None) -> dict[str, int]:
    counts = {HEALTHY: 0, AT_RISK: 0, CRITICAL: 0}
    for task in active_tasks(tasks):
        counts[compute_health_status(task, now, config).status] += 1
    return counts
