"""Pool views: which open tasks are visible today, which are parked, and what to pull next.

Deferred tasks (``deferredUntil`` after today) drop out of every active view
until their date arrives; from then on they count as resurfaced. Waiting-on
is only a flag and stays visible unless a caller asks otherwise.
"""

from __future__ import annotations

from typing import Any

from nudge.clock import add_days
from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.health import has_resurfaced, is_active, is_deferred, is_waiting_on
from nudge.models import FocusQueue, Task
from nudge.priority import RankedTask, rank_tasks
from nudge.queue import is_task_in_queue

SUGGESTION_LIMIT = 3
_HIGH_TIERS = ("critical", "high")


def get_pool_tasks(
    tasks: list[Task],
    today: str,
    include_deferred: bool = False,
    include_waiting: bool = True,
    queue: FocusQueue | None = None,
) -> list[Task]:
    """Live pool tasks. Pass *queue* to leave out tasks already queued."""
    pool = [t for t in tasks if is_active(t)]
    if not include_deferred:
        pool = [t for t in pool if not is_deferred(t, today)]
    if not include_waiting:
        pool = [t for t in pool if not is_waiting_on(t)]
    if queue is not None:
        pool = [t for t in pool if not is_task_in_queue(queue, t.id)]
    return pool


def get_inbox_tasks(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if t.status == "inbox" and not t.is_deleted]


def get_deferred_tasks(tasks: list[Task], today: str) -> list[Task]:
    return [t for t in tasks if is_active(t) and is_deferred(t, today)]


def get_resurfaced_tasks(tasks: list[Task], today: str) -> list[Task]:
    return [t for t in tasks if is_active(t) and has_resurfaced(t, today)]


def get_waiting_on_tasks(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if is_active(t) and is_waiting_on(t)]


def _due_between(task: Task, today: str, last_day: str) -> bool:
    return task.deadline_date is not None and today <= task.deadline_date <= last_day


def get_pool_counts(tasks: list[Task], today: str) -> dict[str, int]:
    pool = [t for t in tasks if is_active(t)]
    inbox = get_inbox_tasks(tasks)
    week_out = add_days(today, 7)
    return {
        "total": len(pool) + len(inbox),
        "inbox": len(inbox),
        "pool": sum(1 for t in pool if not is_deferred(t, today)),
        "resurfaced": sum(1 for t in pool if has_resurfaced(t, today)),
        "waitingOn": sum(1 for t in pool if is_waiting_on(t)),
        "deferred": sum(1 for t in pool if is_deferred(t, today)),
        "highPriority": sum(1 for t in pool if t.priority == "high"),
        "dueThisWeek": sum(1 for t in pool if _due_between(t, today, week_out)),
    }


# ── Suggestions ───────────────────────────────────────────────


def get_high_priority_not_in_queue(
    tasks: list[Task],
    queue: FocusQueue,
    user_energy: str | None,
    now: int,
    config: EngineConfig | None = None,
    limit: int = SUGGESTION_LIMIT,
) -> list[RankedTask]:
    """Visible pool tasks in the critical or high tier that are not queued yet."""
    config = config or DEFAULT_CONFIG
    candidates = get_pool_tasks(tasks, config.today(now), queue=queue)
    ranked = rank_tasks(candidates, user_energy, now, config)
    return [r for r in ranked if r.info.tier in _HIGH_TIERS][:limit]


def get_deadline_approaching(
    tasks: list[Task],
    queue: FocusQueue,
    today: str,
    days_ahead: int = 3,
    limit: int = SUGGESTION_LIMIT,
) -> list[Task]:
    """Unqueued pool tasks whose deadline falls within *days_ahead*, soonest first."""
    last_day = add_days(today, days_ahead)
    due = [t for t in get_pool_tasks(tasks, today, queue=queue) if _due_between(t, today, last_day)]
    due.sort(key=lambda t: (t.deadline_date, t.created_at, t.id))
    return due[:limit]


def pool_overview(
    tasks: list[Task],
    queue: FocusQueue,
    user_energy: str | None,
    now: int,
    config: EngineConfig | None = None,
) -> dict[str, Any]:
    config = config or DEFAULT_CONFIG
    today = config.today(now)
    visible = rank_tasks(get_pool_tasks(tasks, today), user_energy, now, config)
    return {
        "today": today,
        "tasks": [r.to_dict() for r in visible],
        "resurfaced": [t.to_dict() for t in get_resurfaced_tasks(tasks, today)],
        "waitingOn": [t.to_dict() for t in get_waiting_on_tasks(tasks)],
        "deferred": [t.to_dict() for t in get_deferred_tasks(tasks, today)],
        "counts": get_pool_counts(tasks, today),
        "suggestions": {
            "highPriority": [
                r.to_dict() for r in get_high_priority_not_in_queue(tasks, queue, user_energy, now, config)
            ],
            "deadlineApproaching": [
                t.to_dict()
                for t in get_deadline_approaching(tasks, queue, today, config.near_deadline_days)
            ],
        },
    }
