"""Tests for nudge/health.py: health classification."""

from conftest import ms
from nudge.clock import MS_PER_DAY
from nudge.health import compute_health_status, health_summary, tasks_needing_attention
from nudge.models import Task, WaitingOn


def _task(now: int, task_id: str = "t1", **fields) -> Task:
    fields.setdefault("status", "pool")
    fields.setdefault("created_at", now)
    fields.setdefault("updated_at", now)
    return Task(id=task_id, title=task_id.upper(), **fields)


def test_overdue_is_critical(now, config):
    info = compute_health_status(_task(now, deadline_date="2026-03-09"), now, config)
    assert (info.status, info.reason) == ("critical", "overdue")


def test_deadline_today_is_near(now, config):
    info = compute_health_status(_task(now, deadline_date="2026-03-10"), now, config)
    assert (info.status, info.reason) == ("at_risk", "deadline_near")


def test_deadline_near_window_edge(now, config):
    assert compute_health_status(_task(now, deadline_date="2026-03-13"), now, config).reason == "deadline_near"
    assert compute_health_status(_task(now, deadline_date="2026-03-14"), now, config).reason == "ok"


def test_waiting_too_long(now, config):
    long_ago = now - 15 * MS_PER_DAY
    task = _task(now, waiting_on=WaitingOn(who="Landlord", since=long_ago), updated_at=long_ago)
    info = compute_health_status(task, now, config)
    assert (info.status, info.reason) == ("critical", "waiting_too_long")


def test_recent_update_resets_waiting_clock(now, config):
    task = _task(
        now,
        waiting_on=WaitingOn(who="Landlord", since=now - 30 * MS_PER_DAY),
        updated_at=now - MS_PER_DAY,
    )
    assert compute_health_status(task, now, config).reason == "ok"


def test_overdue_wins_over_waiting(now, config):
    long_ago = now - 30 * MS_PER_DAY
    task = _task(
        now,
        deadline_date="2026-03-01",
        waiting_on=WaitingOn(who="Landlord", since=long_ago),
        updated_at=long_ago,
    )
    assert compute_health_status(task, now, config).reason == "overdue"


def test_stale(now, config):
    task = _task(now, updated_at=now - 22 * MS_PER_DAY)
    info = compute_health_status(task, now, config)
    assert (info.status, info.reason) == ("at_risk", "stale")


def test_deferred_task_is_not_stale(now, config):
    task = _task(now, updated_at=now - 40 * MS_PER_DAY, deferred_until="2026-03-20")
    assert compute_health_status(task, now, config).reason == "ok"


def test_resurfaced_task_can_be_stale(now, config):
    task = _task(now, updated_at=now - 40 * MS_PER_DAY, deferred_until="2026-03-10")
    assert compute_health_status(task, now, config).reason == "stale"


def test_waiting_task_is_not_stale(now, config):
    config.waiting_stale_days = 60
    task = _task(
        now,
        waiting_on=WaitingOn(who="Bank"),
        updated_at=now - 25 * MS_PER_DAY,
        created_at=now - 40 * MS_PER_DAY,
    )
    assert compute_health_status(task, now, config).reason == "ok"


def test_thresholds_come_from_config(now, config):
    config.stale_days = 5
    task = _task(now, updated_at=now - 6 * MS_PER_DAY)
    assert compute_health_status(task, now, config).reason == "stale"


def test_day_start_affects_overdue(config):
    config.day_start_hour = 3
    task = _task(ms(2026, 3, 9), deadline_date="2026-03-09")
    # 01:30 on the 10th still counts as the 9th
    assert compute_health_status(task, ms(2026, 3, 10, 1, 30), config).reason == "deadline_near"


def test_tasks_needing_attention_filters_and_sorts(now, config):
    tasks = [
        _task(now, "healthy"),
        _task(now, "near", deadline_date="2026-03-12"),
        _task(now, "overdue", deadline_date="2026-03-01"),
        _task(now, "inbox", status="inbox", deadline_date="2026-03-01"),
        _task(now, "done", status="complete", deadline_date="2026-03-01"),
        _task(now, "gone", deadline_date="2026-03-01", deleted_at=now),
    ]
    flagged = tasks_needing_attention(tasks, now, config)
    assert [(t.id, h.reason) for t, h in flagged] == [
        ("overdue", "overdue"),
        ("near", "deadline_near"),
    ]


def test_health_summary(now, config):
    tasks = [
        _task(now, "a"),
        _task(now, "b", deadline_date="2026-03-11"),
        _task(now, "c", deadline_date="2026-03-01"),
        _task(now, "d", status="inbox"),
    ]
    assert health_summary(tasks, now, config) == {"healthy": 1, "at_risk": 1, "critical": 1}
