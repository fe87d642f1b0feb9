"""Tests for nudge/priority.py: factor scoring, tiers, ordering and energy filters."""

import pytest

from nudge.clock import MS_PER_DAY
from nudge.config import PriorityWeights
from nudge.models import RecurrenceRule, RecurringInstance, Task
from nudge.priority import (
    filter_tasks_by_energy,
    get_effective_deadline,
    get_energy_match_status,
    get_priority_tier,
    get_task_priority_info,
    get_tasks_for_priority_queue,
    group_by_tier,
    rank_tasks,
)


def _task(now: int, task_id: str = "t1", **fields) -> Task:
    fields.setdefault("status", "pool")
    fields.setdefault("created_at", now)
    fields.setdefault("updated_at", now)
    return Task(id=task_id, title=task_id, **fields)


# ── Score ─────────────────────────────────────────────────────


def test_fresh_task_baseline(now, config):
    info = get_task_priority_info(_task(now), None, now, config)
    assert info.breakdown["importance"] == pytest.approx(10)
    assert info.breakdown["energy"] == pytest.approx(5)
    assert info.score == pytest.approx(15)
    assert info.tier == "low"
    assert info.effective_deadline is None


def test_urgent_partner_task_is_critical(now, config):
    task = _task(now, importance="must_do", importance_source="partner", deadline_date="2026-03-10")
    info = get_task_priority_info(task, None, now, config)
    assert info.breakdown["deadline"] == pytest.approx(40)
    assert info.breakdown["source"] == pytest.approx(20)
    assert info.score == pytest.approx(90)
    assert info.tier == "critical"


def test_overdue_deadline_is_full_pressure(now, config):
    info = get_task_priority_info(_task(now, deadline_date="2026-02-01"), None, now, config)
    assert info.breakdown["deadline"] == pytest.approx(40)


def test_lead_time_pulls_deadline_forward(now, config):
    task = _task(now, deadline_date="2026-03-20", lead_time_days=7)
    assert get_effective_deadline(task) == "2026-03-13"
    info = get_task_priority_info(task, None, now, config)
    assert info.effective_deadline == "2026-03-13"
    assert info.breakdown["deadline"] == pytest.approx(40 * (1 - 3 / 14))


def test_deadline_beyond_lookahead_adds_nothing(now, config):
    info = get_task_priority_info(_task(now, deadline_date="2026-04-30"), None, now, config)
    assert info.breakdown["deadline"] == 0


def test_target_date_pressure(now, config):
    assert get_task_priority_info(_task(now, target_date="2026-03-10"), None, now, config).breakdown["target"] == pytest.approx(15)
    assert get_task_priority_info(_task(now, target_date="2026-03-17"), None, now, config).breakdown["target"] == 0


def test_staleness_grows_with_age(now, config):
    task = _task(now, updated_at=now - 15 * MS_PER_DAY)
    assert get_task_priority_info(task, None, now, config).breakdown["staleness"] == pytest.approx(7.5)
    task = _task(now, updated_at=now - 90 * MS_PER_DAY)
    assert get_task_priority_info(task, None, now, config).breakdown["staleness"] == pytest.approx(15)


def test_external_source_and_deferrals(now, config):
    task = _task(now, source="email", deferred_count=5)
    info = get_task_priority_info(task, None, now, config)
    assert info.breakdown["source"] == pytest.approx(15)
    assert info.breakdown["defer"] == pytest.approx(10)


def test_streak_factor_for_recurring(now, config):
    task = _task(
        now,
        recurrence=RecurrenceRule(frequency="daily", start_date="2026-03-01"),
        recurring_instances=[
            RecurringInstance(date=d, completed=True)
            for d in ("2026-03-06", "2026-03-07", "2026-03-08", "2026-03-09")
        ],
    )
    assert get_task_priority_info(task, None, now, config).breakdown["streak"] == pytest.approx(6)


def test_custom_weights(now, config):
    config.weights = PriorityWeights(importance=0, energy=0)
    assert get_task_priority_info(_task(now), None, now, config).score == 0


# ── Energy ────────────────────────────────────────────────────


def test_energy_match_status():
    assert get_energy_match_status("draining", "high") == "match"
    assert get_energy_match_status("energizing", "high") == "mismatch"
    assert get_energy_match_status("energizing", "low") == "match"
    assert get_energy_match_status("draining", "low") == "mismatch"
    assert get_energy_match_status("draining", "medium") == "neutral"
    assert get_energy_match_status("neutral", "high") == "neutral"
    assert get_energy_match_status(None, "high") == "neutral"
    assert get_energy_match_status("draining", None) == "neutral"


def test_energy_shifts_score(now, config):
    task = _task(now, energy_type="draining")
    assert get_task_priority_info(task, "high", now, config).breakdown["energy"] == pytest.approx(10)
    assert get_task_priority_info(task, "low", now, config).breakdown["energy"] == 0


# ── Tiers & ordering ──────────────────────────────────────────


def test_priority_tier_boundaries(config):
    assert get_priority_tier(60, config) == "critical"
    assert get_priority_tier(59.99, config) == "high"
    assert get_priority_tier(40, config) == "high"
    assert get_priority_tier(20, config) == "medium"
    assert get_priority_tier(19.99, config) == "low"


def test_rank_ties_break_on_deadline_then_created_then_id(now, config):
    tasks = [
        _task(now, "x2"),
        _task(now, "late", deadline_date="2026-06-01"),
        _task(now, "x1"),
        _task(now, "old", created_at=now - 1000),
        _task(now, "soon", deadline_date="2026-05-01"),
    ]
    ranked = rank_tasks(tasks, None, now, config)
    assert len({r.info.score for r in ranked}) == 1
    assert [r.task.id for r in ranked] == ["soon", "late", "old", "x1", "x2"]


def test_higher_score_ranks_first(now, config):
    tasks = [_task(now, "low"), _task(now, "high", importance="must_do")]
    assert [r.task.id for r in rank_tasks(tasks, None, now, config)] == ["high", "low"]


def test_priority_queue_excludes_closed_tasks(now, config):
    tasks = [
        _task(now, "pool"),
        _task(now, "inbox", status="inbox"),
        _task(now, "done", status="complete"),
        _task(now, "archived", status="archived"),
        _task(now, "gone", deleted_at=now),
    ]
    ids = {r.task.id for r in get_tasks_for_priority_queue(tasks, None, now, config)}
    assert ids == {"pool", "inbox"}


def test_priority_queue_hides_deferred_until_date_arrives(now, config):
    tasks = [
        _task(now, "later", deferred_until="2026-03-11"),
        _task(now, "today", deferred_until="2026-03-10"),
        _task(now, "past", deferred_until="2026-03-01"),
    ]
    ids = {r.task.id for r in get_tasks_for_priority_queue(tasks, None, now, config)}
    assert ids == {"today", "past"}


def test_group_by_tier(now, config):
    tasks = [
        _task(now, "urgent", importance="must_do", importance_source="partner", deadline_date="2026-03-10"),
        _task(now, "plain"),
    ]
    groups = group_by_tier(rank_tasks(tasks, None, now, config))
    assert list(groups) == ["critical", "high", "medium", "low"]
    assert [r.task.id for r in groups["critical"]] == ["urgent"]
    assert [r.task.id for r in groups["low"]] == ["plain"]


# ── Energy filter ─────────────────────────────────────────────


@pytest.fixture
def ranked(now, config):
    tasks = [
        _task(now, "drain", energy_type="draining"),
        _task(now, "energize", energy_type="energizing"),
        _task(now, "neutral", energy_type="neutral"),
        _task(
            now,
            "urgent",
            energy_type="energizing",
            importance="must_do",
            importance_source="partner",
            deadline_date="2026-03-10",
        ),
    ]
    return rank_tasks(tasks, "high", now, config)


def _ids(items):
    return {r.task.id for r in items}


def test_filter_all_keeps_everything(ranked):
    visible, hidden = filter_tasks_by_energy(ranked, "high", "all")
    assert _ids(visible) == {"drain", "energize", "neutral", "urgent"}
    assert hidden == []


def test_filter_hide_mismatched(ranked):
    visible, hidden = filter_tasks_by_energy(ranked, "high", "hide_mismatched")
    assert _ids(visible) == {"drain", "neutral", "urgent"}
    assert _ids(hidden) == {"energize"}


def test_filter_matching_keeps_critical(ranked):
    visible, hidden = filter_tasks_by_energy(ranked, "high", "matching")
    assert _ids(visible) == {"drain", "urgent"}
    assert _ids(hidden) == {"energize", "neutral"}


def test_filter_without_user_energy(ranked):
    visible, hidden = filter_tasks_by_energy(ranked, None, "matching")
    assert len(visible) == 4
    assert hidden == []


def test_filter_invalid_mode(ranked):
    with pytest.raises(ValueError, match="Invalid energy filter mode"):
        filter_tasks_by_energy(ranked, "high", "bogus")
