"""Tests for nudge/instances.py: active occurrence, instances and streaks."""

from conftest import ms
from nudge.instances import (
    add_instance_step,
    best_streak,
    calculate_streak,
    demote_step,
    ensure_instance,
    filter_due_today,
    get_active_occurrence_date,
    mark_instance_complete,
    mark_instance_incomplete,
    next_due_date,
    occurrences_in_range,
    promote_step,
    recurring_stats,
    reset_instance_from_template,
    skip_instance,
    toggle_instance_step,
)
from nudge.models import RecurrenceRule, RecurringInstance, Step, Task


def _routine(
    frequency: str = "daily",
    start: str = "2026-03-01",
    steps: list[Step] | None = None,
    task_id: str = "r1",
    title: str = "Stretch",
    **rule,
) -> Task:
    return Task(
        id=task_id,
        title=title,
        status="pool",
        steps=steps or [],
        recurrence=RecurrenceRule(frequency=frequency, start_date=start, **rule),
        created_at=ms(2026, 3, 1),
        updated_at=ms(2026, 3, 1),
    )


def _done(*dates: str) -> list[RecurringInstance]:
    return [RecurringInstance(date=d, completed=True, completed_at=1) for d in dates]


# ── Active occurrence ─────────────────────────────────────────


def test_active_date_is_today_when_open(now, config):
    assert get_active_occurrence_date(_routine(), now, config) == "2026-03-10"


def test_active_date_stays_today_after_completion_without_rollover(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-10")
    assert get_active_occurrence_date(task, now, config) == "2026-03-10"
    assert filter_due_today([task], now, config) == []


def test_rollover_returns_most_recent_missed_date(now, config):
    # Mondays only; today is Tuesday 2026-03-10
    task = _routine("weekly", start="2026-03-02", days_of_week=[1], rollover_if_missed=True)
    assert get_active_occurrence_date(task, now, config) == "2026-03-09"


def test_rollover_stops_at_met_date(now, config):
    task = _routine("weekly", start="2026-03-02", days_of_week=[1], rollover_if_missed=True)
    task.recurring_instances = _done("2026-03-09")
    assert get_active_occurrence_date(task, now, config) is None


def test_no_rollover_on_non_matching_day(now, config):
    task = _routine("weekly", start="2026-03-02", days_of_week=[1])
    assert get_active_occurrence_date(task, now, config) is None


def test_non_recurring_task_has_no_active_date(now, config):
    assert get_active_occurrence_date(Task(id="t", title="Once"), now, config) is None


def test_paused_until_future(now, config):
    task = _routine(paused_until="2026-03-12")
    assert get_active_occurrence_date(task, now, config) is None


def test_paused_until_today_has_resumed(now, config):
    task = _routine(paused_until="2026-03-10")
    assert get_active_occurrence_date(task, now, config) == "2026-03-10"


def test_paused_indefinitely(now, config):
    task = _routine(paused_at=ms(2026, 3, 5))
    assert get_active_occurrence_date(task, now, config) is None
    assert recurring_stats(task, now, config)["paused"] is True


def test_day_start_hour_shifts_active_date(config):
    config.day_start_hour = 3
    task = _routine()
    assert get_active_occurrence_date(task, ms(2026, 3, 10, 1, 30), config) == "2026-03-09"


# ── Instances ─────────────────────────────────────────────────


def test_ensure_instance_is_idempotent():
    task = _routine(steps=[Step(id="s1", text="Neck"), Step(id="s2", text="Back")])
    first = ensure_instance(task, "2026-03-10")
    second = ensure_instance(task, "2026-03-10")
    assert first is second
    assert len(task.recurring_instances) == 1
    assert [s.template_id for s in first.routine_steps] == ["s1", "s2"]
    assert all(s.id not in ("s1", "s2") for s in first.routine_steps)


def test_instance_edits_do_not_touch_template():
    task = _routine(steps=[Step(id="s1", text="Neck")])
    instance = ensure_instance(task, "2026-03-10")
    instance.routine_steps[0].text = "Neck (gentle)"
    instance.routine_steps[0].completed = True
    assert task.steps[0].text == "Neck"
    assert task.steps[0].completed is False


def test_ensure_instance_reseeds_empty_open_instance():
    task = _routine()
    instance = ensure_instance(task, "2026-03-10")
    assert instance.routine_steps == []
    task.steps = [Step(id="s1", text="Neck")]
    assert [s.template_id for s in ensure_instance(task, "2026-03-10").routine_steps] == ["s1"]


def test_ensure_instance_leaves_met_instance_alone():
    task = _routine()
    task.recurring_instances = _done("2026-03-09")
    task.steps = [Step(id="s1", text="Neck")]
    assert ensure_instance(task, "2026-03-09").routine_steps == []


def test_mark_complete_and_incomplete(now):
    task = _routine(steps=[Step(id="s1", text="Neck"), Step(id="s2", text="Back")])
    instance = mark_instance_complete(task, "2026-03-10", now)
    assert instance.completed
    assert instance.completed_at == now
    assert all(s.completed for s in instance.steps)

    undone = mark_instance_incomplete(task, "2026-03-10", now)
    assert undone is instance
    assert not instance.completed
    assert not any(s.completed for s in instance.steps)


def test_mark_incomplete_without_instance(now):
    assert mark_instance_incomplete(_routine(), "2026-03-10", now) is None


def test_complete_after_skip_clears_skip(now):
    task = _routine()
    skip_instance(task, "2026-03-10", now)
    instance = mark_instance_complete(task, "2026-03-10", now)
    assert instance.completed
    assert not instance.skipped
    assert instance.skipped_at is None


def test_toggle_last_step_completes_instance(now):
    task = _routine(steps=[Step(id="s1", text="Neck"), Step(id="s2", text="Back")])
    instance = ensure_instance(task, "2026-03-10")
    a, b = instance.routine_steps
    toggle_instance_step(task, "2026-03-10", a.id, now)
    assert not instance.completed
    toggle_instance_step(task, "2026-03-10", b.id, now)
    assert instance.completed
    toggle_instance_step(task, "2026-03-10", b.id, now)
    assert not instance.completed
    assert b.completed_at is None


def test_add_instance_step_stays_off_template(now):
    task = _routine(steps=[Step(id="s1", text="Neck")])
    step = add_instance_step(task, "2026-03-10", "Wrists", now)
    instance = ensure_instance(task, "2026-03-10")
    assert step in instance.additional_steps
    assert [s.text for s in task.steps] == ["Neck"]


def test_promote_step_links_template(now):
    task = _routine(steps=[Step(id="s1", text="Neck")])
    step = add_instance_step(task, "2026-03-10", "Wrists", now)
    template_step = promote_step(task, "2026-03-10", step.id, now)
    instance = ensure_instance(task, "2026-03-10")
    assert [s.text for s in task.steps] == ["Neck", "Wrists"]
    assert step.template_id == template_step.id
    assert step in instance.routine_steps
    assert step not in instance.additional_steps


def test_demote_step_removes_template_source(now):
    task = _routine(steps=[Step(id="s1", text="Neck"), Step(id="s2", text="Back")])
    instance = ensure_instance(task, "2026-03-10")
    back = instance.routine_steps[1]
    demote_step(task, "2026-03-10", back.id, now)
    assert [s.id for s in task.steps] == ["s1"]
    assert back in instance.additional_steps
    assert back.template_id is None


def test_reset_instance_from_template(now):
    task = _routine(steps=[Step(id="s1", text="Neck")])
    mark_instance_complete(task, "2026-03-10", now)
    task.steps.append(Step(id="s2", text="Back"))
    instance = reset_instance_from_template(task, "2026-03-10", now)
    assert [s.template_id for s in instance.routine_steps] == ["s1", "s2"]
    assert not instance.completed


# ── Streaks & stats ───────────────────────────────────────────


def test_streak_ignores_open_today(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-07", "2026-03-08", "2026-03-09")
    assert calculate_streak(task, now, config) == 3


def test_streak_counts_completed_today(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-08", "2026-03-09", "2026-03-10")
    assert calculate_streak(task, now, config) == 3


def test_skip_breaks_streak(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-07", "2026-03-09")
    skip_instance(task, "2026-03-08", now)
    assert calculate_streak(task, now, config) == 1


def test_skipped_today_breaks_streak(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-08", "2026-03-09")
    skip_instance(task, "2026-03-10", now)
    assert calculate_streak(task, now, config) == 0


def test_missed_yesterday_resets_streak(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-07", "2026-03-08")
    assert calculate_streak(task, now, config) == 0


def test_weekly_streak_skips_non_matching_days(now, config):
    task = _routine("weekly", start="2026-03-02", days_of_week=[1])
    task.recurring_instances = _done("2026-03-02", "2026-03-09")
    assert calculate_streak(task, now, config) == 2


def test_best_streak(now, config):
    task = _routine()
    task.recurring_instances = _done(
        "2026-03-01", "2026-03-02", "2026-03-03", "2026-03-05", "2026-03-06"
    )
    assert calculate_streak(task, now, config) == 0
    assert best_streak(task, now, config) == 3


def test_next_due_date(now, config):
    task = _routine()
    assert next_due_date(task, now, config) == "2026-03-10"
    mark_instance_complete(task, "2026-03-10", now)
    assert next_due_date(task, now, config) == "2026-03-11"


def test_recurring_stats(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-08", "2026-03-09")
    stats = recurring_stats(task, now, config)
    assert stats["activeDate"] == "2026-03-10"
    assert stats["streak"] == 2
    assert stats["lastCompleted"] == "2026-03-09"
    assert stats["totalCompletions"] == 2
    assert stats["paused"] is False


# ── Views ─────────────────────────────────────────────────────


def test_filter_due_today_orders_by_date_then_time(now, config):
    evening = _routine(task_id="r1", title="Journal", time="21:00")
    morning = _routine(task_id="r2", title="Stretch", time="07:00")
    overdue = _routine(
        "weekly", start="2026-03-02", task_id="r3", title="Review",
        days_of_week=[1], rollover_if_missed=True,
    )
    archived = _routine(task_id="r4", title="Old")
    archived.status = "archived"
    due = filter_due_today([evening, morning, overdue, archived], now, config)
    assert [(t.id, d) for t, d in due] == [
        ("r3", "2026-03-09"),
        ("r2", "2026-03-10"),
        ("r1", "2026-03-10"),
    ]


def test_occurrences_in_range_statuses(now, config):
    task = _routine()
    task.recurring_instances = _done("2026-03-08")
    skip_instance(task, "2026-03-09", now)
    rows = occurrences_in_range(task, "2026-03-07", "2026-03-12", now, config)
    assert [(r["date"], r["status"]) for r in rows] == [
        ("2026-03-07", "missed"),
        ("2026-03-08", "completed"),
        ("2026-03-09", "skipped"),
        ("2026-03-10", "today"),
        ("2026-03-11", "pending"),
        ("2026-03-12", "pending"),
    ]


def test_occurrences_in_range_marks_rollover_overdue(now, config):
    task = _routine("weekly", start="2026-03-02", days_of_week=[1], rollover_if_missed=True)
    rows = occurrences_in_range(task, "2026-03-01", "2026-03-16", now, config)
    assert [(r["date"], r["status"]) for r in rows] == [
        ("2026-03-02", "missed"),
        ("2026-03-09", "overdue"),
        ("2026-03-16", "pending"),
    ]
