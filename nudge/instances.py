"""Recurring task instances: active occurrence, lazy materialization, streaks.

A recurring task is a template (``Task.steps``) plus one RecurringInstance
per activated date. Instances own cloned copies of the template steps, so
editing an instance never touches the template. Steps move between the two
only through promote_step / demote_step.

Streaks, next-due dates and completion totals are derived here on every
call and are never stored on the task.
"""

from __future__ import annotations

import logging
from typing import Any

from nudge.clock import add_days, date_range, days_between, timestamp_to_local_date
from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.models import RecurrenceRule, RecurringInstance, Step, Task, new_id
from nudge.recurrence import date_matches_pattern, next_occurrence, validate_rule

logger = logging.getLogger(__name__)

MAX_CALENDAR_DAYS = 400


# ── Lookup ────────────────────────────────────────────────────


def effective_start_date(task: Task, config: EngineConfig | None = None) -> str:
    """Rule start date, falling back to the local date the task was created."""
    config = config or DEFAULT_CONFIG
    if task.recurrence is not None and task.recurrence.start_date:
        return task.recurrence.start_date
    return timestamp_to_local_date(task.created_at, config.tz)


def find_instance(task: Task, date: str) -> RecurringInstance | None:
    for instance in task.recurring_instances:
        if instance.date == date:
            return instance
    return None


def is_paused(rule: RecurrenceRule, today: str) -> bool:
    """Paused indefinitely via ``paused_at``, or until ``paused_until`` (exclusive)."""
    if rule.paused_until:
        return today < rule.paused_until
    return rule.paused_at is not None


def _is_met(instance: RecurringInstance | None) -> bool:
    return instance is not None and instance.is_met


# ── Active occurrence ─────────────────────────────────────────


def get_active_occurrence_date(
    task: Task, now: int, config: EngineConfig | None = None
) -> str | None:
    """The date the user should be working on for this recurring task.

    Today if it matches and is still open. Otherwise, with rollover on, the
    most recent unmet matching date within ``rollover_scan_days`` (a met
    date ends the scan). Otherwise today if it matches, else None.
    """
    config = config or DEFAULT_CONFIG
    rule = task.recurrence
    if rule is None:
        return None
    today = config.today(now)
    if is_paused(rule, today):
        return None

    start = effective_start_date(task, config)
    today_matches = date_matches_pattern(today, rule, start)
    if today_matches and not _is_met(find_instance(task, today)):
        return today

    if rule.rollover_if_missed:
        day = today
        for _ in range(config.rollover_scan_days):
            day = add_days(day, -1)
            if day < start:
                break
            if not date_matches_pattern(day, rule, start):
                continue
            if _is_met(find_instance(task, day)):
                break
            return day

    return today if today_matches else None


# ── Materialization ───────────────────────────────────────────


def clone_steps(steps: list[Step]) -> list[Step]:
    """Fresh, incomplete copies of template steps linked back via template_id."""
    return [
        Step(
            id=new_id(),
            text=s.text,
            estimated_minutes=s.estimated_minutes,
            template_id=s.id,
        )
        for s in steps
    ]


def ensure_instance(task: Task, date: str) -> RecurringInstance:
    """Find or create the instance for *date*; the only place instances are created."""
    existing = find_instance(task, date)
    if existing is not None:
        # Seeded before the template had steps; pick them up while still open.
        if not existing.routine_steps and task.steps and not existing.is_met:
            existing.routine_steps = clone_steps(task.steps)
        return existing

    instance = RecurringInstance(date=date, routine_steps=clone_steps(task.steps))
    task.recurring_instances.append(instance)
    logger.debug("Created instance %s for task %s", date, task.id)
    return instance


# ── Streaks & stats ───────────────────────────────────────────


def calculate_streak(task: Task, now: int, config: EngineConfig | None = None) -> int:
    """Consecutive completed occurrences ending at the most recent one.

    Today's occurrence does not break the streak while it is still open.
    Any other matching date that is skipped or not completed ends it.
    """
    config = config or DEFAULT_CONFIG
    rule = task.recurrence
    if rule is None:
        return 0
    today = config.today(now)
    start = effective_start_date(task, config)
    by_date = {i.date: i for i in task.recurring_instances}

    streak = 0
    day = today
    for _ in range(config.streak_scan_days):
        if day < start:
            break
        if date_matches_pattern(day, rule, start):
            instance = by_date.get(day)
            if instance is not None and instance.completed:
                streak += 1
            elif day == today and not (instance is not None and instance.skipped):
                pass
            else:
                break
        day = add_days(day, -1)
    return streak


def best_streak(task: Task, now: int, config: EngineConfig | None = None) -> int:
    """Longest run of consecutive completed occurrences up to today."""
    config = config or DEFAULT_CONFIG
    rule = task.recurrence
    if rule is None or validate_rule(rule):
        return 0
    today = config.today(now)
    anchor = effective_start_date(task, config)
    start = max(anchor, add_days(today, -config.streak_scan_days))
    if start > today:
        return 0
    by_date = {i.date: i for i in task.recurring_instances}

    best = run = 0
    for day in date_range(start, today):
        if not date_matches_pattern(day, rule, anchor):
            continue
        instance = by_date.get(day)
        if instance is not None and instance.completed:
            run += 1
            best = max(best, run)
        elif day != today or (instance is not None and instance.skipped):
            run = 0
    return best


def next_due_date(task: Task, now: int, config: EngineConfig | None = None) -> str | None:
    """The open active occurrence, else the next matching date after today."""
    config = config or DEFAULT_CONFIG
    rule = task.recurrence
    if rule is None:
        return None
    today = config.today(now)
    if is_paused(rule, today):
        return None
    active = get_active_occurrence_date(task, now, config)
    if active is not None and not _is_met(find_instance(task, active)):
        return active
    return next_occurrence(rule, today, effective_start_date(task, config))


def last_completed_date(task: Task) -> str | None:
    dates = [i.date for i in task.recurring_instances if i.completed]
    return max(dates) if dates else None


def recurring_stats(task: Task, now: int, config: EngineConfig | None = None) -> dict[str, Any]:
    """Derived recurring fields for display; recomputed on every call."""
    config = config or DEFAULT_CONFIG
    if task.recurrence is None:
        return {}
    today = config.today(now)
    return {
        "activeDate": get_active_occurrence_date(task, now, config),
        "streak": calculate_streak(task, now, config),
        "bestStreak": best_streak(task, now, config),
        "nextDue": next_due_date(task, now, config),
        "lastCompleted": last_completed_date(task),
        "totalCompletions": sum(1 for i in task.recurring_instances if i.completed),
        "paused": is_paused(task.recurrence, today),
    }


# ── Calendar ──────────────────────────────────────────────────


def instance_status(
    task: Task, date: str, now: int, config: EngineConfig | None = None
) -> str:
    """One of completed, skipped, today, overdue, missed, paused, pending, none."""
    config = config or DEFAULT_CONFIG
    rule = task.recurrence
    if rule is None:
        return "none"
    instance = find_instance(task, date)
    if instance is not None and instance.completed:
        return "completed"
    if instance is not None and instance.skipped:
        return "skipped"
    if not date_matches_pattern(date, rule, effective_start_date(task, config)):
        return "none"

    today = config.today(now)
    if date >= today and is_paused(rule, today):
        return "paused"
    if date == today:
        return "today"
    if date > today:
        return "pending"
    if rule.rollover_if_missed and get_active_occurrence_date(task, now, config) == date:
        return "overdue"
    return "missed"


def occurrences_in_range(
    task: Task, start: str, end: str, now: int, config: EngineConfig | None = None
) -> list[dict[str, Any]]:
    """Matching dates between *start* and *end* with their status, for calendar views."""
    config = config or DEFAULT_CONFIG
    rule = task.recurrence
    if rule is None or end < start:
        return []
    if days_between(start, end) >= MAX_CALENDAR_DAYS:
        end = add_days(start, MAX_CALENDAR_DAYS - 1)
    anchor = effective_start_date(task, config)
    rows = []
    for day in date_range(start, end):
        if not date_matches_pattern(day, rule, anchor):
            continue
        instance = find_instance(task, day)
        rows.append({
            "date": day,
            "status": instance_status(task, day, now, config),
            "instance": instance.to_dict() if instance else None,
        })
    return rows


def filter_due_today(
    tasks: list[Task], now: int, config: EngineConfig | None = None
) -> list[tuple[Task, str]]:
    """Recurring tasks with an open active occurrence, paired with that date."""
    due = []
    for task in tasks:
        if task.recurrence is None or task.is_deleted or task.status == "archived":
            continue
        active = get_active_occurrence_date(task, now, config)
        if active is not None and not _is_met(find_instance(task, active)):
            due.append((task, active))
    due.sort(key=lambda pair: (pair[1], pair[0].recurrence.time or "99:99", pair[0].title))
    return due


# ── Instance mutations ────────────────────────────────────────


def _sync_completion(instance: RecurringInstance, now: int) -> None:
    steps = instance.steps
    done = bool(steps) and all(s.completed for s in steps)
    if done and not instance.completed:
        instance.completed = True
        instance.completed_at = now
        instance.skipped = False
        instance.skipped_at = None
    elif not done and instance.completed:
        instance.completed = False
        instance.completed_at = None


def mark_instance_complete(task: Task, date: str, now: int) -> RecurringInstance:
    instance = ensure_instance(task, date)
    for step in instance.steps:
        if not step.completed:
            step.completed = True
            step.completed_at = now
    instance.completed = True
    instance.completed_at = now
    instance.skipped = False
    instance.skipped_at = None
    task.updated_at = now
    return instance


def skip_instance(task: Task, date: str, now: int) -> RecurringInstance:
    instance = ensure_instance(task, date)
    instance.skipped = True
    instance.skipped_at = now
    instance.completed = False
    instance.completed_at = None
    task.updated_at = now
    return instance


def mark_instance_incomplete(task: Task, date: str, now: int) -> RecurringInstance | None:
    """Undo completion or skip; every step is reset."""
    instance = find_instance(task, date)
    if instance is None:
        return None
    for step in instance.steps:
        step.completed = False
        step.completed_at = None
    instance.completed = False
    instance.completed_at = None
    instance.skipped = False
    instance.skipped_at = None
    task.updated_at = now
    return instance


def find_instance_step(instance: RecurringInstance, step_id: str) -> Step | None:
    for step in instance.steps:
        if step.id == step_id:
            return step
    return None


def toggle_instance_step(
    task: Task, date: str, step_id: str, now: int
) -> RecurringInstance | None:
    """Flip one step; the instance completes when all of its steps are done."""
    instance = find_instance(task, date)
    if instance is None:
        return None
    step = find_instance_step(instance, step_id)
    if step is None:
        return None
    step.completed = not step.completed
    step.completed_at = now if step.completed else None
    _sync_completion(instance, now)
    task.updated_at = now
    return instance


def complete_instance_step(
    task: Task, date: str, step_id: str, now: int
) -> RecurringInstance | None:
    instance = find_instance(task, date)
    if instance is None:
        return None
    step = find_instance_step(instance, step_id)
    if step is None:
        return None
    if not step.completed:
        step.completed = True
        step.completed_at = now
        _sync_completion(instance, now)
        task.updated_at = now
    return instance


def add_instance_step(task: Task, date: str, text: str, now: int) -> Step:
    """Add an instance-only step; it never reaches the template unless promoted."""
    instance = ensure_instance(task, date)
    step = Step(id=new_id(), text=text)
    instance.additional_steps.append(step)
    _sync_completion(instance, now)
    task.updated_at = now
    return step


def promote_step(task: Task, date: str, step_id: str, now: int) -> Step | None:
    """Copy an instance-only step into the template and relink it as a routine step."""
    instance = find_instance(task, date)
    if instance is None:
        return None
    step = next((s for s in instance.additional_steps if s.id == step_id), None)
    if step is None:
        return None
    template_step = Step(
        id=new_id(), text=step.text, estimated_minutes=step.estimated_minutes
    )
    task.steps.append(template_step)
    instance.additional_steps.remove(step)
    step.template_id = template_step.id
    instance.routine_steps.append(step)
    task.updated_at = now
    return template_step


def demote_step(task: Task, date: str, step_id: str, now: int) -> Step | None:
    """Remove a routine step's template source; the instance keeps it as instance-only."""
    instance = find_instance(task, date)
    if instance is None:
        return None
    step = next((s for s in instance.routine_steps if s.id == step_id), None)
    if step is None:
        return None
    if step.template_id:
        task.steps = [s for s in task.steps if s.id != step.template_id]
    instance.routine_steps.remove(step)
    step.template_id = None
    instance.additional_steps.append(step)
    task.updated_at = now
    return step


def reset_instance_from_template(task: Task, date: str, now: int) -> RecurringInstance | None:
    """Replace an instance's routine steps with a fresh clone of the template."""
    instance = find_instance(task, date)
    if instance is None:
        return None
    instance.routine_steps = clone_steps(task.steps)
    _sync_completion(instance, now)
    task.updated_at = now
    return instance
