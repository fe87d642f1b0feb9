"""Typed dataclasses for the Nudge data model.

All models use from_dict/to_dict for JSON/YAML serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


# ── Vocabularies ──────────────────────────────────────────────


TASK_STATUSES = ("inbox", "pool", "complete", "archived")
PRIORITIES = ("high", "medium", "low")
IMPORTANCE_LEVELS = ("must_do", "should_do", "could_do", "would_like_to")
IMPORTANCE_SOURCES = ("self", "partner")
ENERGY_TYPES = ("energizing", "neutral", "draining")
ENERGY_LEVELS = ("high", "medium", "low")
TASK_SOURCES = ("manual", "ai_breakdown", "ai_suggestion", "voice", "shared", "email", "calendar")
FREQUENCIES = ("daily", "weekly", "monthly", "yearly")
SELECTION_TYPES = ("all_today", "all_upcoming", "specific_steps")


def new_id() -> str:
    return str(uuid.uuid4())


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


# ── Steps ─────────────────────────────────────────────────────


@dataclass
class Step:
    id: str = ""
    text: str = ""
    completed: bool = False
    completed_at: int | None = None
    estimated_minutes: int | None = None
    template_id: str | None = None  # set on instance copies of template steps

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Step:
        return cls(
            id=str(d.get("id", "")),
            text=str(d.get("text", "")),
            completed=bool(d.get("completed", False)),
            completed_at=_opt_int(d.get("completedAt")),
            estimated_minutes=_opt_int(d.get("estimatedMinutes")),
            template_id=_opt_str(d.get("templateId")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "text": self.text, "completed": self.completed}
        if self.completed_at is not None:
            d["completedAt"] = self.completed_at
        if self.estimated_minutes is not None:
            d["estimatedMinutes"] = self.estimated_minutes
        if self.template_id:
            d["templateId"] = self.template_id
        return d


@dataclass
class WaitingOn:
    who: str = ""
    note: str = ""
    since: int | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> WaitingOn:
        return cls(
            who=str(d.get("who", "")),
            note=str(d.get("note", "") or ""),
            since=_opt_int(d.get("since")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"who": self.who}
        if self.note:
            d["note"] = self.note
        if self.since is not None:
            d["since"] = self.since
        return d


# ── Recurrence ────────────────────────────────────────────────


@dataclass
class RecurrenceRule:
    frequency: str = "daily"
    interval: int = 1
    days_of_week: list[int] | None = None  # 0 = Sunday
    day_of_month: int | None = None
    week_of_month: int | None = None  # 1-5, 5 = last
    time: str | None = None  # HH:MM
    start_date: str | None = None
    end_date: str | None = None
    rollover_if_missed: bool = False
    paused_at: int | None = None
    paused_until: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RecurrenceRule:
        days = d.get("daysOfWeek")
        interval = _opt_int(d.get("interval"))
        return cls(
            frequency=str(d.get("frequency", "daily")),
            interval=1 if interval is None else interval,
            days_of_week=[int(x) for x in days] if isinstance(days, list) else None,
            day_of_month=_opt_int(d.get("dayOfMonth")),
            week_of_month=_opt_int(d.get("weekOfMonth")),
            time=_opt_str(d.get("time")),
            start_date=_opt_str(d.get("startDate")),
            end_date=_opt_str(d.get("endDate")),
            rollover_if_missed=bool(d.get("rolloverIfMissed", False)),
            paused_at=_opt_int(d.get("pausedAt")),
            paused_until=_opt_str(d.get("pausedUntil")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "frequency": self.frequency,
            "interval": self.interval,
            "rolloverIfMissed": self.rollover_if_missed,
        }
        if self.days_of_week is not None:
            d["daysOfWeek"] = list(self.days_of_week)
        if self.day_of_month is not None:
            d["dayOfMonth"] = self.day_of_month
        if self.week_of_month is not None:
            d["weekOfMonth"] = self.week_of_month
        if self.time:
            d["time"] = self.time
        if self.start_date:
            d["startDate"] = self.start_date
        if self.end_date:
            d["endDate"] = self.end_date
        if self.paused_at is not None:
            d["pausedAt"] = self.paused_at
        if self.paused_until:
            d["pausedUntil"] = self.paused_until
        return d


@dataclass
class RecurringInstance:
    date: str = ""
    routine_steps: list[Step] = field(default_factory=list)
    additional_steps: list[Step] = field(default_factory=list)
    completed: bool = False
    completed_at: int | None = None
    skipped: bool = False
    skipped_at: int | None = None

    @property
    def steps(self) -> list[Step]:
        return self.routine_steps + self.additional_steps

    @property
    def is_met(self) -> bool:
        """Completed or skipped; nothing left to roll over."""
        return self.completed or self.skipped

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RecurringInstance:
        return cls(
            date=str(d.get("date", "")),
            routine_steps=[Step.from_dict(s) for s in (d.get("routineSteps") or [])],
            additional_steps=[Step.from_dict(s) for s in (d.get("additionalSteps") or [])],
            completed=bool(d.get("completed", False)),
            completed_at=_opt_int(d.get("completedAt")),
            skipped=bool(d.get("skipped", False)),
            skipped_at=_opt_int(d.get("skippedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "date": self.date,
            "routineSteps": [s.to_dict() for s in self.routine_steps],
            "additionalSteps": [s.to_dict() for s in self.additional_steps],
            "completed": self.completed,
            "skipped": self.skipped,
        }
        if self.completed_at is not None:
            d["completedAt"] = self.completed_at
        if self.skipped_at is not None:
            d["skippedAt"] = self.skipped_at
        return d


# ── Tasks ─────────────────────────────────────────────────────


@dataclass
class Task:
    id: str = ""
    title: str = ""
    status: str = "inbox"  # inbox, pool, complete, archived
    priority: str | None = None  # high, medium, low
    importance: str | None = None  # must_do, should_do, could_do, would_like_to
    importance_source: str | None = None  # self, partner
    source: str = "manual"
    energy_type: str | None = None  # energizing, neutral, draining
    # scheduling
    target_date: str | None = None
    deadline_date: str | None = None
    lead_time_days: int = 0
    deferred_until: str | None = None
    deferred_count: int = 0
    waiting_on: WaitingOn | None = None
    # steps (the template when recurrence is set)
    steps: list[Step] = field(default_factory=list)
    recurrence: RecurrenceRule | None = None
    recurring_instances: list[RecurringInstance] = field(default_factory=list)
    project_id: str | None = None
    notes: str = ""
    # epoch ms
    created_at: int = 0
    updated_at: int = 0
    completed_at: int | None = None
    deleted_at: int | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Task:
        waiting = d.get("waitingOn")
        recurrence = d.get("recurrence")
        created_at = int(d.get("createdAt", 0) or 0)
        return cls(
            id=str(d.get("id", "")),
            title=str(d.get("title", "")),
            status=str(d.get("status", "inbox")),
            priority=_opt_str(d.get("priority")),
            importance=_opt_str(d.get("importance")),
            importance_source=_opt_str(d.get("importanceSource")),
            source=str(d.get("source", "manual") or "manual"),
            energy_type=_opt_str(d.get("energyType")),
            target_date=_opt_str(d.get("targetDate")),
            deadline_date=_opt_str(d.get("deadlineDate")),
            lead_time_days=int(d.get("leadTimeDays", 0) or 0),
            deferred_until=_opt_str(d.get("deferredUntil")),
            deferred_count=int(d.get("deferredCount", 0) or 0),
            waiting_on=WaitingOn.from_dict(waiting) if isinstance(waiting, dict) else None,
            steps=[Step.from_dict(s) for s in (d.get("steps") or [])],
            recurrence=RecurrenceRule.from_dict(recurrence) if isinstance(recurrence, dict) else None,
            recurring_instances=[
                RecurringInstance.from_dict(i) for i in (d.get("recurringInstances") or [])
            ],
            project_id=_opt_str(d.get("projectId")),
            notes=str(d.get("notes", "") or ""),
            created_at=created_at,
            updated_at=int(d.get("updatedAt", created_at) or created_at),
            completed_at=_opt_int(d.get("completedAt")),
            deleted_at=_opt_int(d.get("deletedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "source": self.source,
        }
        optional = {
            "priority": self.priority,
            "importance": self.importance,
            "importanceSource": self.importance_source,
            "energyType": self.energy_type,
            "targetDate": self.target_date,
            "deadlineDate": self.deadline_date,
            "deferredUntil": self.deferred_until,
            "projectId": self.project_id,
        }
        d.update({k: v for k, v in optional.items() if v is not None})
        if self.lead_time_days:
            d["leadTimeDays"] = self.lead_time_days
        if self.deferred_count:
            d["deferredCount"] = self.deferred_count
        if self.waiting_on is not None:
            d["waitingOn"] = self.waiting_on.to_dict()
        d["steps"] = [s.to_dict() for s in self.steps]
        if self.recurrence is not None:
            d["recurrence"] = self.recurrence.to_dict()
            d["recurringInstances"] = [i.to_dict() for i in self.recurring_instances]
        if self.notes:
            d["notes"] = self.notes
        d["createdAt"] = self.created_at
        d["updatedAt"] = self.updated_at
        if self.completed_at is not None:
            d["completedAt"] = self.completed_at
        if self.deleted_at is not None:
            d["deletedAt"] = self.deleted_at
        return d


@dataclass
class Project:
    id: str = ""
    name: str = ""
    color: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Project:
        return cls(id=str(d.get("id", "")), name=str(d.get("name", "")), color=_opt_str(d.get("color")))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.color:
            d["color"] = self.color
        return d


# ── Focus queue ───────────────────────────────────────────────


@dataclass
class FocusQueueItem:
    id: str = ""
    task_id: str = ""
    selection_type: str = "all_today"  # all_today, all_upcoming, specific_steps
    selected_step_ids: list[str] = field(default_factory=list)
    added_at: int = 0
    last_interacted_at: int = 0
    completed: bool = False
    completed_at: int | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FocusQueueItem:
        added_at = int(d.get("addedAt", 0) or 0)
        return cls(
            id=str(d.get("id", "")),
            task_id=str(d.get("taskId", "")),
            selection_type=str(d.get("selectionType", "all_today")),
            selected_step_ids=[str(s) for s in (d.get("selectedStepIds") or [])],
            added_at=added_at,
            last_interacted_at=int(d.get("lastInteractedAt", added_at) or added_at),
            completed=bool(d.get("completed", False)),
            completed_at=_opt_int(d.get("completedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "taskId": self.task_id,
            "selectionType": self.selection_type,
            "selectedStepIds": list(self.selected_step_ids),
            "addedAt": self.added_at,
            "lastInteractedAt": self.last_interacted_at,
            "completed": self.completed,
        }
        if self.completed_at is not None:
            d["completedAt"] = self.completed_at
        return d


@dataclass
class FocusQueue:
    """Active items in manual order; the first ``today_line_index`` are today's."""

    items: list[FocusQueueItem] = field(default_factory=list)
    today_line_index: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FocusQueue:
        if not d or not isinstance(d, dict):
            return cls()
        items = [FocusQueueItem.from_dict(i) for i in (d.get("items") or [])]
        active = sum(1 for i in items if not i.completed)
        line = int(d.get("todayLineIndex", 0) or 0)
        return cls(items=items, today_line_index=max(0, min(line, active)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [i.to_dict() for i in self.items],
            "todayLineIndex": self.today_line_index,
        }


# ── Focus session ─────────────────────────────────────────────


@dataclass(frozen=True)
class FocusModeState:
    active: bool = False
    paused: bool = False
    queue_item_id: str | None = None
    task_id: str | None = None
    current_step_id: str | None = None
    occurrence_date: str | None = None  # recurring sessions only
    start_time: int | None = None
    paused_time: int = 0
    pause_start_time: int | None = None

    @property
    def status(self) -> str:
        if not self.active:
            return "idle"
        return "paused" if self.paused else "active"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FocusModeState:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            active=bool(d.get("active", False)),
            paused=bool(d.get("paused", False)),
            queue_item_id=_opt_str(d.get("queueItemId")),
            task_id=_opt_str(d.get("taskId")),
            current_step_id=_opt_str(d.get("currentStepId")),
            occurrence_date=_opt_str(d.get("occurrenceDate")),
            start_time=_opt_int(d.get("startTime")),
            paused_time=int(d.get("pausedTime", 0) or 0),
            pause_start_time=_opt_int(d.get("pauseStartTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "active": self.active,
            "paused": self.paused,
            "queueItemId": self.queue_item_id,
            "taskId": self.task_id,
            "currentStepId": self.current_step_id,
            "occurrenceDate": self.occurrence_date,
            "startTime": self.start_time,
            "pausedTime": self.paused_time,
            "pauseStartTime": self.pause_start_time,
        }


# ── Store ─────────────────────────────────────────────────────


@dataclass
class TaskStore:
    tasks: list[Task] = field(default_factory=list)
    projects: list[Project] = field(default_factory=list)
    queue: FocusQueue = field(default_factory=FocusQueue)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TaskStore:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            tasks=[Task.from_dict(t) for t in (d.get("tasks") or [])],
            projects=[Project.from_dict(p) for p in (d.get("projects") or [])],
            queue=FocusQueue.from_dict(d.get("queue") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "projects": [p.to_dict() for p in self.projects],
            "queue": self.queue.to_dict(),
        }
