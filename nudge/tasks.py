"""Task store: validation, CRUD, soft delete, projects and computed views.

The store (tasks, projects, focus queue) persists as one YAML document at
``planner/tasks.yaml``. Mutating functions work on an in-memory TaskStore;
callers load, mutate and save.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from nudge.clock import is_valid_date
from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.fileio import read_yaml, write_yaml_atomic
from nudge.health import compute_health_status, is_active, is_deferred
from nudge.instances import recurring_stats
from nudge.models import (
    ENERGY_TYPES,
    IMPORTANCE_LEVELS,
    IMPORTANCE_SOURCES,
    PRIORITIES,
    TASK_SOURCES,
    TASK_STATUSES,
    FocusQueueItem,
    Project,
    RecurrenceRule,
    Task,
    TaskStore,
    new_id,
)
from nudge.priority import RankedTask, get_task_priority_info, priority_sort_key
from nudge.queue import (
    add_to_queue,
    complete_queue_item,
    find_queue_item_for_task,
    remove_task_from_queue,
)
from nudge.recurrence import describe_rule, validate_rule
from nudge.workspace import tasks_path as _tasks_path

logger = logging.getLogger(__name__)


# ── Validation ────────────────────────────────────────────────


_ENUM_FIELDS = {
    "status": TASK_STATUSES,
    "priority": PRIORITIES,
    "importance": IMPORTANCE_LEVELS,
    "importanceSource": IMPORTANCE_SOURCES,
    "source": TASK_SOURCES,
    "energyType": ENERGY_TYPES,
}
_DATE_FIELDS = ("targetDate", "deadlineDate", "deferredUntil")
_COUNT_FIELDS = ("leadTimeDays", "deferredCount")
_TIMESTAMP_FIELDS = ("createdAt", "updatedAt", "completedAt", "deletedAt")


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _check_ints(obj: dict[str, Any], keys: tuple[str, ...], label: str, errors: list[str]) -> None:
    for key in keys:
        if obj.get(key) is not None and not _is_non_negative_int(obj[key]):
            errors.append(f"{label}{key} must be a non-negative integer")


def _check_steps(steps: Any, label: str, errors: list[str]) -> None:
    if not isinstance(steps, list) or not all(isinstance(s, dict) for s in steps):
        errors.append(f"{label} must be a list of objects")
        return
    if any(not str(s.get("text") or "").strip() for s in steps):
        errors.append(f"every step in {label} needs text")
    for i, step in enumerate(steps):
        _check_ints(step, ("completedAt", "estimatedMinutes"), f"{label}[{i}].", errors)


def _check_instances(instances: Any, errors: list[str]) -> None:
    if not isinstance(instances, list) or not all(isinstance(i, dict) for i in instances):
        errors.append("recurringInstances must be a list of objects")
        return
    for i, inst in enumerate(instances):
        label = f"recurringInstances[{i}]"
        if not is_valid_date(inst.get("date")):
            errors.append(f"{label}.date must be a YYYY-MM-DD date")
        _check_ints(inst, ("completedAt", "skippedAt"), f"{label}.", errors)
        for key in ("routineSteps", "additionalSteps"):
            if inst.get(key) is not None:
                _check_steps(inst[key], f"{label}.{key}", errors)


def validate_task(task: dict[str, Any]) -> list[str]:
    """Validate task schema and return list of errors (empty if valid)."""
    errors: list[str] = []
    if not task.get("id"):
        errors.append("Missing required field: id")
    if not str(task.get("title") or "").strip():
        errors.append("Missing required field: title")

    for key, allowed in _ENUM_FIELDS.items():
        value = task.get(key)
        if value is not None and value not in allowed:
            errors.append(f"Invalid {key}: {value}")

    for key in _DATE_FIELDS:
        value = task.get(key)
        if value is not None and not is_valid_date(value):
            errors.append(f"{key} must be a YYYY-MM-DD date")

    _check_ints(task, _COUNT_FIELDS + _TIMESTAMP_FIELDS, "", errors)

    waiting = task.get("waitingOn")
    if waiting is not None:
        if not isinstance(waiting, dict) or not waiting.get("who"):
            errors.append("waitingOn must include who")
        else:
            _check_ints(waiting, ("since",), "waitingOn.", errors)

    if task.get("steps") is not None:
        _check_steps(task["steps"], "steps", errors)

    recurrence = task.get("recurrence")
    if recurrence is not None:
        if not isinstance(recurrence, dict):
            errors.append("recurrence must be an object")
        else:
            try:
                rule = RecurrenceRule.from_dict(recurrence)
            except (TypeError, ValueError):
                errors.append("recurrence: invalid value")
            else:
                _check_ints(recurrence, ("pausedAt",), "recurrence: ", errors)
                errors.extend(f"recurrence: {e}" for e in validate_rule(rule))

    if task.get("recurringInstances") is not None:
        _check_instances(task["recurringInstances"], errors)

    return errors


# ── Persistence ───────────────────────────────────────────────


def load_store(root: Path | None = None) -> TaskStore:
    """Load tasks.yaml into a TaskStore."""
    return TaskStore.from_dict(read_yaml(_tasks_path(root)))


def save_store(store: TaskStore, root: Path | None = None) -> None:
    """Save the TaskStore back to tasks.yaml atomically."""
    write_yaml_atomic(_tasks_path(root), store.to_dict())


# ── CRUD ──────────────────────────────────────────────────────


def find_task(store: TaskStore, task_id: str, include_deleted: bool = False) -> Task | None:
    for t in store.tasks:
        if t.id == task_id and (include_deleted or not t.is_deleted):
            return t
    return None


def _fill_step_ids(data: dict[str, Any]) -> None:
    for step in data.get("steps") or []:
        if isinstance(step, dict) and not step.get("id"):
            step["id"] = new_id()


def create_task(store: TaskStore, task_data: dict[str, Any], now: int) -> tuple[Task, list[str]]:
    """Create and add a new task. Returns (task, errors)."""
    data = dict(task_data)
    data.setdefault("id", new_id())
    _fill_step_ids(data)
    errors = validate_task(data)
    if errors:
        return Task(), errors

    if find_task(store, data["id"], include_deleted=True):
        return Task(), [f"Task ID already exists: {data['id']}"]

    data["createdAt"] = now
    data["updatedAt"] = now
    task = Task.from_dict(data)
    store.tasks.append(task)
    logger.info("Created task %s", task.id)
    return task, []


def update_task(
    store: TaskStore, task_id: str, updates: dict[str, Any], now: int
) -> tuple[Task | None, list[str]]:
    """Update a task by ID. Returns (updated_task, errors)."""
    task = find_task(store, task_id)
    if not task:
        return None, [f"Task not found: {task_id}"]

    task_dict = task.to_dict()
    task_dict.update(updates)
    task_dict["id"] = task.id
    task_dict["createdAt"] = task.created_at
    _fill_step_ids(task_dict)

    errors = validate_task(task_dict)
    if errors:
        return None, errors

    updated = Task.from_dict(task_dict)
    updated.updated_at = now
    if updated.status == "complete" and task.status != "complete" and updated.completed_at is None:
        updated.completed_at = now
    elif updated.status != "complete":
        updated.completed_at = None
    for i, t in enumerate(store.tasks):
        if t.id == task_id:
            store.tasks[i] = updated
            break
    if updated.status == "complete":
        _close_queue_item(store, task_id, now)
    return updated, []


def _close_queue_item(store: TaskStore, task_id: str, now: int) -> None:
    item = find_queue_item_for_task(store.queue, task_id)
    if item is not None:
        store.queue = complete_queue_item(store.queue, item.id, now)


def complete_task(store: TaskStore, task_id: str, now: int) -> Task | None:
    """Mark a task complete and close its queue item."""
    task = find_task(store, task_id)
    if task is None:
        return None
    task.status = "complete"
    task.completed_at = now
    task.updated_at = now
    _close_queue_item(store, task_id, now)
    return task


def delete_task(store: TaskStore, task_id: str, now: int) -> bool:
    """Soft-delete a task and drop it from the focus queue."""
    task = find_task(store, task_id)
    if task is None:
        return False
    task.deleted_at = now
    task.updated_at = now
    store.queue = remove_task_from_queue(store.queue, task_id)
    logger.info("Deleted task %s", task_id)
    return True


def queue_task(
    store: TaskStore,
    task_id: str,
    now: int,
    for_today: bool = True,
    step_ids: list[str] | None = None,
) -> FocusQueueItem | None:
    """Put a task in the focus queue; an inbox task moves to the pool."""
    task = find_task(store, task_id)
    if task is None or task.status in ("complete", "archived"):
        return None
    if task.status == "inbox":
        task.status = "pool"
        task.updated_at = now
    store.queue = add_to_queue(store.queue, task_id, now, for_today=for_today, step_ids=step_ids)
    return find_queue_item_for_task(store.queue, task_id)


# ── Projects ──────────────────────────────────────────────────


def find_project(store: TaskStore, project_id: str) -> Project | None:
    for p in store.projects:
        if p.id == project_id:
            return p
    return None


def create_project(store: TaskStore, data: dict[str, Any]) -> tuple[Project, list[str]]:
    if not str(data.get("name") or "").strip():
        return Project(), ["Missing required field: name"]
    project = Project.from_dict({**data, "id": data.get("id") or new_id()})
    if find_project(store, project.id):
        return Project(), [f"Project ID already exists: {project.id}"]
    store.projects.append(project)
    return project, []


def delete_project(store: TaskStore, project_id: str) -> bool:
    """Remove a project; its tasks stay and lose the reference."""
    project = find_project(store, project_id)
    if project is None:
        return False
    store.projects.remove(project)
    for t in store.tasks:
        if t.project_id == project_id:
            t.project_id = None
    return True


# ── Computed views ────────────────────────────────────────────


def get_tasks_with_computed_fields(
    store: TaskStore,
    user_energy: str | None,
    now: int,
    config: EngineConfig | None = None,
    include_deferred: bool = False,
) -> list[dict[str, Any]]:
    """Live tasks with health, priority, recurring stats and project name attached.

    Open tasks come first in priority order, then complete and archived ones.
    Open tasks deferred past today are left out unless *include_deferred*.
    """
    config = config or DEFAULT_CONFIG
    today = config.today(now)
    projects = {p.id: p for p in store.projects}
    open_tasks: list[RankedTask] = []
    closed: list[Task] = []
    for task in store.tasks:
        if task.is_deleted:
            continue
        if task.status in ("complete", "archived"):
            closed.append(task)
        elif include_deferred or not is_deferred(task, today):
            open_tasks.append(RankedTask(task, get_task_priority_info(task, user_energy, now, config)))
    open_tasks.sort(key=priority_sort_key)

    result = []
    for ranked in open_tasks:
        d = ranked.to_dict()
        if is_active(ranked.task):
            d["health"] = compute_health_status(ranked.task, now, config).to_dict()
        result.append(d)
    result.extend(t.to_dict() for t in sorted(closed, key=lambda t: -(t.completed_at or 0)))

    by_id = {t.id: t for t in store.tasks}
    for d in result:
        task = by_id[d["id"]]
        if task.project_id and task.project_id in projects:
            d["projectName"] = projects[task.project_id].name
        if task.recurrence is not None:
            d["recurring"] = recurring_stats(task, now, config)
            d["recurring"]["description"] = describe_rule(task.recurrence)
    return result
