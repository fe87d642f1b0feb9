"""Focus session state machine for Nudge.

    idle --start--> active --pause--> paused --resume--> active
      ^                |                 |
      +------exit------+--------exit-----+

Transitions are pure: each takes a FocusModeState and returns a new one.
A transition that is not valid from the current state returns the state
unchanged. Starting while a session is already running replaces it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.fileio import read_json, write_json_atomic
from nudge.instances import complete_instance_step, ensure_instance, find_instance, get_active_occurrence_date
from nudge.models import FocusModeState, FocusQueue, Step, Task
from nudge.queue import find_queue_item, steps_in_scope, touch_queue_item
from nudge.workspace import focus_path

logger = logging.getLogger(__name__)

TASK_DETAIL_VIEW = "taskDetail"
DEFAULT_PREVIOUS_VIEW = "focus"


@dataclass(frozen=True)
class FocusExit:
    """Result of leaving a session: the idle state plus where the host should go."""

    state: FocusModeState
    route: str
    task_id: str | None
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "route": self.route,
            "taskId": self.task_id,
            "elapsedMs": self.elapsed_ms,
        }


def _find_task(tasks: list[Task], task_id: str | None) -> Task | None:
    if task_id is None:
        return None
    for t in tasks:
        if t.id == task_id and not t.is_deleted:
            return t
    return None


def _first_incomplete(steps: list[Step]) -> Step | None:
    return next((s for s in steps if not s.completed), None)


# ── Scope ─────────────────────────────────────────────────────


def focus_steps(state: FocusModeState, tasks: list[Task], queue: FocusQueue) -> list[Step]:
    """Steps the running session works through, in order."""
    task = _find_task(tasks, state.task_id)
    if task is None:
        return []
    if state.occurrence_date is not None:
        instance = find_instance(task, state.occurrence_date)
        return instance.steps if instance else []
    item = find_queue_item(queue, state.queue_item_id) if state.queue_item_id else None
    if item is not None:
        return steps_in_scope(item, task)
    return list(task.steps)


# ── Transitions ───────────────────────────────────────────────


def start_focus(
    state: FocusModeState,
    queue: FocusQueue,
    tasks: list[Task],
    queue_item_id: str,
    now: int,
) -> tuple[FocusModeState, FocusQueue]:
    """Begin a session on a queued task at its first incomplete in-scope step."""
    item = find_queue_item(queue, queue_item_id)
    if item is None:
        logger.debug("start_focus: no queue item %s", queue_item_id)
        return state, queue
    task = _find_task(tasks, item.task_id)
    if task is None:
        logger.debug("start_focus: queue item %s points at missing task %s", item.id, item.task_id)
        return state, queue

    first = _first_incomplete(steps_in_scope(item, task))
    started = FocusModeState(
        active=True,
        queue_item_id=item.id,
        task_id=task.id,
        current_step_id=first.id if first else None,
        start_time=now,
    )
    return started, touch_queue_item(queue, item.id, now)


def start_recurring_focus(
    state: FocusModeState, task: Task | None, now: int, config: EngineConfig | None = None
) -> FocusModeState:
    """Begin a session on a recurring task's active occurrence (today if none)."""
    config = config or DEFAULT_CONFIG
    if task is None or task.recurrence is None or task.is_deleted:
        return state
    date = get_active_occurrence_date(task, now, config) or config.today(now)
    instance = ensure_instance(task, date)
    first = _first_incomplete(instance.steps)
    return FocusModeState(
        active=True,
        task_id=task.id,
        current_step_id=first.id if first else None,
        occurrence_date=date,
        start_time=now,
    )


def pause_focus(state: FocusModeState, now: int) -> FocusModeState:
    if state.status != "active":
        return state
    return replace(state, paused=True, pause_start_time=now)


def resume_focus(state: FocusModeState, now: int) -> FocusModeState:
    if state.status != "paused":
        return state
    pause = max(0, now - state.pause_start_time) if state.pause_start_time is not None else 0
    return replace(
        state,
        paused=False,
        paused_time=state.paused_time + pause,
        pause_start_time=None,
    )


def elapsed_focus_ms(state: FocusModeState, now: int) -> int:
    """Focused time so far: wall time since start minus all pauses."""
    if not state.active or state.start_time is None:
        return 0
    paused = state.paused_time
    if state.paused and state.pause_start_time is not None:
        paused += max(0, now - state.pause_start_time)
    return max(0, now - state.start_time - paused)


def exit_focus(
    state: FocusModeState,
    tasks: list[Task],
    now: int,
    previous_view: str = DEFAULT_PREVIOUS_VIEW,
) -> FocusExit:
    """Leave the session.

    Routes to the task detail view when the focused task was completed
    during the session, otherwise back to *previous_view*.
    """
    if not state.active:
        return FocusExit(state=state, route=previous_view, task_id=None, elapsed_ms=0)
    task = _find_task(tasks, state.task_id)
    just_completed = task is not None and task.status == "complete"
    return FocusExit(
        state=FocusModeState(),
        route=TASK_DETAIL_VIEW if just_completed else previous_view,
        task_id=state.task_id,
        elapsed_ms=elapsed_focus_ms(state, now),
    )


def complete_current_step(
    state: FocusModeState, tasks: list[Task], queue: FocusQueue, now: int
) -> FocusModeState:
    """Mark the current step done and advance to the next incomplete step in scope."""
    if not state.active or state.current_step_id is None:
        return state
    task = _find_task(tasks, state.task_id)
    if task is None:
        return state

    if state.occurrence_date is not None:
        if complete_instance_step(task, state.occurrence_date, state.current_step_id, now) is None:
            return state
    else:
        step = next((s for s in task.steps if s.id == state.current_step_id), None)
        if step is None:
            return state
        if not step.completed:
            step.completed = True
            step.completed_at = now
            task.updated_at = now

    upcoming = _first_incomplete(focus_steps(state, tasks, queue))
    return replace(state, current_step_id=upcoming.id if upcoming else None)


# ── Persistence ───────────────────────────────────────────────


def load_focus_state(root: Path | None = None) -> FocusModeState:
    return FocusModeState.from_dict(read_json(focus_path(root)))


def save_focus_state(state: FocusModeState, root: Path | None = None) -> None:
    write_json_atomic(focus_path(root), state.to_dict())
