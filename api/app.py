from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, HTTPException

from nudge import (
    calculate_streak,
    complete_current_step,
    complete_task,
    completed_items,
    create_task,
    date_matches_pattern,
    delete_project,
    delete_task,
    describe_rule,
    effective_start_date,
    exit_focus,
    filter_due_today,
    filter_tasks_by_energy,
    find_task,
    get_active_occurrence_date,
    get_tasks_for_priority_queue,
    get_tasks_with_computed_fields,
    group_by_tier,
    is_valid_date,
    load_config,
    load_store,
    mark_instance_complete,
    mark_instance_incomplete,
    move_queue_item,
    now_ms,
    occurrences_in_range,
    pause_focus,
    pool_overview,
    queue_task,
    queue_with_priority,
    remove_from_queue,
    resume_focus,
    save_store,
    skip_instance,
    start_focus,
    start_recurring_focus,
    tasks_needing_attention,
    update_step_selection,
    update_task,
    workspace_root as _workspace_root,
)
from nudge.focus import load_focus_state, save_focus_state
from nudge.health import health_summary
from nudge.models import ENERGY_LEVELS
from nudge.priority import FILTER_MODES
from nudge.queue import find_queue_item
from nudge.tasks import create_project

logger = logging.getLogger(__name__)

app = FastAPI(title="Nudge", version="0.1.0")


def _check_energy(energy: str | None) -> str | None:
    if energy and energy not in ENERGY_LEVELS:
        raise HTTPException(status_code=400, detail=f"Invalid energy: {energy}")
    return energy or None


def _recurring_task_or_404(store, task_id: str):
    task = find_task(store, task_id)
    if task is None or task.recurrence is None:
        raise HTTPException(status_code=404, detail=f"Recurring task not found: {task_id}")
    return task


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


# ── Tasks ─────────────────────────────────────────────────────

@app.get("/api/tasks")
def api_list_tasks(energy: str | None = None, deferred: bool = False) -> dict[str, Any]:
    """List live tasks with health, priority and recurring stats.

    Tasks deferred past today are hidden unless ``deferred=true``.
    """
    root = _workspace_root()
    store = load_store(root)
    config = load_config(root)
    computed = get_tasks_with_computed_fields(
        store, _check_energy(energy), now_ms(), config, include_deferred=deferred
    )
    return {"tasks": computed, "projects": [p.to_dict() for p in store.projects]}


@app.post("/api/tasks")
def api_create_task(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    task, errors = create_task(store, payload, now_ms())
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))
    save_store(store, root)
    return {"ok": True, "task": task.to_dict()}


@app.put("/api/tasks/{task_id}")
def api_update_task(task_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    if find_task(store, task_id) is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    updated, errors = update_task(store, task_id, payload, now_ms())
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))
    save_store(store, root)
    return {"ok": True, "task": updated.to_dict()}


@app.post("/api/tasks/{task_id}/complete")
def api_complete_task(task_id: str) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    task = complete_task(store, task_id, now_ms())
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    save_store(store, root)
    return {"ok": True, "task": task.to_dict()}


@app.delete("/api/tasks/{task_id}")
def api_delete_task(task_id: str) -> dict[str, Any]:
    """Soft-delete a task and drop it from the queue."""
    root = _workspace_root()
    store = load_store(root)
    if not delete_task(store, task_id, now_ms()):
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    save_store(store, root)
    return {"ok": True, "task_id": task_id}


# ── Priority & health ─────────────────────────────────────────

@app.get("/api/priority")
def api_priority(energy: str | None = None, mode: str = "all") -> dict[str, Any]:
    """Ranked open tasks grouped by tier, with energy filtering."""
    if mode not in FILTER_MODES:
        raise HTTPException(status_code=400, detail=f"Invalid mode: {mode}")
    energy = _check_energy(energy)
    root = _workspace_root()
    store = load_store(root)
    ranked = get_tasks_for_priority_queue(store.tasks, energy, now_ms(), load_config(root))
    visible, hidden = filter_tasks_by_energy(ranked, energy, mode)
    return {
        "tiers": {tier: [r.to_dict() for r in items] for tier, items in group_by_tier(visible).items()},
        "hiddenCount": len(hidden),
    }


@app.get("/api/pool")
def api_pool(energy: str | None = None) -> dict[str, Any]:
    """Visible pool, parked tasks, counts and what to queue next."""
    energy = _check_energy(energy)
    root = _workspace_root()
    store = load_store(root)
    return pool_overview(store.tasks, store.queue, energy, now_ms(), load_config(root))


@app.get("/api/health")
def api_health() -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    config = load_config(root)
    now = now_ms()
    flagged = tasks_needing_attention(store.tasks, now, config)
    return {
        "summary": health_summary(store.tasks, now, config),
        "attention": [{"task": t.to_dict(), "health": h.to_dict()} for t, h in flagged],
    }


# ── Routines ──────────────────────────────────────────────────

@app.get("/api/routines/today")
def api_routines_today() -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    config = load_config(root)
    now = now_ms()
    today = config.today(now)
    routines = []
    for task, date in filter_due_today(store.tasks, now, config):
        routines.append({
            "task": task.to_dict(),
            "activeDate": date,
            "overdue": date < today,
            "streak": calculate_streak(task, now, config),
            "description": describe_rule(task.recurrence),
        })
    return {"today": today, "routines": routines}


def _routine_date(task, payload: dict[str, Any], now: int, config) -> str:
    """Requested occurrence date, else the active one, else today; must fall on the rule."""
    date = payload.get("date") or get_active_occurrence_date(task, now, config) or config.today(now)
    if not is_valid_date(date):
        raise HTTPException(status_code=400, detail=f"Invalid date: {date}")
    if not date_matches_pattern(date, task.recurrence, effective_start_date(task, config)):
        raise HTTPException(status_code=400, detail=f"{date} is not an occurrence of this routine")
    return date


@app.post("/api/routines/{task_id}/complete")
def api_routine_complete(task_id: str, payload: dict[str, Any] = Body(default={})) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    config = load_config(root)
    task = _recurring_task_or_404(store, task_id)
    now = now_ms()
    instance = mark_instance_complete(task, _routine_date(task, payload, now, config), now)
    save_store(store, root)
    return {"ok": True, "instance": instance.to_dict(), "streak": calculate_streak(task, now, config)}


@app.post("/api/routines/{task_id}/skip")
def api_routine_skip(task_id: str, payload: dict[str, Any] = Body(default={})) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    config = load_config(root)
    task = _recurring_task_or_404(store, task_id)
    now = now_ms()
    instance = skip_instance(task, _routine_date(task, payload, now, config), now)
    save_store(store, root)
    return {"ok": True, "instance": instance.to_dict()}


@app.post("/api/routines/{task_id}/undo")
def api_routine_undo(task_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    task = _recurring_task_or_404(store, task_id)
    date = payload.get("date")
    if not date:
        raise HTTPException(status_code=400, detail="Missing date")
    if not is_valid_date(date):
        raise HTTPException(status_code=400, detail=f"Invalid date: {date}")
    instance = mark_instance_incomplete(task, date, now_ms())
    if instance is None:
        raise HTTPException(status_code=404, detail=f"No instance on {date}")
    save_store(store, root)
    return {"ok": True, "instance": instance.to_dict()}


@app.get("/api/routines/{task_id}/calendar")
def api_routine_calendar(task_id: str, start: str, end: str) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    task = _recurring_task_or_404(store, task_id)
    try:
        rows = occurrences_in_range(task, start, end, now_ms(), load_config(root))
    except ValueError:
        raise HTTPException(status_code=400, detail="start and end must be YYYY-MM-DD dates")
    return {"occurrences": rows}


# ── Focus queue ───────────────────────────────────────────────

@app.get("/api/queue")
def api_queue(energy: str | None = None) -> dict[str, Any]:
    """Queue in manual order with advisory priority badges."""
    root = _workspace_root()
    store = load_store(root)
    rows = queue_with_priority(store.queue, store.tasks, _check_energy(energy), now_ms(), load_config(root))
    return {
        "items": rows,
        "todayLineIndex": store.queue.today_line_index,
        "completed": [i.to_dict() for i in completed_items(store.queue)],
    }


@app.post("/api/queue")
def api_queue_add(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    task_id = payload.get("taskId")
    if not task_id:
        raise HTTPException(status_code=400, detail="Missing taskId")
    root = _workspace_root()
    store = load_store(root)
    item = queue_task(
        store,
        str(task_id),
        now_ms(),
        for_today=bool(payload.get("forToday", True)),
        step_ids=payload.get("stepIds") or None,
    )
    if item is None:
        raise HTTPException(status_code=404, detail=f"Task not found or closed: {task_id}")
    save_store(store, root)
    return {"ok": True, "item": item.to_dict(), "todayLineIndex": store.queue.today_line_index}


@app.delete("/api/queue/{item_id}")
def api_queue_remove(item_id: str) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    if find_queue_item(store.queue, item_id) is None:
        raise HTTPException(status_code=404, detail=f"Queue item not found: {item_id}")
    store.queue = remove_from_queue(store.queue, item_id)
    save_store(store, root)
    return {"ok": True, "item_id": item_id}


@app.post("/api/queue/{item_id}/move")
def api_queue_move(item_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    if not isinstance(payload.get("index"), int):
        raise HTTPException(status_code=400, detail="index must be an integer")
    root = _workspace_root()
    store = load_store(root)
    if find_queue_item(store.queue, item_id) is None:
        raise HTTPException(status_code=404, detail=f"Queue item not found: {item_id}")
    store.queue = move_queue_item(store.queue, item_id, payload["index"], now_ms())
    save_store(store, root)
    return {"ok": True, "queue": store.queue.to_dict()}


@app.post("/api/queue/{item_id}/selection")
def api_queue_selection(item_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    if find_queue_item(store.queue, item_id) is None:
        raise HTTPException(status_code=404, detail=f"Queue item not found: {item_id}")
    try:
        store.queue = update_step_selection(
            store.queue,
            item_id,
            str(payload.get("selectionType", "")),
            [str(s) for s in payload.get("stepIds") or []],
            now_ms(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    save_store(store, root)
    return {"ok": True, "queue": store.queue.to_dict()}


# ── Focus session ─────────────────────────────────────────────

@app.get("/api/focus")
def api_focus_current() -> dict[str, Any]:
    return {"focus": load_focus_state(_workspace_root()).to_dict()}


@app.post("/api/focus/start")
def api_focus_start(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """Start on a queue item (``queueItemId``) or a recurring task (``taskId``)."""
    root = _workspace_root()
    store = load_store(root)
    state = load_focus_state(root)
    now = now_ms()
    if payload.get("queueItemId"):
        new_state, store.queue = start_focus(state, store.queue, store.tasks, str(payload["queueItemId"]), now)
    elif payload.get("taskId"):
        task = find_task(store, str(payload["taskId"]))
        new_state = start_recurring_focus(state, task, now, load_config(root))
    else:
        raise HTTPException(status_code=400, detail="Missing queueItemId or taskId")
    if new_state is state:
        raise HTTPException(status_code=404, detail="Nothing to focus on")
    save_store(store, root)
    save_focus_state(new_state, root)
    return {"ok": True, "focus": new_state.to_dict()}


@app.post("/api/focus/pause")
def api_focus_pause() -> dict[str, Any]:
    root = _workspace_root()
    state = load_focus_state(root)
    new_state = pause_focus(state, now_ms())
    if new_state is state:
        raise HTTPException(status_code=409, detail=f"Cannot pause from {state.status}")
    save_focus_state(new_state, root)
    return {"ok": True, "focus": new_state.to_dict()}


@app.post("/api/focus/resume")
def api_focus_resume() -> dict[str, Any]:
    root = _workspace_root()
    state = load_focus_state(root)
    new_state = resume_focus(state, now_ms())
    if new_state is state:
        raise HTTPException(status_code=409, detail=f"Cannot resume from {state.status}")
    save_focus_state(new_state, root)
    return {"ok": True, "focus": new_state.to_dict()}


@app.post("/api/focus/step/complete")
def api_focus_step_complete() -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    state = load_focus_state(root)
    if not state.active:
        raise HTTPException(status_code=409, detail="No active focus session")
    new_state = complete_current_step(state, store.tasks, store.queue, now_ms())
    save_store(store, root)
    save_focus_state(new_state, root)
    return {"ok": True, "focus": new_state.to_dict()}


@app.post("/api/focus/exit")
def api_focus_exit(payload: dict[str, Any] = Body(default={})) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    state = load_focus_state(root)
    if not state.active:
        raise HTTPException(status_code=409, detail="No active focus session")
    result = exit_focus(state, store.tasks, now_ms(), str(payload.get("previousView") or "focus"))
    save_focus_state(result.state, root)
    logger.info("Focus session on %s ended after %d ms", result.task_id, result.elapsed_ms)
    return {"ok": True, **result.to_dict()}


# ── Projects ──────────────────────────────────────────────────

@app.post("/api/projects")
def api_create_project(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    root = _workspace_root()
    store = load_store(root)
    project, errors = create_project(store, payload)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))
    save_store(store, root)
    return {"ok": True, "project": project.to_dict()}


@app.delete("/api/projects/{project_id}")
def api_delete_project(project_id: str) -> dict[str, Any]:
    """Delete a project; its tasks are kept and unlinked."""
    root = _workspace_root()
    store = load_store(root)
    if not delete_project(store, project_id):
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    save_store(store, root)
    return {"ok": True, "project_id": project_id}
