"""Focus queue: the user's manually ordered list of work for today and later.

``FocusQueue.items`` holds active items in manual order followed by
completed ones. ``today_line_index`` splits the active items: everything
above the line is today, everything below is upcoming. Every operation
returns a new FocusQueue and leaves the input untouched.

Priority never reorders the queue; queue_with_priority only annotates.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from nudge.clock import MS_PER_DAY
from nudge.config import DEFAULT_CONFIG, EngineConfig
from nudge.models import SELECTION_TYPES, FocusQueue, FocusQueueItem, Step, Task, new_id
from nudge.priority import get_task_priority_info

logger = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────


def _split(queue: FocusQueue) -> tuple[list[FocusQueueItem], list[FocusQueueItem]]:
    active = [i for i in queue.items if not i.completed]
    completed = [i for i in queue.items if i.completed]
    return active, completed


def _build(active: list[FocusQueueItem], completed: list[FocusQueueItem], line: int) -> FocusQueue:
    return FocusQueue(items=active + completed, today_line_index=max(0, min(line, len(active))))


def _index_of(items: list[FocusQueueItem], item_id: str) -> int:
    for idx, item in enumerate(items):
        if item.id == item_id:
            return idx
    return -1


def _section_selection(item: FocusQueueItem, in_today: bool) -> FocusQueueItem:
    """Align the item's selection with the side of the line it sits on."""
    if in_today and item.selection_type == "all_upcoming":
        return replace(item, selection_type="all_today", selected_step_ids=[])
    if not in_today and item.selection_type != "all_upcoming":
        return replace(item, selection_type="all_upcoming", selected_step_ids=[])
    return item


# ── Queries ───────────────────────────────────────────────────


def today_items(queue: FocusQueue) -> list[FocusQueueItem]:
    active, _ = _split(queue)
    return active[:queue.today_line_index]


def upcoming_items(queue: FocusQueue) -> list[FocusQueueItem]:
    active, _ = _split(queue)
    return active[queue.today_line_index:]


def completed_items(queue: FocusQueue) -> list[FocusQueueItem]:
    return [i for i in queue.items if i.completed]


def find_queue_item(queue: FocusQueue, item_id: str) -> FocusQueueItem | None:
    for item in queue.items:
        if item.id == item_id:
            return item
    return None


def find_queue_item_for_task(queue: FocusQueue, task_id: str) -> FocusQueueItem | None:
    for item in queue.items:
        if item.task_id == task_id and not item.completed:
            return item
    return None


def is_task_in_queue(queue: FocusQueue, task_id: str) -> bool:
    return find_queue_item_for_task(queue, task_id) is not None


def steps_in_scope(item: FocusQueueItem, task: Task) -> list[Step]:
    if item.selection_type == "specific_steps":
        selected = set(item.selected_step_ids)
        return [s for s in task.steps if s.id in selected]
    return list(task.steps)


def is_queue_item_complete(item: FocusQueueItem, task: Task) -> bool:
    """All in-scope work is done; the item is ready to close."""
    if item.completed:
        return True
    scope = steps_in_scope(item, task)
    if not scope:
        return task.status == "complete"
    return all(s.completed for s in scope)


def queue_item_progress(item: FocusQueueItem, task: Task) -> float:
    """Fraction of in-scope steps completed, 0.0-1.0."""
    scope = steps_in_scope(item, task)
    if not scope:
        return 1.0 if task.status == "complete" else 0.0
    return sum(1 for s in scope if s.completed) / len(scope)


def queue_item_estimate(item: FocusQueueItem, task: Task) -> int:
    """Estimated minutes left on incomplete in-scope steps."""
    return sum(s.estimated_minutes or 0 for s in steps_in_scope(item, task) if not s.completed)


def is_queue_item_stale(item: FocusQueueItem, now: int, config: EngineConfig | None = None) -> bool:
    config = config or DEFAULT_CONFIG
    return (now - item.last_interacted_at) // MS_PER_DAY >= config.queue_stale_days


# ── Mutations ─────────────────────────────────────────────────


def add_to_queue(
    queue: FocusQueue,
    task_id: str,
    now: int,
    for_today: bool = True,
    step_ids: list[str] | None = None,
) -> FocusQueue:
    """Queue a task once. Today items land just above the line."""
    if is_task_in_queue(queue, task_id):
        logger.debug("Task %s already queued", task_id)
        return queue
    if step_ids:
        selection = "specific_steps"
    else:
        selection = "all_today" if for_today else "all_upcoming"
    item = FocusQueueItem(
        id=new_id(),
        task_id=task_id,
        selection_type=selection,
        selected_step_ids=list(step_ids or []),
        added_at=now,
        last_interacted_at=now,
    )
    active, completed = _split(queue)
    line = queue.today_line_index
    if for_today:
        active.insert(line, item)
        line += 1
    else:
        active.append(item)
    return _build(active, completed, line)


def remove_from_queue(queue: FocusQueue, item_id: str) -> FocusQueue:
    """Drop a queue item; the underlying task is untouched."""
    active, completed = _split(queue)
    line = queue.today_line_index
    idx = _index_of(active, item_id)
    if idx != -1:
        active.pop(idx)
        if idx < line:
            line -= 1
    else:
        completed = [i for i in completed if i.id != item_id]
    return _build(active, completed, line)


def remove_task_from_queue(queue: FocusQueue, task_id: str) -> FocusQueue:
    """Drop every item referencing *task_id*."""
    active, completed = _split(queue)
    line = queue.today_line_index
    kept = []
    for idx, item in enumerate(active):
        if item.task_id == task_id:
            if idx < queue.today_line_index:
                line -= 1
        else:
            kept.append(item)
    completed = [i for i in completed if i.task_id != task_id]
    return _build(kept, completed, line)


def move_queue_item(queue: FocusQueue, item_id: str, new_index: int, now: int) -> FocusQueue:
    """Move an active item to *new_index*; crossing the line switches its section."""
    active, completed = _split(queue)
    current = _index_of(active, item_id)
    if current == -1:
        return queue
    new_index = max(0, min(new_index, len(active) - 1))
    if new_index == current:
        return queue

    line = queue.today_line_index
    was_today = current < line
    now_today = new_index < line
    if was_today and not now_today:
        line -= 1
    elif not was_today and now_today:
        line += 1

    item = active.pop(current)
    item = replace(item, last_interacted_at=now)
    if was_today != now_today:
        item = _section_selection(item, now_today)
    active.insert(new_index, item)
    return _build(active, completed, line)


def move_today_line(queue: FocusQueue, new_index: int) -> FocusQueue:
    """Reposition the line; items keep their selections."""
    active, completed = _split(queue)
    return _build(active, completed, new_index)


def reorder_queue(queue: FocusQueue, ordered_ids: list[str], today_line_index: int) -> FocusQueue:
    """Apply a full drag-and-drop ordering of the active items.

    Ids not in the active list are ignored; active items missing from
    *ordered_ids* keep their relative order at the end.
    """
    active, completed = _split(queue)
    by_id = {i.id: i for i in active}
    ordered = [by_id.pop(i) for i in ordered_ids if i in by_id]
    ordered.extend(i for i in active if i.id in by_id)
    line = max(0, min(today_line_index, len(ordered)))
    synced = [_section_selection(item, idx < line) for idx, item in enumerate(ordered)]
    return _build(synced, completed, line)


def update_step_selection(
    queue: FocusQueue,
    item_id: str,
    selection_type: str,
    step_ids: list[str],
    now: int,
) -> FocusQueue:
    """Change what part of a task an item covers, moving it across the line if needed."""
    if selection_type not in SELECTION_TYPES:
        raise ValueError(f"Invalid selection type: {selection_type}")
    active, completed = _split(queue)
    idx = _index_of(active, item_id)
    if idx == -1:
        return queue

    updated = replace(
        active[idx],
        selection_type=selection_type,
        selected_step_ids=[] if selection_type == "all_upcoming" else list(step_ids),
        last_interacted_at=now,
    )
    line = queue.today_line_index
    wants_today = selection_type != "all_upcoming"
    in_today = idx < line
    if wants_today == in_today:
        active[idx] = updated
        return _build(active, completed, line)

    active.pop(idx)
    if wants_today:
        active.insert(line, updated)
        line += 1
    else:
        line -= 1
        active.insert(line, updated)
    return _build(active, completed, line)


def complete_queue_item(queue: FocusQueue, item_id: str, now: int) -> FocusQueue:
    """Mark an item completed and move it below the active items."""
    active, completed = _split(queue)
    idx = _index_of(active, item_id)
    if idx == -1:
        return queue
    item = active.pop(idx)
    line = queue.today_line_index - 1 if idx < queue.today_line_index else queue.today_line_index
    done = replace(item, completed=True, completed_at=now, last_interacted_at=now)
    return _build(active, completed + [done], line)


def touch_queue_item(queue: FocusQueue, item_id: str, now: int) -> FocusQueue:
    return FocusQueue(
        items=[replace(i, last_interacted_at=now) if i.id == item_id else i for i in queue.items],
        today_line_index=queue.today_line_index,
    )


def prune_orphans(queue: FocusQueue, tasks: list[Task]) -> FocusQueue:
    """Remove items whose task no longer exists or is soft-deleted."""
    live = {t.id for t in tasks if not t.is_deleted}
    pruned = queue
    for item in queue.items:
        if item.task_id not in live:
            pruned = remove_from_queue(pruned, item.id)
    return pruned


# ── Views ─────────────────────────────────────────────────────


def queue_with_priority(
    queue: FocusQueue,
    tasks: list[Task],
    user_energy: str | None,
    now: int,
    config: EngineConfig | None = None,
) -> list[dict[str, Any]]:
    """Active items in queue order, each annotated with its task's priority badge."""
    by_id = {t.id: t for t in tasks}
    rows = []
    active, _ = _split(queue)
    for idx, item in enumerate(active):
        task = by_id.get(item.task_id)
        if task is None:
            continue
        info = get_task_priority_info(task, user_energy, now, config)
        rows.append({
            "item": item.to_dict(),
            "section": "today" if idx < queue.today_line_index else "upcoming",
            "title": task.title,
            "progress": round(queue_item_progress(item, task), 3),
            "complete": is_queue_item_complete(item, task),
            "estimatedMinutes": queue_item_estimate(item, task),
            "stale": is_queue_item_stale(item, now, config),
            "priority": {"score": round(info.score, 2), "tier": info.tier},
        })
    return rows
