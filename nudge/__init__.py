"""Nudge: task health, priority scoring, recurrence and focus session engine.

Public API re-exports for convenient imports:
    from nudge import get_task_priority_info, get_active_occurrence_date, start_focus, ...
"""

# Dates
from nudge.clock import (
    is_valid_date,
    today_iso,
    timestamp_to_local_date,
    add_days,
    days_between,
)

# Configuration
from nudge.config import (
    EngineConfig,
    PriorityWeights,
    TierThresholds,
    load_config,
)

# Workspace & file I/O
from nudge.workspace import (
    workspace_root,
    now_ms,
    settings_path,
    tasks_path,
    focus_path,
)
from nudge.fileio import (
    read_json,
    read_yaml,
    write_json_atomic,
    write_yaml_atomic,
)

# Recurrence
from nudge.recurrence import (
    date_matches_pattern,
    next_occurrence,
    previous_occurrence,
    validate_rule,
    describe_rule,
)
from nudge.instances import (
    get_active_occurrence_date,
    effective_start_date,
    ensure_instance,
    calculate_streak,
    recurring_stats,
    occurrences_in_range,
    filter_due_today,
    mark_instance_complete,
    skip_instance,
    mark_instance_incomplete,
    toggle_instance_step,
    promote_step,
    demote_step,
    reset_instance_from_template,
)

# Health, priority & pool views
from nudge.health import (
    HealthInfo,
    compute_health_status,
    tasks_needing_attention,
)
from nudge.priority import (
    PriorityInfo,
    RankedTask,
    get_task_priority_info,
    get_tasks_for_priority_queue,
    group_by_tier,
    filter_tasks_by_energy,
)
from nudge.pool import (
    get_pool_tasks,
    get_resurfaced_tasks,
    get_waiting_on_tasks,
    get_pool_counts,
    get_high_priority_not_in_queue,
    get_deadline_approaching,
    pool_overview,
)

# Focus queue & session
from nudge.queue import (
    add_to_queue,
    remove_from_queue,
    move_queue_item,
    update_step_selection,
    today_items,
    upcoming_items,
    completed_items,
    queue_with_priority,
)
from nudge.focus import (
    FocusExit,
    start_focus,
    start_recurring_focus,
    pause_focus,
    resume_focus,
    exit_focus,
    complete_current_step,
)

# Tasks
from nudge.tasks import (
    validate_task,
    load_store,
    save_store,
    find_task,
    create_task,
    update_task,
    complete_task,
    delete_task,
    queue_task,
    delete_project,
    get_tasks_with_computed_fields,
)

# Models
from nudge.models import (
    Step,
    WaitingOn,
    RecurrenceRule,
    RecurringInstance,
    Task,
    Project,
    FocusQueueItem,
    FocusQueue,
    FocusModeState,
    TaskStore,
)
