"""Workspace root and path helpers for Nudge.

This is the host side of the engine: the only place that reads the
environment or the wall clock.
"""

from __future__ import annotations

import os
import time
from pathlib import Path


def workspace_root() -> Path:
    """Workspace directory holding ``planner/``; ``$NUDGE_ROOT`` or ``~/nudge``."""
    return Path(
        os.environ.get("NUDGE_ROOT", str(Path.home() / "nudge"))
    ).expanduser().resolve()


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# ── Path helpers ──────────────────────────────────────────────

def settings_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "planner" / "settings.yaml"


def tasks_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "planner" / "tasks.yaml"


def focus_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "planner" / "focus.json"
