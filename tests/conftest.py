"""Shared test fixtures for Nudge tests."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from nudge.config import EngineConfig


def ms(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> int:
    """Epoch milliseconds for a UTC wall time."""
    return int(datetime(year, month, day, hour, minute, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture
def config() -> EngineConfig:
    """Default thresholds pinned to UTC so dates don't depend on the host."""
    return EngineConfig(timezone="UTC")


@pytest.fixture
def now() -> int:
    """Tuesday 2026-03-10, noon UTC."""
    return ms(2026, 3, 10)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with a planner directory and UTC settings."""
    root = tmp_path / "workspace"
    (root / "planner").mkdir(parents=True)

    settings = {
        "timezone": "UTC",
        "day_start_hour": 0,
        "health": {"stale_days": 21},
    }
    (root / "planner" / "settings.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    os.environ["NUDGE_ROOT"] = str(root)
    yield root
    if "NUDGE_ROOT" in os.environ:
        del os.environ["NUDGE_ROOT"]
