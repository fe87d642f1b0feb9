"""Atomic file I/O for the Nudge workspace."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TextIO

import yaml

logger = logging.getLogger(__name__)


def read_text(path: Path) -> str:
    """Read a text file, returning empty string if missing."""
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8")


def read_json(path: Path) -> dict[str, Any]:
    """Read a JSON object, returning empty dict if missing or empty."""
    text = read_text(path)
    if not text.strip():
        return {}
    result = json.loads(text)
    return result if isinstance(result, dict) else {}


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping, returning empty dict if missing or empty."""
    text = read_text(path)
    if not text.strip():
        return {}
    result = yaml.safe_load(text)
    return result if isinstance(result, dict) else {}


@contextmanager
def _replacing(path: Path, suffix: str) -> Iterator[TextIO]:
    """Yield a locked scratch file beside *path* that replaces it on a clean exit.

    Readers see either the old document or the new one. If the body raises,
    the scratch file is removed and *path* is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    scratch = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.stem}-", suffix=suffix, delete=False
    )
    staged = Path(scratch.name)
    try:
        with scratch:
            fcntl.flock(scratch.fileno(), fcntl.LOCK_EX)
            yield scratch
            scratch.flush()
            os.fsync(scratch.fileno())
        staged.replace(path)
    except BaseException:
        staged.unlink(missing_ok=True)
        logger.warning("Discarded partial write of %s", path)
        raise
    logger.debug("Replaced %s", path)


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    with _replacing(path, ".json") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")


def write_yaml_atomic(path: Path, data: dict[str, Any]) -> None:
    with _replacing(path, ".yaml") as f:
        yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
