"""Filesystem locations used by claude-pulse."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

DATA_DIR_ENV = "CLAUDE_PULSE_DATA_DIR"
DEFAULT_DATA_DIR = Path.home() / ".claude-pulse"

# Where the statusline and SessionStart hooks drop their files
DEFAULT_STATUS_DIR = Path.home() / ".claude" / "claude-pulse-status"

STATUS_SUFFIX = ".json"
MAPPING_SUFFIX = ".mapping"


def resolve_data_dir() -> Path:
    """Return the data directory (config, logs), honouring CLAUDE_PULSE_DATA_DIR."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_DATA_DIR


def status_file_path(status_dir: Path, external_session_id: str) -> Path:
    """Path of the status snapshot for one Claude session ID."""
    return status_dir / f"{external_session_id}{STATUS_SUFFIX}"


def mapping_file_path(status_dir: Path, external_session_id: str) -> Path:
    """Path of the session-ID mapping for one Claude session ID."""
    return status_dir / f"{external_session_id}{MAPPING_SUFFIX}"


def write_text_atomic(path: Path, text: str) -> None:
    """Write text via a temp file and rename, so readers never see a partial file."""
    # Hidden temp name so directory scans for *.json ignore it.
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
