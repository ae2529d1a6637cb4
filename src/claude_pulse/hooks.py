"""
Claude Code hook commands.

These run inside Claude Code, not inside the observer, and produce the files
the observer reads:

claude-pulse-statusline
    Configured as Claude Code's ``statusLine`` command. Receives the status
    JSON on stdin, stores it as ``{status_dir}/{session_id}.json`` and prints
    a one-line status for Claude's own display.

claude-pulse-session-start
    Configured as a ``SessionStart`` hook. If the launching shell exported
    CLAUDE_PULSE_SESSION_ID, records the mapping from Claude's session ID to
    that stable ID.

Both commands always exit 0: a hook failure must never disturb Claude Code.
Problems are logged to <data dir>/logs/hooks.log instead.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import sys
from typing import TextIO

from .bridge import SessionIdBridge
from .config import load_config_or_default
from .logging_setup import HOOK_LOG_NAME, configure_logging
from .paths import status_file_path, write_text_atomic

logger = logging.getLogger("claude_pulse.hooks")

SESSION_ID_ENV = "CLAUDE_PULSE_SESSION_ID"
UNKNOWN_SESSION_ID = "unknown"


def is_safe_session_id(value: object) -> bool:
    """True if value can be used as a file name inside the status directory."""
    if not isinstance(value, str) or not value or value in (".", ".."):
        return False
    return os.path.basename(value) == value and "\\" not in value and "\0" not in value


def write_status(payload_text: str, status_dir: Path) -> tuple[Path, str]:
    """
    Store a statusline payload and build the line to display.

    Args:
        payload_text: Raw JSON received on stdin
        status_dir: Directory for status files

    Returns:
        (status file path, display line)
    """
    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    session_id = payload.get("session_id")
    if not is_safe_session_id(session_id):
        if session_id:
            logger.warning(f"Rejected session_id {session_id!r}; storing as {UNKNOWN_SESSION_ID}")
        session_id = UNKNOWN_SESSION_ID

    status_dir.mkdir(parents=True, exist_ok=True)
    path = status_file_path(status_dir, session_id)
    write_text_atomic(path, payload_text)

    return path, format_status_line(payload)


def format_status_line(payload: dict) -> str:
    """Format ``[<model>] Context: <pct>%`` from a statusline payload."""
    model = payload.get("model")
    display_name = model.get("display_name") if isinstance(model, dict) else None
    if not display_name:
        display_name = "?"

    context_window = payload.get("context_window")
    used = context_window.get("used_percentage") if isinstance(context_window, dict) else None
    if isinstance(used, bool) or not isinstance(used, (int, float)):
        used = 0

    return f"[{display_name}] Context: {used:.0f}%"


def record_session_start(payload_text: str, status_dir: Path, stable_id: str | None) -> Path | None:
    """
    Record the Claude session ID -> stable ID mapping for a starting session.

    Returns:
        Path of the mapping file, or None if there was nothing to record
    """
    if not stable_id:
        return None
    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None

    external_session_id = payload.get("session_id")
    if not is_safe_session_id(external_session_id):
        if external_session_id:
            logger.warning(f"Rejected session_id {external_session_id!r}; no mapping recorded")
        return None

    return SessionIdBridge(status_dir).record(external_session_id, stable_id.strip())


def _configure_hook_logging() -> None:
    try:
        configure_logging(HOOK_LOG_NAME, stderr=False)
    except OSError as e:
        # Falls back to Python's last-resort stderr handler
        print(f"claude-pulse: cannot open hook log: {e}", file=sys.stderr)


def statusline_main(stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    """Entry point for claude-pulse-statusline."""
    _configure_hook_logging()
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    status_dir = load_config_or_default().watch.resolved_status_dir()

    try:
        _path, line = write_status(stdin.read(), status_dir)
    except OSError as e:
        logger.error(f"Failed to write status file: {e}")
        line = "[?] Context: 0%"

    print(line, file=stdout)
    return 0


def session_start_main(stdin: TextIO | None = None) -> int:
    """Entry point for claude-pulse-session-start."""
    _configure_hook_logging()
    stdin = stdin or sys.stdin
    status_dir = load_config_or_default().watch.resolved_status_dir()

    try:
        record_session_start(stdin.read(), status_dir, os.environ.get(SESSION_ID_ENV))
    except OSError as e:
        logger.error(f"Failed to record session mapping: {e}")

    return 0
