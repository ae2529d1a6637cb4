"""
Logging configuration for claude-pulse.

Two kinds of process log through here:

- The MCP server, which talks JSON-RPC over stdout. It logs to a rotating
  ``claude-pulse.log`` under <data dir>/logs/ and mirrors warnings to stderr.
- The hook commands, which Claude Code runs on every status refresh. Their
  stdout is Claude's status line and their stderr may be shown to the user,
  so they log to ``hooks.log`` only, at WARNING unless overridden.

Rotated files are gzip-compressed. Files are opened on first write, so a
hook run that logs nothing leaves no file behind.
"""

from __future__ import annotations

import gzip
import logging
from logging.handlers import RotatingFileHandler
import os
from pathlib import Path
import shutil

from .paths import resolve_data_dir

SERVER_LOG_NAME = "claude-pulse.log"
HOOK_LOG_NAME = "hooks.log"

# Third-party loggers that are chatty below WARNING.
_QUIET_LOGGERS = ("watchdog", "mcp.server.lowlevel")

_FORMAT = "%(asctime)s - %(process)d - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_name: str = SERVER_LOG_NAME, *, stderr: bool = True) -> Path:
    """
    Route all claude-pulse logging to a rotating file under the data dir.

    Args:
        log_name: File name inside <data dir>/logs/
        stderr: Also log to stderr (at CLAUDE_PULSE_STDERR_LOG_LEVEL,
            WARNING by default). Hooks pass False.

    Returns:
        Path to the log file.

    Raises:
        OSError: If the log directory cannot be created
    """
    log_dir = resolve_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_name

    fmt = logging.Formatter(_FORMAT)
    file_handler = _rotating_handler(log_path)
    file_handler.setFormatter(fmt)

    root = logging.getLogger()
    default_level = "INFO" if stderr else "WARNING"
    level_name = os.getenv("CLAUDE_PULSE_LOG_LEVEL", default_level).upper()
    root.setLevel(getattr(logging, level_name, getattr(logging, default_level)))

    # Replace existing handlers so we don't duplicate output.
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(file_handler)

    if stderr:
        stderr_level_name = os.getenv("CLAUDE_PULSE_STDERR_LOG_LEVEL", "WARNING").upper()
        stderr_handler = logging.StreamHandler()
        stderr_handler.setLevel(getattr(logging, stderr_level_name, logging.WARNING))
        stderr_handler.setFormatter(fmt)
        root.addHandler(stderr_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _rotating_handler(log_path: Path) -> RotatingFileHandler:
    max_mb = _get_int_env("CLAUDE_PULSE_LOG_MAX_SIZE_MB", default=10, min_value=1)
    backups = _get_int_env("CLAUDE_PULSE_LOG_BACKUP_COUNT", default=5, min_value=1)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
        delay=True,
    )
    handler.namer = _gzip_name
    handler.rotator = _gzip_rotate
    return handler


def _gzip_name(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotate(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    try:
        os.remove(source)
    except FileNotFoundError:
        # Another hook process rotated it first
        pass


def _get_int_env(name: str, *, default: int, min_value: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    if parsed < min_value:
        return default
    return parsed
