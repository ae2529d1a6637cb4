"""
Session ID bridge.

Claude Code assigns a fresh session ID on every run. The caller knows its
sessions by a stable ID instead, which it exports as CLAUDE_PULSE_SESSION_ID
into the shell that launches Claude. At startup the SessionStart hook writes
``{status_dir}/{claude_session_id}.mapping`` containing that stable ID, and
this module reads it back.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .paths import mapping_file_path, write_text_atomic

logger = logging.getLogger("claude_pulse.bridge")


class SessionIdBridge:
    """Resolve Claude's per-run session IDs to the caller's stable IDs."""

    def __init__(self, status_dir: Path):
        self.status_dir = status_dir

    def resolve(self, external_session_id: str) -> str | None:
        """
        Look up the stable ID for a Claude session ID.

        Returns None when there is no mapping yet, or it is unreadable or
        empty. An unresolved ID is not an error: the run may simply not be
        one of ours.
        """
        if not external_session_id:
            return None

        path = mapping_file_path(self.status_dir, external_session_id)
        try:
            stable_id = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Unreadable mapping {path.name}: {e}")
            return None

        return stable_id or None

    def record(self, external_session_id: str, stable_id: str) -> Path:
        """
        Write the mapping for a Claude session ID.

        Written to a temp file and renamed so readers never see a partial ID.

        Returns:
            Path of the mapping file
        """
        self.status_dir.mkdir(parents=True, exist_ok=True)
        path = mapping_file_path(self.status_dir, external_session_id)
        write_text_atomic(path, f"{stable_id}\n")
        return path
