"""
Status file watcher.

The statusline hook rewrites ``{status_dir}/{claude_session_id}.json`` each
time Claude Code refreshes its status line. The whole directory is watched so
files for new sessions are picked up without extra setup. On every change the
directory is re-enumerated and any file whose modification time advanced is
parsed and delivered, keyed by file name.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable

import msgspec

from .paths import STATUS_SUFFIX, status_file_path
from .schemas.status import StatusSnapshot, decode_status
from .watch import DirectoryWatcher, Subscription

logger = logging.getLogger("claude_pulse.status_watcher")

StatusCallback = Callable[[str, StatusSnapshot], None]


class StatusFileWatcher:
    """Deliver parsed status snapshots as their files are written."""

    def __init__(self, status_dir: Path, directory_watcher: DirectoryWatcher):
        self.status_dir = status_dir
        self._directory_watcher = directory_watcher
        self._subscription: Subscription | None = None
        self._on_status_update: StatusCallback | None = None
        # file stem (Claude session ID) -> last seen st_mtime_ns
        self._last_modified: dict[str, int] = {}

    @property
    def is_watching(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self, on_status_update: StatusCallback) -> None:
        """
        Start watching the status directory.

        Creates the directory if needed, then runs an initial pass so files
        written before startup are delivered immediately.
        """
        self._on_status_update = on_status_update

        try:
            self.status_dir.mkdir(parents=True, exist_ok=True)
            self._subscription = self._directory_watcher.subscribe(
                self.status_dir,
                self._on_directory_change,
            )
        except OSError as e:
            logger.warning(f"Failed to watch status directory {self.status_dir}: {e}")
            return

        logger.info(f"Watching status files in {self.status_dir}")
        self.check_for_updates()

    def stop(self) -> None:
        """Stop watching. No callbacks are delivered after this returns."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def check_for_updates(self) -> None:
        """Parse and deliver every status file whose mtime advanced."""
        try:
            entries = list(os.scandir(self.status_dir))
        except OSError as e:
            logger.debug(f"Cannot list {self.status_dir}: {e}")
            return

        changed: list[tuple[int, str, Path]] = []
        for entry in entries:
            if entry.name.startswith(".") or not entry.name.endswith(STATUS_SUFFIX):
                continue

            session_id = entry.name[: -len(STATUS_SUFFIX)]
            try:
                modified = entry.stat().st_mtime_ns
            except OSError:
                # Removed between listing and stat
                continue

            # Equal timestamps count as unchanged.
            last_modified = self._last_modified.get(session_id)
            if last_modified is not None and last_modified >= modified:
                continue
            self._last_modified[session_id] = modified
            changed.append((modified, session_id, Path(entry.path)))

        self._deliver(changed)

    @property
    def seen_session_ids(self) -> list[str]:
        """Claude session IDs whose status files have been read at least once."""
        return list(self._last_modified)

    def redeliver(self, session_ids: Iterable[str]) -> None:
        """
        Deliver the current snapshot for each Claude session ID again.

        Used when a snapshot was delivered before anyone could take it, e.g.
        a status file read at startup before its session was registered.
        Files that no longer exist are skipped.
        """
        found: list[tuple[int, str, Path]] = []
        for session_id in session_ids:
            path = status_file_path(self.status_dir, session_id)
            try:
                modified = path.stat().st_mtime_ns
            except OSError:
                continue
            self._last_modified[session_id] = modified
            found.append((modified, session_id, path))

        self._deliver(found)

    def _deliver(self, changed: list[tuple[int, str, Path]]) -> None:
        # Oldest first, so the newest run's snapshot is delivered last.
        changed.sort()
        for _modified, session_id, path in changed:
            snapshot = self._read_snapshot(path)
            if snapshot is None:
                continue

            if self._on_status_update is not None:
                self._on_status_update(session_id, snapshot)

    def cleanup_status_file(self, session_id: str) -> None:
        """Delete a session's status file (best-effort) and forget its timestamp."""
        path = status_file_path(self.status_dir, session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove status file {path}: {e}")
        self._last_modified.pop(session_id, None)

    def _on_directory_change(self, path: Path) -> None:
        self.check_for_updates()

    def _read_snapshot(self, path: Path) -> StatusSnapshot | None:
        # A partially written file fails here and is retried on the next write.
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.debug(f"Failed to read status file {path.name}: {e}")
            return None
        try:
            return decode_status(data)
        except (msgspec.DecodeError, UnicodeDecodeError) as e:
            logger.debug(f"Failed to parse status file {path.name}: {e}")
            return None
