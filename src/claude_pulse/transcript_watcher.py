"""
Transcript watcher.

Keeps at most one live watch per stable session ID on the session's
transcript JSONL. The transcript is owned by Claude Code: it may not exist yet
when its path is first reported, it may be replaced by a new run, and it may
be rewritten in place. So:

- A missing transcript is recorded as pending and its parent directory is
  watched instead; once the file appears it is promoted to a live watch.
- Every change triggers a full re-read rather than an offset-based tail, so a
  truncated or rewritten file can never desynchronise the watcher.
- Each directory is watched once no matter how many pending sessions share it,
  and the watch is released when nothing pending needs it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .events import EventCallback, StateChanged, WatchFailed
from .inference import infer_state
from .watch import DirectoryWatcher, Subscription

logger = logging.getLogger("claude_pulse.transcript_watcher")


class TranscriptWatcher:
    """Tail transcripts and emit StateChanged events per stable session ID."""

    def __init__(self, directory_watcher: DirectoryWatcher):
        self._directory_watcher = directory_watcher
        self._on_event: EventCallback | None = None
        # session -> transcript path (live or pending)
        self._paths: dict[str, Path] = {}
        # session -> subscription on the transcript file
        self._live: dict[str, Subscription] = {}
        # session -> transcript path that doesn't exist yet
        self._pending: dict[str, Path] = {}
        # directory -> subscription used to wait for pending files
        self._directory_watches: dict[str, Subscription] = {}

    def start(self, on_event: EventCallback) -> None:
        """Set the callback that receives StateChanged / WatchFailed events."""
        self._on_event = on_event

    @property
    def transcript_paths(self) -> dict[str, Path]:
        """Copy of the session -> transcript path bookkeeping."""
        return dict(self._paths)

    @property
    def pending_directories(self) -> set[str]:
        """Directories currently watched on behalf of pending transcripts."""
        return set(self._directory_watches)

    def path_for(self, session_id: str) -> Path | None:
        return self._paths.get(session_id)

    def is_live(self, session_id: str) -> bool:
        """True if the session's transcript exists and is being watched."""
        return session_id in self._live

    def is_pending(self, session_id: str) -> bool:
        """True if the session is waiting for its transcript to appear."""
        return session_id in self._pending

    def watch(self, session_id: str, path: str | Path) -> None:
        """
        Watch a transcript for a session.

        No-op if the session already watches exactly this path. A different
        path replaces the current watch: the newest instruction wins.

        Args:
            session_id: Stable session ID
            path: Transcript path; it need not exist yet
        """
        path = Path(os.path.abspath(Path(path).expanduser()))
        current = self._paths.get(session_id)

        if current == path and (session_id in self._live or session_id in self._pending):
            return

        if current is not None and current != path:
            logger.info(f"Transcript path changed for {session_id[:8]}..., switching to {path.name}")
            self.stop(session_id)

        self._paths[session_id] = path

        if path.is_file():
            self._start_file_watch(session_id, path)
        else:
            logger.info(f"Transcript not ready, watching directory for {session_id[:8]}...")
            self._watch_directory_for_file(session_id, path)

    def stop(self, session_id: str) -> None:
        """Stop watching a session's transcript, live or pending."""
        subscription = self._live.pop(session_id, None)
        if subscription is not None:
            subscription.cancel()
        self._paths.pop(session_id, None)
        self._pending.pop(session_id, None)
        self._cleanup_directory_watches()

    def stop_all(self) -> None:
        """Tear down every live and pending watch."""
        for session_id in list(self._live):
            self.stop(session_id)
        self._pending.clear()
        self._paths.clear()
        for subscription in self._directory_watches.values():
            subscription.cancel()
        self._directory_watches.clear()

    def check_pending_files(self) -> None:
        """Promote pending transcripts that now exist to live watches."""
        for session_id, path in list(self._pending.items()):
            if session_id not in self._pending:
                continue
            if path.is_file():
                logger.info(f"Pending transcript now available for {session_id[:8]}...")
                self._start_file_watch(session_id, path)

        self._cleanup_directory_watches()

    def check_transcript(self, session_id: str) -> None:
        """Re-read a session's whole transcript and emit the inferred state."""
        path = self._paths.get(session_id)
        if path is None:
            return

        # Fresh read each time; the watch itself holds no file handle.
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.debug(f"Failed to read transcript {path}: {e}")
            return

        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.debug(f"Transcript {path.name} is not valid UTF-8: {e}")
            return

        inference = infer_state(content)
        if inference is None:
            logger.debug(f"No classifiable entry in {path.name}")
            return

        logger.debug(f"State for {session_id[:8]}...: {inference.state.value}")
        self._emit(StateChanged(session_id, inference.state, inference.line))

    def _start_file_watch(self, session_id: str, path: Path) -> None:
        self._pending.pop(session_id, None)

        try:
            subscription = self._directory_watcher.subscribe(
                path.parent,
                lambda _changed: self.check_transcript(session_id),
                name=path.name,
            )
        except OSError as e:
            logger.warning(f"Failed to watch transcript {path}: {e}")
            self._paths.pop(session_id, None)
            self._cleanup_directory_watches()
            self._emit(WatchFailed(session_id, str(path), str(e)))
            return

        self._live[session_id] = subscription
        self._cleanup_directory_watches()

        # Initial read so callers don't wait for the next write
        self.check_transcript(session_id)

    def _watch_directory_for_file(self, session_id: str, path: Path) -> None:
        self._pending[session_id] = path

        directory = str(path.parent)
        if directory in self._directory_watches:
            return

        try:
            subscription = self._directory_watcher.subscribe(
                path.parent,
                self._on_pending_directory_change,
            )
        except OSError as e:
            logger.warning(f"Failed to open directory for watching: {directory} ({e})")
            self._pending.pop(session_id, None)
            self._paths.pop(session_id, None)
            self._emit(WatchFailed(session_id, str(path), str(e)))
            return

        self._directory_watches[directory] = subscription

        # The file may have appeared between the existence check and the subscribe.
        if path.is_file():
            self.check_pending_files()

    def _on_pending_directory_change(self, changed: Path) -> None:
        self.check_pending_files()

    def _cleanup_directory_watches(self) -> None:
        needed = {str(path.parent) for path in self._pending.values()}
        for directory in list(self._directory_watches):
            if directory not in needed:
                self._directory_watches.pop(directory).cancel()

    def _emit(self, event) -> None:
        if self._on_event is not None:
            self._on_event(event)
