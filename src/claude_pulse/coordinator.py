"""
Session coordinator.

Wires the watchers to the session registry:

    status file written
      -> StatusFileWatcher (keyed by Claude's session ID)
      -> SessionIdBridge (Claude session ID -> stable ID)
      -> snapshot stored on the session
      -> TranscriptWatcher told to watch the snapshot's transcript path
    transcript written
      -> TranscriptWatcher classifies the newest entry
      -> state stored on the session
    every applied event is forwarded to the caller's callback.

All of this runs on one asyncio loop, so session records and watcher
bookkeeping need no locks.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .bridge import SessionIdBridge
from .config import PulseConfig
from .events import (
    EventCallback,
    SessionEvent,
    SnapshotUpdated,
    StateChanged,
    WatchFailed,
)
from .registry import ObservedSession, SessionRegistry, SessionView
from .schemas.status import StatusSnapshot
from .state import AgentState
from .status_watcher import StatusFileWatcher
from .transcript_watcher import TranscriptWatcher
from .watch import DirectoryWatcher, Subscription

logger = logging.getLogger("claude_pulse.coordinator")


def should_redirect(
    current_path: Path | None,
    current_is_live: bool,
    new_path: Path,
) -> bool:
    """
    Decide whether a session's transcript watch may move to new_path.

    A session bound to a transcript that exists is only moved once the new
    transcript exists too. This keeps a stale status file from an earlier
    Claude run (whose transcript never appears) from stealing the session
    away from its live transcript.

    Args:
        current_path: Transcript currently watched (live or pending), if any
        current_is_live: Whether current_path exists and is being watched
        new_path: Transcript path from the latest status snapshot

    Returns:
        True if the watch should be (re)directed to new_path
    """
    if current_path is None or not current_is_live:
        return True
    if current_path == new_path:
        return True
    return new_path.exists()


class SessionCoordinator:
    """
    Owns the observed sessions and applies watcher events to them.

    Usage:
        coordinator = SessionCoordinator.from_config(load_config(), on_event=print)
        await coordinator.start()
        coordinator.create_session("a3f2b1c9", Path("~/src/app").expanduser())
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        status_dir: Path,
        on_event: EventCallback | None = None,
        *,
        directory_watcher: DirectoryWatcher | None = None,
        bridge: SessionIdBridge | None = None,
        status_watcher: StatusFileWatcher | None = None,
        transcript_watcher: TranscriptWatcher | None = None,
    ):
        self.status_dir = status_dir
        self.registry = SessionRegistry()
        self._on_event = on_event
        self.directory_watcher = directory_watcher or DirectoryWatcher()
        self.bridge = bridge or SessionIdBridge(status_dir)
        self.status_watcher = status_watcher or StatusFileWatcher(status_dir, self.directory_watcher)
        self.transcript_watcher = transcript_watcher or TranscriptWatcher(self.directory_watcher)
        self.transcript_watcher.start(self._on_transcript_event)
        # session -> transcript path held back by should_redirect()
        self._deferred: dict[str, Path] = {}
        # session -> subscription waiting for its deferred transcript to appear
        self._deferred_watches: dict[str, Subscription] = {}
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: PulseConfig,
        on_event: EventCallback | None = None,
    ) -> "SessionCoordinator":
        """Build a coordinator from loaded configuration."""
        directory_watcher = DirectoryWatcher(
            use_polling=config.watch.use_polling,
            poll_interval=config.watch.poll_interval_seconds,
        )
        return cls(
            config.watch.resolved_status_dir(),
            on_event,
            directory_watcher=directory_watcher,
        )

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start watching. Must be awaited on the loop that will own all state."""
        if self._started:
            return
        self.directory_watcher.start()
        self.status_watcher.start(self.handle_status_update)
        self._started = True
        logger.info(f"Session coordinator started ({self.registry.count()} session(s))")

    async def stop(self) -> None:
        """Stop every watch. No events are delivered after this returns."""
        if not self._started:
            return
        self.status_watcher.stop()
        self.transcript_watcher.stop_all()
        for session_id in list(self._deferred):
            self._clear_deferred(session_id)
        self.directory_watcher.stop()
        self._started = False
        logger.info("Session coordinator stopped")

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        session_id: str,
        directory: Path | str,
        name: str | None = None,
        *,
        transcript_path: Path | str | None = None,
    ) -> SessionView:
        """
        Register a session to observe.

        While running, status files already read for this session (its
        mapping was written before the session was registered) are applied
        right away rather than waiting for Claude to rewrite them.

        Args:
            session_id: Caller-assigned stable ID (exported to Claude's shell
                as CLAUDE_PULSE_SESSION_ID)
            directory: Directory Claude runs in
            name: Display name (defaults to the directory name)
            transcript_path: Transcript to resume watching, e.g. when the
                caller restores a session saved by an earlier run

        Raises:
            ValueError: If the ID is empty or already registered
        """
        session = self.registry.add(session_id, Path(directory), name=name)
        logger.info(f"Created session '{session.name}' id={session_id[:8]}... dir={session.directory}")

        if transcript_path is not None:
            self._route_transcript(session, Path(transcript_path))
        if self._started:
            self._replay_status_files(session_id)

        return session.to_view()

    def delete_session(self, session_id: str) -> SessionView | None:
        """
        Stop observing a session.

        Watches and status files are cleaned up before the record is
        removed, so no late event can reach a deleted session.

        Returns:
            The session's final view, or None if it was unknown
        """
        session = self.registry.get(session_id)
        if session is None:
            return None

        self.transcript_watcher.stop(session_id)
        for external_session_id in sorted(session.external_session_ids):
            self.status_watcher.cleanup_status_file(external_session_id)
        self._clear_deferred(session_id)

        self.registry.remove(session_id)
        logger.info(f"Deleted session '{session.name}' id={session_id[:8]}...")
        return session.to_view()

    def get_session(self, session_id: str) -> SessionView | None:
        session = self.registry.get(session_id)
        return session.to_view() if session else None

    def resolve_session(self, identifier: str) -> SessionView | None:
        """Find a session by stable ID, any Claude session ID it ran under, or name."""
        session = self.registry.resolve(identifier)
        return session.to_view() if session else None

    def list_sessions(self, state: AgentState | None = None) -> list[SessionView]:
        """Snapshot of all sessions, optionally filtered by state."""
        if state is None:
            sessions = self.registry.list_all()
        else:
            sessions = self.registry.list_by_state(state)
        return [session.to_view() for session in sessions]

    def mark_error(self, session_id: str, detail: str | None = None) -> bool:
        """
        Put a session into the error state on the caller's behalf.

        The next classified transcript entry moves it out again.

        Returns:
            True if the session exists
        """
        session = self.registry.get(session_id)
        if session is None:
            return False
        session.state = AgentState.ERROR
        session.error_detail = detail
        session.update_activity()
        self._forward(StateChanged(session_id, AgentState.ERROR, None))
        return True

    # ------------------------------------------------------------------
    # Watcher callbacks
    # ------------------------------------------------------------------

    def handle_status_update(self, external_session_id: str, snapshot: StatusSnapshot) -> None:
        """Apply a status snapshot delivered under Claude's session ID."""
        session_id = self.bridge.resolve(external_session_id)
        if session_id is None:
            # Not a session we manage (or its mapping isn't written yet)
            logger.debug(f"No mapping for Claude session {external_session_id[:8]}...")
            self._retry_deferred()
            return

        session = self.registry.get(session_id)
        if session is None:
            logger.debug(f"Mapping for {external_session_id[:8]}... names unknown session {session_id[:8]}...")
            self._retry_deferred()
            return

        logger.debug(f"Status update for '{session.name}' (claude: {external_session_id[:8]}...)")
        session.snapshot = snapshot
        session.external_session_id = external_session_id
        session.external_session_ids.add(external_session_id)
        session.update_activity()
        self._forward(SnapshotUpdated(session_id, external_session_id, snapshot))

        if snapshot.transcript_path:
            self._route_transcript(session, Path(snapshot.transcript_path))
        self._retry_deferred()

    def handle_state_change(self, event: StateChanged) -> None:
        """Overwrite a session's state with the latest classification."""
        session = self.registry.get(event.session_id)
        if session is None:
            logger.debug(f"State update: no session found for {event.session_id[:8]}...")
            return

        if session.state != event.state:
            logger.info(f"State for '{session.name}': {session.state.value} -> {event.state.value}")
        session.state = event.state
        session.transcript_line = event.transcript_line
        session.error_detail = None
        session.update_activity()
        self._forward(event)

    def handle_watch_failed(self, event: WatchFailed) -> None:
        """Record that a transcript could not be watched. State is kept."""
        session = self.registry.get(event.session_id)
        if session is None:
            return
        logger.warning(f"Watch failed for '{session.name}': {event.path} ({event.reason})")
        session.transcript_path = self.transcript_watcher.path_for(event.session_id)
        self._forward(event)

    def _on_transcript_event(self, event: SessionEvent) -> None:
        if isinstance(event, StateChanged):
            self.handle_state_change(event)
        elif isinstance(event, WatchFailed):
            self.handle_watch_failed(event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _route_transcript(self, session: ObservedSession, path: Path) -> None:
        session_id = session.session_id
        new_path = Path(os.path.abspath(path.expanduser()))
        current_path = self.transcript_watcher.path_for(session_id)

        if not should_redirect(current_path, self.transcript_watcher.is_live(session_id), new_path):
            if self._deferred.get(session_id) != new_path:
                logger.info(
                    f"Keeping '{session.name}' on {current_path.name}; "
                    f"{new_path.name} does not exist yet"
                )
                self._defer(session_id, new_path)
            return

        self._clear_deferred(session_id)
        self.transcript_watcher.watch(session_id, new_path)
        # The watch may have failed, or a WatchFailed event may have arrived first.
        if session_id in self.registry:
            session.transcript_path = self.transcript_watcher.path_for(session_id)

    def _defer(self, session_id: str, path: Path) -> None:
        """Hold a transcript back and switch to it as soon as it is created."""
        self._clear_deferred(session_id)
        self._deferred[session_id] = path
        try:
            self._deferred_watches[session_id] = self.directory_watcher.subscribe(
                path.parent,
                lambda _changed: self._on_deferred_change(session_id),
                name=path.name,
            )
        except OSError as e:
            # Still retried on every status update
            logger.debug(f"Cannot watch for deferred transcript {path}: {e}")

    def _clear_deferred(self, session_id: str) -> None:
        self._deferred.pop(session_id, None)
        subscription = self._deferred_watches.pop(session_id, None)
        if subscription is not None:
            subscription.cancel()

    def _on_deferred_change(self, session_id: str) -> None:
        path = self._deferred.get(session_id)
        session = self.registry.get(session_id)
        if path is None or session is None:
            self._clear_deferred(session_id)
            return
        if path.exists():
            logger.info(f"Deferred transcript {path.name} created, switching '{session.name}'")
            self._route_transcript(session, path)

    def _retry_deferred(self) -> None:
        # Held-back transcripts that now exist take over their session.
        for session_id, path in list(self._deferred.items()):
            session = self.registry.get(session_id)
            if session is None:
                self._clear_deferred(session_id)
                continue
            if path.exists():
                logger.info(f"Deferred transcript {path.name} now exists, switching '{session.name}'")
                self._route_transcript(session, path)

    def _replay_status_files(self, session_id: str) -> None:
        # Status files read before this session existed were dropped as unmapped.
        external_session_ids = [
            external_session_id
            for external_session_id in self.status_watcher.seen_session_ids
            if self.bridge.resolve(external_session_id) == session_id
        ]
        if external_session_ids:
            logger.debug(f"Replaying {len(external_session_ids)} status file(s) for {session_id[:8]}...")
            self.status_watcher.redeliver(external_session_ids)

    def _forward(self, event: SessionEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception(f"Error in session event callback for {event.session_id[:8]}...")
