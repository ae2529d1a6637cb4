"""
Session Registry for claude-pulse

Tracks the caller's logical sessions: the stable ID the caller assigned, the
directory Claude runs in, and everything inferred about it so far (latest
status snapshot, transcript path, current state).

The registry is owned by the SessionCoordinator and only mutated on its loop.
Everything handed out to callers is an immutable SessionView.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .schemas.status import StatusSnapshot
from .state import AgentState


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionView:
    """
    Read-only copy of an ObservedSession at one point in time.

    Attributes:
        session_id: Caller-assigned stable ID
        directory: Directory Claude runs in
        name: Display name
        state: Current inferred state
        snapshot: Latest status snapshot, if any
        transcript_path: Transcript currently watched, if any
        external_session_id: Claude's session ID from the latest snapshot
        transcript_line: Transcript line that decided the state (diagnostics)
        error_detail: Detail passed with an explicit error signal
    """

    session_id: str
    directory: Path
    name: str
    state: AgentState
    snapshot: Optional[StatusSnapshot]
    transcript_path: Optional[Path]
    external_session_id: Optional[str]
    transcript_line: Optional[str]
    error_detail: Optional[str]
    created_at: datetime
    last_activity: datetime

    def to_dict(self) -> dict:
        """Convert to dictionary for MCP tool responses."""
        return {
            "session_id": self.session_id,
            "directory": str(self.directory),
            "name": self.name,
            "state": self.state.value,
            "state_display_name": self.state.display_name,
            "external_session_id": self.external_session_id,
            "transcript_path": str(self.transcript_path) if self.transcript_path else None,
            "status": self.snapshot.to_dict() if self.snapshot else None,
            "transcript_line": self.transcript_line,
            "error_detail": self.error_detail,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


@dataclass
class ObservedSession:
    """
    A logical session whose Claude Code process is being observed.

    Mutated only by the SessionCoordinator in response to watcher events.
    """

    session_id: str
    directory: Path
    name: Optional[str] = None
    snapshot: Optional[StatusSnapshot] = None
    state: AgentState = AgentState.IDLE
    transcript_path: Optional[Path] = None
    external_session_id: Optional[str] = None
    transcript_line: Optional[str] = None
    error_detail: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)

    # Every Claude session ID seen for this session (one per Claude run)
    external_session_ids: set[str] = field(default_factory=set)

    def __post_init__(self):
        """Default the display name to the directory's basename."""
        if not self.name:
            self.name = self.directory.name or str(self.directory)

    def update_activity(self) -> None:
        """Update the last_activity timestamp."""
        self.last_activity = _now()

    def to_view(self) -> SessionView:
        return SessionView(
            session_id=self.session_id,
            directory=self.directory,
            name=self.name or self.session_id,
            state=self.state,
            snapshot=self.snapshot,
            transcript_path=self.transcript_path,
            external_session_id=self.external_session_id,
            transcript_line=self.transcript_line,
            error_detail=self.error_detail,
            created_at=self.created_at,
            last_activity=self.last_activity,
        )


class SessionRegistry:
    """
    Registry of observed sessions, keyed by stable session ID.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._sessions: dict[str, ObservedSession] = {}

    def add(
        self,
        session_id: str,
        directory: Path,
        name: Optional[str] = None,
    ) -> ObservedSession:
        """
        Add a new session to the registry.

        Args:
            session_id: Caller-assigned stable ID
            directory: Directory where Claude is running
            name: Optional display name (defaults to the directory name)

        Returns:
            The created ObservedSession

        Raises:
            ValueError: If the ID is empty or already registered
        """
        if not session_id:
            raise ValueError("session_id must be non-empty")
        if session_id in self._sessions:
            raise ValueError(f"Session already exists: {session_id}")

        session = ObservedSession(
            session_id=session_id,
            directory=directory,
            name=name,
        )
        self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> Optional[ObservedSession]:
        """Get a session by ID, or None."""
        return self._sessions.get(session_id)

    def get_by_name(self, name: str) -> Optional[ObservedSession]:
        """Get the first session with this display name, or None."""
        for session in self._sessions.values():
            if session.name == name:
                return session
        return None

    def resolve(self, identifier: str) -> Optional[ObservedSession]:
        """
        Resolve a session by stable ID, then by Claude session ID, then by name.
        """
        if identifier in self._sessions:
            return self._sessions[identifier]

        for session in self._sessions.values():
            if identifier in session.external_session_ids:
                return session

        return self.get_by_name(identifier)

    def list_all(self) -> list[ObservedSession]:
        """All sessions, in creation order."""
        return list(self._sessions.values())

    def list_by_state(self, state: AgentState) -> list[ObservedSession]:
        """Sessions currently in the given state."""
        return [s for s in self._sessions.values() if s.state == state]

    def remove(self, session_id: str) -> Optional[ObservedSession]:
        """Remove a session, returning it (or None if unknown)."""
        return self._sessions.pop(session_id, None)

    def count(self) -> int:
        """Return the number of registered sessions."""
        return len(self._sessions)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
