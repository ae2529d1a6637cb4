"""Events delivered by the watchers and forwarded to the caller."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal, Union

from .schemas.status import StatusSnapshot
from .state import AgentState

EventKind = Literal[
    "snapshot_updated",
    "state_changed",
    "watch_failed",
]


@dataclass(frozen=True)
class SnapshotUpdated:
    """A status file for a session was written and parsed."""

    session_id: str
    external_session_id: str
    snapshot: StatusSnapshot
    kind: EventKind = "snapshot_updated"


@dataclass(frozen=True)
class StateChanged:
    """
    A transcript was classified.

    Attributes:
        session_id: Stable session ID
        state: Newly inferred state
        transcript_line: Raw line that decided the state (diagnostics)
    """

    session_id: str
    state: AgentState
    transcript_line: str | None = None
    kind: EventKind = "state_changed"


@dataclass(frozen=True)
class WatchFailed:
    """A file or directory could not be watched."""

    session_id: str
    path: str
    reason: str
    kind: EventKind = "watch_failed"


SessionEvent = Union[SnapshotUpdated, StateChanged, WatchFailed]
EventCallback = Callable[[SessionEvent], None]


def event_to_dict(event: SessionEvent) -> dict:
    """Convert an event into a JSON-serializable payload."""
    if isinstance(event, SnapshotUpdated):
        return {
            "kind": event.kind,
            "session_id": event.session_id,
            "external_session_id": event.external_session_id,
            "snapshot": event.snapshot.to_dict(),
        }
    if isinstance(event, StateChanged):
        return {
            "kind": event.kind,
            "session_id": event.session_id,
            "state": event.state.value,
            "transcript_line": event.transcript_line,
        }
    return {
        "kind": event.kind,
        "session_id": event.session_id,
        "path": event.path,
        "reason": event.reason,
    }
