"""
claude-pulse: infer the live state of Claude Code sessions.

Observes the status files written by Claude Code's statusline hook and the
session transcripts, and keeps a coarse state (idle, thinking, tool use,
waiting for input, ...) per caller-defined session.
"""

from .bridge import SessionIdBridge
from .config import ConfigError, PulseConfig, WatchConfig, load_config
from .coordinator import SessionCoordinator, should_redirect
from .events import SessionEvent, SnapshotUpdated, StateChanged, WatchFailed
from .inference import Inference, classify_entry, infer_state
from .registry import ObservedSession, SessionRegistry, SessionView
from .schemas import StatusSnapshot, TranscriptEntry
from .state import AgentState
from .status_watcher import StatusFileWatcher
from .transcript_watcher import TranscriptWatcher
from .watch import DirectoryWatcher, Subscription

__all__ = [
    "AgentState",
    "ConfigError",
    "DirectoryWatcher",
    "Inference",
    "ObservedSession",
    "PulseConfig",
    "SessionCoordinator",
    "SessionEvent",
    "SessionIdBridge",
    "SessionRegistry",
    "SessionView",
    "SnapshotUpdated",
    "StateChanged",
    "StatusFileWatcher",
    "StatusSnapshot",
    "Subscription",
    "TranscriptEntry",
    "TranscriptWatcher",
    "WatchConfig",
    "WatchFailed",
    "classify_entry",
    "infer_state",
    "load_config",
    "should_redirect",
]
