"""Discrete activity states inferred for an observed Claude Code session."""

from enum import Enum


class AgentState(str, Enum):
    """Coarse state of the agent process behind a session."""

    IDLE = "idle"  # Nothing classifiable yet
    THINKING = "thinking"  # Processing a prompt or a tool result
    TOOL_USE = "tool_use"  # Waiting on a tool call it issued
    RESPONDING = "responding"  # Producing a response
    WAITING_FOR_INPUT = "waiting_for_input"  # Turn finished
    ASKING_QUESTION = "asking_question"  # Blocked on a question to the user
    ERROR = "error"  # Caller signalled an external failure

    @property
    def display_name(self) -> str:
        """Human readable label, e.g. 'Tool Use'."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    AgentState.IDLE: "Idle",
    AgentState.THINKING: "Thinking",
    AgentState.TOOL_USE: "Tool Use",
    AgentState.RESPONDING: "Responding",
    AgentState.WAITING_FOR_INPUT: "Waiting for Input",
    AgentState.ASKING_QUESTION: "Asking Question",
    AgentState.ERROR: "Error",
}
