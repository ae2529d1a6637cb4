"""
State inference for Claude Code transcripts.

Claude Code writes a transcript entry only once a piece of the conversation
is complete: the user's prompt, a thinking block, a tool call, a tool result,
or the final text. The newest relevant entry therefore says what the agent is
doing right now:

- user prompt or tool result  -> thinking (the model is working on it)
- tool_use block              -> tool use
- a terminal stop_reason      -> waiting for input
- text block                  -> waiting for input (text is never streamed)
- "summary" line              -> waiting for input (end-of-turn marker)

Only the single newest classifiable line is consulted. Older lines never
influence the result.
"""

import logging
from dataclasses import dataclass

import msgspec

from .schemas.transcript import TranscriptEntry, decode_entry
from .state import AgentState

logger = logging.getLogger("claude_pulse.inference")

# Entry types with special meaning during the reverse scan
SUMMARY_TYPE = "summary"
FILE_HISTORY_SNAPSHOT_TYPE = "file-history-snapshot"

# Stop reason that means the turn continues with a tool call
TOOL_USE_STOP_REASON = "tool_use"

_BLOCK_STATES = {
    "thinking": AgentState.THINKING,
    "tool_use": AgentState.TOOL_USE,
    "tool_result": AgentState.THINKING,
    "text": AgentState.WAITING_FOR_INPUT,
}


@dataclass(frozen=True)
class Inference:
    """Result of scanning a transcript: the state and the line that decided it."""

    state: AgentState
    line: str


def classify_entry(entry: TranscriptEntry) -> AgentState:
    """
    Map one transcript entry to a state.

    Rules are evaluated in order and the first match wins. Never raises:
    anything unrecognised classifies as idle.
    """
    if entry.type == "user":
        return AgentState.THINKING

    stop_reason = entry.effective_stop_reason
    if stop_reason is not None and stop_reason != TOOL_USE_STOP_REASON:
        return AgentState.WAITING_FOR_INPUT

    message = entry.message
    if message is None:
        return AgentState.IDLE

    blocks = message.blocks
    if not blocks:
        return AgentState.IDLE

    state = _BLOCK_STATES.get(blocks[0].type)
    if state is None:
        logger.debug("Unknown content block type: %s", blocks[0].type)
        return AgentState.IDLE
    return state


def infer_state(content: str) -> Inference | None:
    """
    Infer the current state from a transcript's full text.

    Scans lines newest-first. Unparseable lines are skipped, a summary line
    ends the scan as waiting-for-input, file-history snapshots are
    transparent, and the first remaining entry is classified.

    Args:
        content: Entire transcript contents

    Returns:
        Inference, or None if no line could be classified
    """
    for line in reversed(content.splitlines()):
        if not line.strip():
            continue

        try:
            entry = decode_entry(line)
        except msgspec.DecodeError:
            # Partial write or a line we don't model
            continue

        if entry.type == SUMMARY_TYPE:
            return Inference(AgentState.WAITING_FOR_INPUT, line)

        if entry.type == FILE_HISTORY_SNAPSHOT_TYPE:
            continue

        return Inference(classify_entry(entry), line)

    return None
