"""
Status snapshot schema.

Claude Code pipes a JSON document to its statusline command on every refresh.
The statusline hook writes that document verbatim to
``{status_dir}/{session_id}.json``; this module decodes one such file read.

Only ``session_id`` is required. Every other block is optional, and unknown
keys are ignored so newer Claude Code releases don't break decoding.
"""

from __future__ import annotations

import msgspec


class ModelInfo(msgspec.Struct, frozen=True):
    """Model identifier and display name."""

    id: str | None = None
    display_name: str | None = None


class ContextWindow(msgspec.Struct, frozen=True):
    """Context window usage reported by the statusline payload."""

    used_percentage: float | None = None
    remaining_percentage: float | None = None
    total_input_tokens: int | None = None
    total_output_tokens: int | None = None
    context_window_size: int | None = None

    @property
    def used_tokens(self) -> int | None:
        """Input plus output tokens, or None unless both are known."""
        if self.total_input_tokens is None or self.total_output_tokens is None:
            return None
        return self.total_input_tokens + self.total_output_tokens


class CostInfo(msgspec.Struct, frozen=True):
    """Running cost and turn counters for the session."""

    total_cost_usd: float | None = None
    duration_ms: int | None = None
    duration_api_ms: int | None = None
    lines_added: int | None = None
    lines_removed: int | None = None
    message_count: int | None = None
    turn_count: int | None = None


class WorkspaceInfo(msgspec.Struct, frozen=True):
    """Directories the session is working in."""

    current_dir: str | None = None
    project_dir: str | None = None


class StatusSnapshot(msgspec.Struct, frozen=True):
    """
    One parsed status file.

    Attributes:
        session_id: Claude's own (per-run) session ID
        transcript_path: Path of the session's JSONL transcript, if reported
        raw_json: The text the snapshot was decoded from, kept for diagnostics
    """

    session_id: str
    transcript_path: str | None = None
    model: ModelInfo | None = None
    context_window: ContextWindow | None = None
    cost: CostInfo | None = None
    workspace: WorkspaceInfo | None = None
    raw_json: str | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dict (raw_json omitted)."""
        data = msgspec.to_builtins(self)
        data.pop("raw_json", None)
        return data


_decoder = msgspec.json.Decoder(StatusSnapshot)


def decode_status(data: bytes | str) -> StatusSnapshot:
    """
    Decode a status file's contents.

    Raises:
        msgspec.DecodeError: If the text is not JSON or doesn't match the schema
    """
    snapshot = _decoder.decode(data)
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    return msgspec.structs.replace(snapshot, raw_json=text)
