"""
Transcript entry schema.

Claude Code appends one JSON object per line to
``~/.claude/projects/<project>/<session>.jsonl``. Only the handful of fields
needed to classify activity are modelled here:

    {"type": "assistant",
     "stop_reason": null,
     "message": {"role": "assistant",
                 "stop_reason": "tool_use",
                 "content": [{"type": "tool_use", ...}]}}

``message.content`` is a string for plain user prompts and a list of typed
blocks everywhere else, so it is decoded as a union.
"""

from __future__ import annotations

from typing import Any

import msgspec


class ContentBlock(msgspec.Struct):
    """A typed content block ("thinking", "tool_use", "tool_result", "text", ...)."""

    type: str


class MessagePayload(msgspec.Struct):
    """The ``message`` object of a transcript entry."""

    role: str | None = None
    content: list[Any] | str | None = None
    stop_reason: str | None = None

    @property
    def blocks(self) -> list[ContentBlock] | None:
        """
        Content as typed blocks.

        Returns None for string content, missing content, or a list whose
        items aren't ``{"type": str}`` objects.
        """
        if not isinstance(self.content, list):
            return None
        try:
            return msgspec.convert(self.content, list[ContentBlock])
        except msgspec.ValidationError:
            return None

    @property
    def text(self) -> str | None:
        """Content when it was written as a plain string."""
        return self.content if isinstance(self.content, str) else None


class TranscriptEntry(msgspec.Struct):
    """One line of a transcript."""

    type: str | None = None
    session_id: str | None = msgspec.field(default=None, name="sessionId")
    message: MessagePayload | None = None
    stop_reason: str | None = None

    @property
    def effective_stop_reason(self) -> str | None:
        """Entry-level stop reason, falling back to the message's own."""
        if self.stop_reason is not None:
            return self.stop_reason
        if self.message is not None:
            return self.message.stop_reason
        return None


_decoder = msgspec.json.Decoder(TranscriptEntry)


def decode_entry(line: bytes | str) -> TranscriptEntry:
    """
    Decode a single transcript line.

    Raises:
        msgspec.DecodeError: If the line is not a JSON object matching the schema
    """
    return _decoder.decode(line)
