"""msgspec schemas for the files written by Claude Code."""

from .status import StatusSnapshot, decode_status
from .transcript import ContentBlock, MessagePayload, TranscriptEntry, decode_entry

__all__ = [
    "ContentBlock",
    "MessagePayload",
    "StatusSnapshot",
    "TranscriptEntry",
    "decode_entry",
    "decode_status",
]
