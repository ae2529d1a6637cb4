"""Shared helpers for MCP tool responses."""

from __future__ import annotations

HINTS = {
    "session_not_found": (
        "Use list_sessions to see registered sessions. Session IDs are the stable "
        "IDs passed to create_session."
    ),
    "session_exists": "Pick a different session_id, or delete_session first.",
    "invalid_state": "Valid states are: {states}",
}


def error_response(message: str, hint: str | None = None, **extra) -> dict:
    """
    Build a structured error payload for tool responses.

    Args:
        message: What went wrong
        hint: How the caller can recover
        **extra: Additional context fields

    Returns:
        Dict with "error", optional "hint", and any extra fields
    """
    response: dict = {"error": message}
    if hint:
        response["hint"] = hint
    response.update(extra)
    return response
