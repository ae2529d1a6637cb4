"""
Session events tool.

Provides session_events for reading the most recent events the coordinator
applied (snapshots, state changes, watch failures).
"""

from typing import TYPE_CHECKING

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from claude_pulse.events import event_to_dict

from ..utils import error_response

if TYPE_CHECKING:
    from ..server import AppContext


def _filter_events(events: list[dict], session_id: str | None, kind: str | None) -> list[dict]:
    """Filter serialized events by session and kind."""
    filtered = []
    for event in events:
        if session_id and event["session_id"] != session_id:
            continue
        if kind and event["kind"] != kind:
            continue
        filtered.append(event)
    return filtered


def register_tools(mcp: FastMCP) -> None:
    """Register session_events tool on the MCP server."""

    @mcp.tool()
    async def session_events(
        ctx: Context[ServerSession, "AppContext"],
        session_id: str | None = None,
        kind: str | None = None,
        limit: int = 50,
    ) -> dict:
        """
        Read recent session events, oldest first.

        Args:
            session_id: Only events for this stable session ID
            kind: Only "snapshot_updated", "state_changed" or "watch_failed"
            limit: Maximum number of events to return (most recent kept)

        Returns:
            Dict with:
                - events: List of event dicts
                - count: Number of events returned
        """
        if limit <= 0:
            return error_response("limit must be positive", hint="Pass limit >= 1")

        app_ctx = ctx.request_context.lifespan_context
        events = [event_to_dict(event) for event in app_ctx.recent_events]
        events = _filter_events(events, session_id, kind)[-limit:]
        return {
            "events": events,
            "count": len(events),
        }
