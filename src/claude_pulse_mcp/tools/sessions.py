"""
Session tools.

Provides create_session, delete_session, list_sessions, get_session and
mark_session_error on top of the SessionCoordinator.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from claude_pulse.state import AgentState

from ..utils import HINTS, error_response

if TYPE_CHECKING:
    from ..server import AppContext

logger = logging.getLogger("claude_pulse_mcp")


def _parse_state(value: str) -> AgentState | None:
    try:
        return AgentState(value)
    except ValueError:
        return None


def _invalid_state_response(value: str) -> dict:
    valid_states = ", ".join(state.value for state in AgentState)
    return error_response(
        f"Invalid state: {value}",
        hint=HINTS["invalid_state"].format(states=valid_states),
    )


def register_tools(mcp: FastMCP) -> None:
    """Register session tools on the MCP server."""

    @mcp.tool()
    async def create_session(
        ctx: Context[ServerSession, "AppContext"],
        session_id: str,
        directory: str,
        name: str | None = None,
        transcript_path: str | None = None,
    ) -> dict:
        """
        Start observing a Claude Code session.

        Launch Claude in `directory` with CLAUDE_PULSE_SESSION_ID=<session_id>
        exported so the SessionStart hook can link its runs to this session.

        Args:
            session_id: Stable ID for the session (unique)
            directory: Directory Claude runs in
            name: Optional display name (defaults to the directory name)
            transcript_path: Optional transcript to resume watching

        Returns:
            The session's info dict
        """
        if not session_id:
            return error_response("session_id is required")

        coordinator = ctx.request_context.lifespan_context.coordinator
        try:
            view = coordinator.create_session(
                session_id,
                Path(directory).expanduser(),
                name=name,
                transcript_path=transcript_path,
            )
        except ValueError as e:
            return error_response(str(e), hint=HINTS["session_exists"])
        return view.to_dict()

    @mcp.tool()
    async def delete_session(
        ctx: Context[ServerSession, "AppContext"],
        session_id: str,
    ) -> dict:
        """
        Stop observing a session.

        Stops its transcript watch and removes its status files. The
        transcript itself belongs to Claude Code and is left alone.

        Args:
            session_id: Stable ID of the session

        Returns:
            Dict with deleted session info, or an error
        """
        coordinator = ctx.request_context.lifespan_context.coordinator
        view = coordinator.delete_session(session_id)
        if view is None:
            return error_response(
                f"Session not found: {session_id}",
                hint=HINTS["session_not_found"],
            )
        return {"deleted": True, "session": view.to_dict()}

    @mcp.tool()
    async def list_sessions(
        ctx: Context[ServerSession, "AppContext"],
        state_filter: str | None = None,
    ) -> dict:
        """
        List observed sessions and their current state.

        Args:
            state_filter: Optional state - "idle", "thinking", "tool_use",
                "responding", "waiting_for_input", "asking_question", "error"

        Returns:
            Dict with:
                - sessions: List of session info dicts
                - count: Number of sessions returned
        """
        coordinator = ctx.request_context.lifespan_context.coordinator

        state = None
        if state_filter:
            state = _parse_state(state_filter)
            if state is None:
                return _invalid_state_response(state_filter)

        sessions = [view.to_dict() for view in coordinator.list_sessions(state)]
        return {
            "sessions": sessions,
            "count": len(sessions),
        }

    @mcp.tool()
    async def get_session(
        ctx: Context[ServerSession, "AppContext"],
        session_id: str,
    ) -> dict:
        """
        Get one session's state, latest status snapshot and diagnostics.

        Args:
            session_id: Stable ID, a Claude session ID it ran under, or its name
        """
        coordinator = ctx.request_context.lifespan_context.coordinator
        view = coordinator.resolve_session(session_id)
        if view is None:
            return error_response(
                f"Session not found: {session_id}",
                hint=HINTS["session_not_found"],
            )
        return view.to_dict()

    @mcp.tool()
    async def mark_session_error(
        ctx: Context[ServerSession, "AppContext"],
        session_id: str,
        detail: str | None = None,
    ) -> dict:
        """
        Put a session into the error state, e.g. after its terminal crashed.

        The next transcript entry Claude writes moves it out of the error state.

        Args:
            session_id: Stable ID of the session
            detail: Optional description of the failure
        """
        coordinator = ctx.request_context.lifespan_context.coordinator
        if not coordinator.mark_error(session_id, detail):
            return error_response(
                f"Session not found: {session_id}",
                hint=HINTS["session_not_found"],
            )
        logger.info("Session %s marked as error: %s", session_id, detail)
        return coordinator.get_session(session_id).to_dict()
