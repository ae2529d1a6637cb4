"""
Claude Pulse MCP Server

FastMCP-based server that observes Claude Code sessions and reports their
inferred state (idle, thinking, tool use, waiting for input, ...) to an MCP
client.
"""

import logging
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from claude_pulse.config import load_config_or_default
from claude_pulse.coordinator import SessionCoordinator
from claude_pulse.events import SessionEvent
from claude_pulse.logging_setup import configure_logging

from .tools import register_all_tools
from .utils import HINTS, error_response

logger = logging.getLogger("claude_pulse_mcp")

RECENT_EVENT_LIMIT = 500


# =============================================================================
# Application Context
# =============================================================================


@dataclass
class AppContext:
    """
    Application context shared across all tool invocations.

    Holds the coordinator that owns the observed sessions, plus a bounded
    buffer of the most recent session events.
    """

    coordinator: SessionCoordinator
    recent_events: deque[SessionEvent] = field(
        default_factory=lambda: deque(maxlen=RECENT_EVENT_LIMIT)
    )


# =============================================================================
# Singleton Context (persists across MCP sessions for HTTP mode)
# =============================================================================

_global_context: AppContext | None = None
_active_lifespans: int = 0


def get_global_context() -> AppContext:
    """Get or create the global singleton context."""
    global _global_context
    if _global_context is None:
        recent_events: deque[SessionEvent] = deque(maxlen=RECENT_EVENT_LIMIT)
        coordinator = SessionCoordinator.from_config(
            load_config_or_default(),
            on_event=recent_events.append,
        )
        _global_context = AppContext(coordinator=coordinator, recent_events=recent_events)
        logger.info("Created global session coordinator")
    return _global_context


# =============================================================================
# Lifespan Management
# =============================================================================


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """
    Start the session coordinator for the lifetime of the server.

    In HTTP mode every client connection enters the lifespan; the coordinator
    is shared and only stopped when the last one leaves.
    """
    global _active_lifespans
    logger.info("Claude Pulse MCP Server starting...")

    ctx = get_global_context()
    if _active_lifespans == 0:
        await ctx.coordinator.start()
        logger.info(f"Watching status files in {ctx.coordinator.status_dir}")
    _active_lifespans += 1

    try:
        yield ctx
    finally:
        _active_lifespans -= 1
        logger.info("Claude Pulse MCP Server shutting down...")
        if _active_lifespans == 0:
            if ctx.coordinator.registry.count() > 0:
                logger.info(f"Releasing {ctx.coordinator.registry.count()} observed session(s)...")
            await ctx.coordinator.stop()
        logger.info("Shutdown complete")


# =============================================================================
# MCP Resources
# =============================================================================


def register_resources(server: FastMCP) -> None:
    """Register read-only session resources."""

    @server.resource("sessions://list")
    async def resource_sessions(ctx: Context[ServerSession, AppContext]) -> list[dict]:
        """
        List all observed Claude Code sessions.

        Read-only resource alternative to the list_sessions tool.
        """
        coordinator = ctx.request_context.lifespan_context.coordinator
        return [view.to_dict() for view in coordinator.list_sessions()]

    @server.resource("sessions://{session_id}/state")
    async def resource_session_state(
        session_id: str, ctx: Context[ServerSession, AppContext]
    ) -> dict:
        """
        Get one session's state and the transcript line it was inferred from.

        Args:
            session_id: Stable ID of the target session
        """
        coordinator = ctx.request_context.lifespan_context.coordinator
        view = coordinator.get_session(session_id)
        if view is None:
            return error_response(
                f"Session not found: {session_id}",
                hint=HINTS["session_not_found"],
            )
        return {
            "session_id": view.session_id,
            "state": view.state.value,
            "display_state": view.state.display_name,
            "transcript_line": view.transcript_line,
            "last_activity": view.last_activity.isoformat(),
        }


# =============================================================================
# FastMCP Server Factory
# =============================================================================


def create_mcp_server(host: str = "127.0.0.1", port: int = 8767) -> FastMCP:
    """Create and configure the FastMCP server instance."""
    server = FastMCP(
        "Claude Pulse",
        lifespan=app_lifespan,
        host=host,
        port=port,
    )
    register_all_tools(server)
    register_resources(server)
    return server


# =============================================================================
# Server Entry Point
# =============================================================================


def run_server(transport: str = "stdio", port: int = 8767):
    """
    Run the MCP server.

    Args:
        transport: Transport mode - "stdio" or "streamable-http"
        port: Port for HTTP transport (default 8767)
    """
    log_path = configure_logging()
    if transport == "streamable-http":
        logger.info("Starting Claude Pulse MCP Server (HTTP on port %s). Logs: %s", port, log_path)
        server = create_mcp_server(host="127.0.0.1", port=port)
        server.run(transport="streamable-http")
    else:
        logger.info("Starting Claude Pulse MCP Server (stdio). Logs: %s", log_path)
        create_mcp_server().run(transport="stdio")


def main():
    """CLI entry point with argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(description="Claude Pulse MCP Server")
    parser.add_argument(
        "--http",
        action="store_true",
        help="Run in HTTP mode (streamable-http) instead of stdio",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8767,
        help="Port for HTTP mode (default: 8767)",
    )
    args = parser.parse_args()

    if args.http:
        run_server(transport="streamable-http", port=args.port)
    else:
        run_server(transport="stdio")


if __name__ == "__main__":
    main()
