"""
MCP tools for claude-pulse.
"""

from mcp.server.fastmcp import FastMCP

from . import events, sessions


def register_all_tools(mcp: FastMCP) -> None:
    """Register every tool module on the server."""
    sessions.register_tools(mcp)
    events.register_tools(mcp)
