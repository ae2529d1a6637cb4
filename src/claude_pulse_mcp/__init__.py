"""MCP server exposing claude-pulse session state."""
