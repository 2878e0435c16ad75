"""Protocol bindings (MCP stdio server)."""
