"""
MCP Server for CiviCRM.

Provides a Model Context Protocol (MCP) interface so external models
(Claude Desktop, Cursor, etc.) can query the CRM. Runs locally with stdio
transport.

Architecture:
    MCP Client -> stdio -> this server -> civitools.engine.tools -> cv api4 -> CiviCRM

Tools: the catalogue in civitools.engine.tools (contacts, contributions,
events, cases, stats). ``get_my_cases_as_coordinator`` is only listed when
the server was started for a user (``civitools mcp --user-email``).

Results are the same envelopes the in-process registry returns, as
pretty-printed JSON. Failures come back as error-flagged text.

Start:
    python -m civitools.api.mcp
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from civitools.config import Config, get_config
from civitools.crm.client import CiviCRMClient
from civitools.engine.tools import execute_tool
from civitools.engine.tools import get_tool_definitions as _catalogue
from civitools.session import UserSession

logger = logging.getLogger(__name__)


class ToolCallError(Exception):
    """Raised to make the MCP runtime flag a tool result as an error."""


def get_tool_definitions(session: UserSession | None = None) -> list[dict]:
    """Return the list of MCP tool definitions."""
    return _catalogue(include_session_tools=session is not None)


def format_result(envelope: dict[str, Any]) -> str:
    return json.dumps(envelope, indent=2, default=str)


async def handle_tool_call(
    client: CiviCRMClient,
    name: str,
    arguments: dict[str, Any],
    session: UserSession | None = None,
) -> str:
    """Handle an MCP tool call and return the result text."""
    envelope = await execute_tool(client, name, arguments, session=session)
    if not envelope["success"]:
        raise ToolCallError(f"Error: {envelope['error']}")
    return format_result(envelope)


# ─── MCP Server ──────────────────────────────────────────────────────


def create_server(
    client: CiviCRMClient,
    session: UserSession | None = None,
    name: str = "civicrm-mcp-server",
):
    import mcp.types as types
    from mcp.server import Server

    server = Server(name)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(name=d["name"], description=d["description"], inputSchema=d["inputSchema"])
            for d in get_tool_definitions(session)
        ]

    # Arguments are validated once, by the pydantic models in civitools.engine.
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        text = await handle_tool_call(client, name, arguments or {}, session)
        return [types.TextContent(type="text", text=text)]

    return server


async def run_server(config: Config | None = None, session: UserSession | None = None):
    from mcp.server.stdio import stdio_server

    config = config or get_config()
    client = CiviCRMClient(config.civicrm)
    server = create_server(client, session, config.server_name)
    logger.info("Starting %s (cv=%s)", config.server_name, config.civicrm.cv_path)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    asyncio.run(run_server())
