"""
civitools CLI — entry point for all operations.

Usage:
    civitools mcp                       # Start the MCP server (stdio transport)
    civitools mcp --user-email a@b.org  # ...acting for a signed-in user
    civitools call get_cases --args '{"limit": 5}'
    civitools status                    # Show configuration, probe the CRM
    civitools version                   # Show version
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="civitools",
        description="civitools — CiviCRM query tools for conversational assistants.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--log-level", help="Override CIVITOOLS_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command")

    # mcp
    mcp_parser = subparsers.add_parser("mcp", help="Start the MCP server (stdio transport)")
    mcp_parser.add_argument("--user-email", help="Act for this signed-in user (enables session tools)")

    # call
    call_parser = subparsers.add_parser("call", help="Run one tool and print its result envelope")
    call_parser.add_argument("tool", help="Tool name, e.g. search_contacts")
    call_parser.add_argument("--args", default="{}", help="Tool arguments as a JSON object")
    call_parser.add_argument("--user-email", help="Act for this signed-in user")

    # tools
    subparsers.add_parser("tools", help="List available tools")

    # status
    subparsers.add_parser("status", help="Show configuration and probe the CRM")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from civitools import __version__

        print(f"civitools {__version__}")
        return 0

    load_dotenv()
    try:
        _configure_logging(args.log_level)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if args.command == "mcp":
        return _cmd_mcp(args)
    elif args.command == "call":
        return _cmd_call(args)
    elif args.command == "tools":
        return _cmd_tools()
    elif args.command == "status":
        return _cmd_status()
    else:
        parser.print_help()
        return 0


def _configure_logging(override: str | None) -> None:
    from civitools.config import get_config

    level = (override or get_config().log_level).upper()
    # stdout carries the MCP protocol; logs go to stderr.
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _session_for(email: str | None):
    if not email:
        return None
    from civitools.session import UserSession, UserType

    return UserSession(id=email, email=email, type=UserType.REGULAR)


def _cmd_mcp(args: argparse.Namespace) -> int:
    import asyncio

    try:
        from civitools.api.mcp import run_server
    except ImportError as e:
        print(f"Error: MCP dependencies missing: {e}")
        print("Install with: pip install mcp")
        return 1

    asyncio.run(run_server(session=_session_for(args.user_email)))
    return 0


def _cmd_call(args: argparse.Namespace) -> int:
    import asyncio

    from civitools.config import get_config
    from civitools.crm.client import CiviCRMClient
    from civitools.engine.tools import execute_tool

    try:
        arguments = json.loads(args.args)
    except json.JSONDecodeError as e:
        print(f"Error: --args is not valid JSON: {e}")
        return 1
    if not isinstance(arguments, dict):
        print("Error: --args must be a JSON object")
        return 1

    client = CiviCRMClient(get_config().civicrm)
    envelope = asyncio.run(
        execute_tool(client, args.tool, arguments, session=_session_for(args.user_email))
    )
    print(json.dumps(envelope, indent=2, default=str))
    return 0 if envelope["success"] else 1


def _cmd_tools() -> int:
    from civitools.engine.tools import get_tool_definitions

    for defn in get_tool_definitions():
        print(f"  {defn['name']:<32} {defn['description']}")
    return 0


def _cmd_status() -> int:
    import asyncio

    from civitools import __version__
    from civitools.config import get_config
    from civitools.crm.client import CiviCRMClient
    from civitools.crm.errors import CiviCRMError
    from civitools.crm.query import QueryParams

    cfg = get_config().civicrm
    print(f"civitools v{__version__}")
    print()
    print(f"  cv:            {cfg.cv_path}")
    print(f"  settings:      {cfg.settings_path or '(not set)'}")
    print(f"  timeout:       {cfg.timeout_seconds}s")
    print(
        "  case roles:    coordinator="
        f"{cfg.coordinator_relationship_type_id} manager={cfg.manager_relationship_type_id}"
    )

    client = CiviCRMClient(cfg)
    try:
        asyncio.run(client.api4("Contact", "get", QueryParams(select=("id",), limit=1)))
    except CiviCRMError as e:
        print(f"  CiviCRM:       unreachable ({e})")
        return 1
    print("  CiviCRM:       ok")
    return 0


if __name__ == "__main__":
    sys.exit(main())
