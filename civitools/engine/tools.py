"""
Tool Registry for LLM agent runtimes.

One catalogue of CRM tools, shared by:
1. ``ToolRegistry`` — OpenAI function-calling schemas (for litellm and
   friends) plus an ``execute`` bound to a client and, optionally, the
   signed-in user's session.
2. ``civitools.api.mcp`` — the stdio MCP server, which advertises
   ``get_tool_definitions()`` and runs ``execute_tool``.

Every call returns an envelope: ``{"success": True, "data": ..., "count": n}``
(count only for list results, plus per-tool extras) or
``{"success": False, "error": "..."}``. Nothing raised below this layer
escapes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from civitools.crm.client import CiviCRMClient
from civitools.crm.models import RoleType
from civitools.engine.models import (
    ByContactInput,
    CaseActivitiesInput,
    CaseIdInput,
    CasesByRoleInput,
    CasesInput,
    ContactIdInput,
    CoordinatorInput,
    EmailInput,
    NoInput,
    PageInput,
    SearchContactsInput,
    ToolInput,
    UpcomingEventsInput,
)
from civitools.session import UserSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[ToolInput]
    session_bound: bool = False


TOOL_SPECS: tuple[ToolSpec, ...] = (
    # Contacts
    ToolSpec("get_contacts", "Get a list of contacts from CiviCRM", PageInput),
    ToolSpec("search_contacts", "Search for contacts by name in CiviCRM", SearchContactsInput),
    ToolSpec("get_contact", "Get detailed information about a specific contact", ContactIdInput),
    ToolSpec("find_contact_by_email", "Find a contact by their email address", EmailInput),
    # Contributions
    ToolSpec("get_contributions", "Get a list of contributions/donations from CiviCRM", PageInput),
    ToolSpec("get_contributions_by_contact", "Get contributions for a specific contact", ByContactInput),
    ToolSpec(
        "get_contribution_stats",
        "Get contribution statistics from CiviCRM. Computed over a capped sample "
        "(see sample_size/truncated), not the full history.",
        NoInput,
    ),
    # Events
    ToolSpec("get_events", "Get a list of events from CiviCRM", PageInput),
    ToolSpec("get_upcoming_events", "Get active events starting today or later", UpcomingEventsInput),
    # Cases
    ToolSpec("get_cases", "Get a list of cases from CiviCRM (deleted cases excluded)", CasesInput),
    ToolSpec("get_case_by_id", "Get detailed information about a specific case", CaseIdInput),
    ToolSpec("get_cases_by_contact", "Get cases a specific contact is linked to", ByContactInput),
    ToolSpec(
        "get_cases_by_role",
        "Get cases by role relationship (client, case_coordinator, case_manager) for a contact",
        CasesByRoleInput,
    ),
    ToolSpec("get_case_contacts", "Get contacts associated with a specific case", CaseIdInput),
    ToolSpec(
        "get_case_activities",
        "Get activities/service requests for a specific case",
        CaseActivitiesInput,
    ),
    ToolSpec(
        "get_open_cases_by_coordinator",
        "Get open cases for a specific case coordinator",
        CoordinatorInput,
    ),
    # Stats
    ToolSpec(
        "get_overall_stats",
        "Get overall CiviCRM statistics (contacts, contributions, events, cases)",
        NoInput,
    ),
    # Session
    ToolSpec(
        "get_my_cases_as_coordinator",
        "Get cases where the current logged-in user is the Case Coordinator "
        "(finds the user's contact by their session email)",
        NoInput,
        session_bound=True,
    ),
)

_SPECS_BY_NAME = {spec.name: spec for spec in TOOL_SPECS}


def _input_schema(model: type[ToolInput]) -> dict:
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("properties", {})
    return schema


def get_tool_definitions(include_session_tools: bool = True) -> list[dict]:
    """Return ``{name, description, inputSchema}`` for every tool."""
    return [
        {
            "name": spec.name,
            "description": spec.description,
            "inputSchema": _input_schema(spec.input_model),
        }
        for spec in TOOL_SPECS
        if include_session_tools or not spec.session_bound
    ]


def _ok(data: Any, **extra: Any) -> dict[str, Any]:
    envelope: dict[str, Any] = {"success": True, "data": data}
    if isinstance(data, list):
        envelope["count"] = len(data)
    envelope.update(extra)
    return envelope


def _fail(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


def _validation_message(name: str, e: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
    )
    return f"Invalid arguments for {name}: {problems}"


# ─── Tool Execution Router ───────────────────────────────────────────


async def _execute_tool(
    client: CiviCRMClient,
    name: str,
    args: dict[str, Any],
    session: UserSession | None,
) -> dict[str, Any]:
    """Validate arguments and route the call to the client."""
    spec = _SPECS_BY_NAME.get(name)
    if spec is None:
        return _fail(f"Unknown tool: {name}")
    params: Any = spec.input_model.model_validate(args)

    # ── Contacts ──

    if name == "get_contacts":
        return _ok(await client.get_contacts(params.limit, params.offset))

    if name == "search_contacts":
        contacts = await client.search_contacts(params.query, params.limit)
        return _ok(contacts, query=params.query)

    if name == "get_contact":
        return _ok(await client.get_contact(params.id))

    if name == "find_contact_by_email":
        return _ok(await client.find_contact_by_email(params.email), query=params.email)

    # ── Contributions ──

    if name == "get_contributions":
        return _ok(await client.get_contributions(params.limit, params.offset))

    if name == "get_contributions_by_contact":
        contributions = await client.get_contributions_by_contact(params.contact_id)
        return _ok(contributions, contact_id=params.contact_id)

    if name == "get_contribution_stats":
        return _ok(await client.get_contribution_stats())

    # ── Events ──

    if name == "get_events":
        return _ok(await client.get_events(params.limit, params.offset))

    if name == "get_upcoming_events":
        return _ok(await client.get_upcoming_events(params.limit))

    # ── Cases ──

    if name == "get_cases":
        cases = await client.get_cases(
            params.limit, params.offset, params.status_filter, params.date_filter
        )
        return _ok(cases)

    if name == "get_case_by_id":
        return _ok(await client.get_case_by_id(params.case_id))

    if name == "get_cases_by_contact":
        return _ok(await client.get_cases_by_contact(params.contact_id))

    if name == "get_cases_by_role":
        cases = await client.get_cases_by_role(params.contact_id, params.role_type)
        return _ok(cases, contact_id=params.contact_id, role_type=params.role_type)

    if name == "get_case_contacts":
        return _ok(await client.get_case_contacts(params.case_id))

    if name == "get_case_activities":
        return _ok(await client.get_case_activities(params.case_id, params.limit))

    if name == "get_open_cases_by_coordinator":
        return _ok(await client.get_open_cases_by_coordinator(params.coordinator_id))

    # ── Stats ──

    if name == "get_overall_stats":
        return _ok(await client.get_overall_stats())

    # ── Session-bound ──

    if name == "get_my_cases_as_coordinator":
        if session is None or not session.email:
            return _fail("User not logged in or email not available in session")
        contact = await client.find_contact_by_email(session.email)
        if contact is None:
            return _fail(f"No CiviCRM contact found for email: {session.email}")
        cases = await client.get_cases_by_role(contact["id"], RoleType.CASE_COORDINATOR)
        return _ok(
            cases,
            user_email=session.email,
            contact_id=contact["id"],
            contact_name=contact["display_name"],
        )

    return _fail(f"Unknown tool: {name}")


async def execute_tool(
    client: CiviCRMClient,
    name: str,
    arguments: dict[str, Any] | None = None,
    *,
    session: UserSession | None = None,
) -> dict[str, Any]:
    """Run a tool and return its envelope. Never raises."""
    try:
        return await _execute_tool(client, name, arguments or {}, session)
    except ValidationError as e:
        logger.info("Rejected %s arguments: %s", name, e.errors())
        return _fail(_validation_message(name, e))
    except Exception as e:
        logger.error("Tool %s failed: %s", name, e, exc_info=True)
        return _fail(str(e) or type(e).__name__)


class ToolRegistry:
    """CRM tools in function-calling format, bound to one client and session."""

    def __init__(self, client: CiviCRMClient, session: UserSession | None = None) -> None:
        self.client = client
        self.session = session
        self._schemas: dict[str, dict] = {}
        self._register_all()

    def _register_all(self) -> None:
        """Register schemas; session-bound tools only when a session is attached."""
        for defn in get_tool_definitions(include_session_tools=self.session is not None):
            self._schemas[defn["name"]] = {
                "type": "function",
                "function": {
                    "name": defn["name"],
                    "description": defn["description"],
                    "parameters": defn["inputSchema"],
                },
            }

    def get_tool_names(
        self,
        allowed: list[str] | None = None,
        denied: list[str] | None = None,
    ) -> list[str]:
        """Return tool names filtered by allow/deny lists (empty allow = all)."""
        if allowed:
            names = [n for n in allowed if n in self._schemas]
        else:
            names = list(self._schemas.keys())
        if denied:
            names = [n for n in names if n not in denied]
        return names

    def build_schemas(
        self,
        allowed: list[str] | None = None,
        denied: list[str] | None = None,
    ) -> list[dict]:
        """Return filtered tool schemas for a model request."""
        return [self._schemas[n] for n in self.get_tool_names(allowed, denied)]

    async def execute(self, tool_name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute a registered tool and return its envelope."""
        if tool_name not in self._schemas:
            return _fail(f"Unknown tool: {tool_name}")
        return await execute_tool(self.client, tool_name, arguments, session=self.session)
