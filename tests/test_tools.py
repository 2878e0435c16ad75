"""Tests for civitools.engine.tools — envelopes, routing and the registry."""

from unittest.mock import MagicMock

import pytest

from civitools.crm.client import CiviCRMClient
from civitools.crm.errors import DecodeError, ProcessError
from civitools.engine.tools import TOOL_SPECS, ToolRegistry, execute_tool, get_tool_definitions
from civitools.session import UserSession, UserType


@pytest.fixture
def crm():
    """A client double whose async methods are AsyncMocks."""
    return MagicMock(spec=CiviCRMClient)


# ─── Envelopes ───────────────────────────────────────────────────────


class TestEnvelopes:
    @pytest.mark.asyncio
    async def test_search_contacts(self, crm):
        crm.search_contacts.return_value = [{"id": 2, "display_name": "Jane Smith"}]
        result = await execute_tool(crm, "search_contacts", {"query": "Jane"})
        assert result == {
            "success": True,
            "data": [{"id": 2, "display_name": "Jane Smith"}],
            "count": 1,
            "query": "Jane",
        }
        crm.search_contacts.assert_awaited_once_with("Jane", 25)

    @pytest.mark.asyncio
    async def test_defaults_applied(self, crm):
        crm.get_contacts.return_value = []
        result = await execute_tool(crm, "get_contacts", {})
        assert result == {"success": True, "data": [], "count": 0}
        crm.get_contacts.assert_awaited_once_with(25, 0)

    @pytest.mark.asyncio
    async def test_upcoming_events_default_limit(self, crm):
        crm.get_upcoming_events.return_value = []
        await execute_tool(crm, "get_upcoming_events")
        crm.get_upcoming_events.assert_awaited_once_with(10)

    @pytest.mark.asyncio
    async def test_single_record_has_no_count(self, crm):
        crm.get_contact.return_value = {"id": 1, "display_name": "John Doe"}
        result = await execute_tool(crm, "get_contact", {"id": 1})
        assert result == {"success": True, "data": {"id": 1, "display_name": "John Doe"}}

    @pytest.mark.asyncio
    async def test_not_found_is_success_with_null(self, crm):
        crm.get_case_by_id.return_value = None
        result = await execute_tool(crm, "get_case_by_id", {"case_id": 404})
        assert result == {"success": True, "data": None}

    @pytest.mark.asyncio
    async def test_contributions_by_contact_extra(self, crm):
        crm.get_contributions_by_contact.return_value = [{"id": 1}]
        result = await execute_tool(crm, "get_contributions_by_contact", {"contact_id": 9})
        assert result["contact_id"] == 9
        assert result["count"] == 1

    @pytest.mark.asyncio
    async def test_cases_by_role_extras(self, crm):
        crm.get_cases_by_role.return_value = [{"id": 7}]
        result = await execute_tool(
            crm, "get_cases_by_role", {"contact_id": 42, "role_type": "case_manager"}
        )
        assert result["contact_id"] == 42
        assert result["role_type"] == "case_manager"
        crm.get_cases_by_role.assert_awaited_once_with(42, "case_manager")

    @pytest.mark.asyncio
    async def test_get_cases_status_number_as_text(self, crm):
        crm.get_cases.return_value = []
        await execute_tool(crm, "get_cases", {"status_filter": 1, "date_filter": "2026-01-01"})
        crm.get_cases.assert_awaited_once_with(25, 0, "1", "2026-01-01")

    @pytest.mark.asyncio
    async def test_find_contact_by_email(self, crm):
        crm.find_contact_by_email.return_value = {"id": 5}
        result = await execute_tool(crm, "find_contact_by_email", {"email": " a@example.org "})
        assert result == {"success": True, "data": {"id": 5}, "query": "a@example.org"}

    @pytest.mark.asyncio
    async def test_stats(self, crm):
        crm.get_overall_stats.return_value = {"total_contacts": 3}
        result = await execute_tool(crm, "get_overall_stats")
        assert result == {"success": True, "data": {"total_contacts": 3}}


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, crm):
        result = await execute_tool(crm, "drop_database", {})
        assert result == {"success": False, "error": "Unknown tool: drop_database"}

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, crm):
        result = await execute_tool(crm, "get_contact", {})
        assert result["success"] is False
        assert "Invalid arguments for get_contact" in result["error"]
        assert "id" in result["error"]
        crm.get_contact.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_role_type(self, crm):
        result = await execute_tool(
            crm, "get_cases_by_role", {"contact_id": 1, "role_type": "volunteer"}
        )
        assert result["success"] is False
        assert "role_type" in result["error"]

    @pytest.mark.asyncio
    async def test_bad_date_filter(self, crm):
        result = await execute_tool(crm, "get_cases", {"date_filter": "next week"})
        assert result["success"] is False
        assert "YYYY-MM-DD" in result["error"]

    @pytest.mark.asyncio
    async def test_bad_email(self, crm):
        result = await execute_tool(crm, "find_contact_by_email", {"email": "nobody"})
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_process_error_becomes_envelope(self, crm):
        crm.get_events.side_effect = ProcessError("Command exited with status 1: boom", exit_status=1)
        result = await execute_tool(crm, "get_events", {})
        assert result == {"success": False, "error": "Command exited with status 1: boom"}

    @pytest.mark.asyncio
    async def test_decode_error_becomes_envelope(self, crm):
        crm.get_contribution_stats.side_effect = DecodeError("Failed to parse CiviCRM response")
        result = await execute_tool(crm, "get_contribution_stats")
        assert result["success"] is False
        assert "Failed to parse" in result["error"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_never_escapes(self, crm):
        crm.get_case_contacts.side_effect = RuntimeError()
        result = await execute_tool(crm, "get_case_contacts", {"case_id": 1})
        assert result == {"success": False, "error": "RuntimeError"}


# ─── Session-bound tool ──────────────────────────────────────────────


class TestMyCasesAsCoordinator:
    @pytest.mark.asyncio
    async def test_requires_session(self, crm):
        result = await execute_tool(crm, "get_my_cases_as_coordinator")
        assert result == {
            "success": False,
            "error": "User not logged in or email not available in session",
        }

    @pytest.mark.asyncio
    async def test_requires_email(self, crm):
        session = UserSession(id="u1", email=None)
        result = await execute_tool(crm, "get_my_cases_as_coordinator", session=session)
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_no_contact_for_email(self, crm):
        crm.find_contact_by_email.return_value = None
        session = UserSession(id="u1", email="ghost@example.org")
        result = await execute_tool(crm, "get_my_cases_as_coordinator", session=session)
        assert result == {
            "success": False,
            "error": "No CiviCRM contact found for email: ghost@example.org",
        }

    @pytest.mark.asyncio
    async def test_returns_cases_with_identity(self, crm):
        crm.find_contact_by_email.return_value = {"id": 42, "display_name": "Casey Coordinator"}
        crm.get_cases_by_role.return_value = [{"id": 7, "client_name": "Doe, John"}]
        session = UserSession(id="u1", email="casey@example.org")
        result = await execute_tool(crm, "get_my_cases_as_coordinator", {}, session=session)
        assert result == {
            "success": True,
            "data": [{"id": 7, "client_name": "Doe, John"}],
            "count": 1,
            "user_email": "casey@example.org",
            "contact_id": 42,
            "contact_name": "Casey Coordinator",
        }
        crm.get_cases_by_role.assert_awaited_once_with(42, "case_coordinator")


# ─── Definitions & Registry ──────────────────────────────────────────


class TestToolDefinitions:
    def test_every_spec_listed(self):
        assert len(get_tool_definitions()) == len(TOOL_SPECS)

    def test_session_tools_optional(self):
        names = {d["name"] for d in get_tool_definitions(include_session_tools=False)}
        assert "get_my_cases_as_coordinator" not in names
        assert "get_cases_by_role" in names

    def test_schema_shape(self):
        for defn in get_tool_definitions():
            schema = defn["inputSchema"]
            assert schema["type"] == "object"
            assert "properties" in schema
            assert "title" not in schema

    def test_required_fields(self):
        by_name = {d["name"]: d["inputSchema"] for d in get_tool_definitions()}
        assert by_name["search_contacts"]["required"] == ["query"]
        assert set(by_name["get_cases_by_role"]["required"]) == {"contact_id", "role_type"}
        assert "required" not in by_name["get_contacts"]

    def test_role_type_enum(self):
        by_name = {d["name"]: d["inputSchema"] for d in get_tool_definitions()}
        role = by_name["get_cases_by_role"]["properties"]["role_type"]
        assert role["enum"] == ["client", "case_coordinator", "case_manager"]


class TestToolRegistry:
    def test_function_schemas(self, crm):
        registry = ToolRegistry(crm)
        schemas = registry.build_schemas()
        assert schemas
        for schema in schemas:
            assert schema["type"] == "function"
            assert {"name", "description", "parameters"} <= set(schema["function"])

    def test_session_tool_needs_session(self, crm):
        assert "get_my_cases_as_coordinator" not in ToolRegistry(crm).get_tool_names()
        session = UserSession(id="u1", email="a@example.org")
        assert "get_my_cases_as_coordinator" in ToolRegistry(crm, session).get_tool_names()

    def test_allowed_filter(self, crm):
        registry = ToolRegistry(crm)
        names = registry.get_tool_names(allowed=["get_cases", "not_a_tool"])
        assert names == ["get_cases"]

    def test_denied_filter(self, crm):
        registry = ToolRegistry(crm)
        names = registry.get_tool_names(denied=["get_overall_stats"])
        assert "get_overall_stats" not in names
        assert "get_cases" in names

    @pytest.mark.asyncio
    async def test_execute(self, crm):
        crm.get_case_activities.return_value = [{"id": 1}]
        registry = ToolRegistry(crm)
        result = await registry.execute("get_case_activities", {"case_id": 7, "limit": 5})
        assert result["count"] == 1
        crm.get_case_activities.assert_awaited_once_with(7, 5)

    @pytest.mark.asyncio
    async def test_execute_unregistered(self, crm):
        registry = ToolRegistry(crm)
        result = await registry.execute("get_my_cases_as_coordinator", {})
        assert result == {"success": False, "error": "Unknown tool: get_my_cases_as_coordinator"}

    @pytest.mark.asyncio
    async def test_guest_session(self, crm):
        crm.find_contact_by_email.return_value = None
        session = UserSession(id="g1", email="guest@example.org", type=UserType.GUEST)
        registry = ToolRegistry(crm, session)
        result = await registry.execute("get_my_cases_as_coordinator")
        assert result["success"] is False
