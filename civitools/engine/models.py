"""Pydantic input models for the CRM tools.

Each tool validates its arguments against one of these before touching the
CRM; defaults are applied here. The JSON schemas advertised to LLM runtimes
and MCP clients are generated from the same models.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NoInput(ToolInput):
    pass


# ─── Contacts ────────────────────────────────────────────────────────────


class PageInput(ToolInput):
    limit: int = Field(25, ge=1, description="Maximum number of records to return (default 25)")
    offset: int = Field(0, ge=0, description="Number of records to skip (default 0)")


class SearchContactsInput(ToolInput):
    query: str = Field(..., min_length=1, description="Search text matched against contact names")
    limit: int = Field(25, ge=1, description="Maximum number of contacts to return (default 25)")


class ContactIdInput(ToolInput):
    id: int = Field(..., description="Contact ID")


class EmailInput(ToolInput):
    email: str = Field(..., description="Email address to search for")

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        v = v.strip()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError(f"not a valid email address: {v[:80]!r}")
        return v


class ByContactInput(ToolInput):
    contact_id: int = Field(..., description="Contact ID")


# ─── Events ──────────────────────────────────────────────────────────────


class UpcomingEventsInput(ToolInput):
    limit: int = Field(10, ge=1, description="Maximum number of events to return (default 10)")


# ─── Cases ───────────────────────────────────────────────────────────────


class CasesInput(PageInput):
    status_filter: str | None = Field(
        None, description="Filter by case status ID (e.g. '1' for Open, '2' for Closed)"
    )
    date_filter: str | None = Field(
        None, description="Only cases starting on or after this date (YYYY-MM-DD)"
    )

    @field_validator("status_filter", mode="before")
    @classmethod
    def _status_as_text(cls, v: object) -> object:
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v

    @field_validator("date_filter")
    @classmethod
    def _check_date(cls, v: str | None) -> str | None:
        if v is not None and not _DATE_RE.match(v):
            raise ValueError(f"date_filter must be YYYY-MM-DD, got: {v[:40]!r}")
        return v


class CaseIdInput(ToolInput):
    case_id: int = Field(..., description="Case ID")


class CaseActivitiesInput(CaseIdInput):
    limit: int = Field(25, ge=1, description="Maximum number of activities to return (default 25)")


class CasesByRoleInput(ToolInput):
    contact_id: int = Field(..., description="Contact ID")
    role_type: Literal["client", "case_coordinator", "case_manager"] = Field(
        ..., description="Role the contact plays on the cases"
    )


class CoordinatorInput(ToolInput):
    coordinator_id: int = Field(..., description="Coordinator contact ID")
