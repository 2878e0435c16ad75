"""
CiviCRM client — typed read operations over ``cv api4``.

Every operation is: build a command line (civitools.crm.query), run it
(civitools.crm.process), decode stdout (civitools.crm.decode), then shape
the rows (civitools.crm.models). Case and activity reads also resolve their
numeric type/status codes through auxiliary lookups fetched concurrently and
discarded after the call.

ProcessError and DecodeError propagate to the caller. Not-found is ``None``
or ``[]``.

Usage:
    from civitools.config import get_config
    from civitools.crm.client import CiviCRMClient

    client = CiviCRMClient(get_config().civicrm)
    cases = await client.get_cases_by_role(42, "case_coordinator")
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

from civitools.config import CiviCRMConfig
from civitools.crm.decode import as_rows, decode_response
from civitools.crm.models import (
    RoleType,
    activity_to_dict,
    build_label_map,
    case_contact_to_dict,
    case_to_dict,
    contact_to_dict,
    contribution_to_dict,
    event_to_dict,
    parse_amount,
    parse_code,
)
from civitools.crm.process import run_command
from civitools.crm.query import Filter, Op, QueryParams, build_command, encode_params

logger = logging.getLogger(__name__)

CONTACT_FIELDS = (
    "id",
    "contact_type",
    "display_name",
    "first_name",
    "last_name",
    "email_primary.email",
    "phone_primary.phone",
    "organization_name",
    "created_date",
    "modified_date",
)
CONTRIBUTION_FIELDS = (
    "id",
    "contact_id",
    "total_amount",
    "currency",
    "contribution_status_id:label",
    "receive_date",
    "source",
    "financial_type_id:label",
)
EVENT_FIELDS = (
    "id",
    "title",
    "event_type_id:label",
    "start_date",
    "end_date",
    "max_participants",
    "participant_count",
    "is_active",
)
CASE_FIELDS = (
    "id",
    "case_type_id",
    "subject",
    "status_id",
    "priority_id",
    "start_date",
    "end_date",
    "created_date",
    "modified_date",
    "details",
    "is_deleted",
)
ACTIVITY_FIELDS = (
    "id",
    "activity_type_id",
    "subject",
    "details",
    "activity_date_time",
    "status_id",
    "priority_id",
    "source_contact_id",
    "target_contact_id",
    "assignee_contact_id",
    "created_date",
    "modified_date",
)

NOT_DELETED = Filter("is_deleted", Op.EQ, False)


class CiviCRMClient:
    """Read-only CiviCRM access through the ``cv`` command line."""

    def __init__(self, config: CiviCRMConfig) -> None:
        self.config = config

    # ─── Transport ───────────────────────────────────────────────────────

    async def api4(self, entity: str, action: str, params: QueryParams | None = None) -> Any:
        """Run one API4 call and return the decoded JSON."""
        command = build_command(self.config, entity, action, params)
        logger.debug("api4 %s.%s %s", entity, action, encode_params(params))
        result = await run_command(command, timeout=self.config.timeout_seconds)
        return decode_response(result.stdout)

    async def _rows(self, entity: str, params: QueryParams) -> list[dict]:
        rows = as_rows(await self.api4(entity, "get", params))
        logger.debug("%s.get returned %d rows", entity, len(rows))
        return rows

    async def _option_labels(self, option_group: str) -> dict[int, str]:
        rows = await self._rows(
            "OptionValue",
            QueryParams(
                select=("value", "label"),
                where=(Filter("option_group_id", Op.EQ, option_group),),
            ),
        )
        return build_label_map(rows, "value", "label")

    async def _case_type_labels(self) -> dict[int, str]:
        rows = await self._rows("CaseType", QueryParams(select=("id", "title")))
        return build_label_map(rows, "id", "title")

    async def _enrich_cases(self, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        case_types, statuses = await asyncio.gather(
            self._case_type_labels(),
            self._option_labels("case_status"),
        )
        return [case_to_dict(r, case_types, statuses) for r in rows]

    # ─── Contacts ────────────────────────────────────────────────────────

    async def get_contacts(self, limit: int = 25, offset: int = 0) -> list[dict]:
        rows = await self._rows(
            "Contact", QueryParams(select=CONTACT_FIELDS, limit=limit, offset=offset)
        )
        return [contact_to_dict(r) for r in rows]

    async def search_contacts(self, query: str, limit: int = 25) -> list[dict]:
        """Substring match on display_name (SQL LIKE semantics of the CRM)."""
        rows = await self._rows(
            "Contact",
            QueryParams(
                select=CONTACT_FIELDS,
                where=(Filter("display_name", Op.LIKE, f"%{query}%"),),
                limit=limit,
            ),
        )
        return [contact_to_dict(r) for r in rows]

    async def get_contact(self, contact_id: int) -> dict | None:
        rows = await self._rows(
            "Contact",
            QueryParams(
                select=CONTACT_FIELDS,
                where=(Filter("id", Op.EQ, contact_id),),
                limit=1,
            ),
        )
        for row in rows:
            if parse_code(row.get("id")) == contact_id:
                return contact_to_dict(row)
        return None

    async def find_contact_by_email(self, email: str) -> dict | None:
        rows = await self._rows(
            "Contact",
            QueryParams(
                select=CONTACT_FIELDS,
                where=(Filter("email_primary.email", Op.EQ, email),),
                limit=1,
            ),
        )
        return contact_to_dict(rows[0]) if rows else None

    # ─── Contributions ───────────────────────────────────────────────────

    async def get_contributions(self, limit: int = 25, offset: int = 0) -> list[dict]:
        rows = await self._rows(
            "Contribution",
            QueryParams(select=CONTRIBUTION_FIELDS, limit=limit, offset=offset),
        )
        return [contribution_to_dict(r) for r in rows]

    async def get_contributions_by_contact(self, contact_id: int) -> list[dict]:
        rows = await self._rows(
            "Contribution",
            QueryParams(
                select=CONTRIBUTION_FIELDS,
                where=(Filter("contact_id", Op.EQ, contact_id),),
            ),
        )
        return [contribution_to_dict(r) for r in rows]

    async def get_contribution_stats(self) -> dict:
        """Totals over at most ``stats_sample_size`` contributions.

        This is a capped sample, not a true aggregate: ``truncated`` is set
        when the cap was reached and the figures may be incomplete.
        """
        sample_size = self.config.stats_sample_size
        rows = await self._rows(
            "Contribution",
            QueryParams(
                select=(
                    "total_amount",
                    "currency",
                    "contribution_status_id:label",
                    "receive_date",
                ),
                limit=sample_size,
            ),
        )
        contributions = [contribution_to_dict(r) for r in rows]
        total = sum(parse_amount(c["total_amount"]) for c in contributions)
        completed = sum(1 for c in contributions if c["contribution_status"] == "Completed")
        truncated = len(contributions) >= sample_size
        if truncated:
            logger.warning("Contribution stats hit the %d-row sample cap", sample_size)

        return {
            "total_amount": total,
            "total_contributions": len(contributions),
            "completed_contributions": completed,
            "pending_contributions": len(contributions) - completed,
            "sample_size": sample_size,
            "truncated": truncated,
        }

    # ─── Events ──────────────────────────────────────────────────────────

    async def get_events(self, limit: int = 25, offset: int = 0) -> list[dict]:
        rows = await self._rows(
            "Event", QueryParams(select=EVENT_FIELDS, limit=limit, offset=offset)
        )
        return [event_to_dict(r) for r in rows]

    async def get_upcoming_events(self, limit: int = 10) -> list[dict]:
        """Active events starting today or later."""
        rows = await self._rows(
            "Event",
            QueryParams(
                select=EVENT_FIELDS,
                where=(
                    Filter("start_date", Op.GTE, self._today().isoformat()),
                    Filter("is_active", Op.EQ, True),
                ),
                limit=limit,
            ),
        )
        return [event_to_dict(r) for r in rows]

    def _today(self) -> date:
        return date.today()

    # ─── Cases ───────────────────────────────────────────────────────────

    async def get_cases(
        self,
        limit: int = 25,
        offset: int = 0,
        status_filter: str | int | None = None,
        date_filter: str | None = None,
    ) -> list[dict]:
        """Non-deleted cases, optionally by status id and minimum start date."""
        where = [NOT_DELETED]
        if status_filter not in (None, ""):
            where.append(Filter("status_id", Op.EQ, status_filter))
        if date_filter:
            where.append(Filter("start_date", Op.GTE, date_filter))

        rows = await self._rows(
            "Case",
            QueryParams(select=CASE_FIELDS, where=tuple(where), limit=limit, offset=offset),
        )
        return await self._enrich_cases(rows)

    async def get_case_by_id(self, case_id: int) -> dict | None:
        """Fetch one case by exact id, soft-deleted or not."""
        rows = await self._rows(
            "Case",
            QueryParams(select=CASE_FIELDS, where=(Filter("id", Op.EQ, case_id),), limit=1),
        )
        if not rows:
            return None
        enriched = await self._enrich_cases(rows[:1])
        return enriched[0]

    async def _cases_by_ids(self, case_ids: list[int]) -> list[dict]:
        rows = await self._rows(
            "Case",
            QueryParams(
                select=CASE_FIELDS,
                where=(Filter("id", Op.IN, case_ids), NOT_DELETED),
            ),
        )
        return await self._enrich_cases(rows)

    async def get_cases_by_contact(self, contact_id: int) -> list[dict]:
        """Non-deleted cases the contact is linked to through CaseContact."""
        links = await self._rows(
            "CaseContact",
            QueryParams(
                select=("case_id", "contact_id"),
                where=(Filter("contact_id", Op.EQ, contact_id),),
            ),
        )
        case_ids = _unique_codes(link.get("case_id") for link in links)
        if not case_ids:
            return []
        return await self._cases_by_ids(case_ids)

    async def get_cases_by_role(self, contact_id: int, role_type: str) -> list[dict]:
        """Cases a contact takes part in as client, case coordinator or case manager.

        Clients are found through CaseContact. Coordinators and managers are
        found through active Relationship rows of the role's relationship
        type, then the Case records themselves are re-read so soft-deleted
        cases drop out and type/status are real. Each case also carries the
        relationship's other party as ``client_id``/``client_name``.
        """
        role = RoleType(role_type)
        if role is RoleType.CLIENT:
            return await self.get_cases_by_contact(contact_id)

        relationships = await self._rows(
            "Relationship",
            QueryParams(
                select=("*", "contact_id_b.sort_name", "case_id.subject"),
                where=(
                    Filter("relationship_type_id", Op.EQ, self.config.relationship_type_for(role)),
                    Filter("contact_id_a", Op.EQ, contact_id),
                    Filter("is_active", Op.EQ, True),
                ),
                limit=self.config.role_lookup_limit,
            ),
        )
        case_ids = _unique_codes(rel.get("case_id") for rel in relationships)
        if not case_ids:
            logger.info("No %s relationships with cases for contact %s", role, contact_id)
            return []

        clients: dict[int, dict] = {}
        for rel in relationships:
            case_id = parse_code(rel.get("case_id"))
            if case_id is not None and case_id not in clients:
                clients[case_id] = {
                    "client_id": parse_code(rel.get("contact_id_b")),
                    "client_name": rel.get("contact_id_b.sort_name"),
                }

        cases = await self._cases_by_ids(case_ids)
        return [{**case, **clients.get(case["id"], {})} for case in cases]

    async def get_open_cases_by_coordinator(self, coordinator_id: int) -> list[dict]:
        """Coordinator cases whose status is the configured open status."""
        cases = await self.get_cases_by_role(coordinator_id, RoleType.CASE_COORDINATOR)
        return [c for c in cases if c["status_id"] == self.config.open_case_status_id]

    async def get_case_contacts(self, case_id: int) -> list[dict]:
        links = await self._rows(
            "CaseContact",
            QueryParams(
                select=("case_id", "contact_id"),
                where=(Filter("case_id", Op.EQ, case_id),),
            ),
        )
        if not links:
            return []

        contacts = await asyncio.gather(
            *(self._maybe_contact(parse_code(link.get("contact_id"))) for link in links)
        )
        return [
            case_contact_to_dict(link.get("case_id"), link.get("contact_id"), contact)
            for link, contact in zip(links, contacts)
        ]

    async def _maybe_contact(self, contact_id: int | None) -> dict | None:
        if contact_id is None:
            return None
        return await self.get_contact(contact_id)

    async def get_case_activities(self, case_id: int, limit: int = 25) -> list[dict]:
        rows = await self._rows(
            "Activity",
            QueryParams(
                select=ACTIVITY_FIELDS,
                where=(Filter("case_id", Op.EQ, case_id),),
                limit=limit,
            ),
        )
        if not rows:
            return []

        types, statuses = await asyncio.gather(
            self._option_labels("activity_type"),
            self._option_labels("activity_status"),
        )
        return [activity_to_dict(r, types, statuses) for r in rows]

    # ─── Stats ───────────────────────────────────────────────────────────

    async def get_overall_stats(self) -> dict:
        """Headline counts across the CRM.

        Counts come from id-only scans capped at ``all_rows_limit`` rows per
        entity, so very large installs are under-reported.
        """
        cap = self.config.all_rows_limit
        contacts, contributions, events, cases = await asyncio.gather(
            self._rows("Contact", QueryParams(select=("id",), limit=cap)),
            self.get_contribution_stats(),
            self._rows(
                "Event",
                QueryParams(
                    select=("id",), where=(Filter("is_active", Op.EQ, True),), limit=cap
                ),
            ),
            self._rows("Case", QueryParams(select=("id",), where=(NOT_DELETED,), limit=cap)),
        )

        return {
            "total_contacts": len(contacts),
            "total_contributions": contributions["total_contributions"],
            "total_contribution_amount": contributions["total_amount"],
            "completed_contributions": contributions["completed_contributions"],
            "active_events": len(events),
            "total_cases": len(cases),
        }


def _unique_codes(values: Any) -> list[int]:
    """Parse ids, dropping nulls and duplicates while keeping order."""
    seen: dict[int, None] = {}
    for value in values:
        code = parse_code(value)
        if code is not None:
            seen.setdefault(code, None)
    return list(seen)
