"""
CRM Response Models — shape converters for API4 records.

API4 returns flat dicts whose keys follow the ``select`` list, including
joined (``email_primary.email``) and pseudo-constant (``event_type_id:label``)
keys. These converters flatten them into the shapes the tools return.

Usage:
    from civitools.crm.models import contact_to_dict, case_to_dict

    contact = contact_to_dict(row)
    case = case_to_dict(row, case_types={1: "Housing Support"}, statuses={1: "Open"})
"""

from __future__ import annotations

import logging
import math
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"


class RoleType(StrEnum):
    CLIENT = "client"
    CASE_COORDINATOR = "case_coordinator"
    CASE_MANAGER = "case_manager"


# ─── Helpers ─────────────────────────────────────────────────────────────


def parse_code(value: Any) -> int | None:
    """Parse a numeric id/code that may arrive as int or string."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_amount(value: Any) -> float:
    """Parse a money amount; anything unparseable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        amount = float(str(value).strip())
    except ValueError:
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def build_label_map(rows: list[dict], key_field: str, label_field: str) -> dict[int, str]:
    """Build a code -> label lookup from auxiliary query rows."""
    labels: dict[int, str] = {}
    for row in rows:
        code = parse_code(row.get(key_field))
        if code is not None and row.get(label_field):
            labels[code] = str(row[label_field])
    return labels


def resolve_label(labels: dict[int, str], code: Any) -> str:
    """Look up a code's label, degrading to "Unknown" instead of failing."""
    parsed = parse_code(code)
    if parsed is not None and parsed in labels:
        return labels[parsed]
    if code is not None:
        logger.warning("No label for code %r, using %r", code, UNKNOWN_LABEL)
    return UNKNOWN_LABEL


# ─── Converters ──────────────────────────────────────────────────────────


def contact_to_dict(row: dict) -> dict:
    """Convert a Contact record to the tool response shape."""
    return {
        "id": parse_code(row.get("id")),
        "contact_type": row.get("contact_type") or "",
        "display_name": row.get("display_name") or "",
        "first_name": row.get("first_name"),
        "last_name": row.get("last_name"),
        "email": row.get("email_primary.email") or row.get("email"),
        "phone": row.get("phone_primary.phone") or row.get("phone"),
        "organization_name": row.get("organization_name"),
        "created_date": row.get("created_date"),
        "modified_date": row.get("modified_date"),
    }


def contribution_to_dict(row: dict) -> dict:
    """Convert a Contribution record; status/type labels come inline from API4."""
    return {
        "id": parse_code(row.get("id")),
        "contact_id": parse_code(row.get("contact_id")),
        "total_amount": row.get("total_amount"),
        "currency": row.get("currency") or "",
        "contribution_status": row.get("contribution_status_id:label")
        or row.get("contribution_status")
        or "",
        "receive_date": row.get("receive_date"),
        "source": row.get("source"),
        "contribution_type": row.get("financial_type_id:label") or row.get("contribution_type"),
    }


def event_to_dict(row: dict) -> dict:
    """Convert an Event record."""
    return {
        "id": parse_code(row.get("id")),
        "title": row.get("title") or "",
        "event_type": row.get("event_type_id:label") or row.get("event_type") or "",
        "start_date": row.get("start_date"),
        "end_date": row.get("end_date"),
        "max_participants": row.get("max_participants"),
        "participant_count": row.get("participant_count"),
        "is_active": bool(row.get("is_active", False)),
    }


def case_to_dict(row: dict, case_types: dict[int, str], statuses: dict[int, str]) -> dict:
    """Convert a Case record, resolving its type and status codes to labels."""
    return {
        "id": parse_code(row.get("id")),
        "case_type_id": parse_code(row.get("case_type_id")),
        "case_type": resolve_label(case_types, row.get("case_type_id")),
        "subject": row.get("subject") or "",
        "status_id": parse_code(row.get("status_id")),
        "status": resolve_label(statuses, row.get("status_id")),
        "priority_id": parse_code(row.get("priority_id")),
        "start_date": row.get("start_date"),
        "end_date": row.get("end_date"),
        "created_date": row.get("created_date"),
        "modified_date": row.get("modified_date"),
        "details": row.get("details"),
        "is_deleted": bool(row.get("is_deleted", False)),
    }


def activity_to_dict(row: dict, types: dict[int, str], statuses: dict[int, str]) -> dict:
    """Convert an Activity record, resolving its type and status codes."""
    return {
        "id": parse_code(row.get("id")),
        "activity_type_id": parse_code(row.get("activity_type_id")),
        "activity_type": resolve_label(types, row.get("activity_type_id")),
        "subject": row.get("subject") or "",
        "details": row.get("details"),
        "activity_date_time": row.get("activity_date_time"),
        "status_id": parse_code(row.get("status_id")),
        "status": resolve_label(statuses, row.get("status_id")),
        "priority_id": parse_code(row.get("priority_id")),
        "source_contact_id": parse_code(row.get("source_contact_id")),
        "target_contact_id": row.get("target_contact_id"),
        "assignee_contact_id": row.get("assignee_contact_id"),
        "created_date": row.get("created_date"),
        "modified_date": row.get("modified_date"),
    }


def case_contact_to_dict(case_id: Any, contact_id: Any, contact: dict | None) -> dict:
    """Shape a CaseContact link. Every linked contact is reported as "Client"."""
    return {
        "case_id": parse_code(case_id),
        "contact_id": parse_code(contact_id),
        "relationship_type_id": None,
        "relationship_type": "Client",
        "contact_name": contact["display_name"] if contact else UNKNOWN_LABEL,
        "contact_email": contact["email"] if contact else None,
    }
