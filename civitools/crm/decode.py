"""Parse ``cv api4`` stdout into JSON records."""

from __future__ import annotations

import json
from typing import Any

from civitools.crm.errors import DecodeError


def decode_response(stdout: str) -> Any:
    """Parse trimmed stdout as JSON, raising DecodeError with the raw text."""
    text = stdout.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Failed to parse CiviCRM response: {e}", raw_text=stdout) from e


def as_rows(value: Any, raw_text: str = "") -> list[dict[str, Any]]:
    """Return the record list of an API4 response.

    Accepts the bare array ``cv api4`` prints, or an object wrapping it under
    ``values``. Anything else is a DecodeError.
    """
    if isinstance(value, dict) and "values" in value:
        value = value["values"]
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, list) or not all(isinstance(r, dict) for r in value):
        raise DecodeError(
            "Expected a list of records from CiviCRM",
            raw_text=raw_text or json.dumps(value, default=str),
        )
    return value
