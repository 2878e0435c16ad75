"""Tests for civitools.crm.decode — JSON decoding of cv output."""

import json

import pytest

from civitools.crm.decode import as_rows, decode_response
from civitools.crm.errors import DecodeError


class TestDecodeResponse:
    def test_round_trip(self):
        payload = [
            {"id": 1, "display_name": "John Doe", "email_primary.email": "john@example.com"},
            {"id": 2, "display_name": "Jane Smith", "is_deleted": False, "amount": 12.5},
        ]
        assert decode_response(json.dumps(payload)) == payload

    def test_trims_whitespace(self):
        assert decode_response('\n  [{"id": 1}]  \n') == [{"id": 1}]

    def test_invalid_json_keeps_raw_text(self):
        raw = "Warning: something odd\n[{"
        with pytest.raises(DecodeError) as exc:
            decode_response(raw)
        assert exc.value.raw_text == raw
        assert "Failed to parse" in str(exc.value)

    def test_empty_output(self):
        with pytest.raises(DecodeError):
            decode_response("")


class TestAsRows:
    def test_list(self):
        assert as_rows([{"id": 1}]) == [{"id": 1}]

    def test_values_wrapper(self):
        assert as_rows({"values": [{"id": 1}]}) == [{"id": 1}]

    def test_keyed_values(self):
        assert as_rows({"values": {"3": {"id": 3}}}) == [{"id": 3}]

    def test_scalar_rejected(self):
        with pytest.raises(DecodeError) as exc:
            as_rows(42)
        assert exc.value.raw_text == "42"

    def test_list_of_scalars_rejected(self):
        with pytest.raises(DecodeError):
            as_rows([1, 2])
