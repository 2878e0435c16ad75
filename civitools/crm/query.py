"""
API4 query parameters and the ``cv api4`` command line built from them.

API4 filters are ``[field, operator, value]`` triples. ``Filter`` checks a
triple when it is built, so a malformed one never reaches the shell.

Usage:
    from civitools.crm.query import Filter, Op, QueryParams, build_command

    params = QueryParams(
        select=("id", "display_name"),
        where=(Filter("display_name", Op.LIKE, "%Jane%"),),
        limit=25,
    )
    cmd = build_command(config, "Contact", "get", params)
    # CIVICRM_SETTINGS=/path/civicrm.settings.php cv api4 Contact.get '{"select":...}'
"""

from __future__ import annotations

import json
import re
import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from civitools.config import CiviCRMConfig

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_FIELD_RE = re.compile(r"^[A-Za-z_*][A-Za-z0-9_.:*]*$")

JsonScalar = str | int | float | bool


class Op(StrEnum):
    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


_LIST_OPS = frozenset({Op.IN, Op.NOT_IN})
_UNARY_OPS = frozenset({Op.IS_NULL, Op.IS_NOT_NULL})


def _check_field(name: str) -> str:
    if not isinstance(name, str) or not _FIELD_RE.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return name


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


@dataclass(frozen=True)
class Filter:
    """One ``[field, operator, value]`` clause of an API4 ``where``."""

    field: str
    op: Op
    value: Any = None

    def __post_init__(self) -> None:
        _check_field(self.field)
        try:
            op = Op(self.op)
        except ValueError:
            raise ValueError(f"Unknown filter operator: {self.op!r}") from None
        object.__setattr__(self, "op", op)

        if op in _UNARY_OPS:
            if self.value is not None:
                raise ValueError(f"{op} takes no value (field {self.field!r})")
        elif op in _LIST_OPS:
            if isinstance(self.value, (str, bytes)) or not isinstance(self.value, Sequence):
                raise ValueError(f"{op} needs a list of values (field {self.field!r})")
            if not all(_is_scalar(v) for v in self.value):
                raise ValueError(f"{op} values must be JSON scalars (field {self.field!r})")
            object.__setattr__(self, "value", tuple(self.value))
        elif not _is_scalar(self.value):
            raise ValueError(
                f"Filter value for {self.field!r} must be a JSON scalar, got {type(self.value).__name__}"
            )

    @classmethod
    def from_triple(cls, triple: Sequence[Any]) -> Filter:
        """Build from a raw ``[field, op, value]`` (or ``[field, op]``) sequence."""
        if isinstance(triple, (str, bytes)) or len(triple) not in (2, 3):
            raise ValueError(f"Filter must be [field, operator, value], got: {triple!r}")
        return cls(*triple)

    def to_list(self) -> list[Any]:
        if self.op in _UNARY_OPS:
            return [self.field, str(self.op)]
        value = list(self.value) if self.op in _LIST_OPS else self.value
        return [self.field, str(self.op), value]


@dataclass(frozen=True)
class QueryParams:
    """API4 ``get`` parameters: field selection, filters and a page window."""

    select: tuple[str, ...] = ()
    where: tuple[Filter, ...] = ()
    limit: int | None = None
    offset: int | None = None
    order_by: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "select", tuple(_check_field(f) for f in self.select))
        clauses = tuple(
            w if isinstance(w, Filter) else Filter.from_triple(w) for w in self.where
        )
        object.__setattr__(self, "where", clauses)
        for name in ("limit", "offset"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got: {value!r}")
        for key, direction in self.order_by.items():
            _check_field(key)
            if direction not in ("ASC", "DESC"):
                raise ValueError(f"order_by direction must be ASC or DESC, got: {direction!r}")

    def to_dict(self) -> dict[str, Any]:
        """Render in API4 key order, omitting anything unset."""
        out: dict[str, Any] = {}
        if self.select:
            out["select"] = list(self.select)
        if self.where:
            out["where"] = [w.to_list() for w in self.where]
        if self.order_by:
            out["orderBy"] = dict(self.order_by)
        if self.limit is not None:
            out["limit"] = self.limit
        if self.offset is not None:
            out["offset"] = self.offset
        return out


def encode_params(params: QueryParams | None) -> str:
    """Serialize params as compact JSON, the form ``cv api4`` takes."""
    payload = params.to_dict() if params is not None else {}
    return json.dumps(payload, separators=(",", ":"))


def build_command(
    config: CiviCRMConfig,
    entity: str,
    action: str,
    params: QueryParams | None = None,
) -> str:
    """Render ``<SETTINGS_ENV>=<settings> <cv> api4 <Entity>.<action> '<json>'``."""
    if not _NAME_RE.match(entity):
        raise ValueError(f"Invalid entity name: {entity!r}")
    if not _NAME_RE.match(action):
        raise ValueError(f"Invalid action name: {action!r}")
    if not _NAME_RE.match(config.settings_env):
        raise ValueError(f"Invalid settings variable name: {config.settings_env!r}")

    return (
        f"{config.settings_env}={shlex.quote(config.settings_path)} "
        f"{shlex.quote(config.cv_path)} api4 {entity}.{action} "
        f"{shlex.quote(encode_params(params))}"
    )
