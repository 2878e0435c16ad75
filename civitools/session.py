"""
Caller identity as handed over by the chat application's identity provider.

Authentication itself happens elsewhere; tools only see the resulting
``{id, email, type}`` session user. Guests have no CRM identity until they
finish onboarding and are promoted to regular users.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class UserType(StrEnum):
    GUEST = "guest"
    REGULAR = "regular"


@dataclass(frozen=True)
class UserSession:
    """The authenticated user behind a tool call."""

    id: str
    email: str | None = None
    type: UserType = UserType.REGULAR

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> UserSession:
        """Build from a session payload; a nested ``user`` object is accepted."""
        user = data.get("user") or data
        email = (user.get("email") or "").strip() or None
        return cls(
            id=str(user.get("id") or ""),
            email=email,
            type=UserType(user.get("type") or UserType.REGULAR),
        )

    @property
    def is_guest(self) -> bool:
        return self.type is UserType.GUEST
