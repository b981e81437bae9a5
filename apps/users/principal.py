"""Authenticated principal handed to the booking core by the transport layer."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    user_id: UUID
    role: str = ROLE_MEMBER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_act_for(self, user_id: UUID) -> bool:
        return self.is_admin or str(self.user_id) == str(user_id)


def principal_for(user) -> Principal | None:
    """Build a principal from a Django user, None for anonymous users."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return Principal(user_id=user.id, role=getattr(user, "role", ROLE_MEMBER))
