from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.knockbase.constants import ActorRole

if TYPE_CHECKING:
    from app.knockbase.models import User


@dataclass(frozen=True)
class ActorContext:
    """
    The acting identity, passed explicitly into every scoping/authorization function.
    Built once per request from the signed-in user; never read from request globals further down.
    """

    id: int
    role: ActorRole
    org_unit_id: int | None = None
    email: str = ""

    @classmethod
    def from_user(cls, user: "User") -> "ActorContext":
        return cls(id=user.id, role=user.role, org_unit_id=user.org_unit_id, email=user.email)

    @property
    def is_owner(self) -> bool:
        return self.role is ActorRole.OWNER

    @property
    def is_manager(self) -> bool:
        return self.role is ActorRole.MANAGER

    @property
    def is_privileged(self) -> bool:
        return self.role.is_privileged
