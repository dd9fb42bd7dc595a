"""
Central constants for the KnockBase application.
"""
from __future__ import annotations

from enum import Enum


class ActorRole(str, Enum):
    """The three actor tiers, coarsest first."""

    OWNER = "owner"
    MANAGER = "manager"
    REP = "rep"

    @classmethod
    def from_legacy(cls, value: str | None) -> "ActorRole | None":
        """Map current and historical role spellings onto a tier; None when unknown."""
        key = (value or "").strip().lower()
        return LEGACY_ROLE_ALIASES.get(key)

    @property
    def is_privileged(self) -> bool:
        return self in (ActorRole.OWNER, ActorRole.MANAGER)


# Older rows call the mid tier "admin" and the base tier "sales_rep".
LEGACY_ROLE_ALIASES: dict[str, ActorRole] = {
    "owner": ActorRole.OWNER,
    "manager": ActorRole.MANAGER,
    "admin": ActorRole.MANAGER,
    "rep": ActorRole.REP,
    "sales_rep": ActorRole.REP,
}


class OrgUnitLevel(str, Enum):
    REGION = "region"
    AREA = "area"
    TEAM = "team"


# child level -> levels its parent may have
ALLOWED_PARENT_LEVELS: dict[OrgUnitLevel, frozenset[OrgUnitLevel]] = {
    OrgUnitLevel.REGION: frozenset(),
    OrgUnitLevel.AREA: frozenset({OrgUnitLevel.REGION}),
    OrgUnitLevel.TEAM: frozenset({OrgUnitLevel.AREA, OrgUnitLevel.REGION}),
}


class LeadStatus(str, Enum):
    UNTOUCHED = "untouched"
    NOT_HOME = "not_home"
    NOT_INTERESTED = "not_interested"
    CALLBACK = "callback"
    APPOINTMENT = "appointment"
    SOLD = "sold"
    FOLLOW_UP = "follow_up"


# Dispositions that mean somebody answered the door.
CONTACT_STATUSES = frozenset(
    {
        LeadStatus.CALLBACK,
        LeadStatus.APPOINTMENT,
        LeadStatus.SOLD,
        LeadStatus.FOLLOW_UP,
        LeadStatus.NOT_INTERESTED,
    }
)

VALID_LEAD_STATUSES = tuple(st.value for st in LeadStatus)

TERRITORY_COLORS = (
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#06B6D4",
    "#EC4899",
    "#F97316",
)

MIN_PASSWORD_LENGTH = 8
