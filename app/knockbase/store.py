"""
Read/write primitives over the database.

Business rules (scoping, authorization, validation) live in the module services;
this layer only loads and saves rows. Every write stamps updated_at. Concurrent
writes to the same row resolve as last-write-wins.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.knockbase.models import User
from app.knockbase.modules.leads.models import Lead
from app.knockbase.modules.org_units.models import OrgUnit
from app.knockbase.modules.territories.models import Territory
from app.knockbase.utils import utcnow


def _apply_patch(obj: Any, patch: dict[str, Any]) -> None:
    for key, value in patch.items():
        if not hasattr(obj, key):
            raise AttributeError(f"{type(obj).__name__} has no field {key!r}")
        setattr(obj, key, value)
    obj.updated_at = utcnow()


# ---------- Actors ----------
def find_actor_by_id(s: Session, actor_id: int | None) -> User | None:
    if actor_id is None:
        return None
    return s.get(User, actor_id)


def find_actor_by_login(s: Session, login: str) -> User | None:
    login = (login or "").strip()
    if not login:
        return None
    stmt = select(User).where((User.username == login) | (User.email == login.lower()))
    return s.execute(stmt).scalars().first()


def list_actors(s: Session, *criteria: Any) -> list[User]:
    stmt = select(User).where(*criteria).order_by(User.id.asc())
    return list(s.execute(stmt).scalars())


def create_actor(s: Session, **fields: Any) -> User:
    now = utcnow()
    actor = User(created_at=now, updated_at=now, **fields)
    s.add(actor)
    s.flush()
    return actor


def update_actor(s: Session, actor_id: int, patch: dict[str, Any]) -> User | None:
    actor = s.get(User, actor_id)
    if actor is None:
        return None
    _apply_patch(actor, patch)
    s.flush()
    return actor


def release_reports(s: Session, actor_id: int) -> list[int]:
    """Clear manager_id on every actor reporting to actor_id; returns their ids."""
    released = []
    for report in list_actors(s, User.manager_id == actor_id):
        report.manager_id = None
        report.updated_at = utcnow()
        released.append(report.id)
    return released


def delete_actor(s: Session, actor_id: int) -> bool:
    actor = s.get(User, actor_id)
    if actor is None:
        return False
    # Reports keep existing; they simply lose their supervisor.
    release_reports(s, actor_id)
    s.delete(actor)
    s.flush()
    return True


# ---------- Org units ----------
def find_org_unit_by_id(s: Session, unit_id: int | None) -> OrgUnit | None:
    if unit_id is None:
        return None
    return s.get(OrgUnit, unit_id)


def list_org_units(s: Session) -> list[OrgUnit]:
    return list(s.execute(select(OrgUnit).order_by(OrgUnit.id.asc())).scalars())


def create_org_unit(s: Session, *, name: str, level: str, parent_id: int | None) -> OrgUnit:
    now = utcnow()
    unit = OrgUnit(name=name, level=level, parent_id=parent_id, created_at=now, updated_at=now)
    s.add(unit)
    s.flush()
    return unit


def update_org_unit(s: Session, unit_id: int, patch: dict[str, Any]) -> OrgUnit | None:
    unit = s.get(OrgUnit, unit_id)
    if unit is None:
        return None
    _apply_patch(unit, patch)
    s.flush()
    return unit


def delete_org_unit(s: Session, unit_id: int) -> bool:
    """Delete a unit; children move up to its parent and members become unassigned."""
    unit = s.get(OrgUnit, unit_id)
    if unit is None:
        return False
    now = utcnow()
    for child in s.execute(select(OrgUnit).where(OrgUnit.parent_id == unit_id)).scalars():
        child.parent_id = unit.parent_id
        child.updated_at = now
    for member in list_actors(s, User.org_unit_id == unit_id):
        member.org_unit_id = None
        member.updated_at = now
    s.flush()
    s.delete(unit)
    s.flush()
    return True


# ---------- Leads ----------
def find_lead_by_id(s: Session, lead_id: int | None) -> Lead | None:
    if lead_id is None:
        return None
    return s.get(Lead, lead_id)


def list_leads(s: Session, *criteria: Any) -> list[Lead]:
    stmt = select(Lead).where(*criteria).order_by(Lead.id.asc())
    return list(s.execute(stmt).scalars())


def create_lead(s: Session, **fields: Any) -> Lead:
    now = utcnow()
    lead = Lead(created_at=now, updated_at=now, **fields)
    s.add(lead)
    s.flush()
    return lead


def update_lead(s: Session, lead_id: int, patch: dict[str, Any]) -> Lead | None:
    lead = s.get(Lead, lead_id)
    if lead is None:
        return None
    _apply_patch(lead, patch)
    s.flush()
    return lead


def reassign_lead(s: Session, lead_id: int, new_owner_id: int) -> Lead | None:
    return update_lead(s, lead_id, {"owner_id": new_owner_id})


def delete_lead(s: Session, lead_id: int) -> bool:
    lead = s.get(Lead, lead_id)
    if lead is None:
        return False
    s.delete(lead)
    s.flush()
    return True


def count_leads_owned_by(s: Session, actor_id: int) -> int:
    stmt = select(func.count(Lead.id)).where(Lead.owner_id == actor_id)
    return int(s.execute(stmt).scalar() or 0)


# ---------- Territories ----------
def find_territory_by_id(s: Session, territory_id: int | None) -> Territory | None:
    if territory_id is None:
        return None
    return s.get(Territory, territory_id)


def list_territories(s: Session) -> list[Territory]:
    stmt = select(Territory).order_by(Territory.created_at.asc(), Territory.id.asc())
    return list(s.execute(stmt).scalars())


def create_territory(s: Session, **fields: Any) -> Territory:
    now = utcnow()
    territory = Territory(created_at=now, updated_at=now, **fields)
    s.add(territory)
    s.flush()
    return territory


def update_territory(s: Session, territory_id: int, patch: dict[str, Any]) -> Territory | None:
    territory = s.get(Territory, territory_id)
    if territory is None:
        return None
    _apply_patch(territory, patch)
    s.flush()
    return territory


def delete_territory(s: Session, territory_id: int) -> bool:
    territory = s.get(Territory, territory_id)
    if territory is None:
        return False
    for lead in list_leads(s, Lead.territory_id == territory_id):
        lead.territory_id = None
    s.flush()
    s.delete(territory)
    s.flush()
    return True
