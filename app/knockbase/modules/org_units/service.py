from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.knockbase import store
from app.knockbase.audit import record_event
from app.knockbase.constants import ALLOWED_PARENT_LEVELS, OrgUnitLevel
from app.knockbase.context import ActorContext
from app.knockbase.errors import AuthorizationDenied, FieldError, TargetNotFound, ValidationFailed
from app.knockbase.models import User
from app.knockbase.modules.org_units.hierarchy import ancestor_ids, children_index, subtree_ids, would_create_cycle
from app.knockbase.modules.org_units.models import OrgUnit
from app.knockbase.modules.visibility.service import authorize_mutation, managed_unit_ids
from app.knockbase.utils import normalize_text, parse_int

logger = logging.getLogger(__name__)


def parse_level(value: Any) -> OrgUnitLevel | None:
    try:
        return OrgUnitLevel(normalize_text(value).lower())
    except ValueError:
        return None


def validate_parent(
    units: list[OrgUnit],
    *,
    unit_id: int | None,
    level: OrgUnitLevel,
    parent_id: int | None,
) -> list[FieldError]:
    """Level nesting and acyclicity for a unit about to be saved (unit_id None for a new unit)."""
    errors: list[FieldError] = []
    by_id = {u.id: u for u in units}

    if parent_id is not None:
        parent = by_id.get(parent_id)
        if parent is None:
            errors.append(FieldError("parentId", f"Parent org unit {parent_id} does not exist."))
        else:
            allowed = ALLOWED_PARENT_LEVELS[level]
            parent_level = parse_level(parent.level)
            if parent_level not in allowed:
                if not allowed:
                    errors.append(FieldError("parentId", f"A {level.value} cannot have a parent."))
                else:
                    names = " or ".join(sorted(lv.value for lv in allowed))
                    errors.append(FieldError("parentId", f"A {level.value} must sit under a {names}."))
        if unit_id is not None and would_create_cycle(units, unit_id, parent_id):
            errors.append(FieldError("parentId", "An org unit cannot be moved beneath itself or its descendants."))

    if unit_id is not None:
        # Changing a unit's level must not strand its children.
        for child_id in children_index(units).get(unit_id, ()):
            child_level = parse_level(by_id[child_id].level)
            if child_level is not None and level not in ALLOWED_PARENT_LEVELS[child_level]:
                errors.append(FieldError("level", f"Child unit {child_id} ({child_level.value}) cannot sit under a {level.value}."))
    return errors


def serialize_org_unit(unit: OrgUnit, units: list[OrgUnit], actors: list[User]) -> dict[str, Any]:
    by_id = {u.id: u for u in units}
    members_in = subtree_ids(units, unit.id)
    path = [by_id[a].name for a in reversed(ancestor_ids(units, unit.id)) if a in by_id] + [unit.name]
    return {
        "id": unit.id,
        "name": unit.name,
        "type": unit.level,
        "parentId": unit.parent_id,
        "path": path,
        "directMembers": sum(1 for a in actors if a.org_unit_id == unit.id),
        "totalMembers": sum(1 for a in actors if a.org_unit_id in members_in),
        "createdAt": unit.created_at.isoformat() if unit.created_at else None,
        "updatedAt": unit.updated_at.isoformat() if unit.updated_at else None,
    }


def list_org_units_with_counts(s: Session) -> list[dict[str, Any]]:
    units = store.list_org_units(s)
    actors = store.list_actors(s)
    return [serialize_org_unit(u, units, actors) for u in units]


def _read_payload(payload: dict[str, Any], *, partial: bool) -> tuple[dict[str, Any], list[FieldError]]:
    errors: list[FieldError] = []
    data: dict[str, Any] = {}

    if not partial or "name" in payload:
        name = normalize_text(payload.get("name"))
        if not name:
            errors.append(FieldError("name", "Name is required."))
        data["name"] = name

    if not partial or "type" in payload or "level" in payload:
        raw_level = payload.get("type", payload.get("level", "team"))
        level = parse_level(raw_level)
        if level is None:
            errors.append(FieldError("type", "Type must be one of: region, area, team."))
        else:
            data["level"] = level

    if not partial or "parentId" in payload or "parent_id" in payload:
        raw_parent = payload.get("parentId", payload.get("parent_id"))
        parent_id = parse_int(raw_parent)
        if raw_parent not in (None, "") and parent_id is None:
            errors.append(FieldError("parentId", "Parent id must be numeric."))
        data["parent_id"] = parent_id
    return data, errors


def create_org_unit(s: Session, ctx: ActorContext, payload: dict[str, Any]) -> OrgUnit:
    data, errors = _read_payload(payload, partial=False)
    if errors:
        raise ValidationFailed(errors)

    if not ctx.is_owner:
        allowed_parents = managed_unit_ids(s, ctx) | ({ctx.org_unit_id} if ctx.org_unit_id is not None else set())
        if not ctx.is_manager or data["parent_id"] not in allowed_parents:
            raise AuthorizationDenied("You can only create org units beneath your own.")

    units = store.list_org_units(s)
    errors = validate_parent(units, unit_id=None, level=data["level"], parent_id=data["parent_id"])
    if errors:
        raise ValidationFailed(errors)

    unit = store.create_org_unit(s, name=data["name"], level=data["level"].value, parent_id=data["parent_id"])
    record_event(
        s,
        actor=ctx,
        action="org_unit.create",
        entity_type="OrgUnit",
        entity_id=str(unit.id),
        metadata={"name": unit.name, "level": unit.level, "parent_id": unit.parent_id},
    )
    return unit


def update_org_unit(s: Session, ctx: ActorContext, unit_id: int, payload: dict[str, Any]) -> OrgUnit:
    unit: OrgUnit = authorize_mutation(s, ctx, "org_unit", unit_id)
    data, errors = _read_payload(payload, partial=True)
    if errors:
        raise ValidationFailed(errors)

    level = data.get("level") or parse_level(unit.level) or OrgUnitLevel.TEAM
    parent_id = data["parent_id"] if "parent_id" in data else unit.parent_id

    if not ctx.is_owner and "parent_id" in data and parent_id != unit.parent_id:
        allowed_parents = managed_unit_ids(s, ctx) | {ctx.org_unit_id}
        if parent_id not in allowed_parents:
            raise AuthorizationDenied("You can only move org units beneath your own.")

    units = store.list_org_units(s)
    errors = validate_parent(units, unit_id=unit.id, level=level, parent_id=parent_id)
    if errors:
        raise ValidationFailed(errors)

    changes = {}
    patch: dict[str, Any] = {}
    if "name" in data and data["name"] != unit.name:
        changes["name"] = {"old": unit.name, "new": data["name"]}
        patch["name"] = data["name"]
    if level.value != unit.level:
        changes["level"] = {"old": unit.level, "new": level.value}
        patch["level"] = level.value
    if parent_id != unit.parent_id:
        changes["parent_id"] = {"old": unit.parent_id, "new": parent_id}
        patch["parent_id"] = parent_id

    unit = store.update_org_unit(s, unit.id, patch) or unit
    record_event(
        s,
        actor=ctx,
        action="org_unit.edit",
        entity_type="OrgUnit",
        entity_id=str(unit.id),
        metadata={"name": unit.name, "changes": changes},
    )
    return unit


def delete_org_unit(s: Session, ctx: ActorContext, unit_id: int) -> None:
    unit = store.find_org_unit_by_id(s, unit_id)
    if unit is None:
        raise TargetNotFound("org_unit", unit_id)
    if not ctx.is_owner:
        raise AuthorizationDenied("Only owners can delete org units.")
    name = unit.name
    store.delete_org_unit(s, unit_id)
    record_event(
        s,
        actor=ctx,
        action="org_unit.delete",
        entity_type="OrgUnit",
        entity_id=str(unit_id),
        metadata={"name": name},
    )
    logger.info("Org unit %s (%s) deleted by actor %s", unit_id, name, ctx.id)
