from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.knockbase import store
from app.knockbase.audit import record_event
from app.knockbase.constants import TERRITORY_COLORS
from app.knockbase.context import ActorContext
from app.knockbase.errors import AuthorizationDenied, FieldError, ValidationFailed
from app.knockbase.modules.territories.geofence import (
    Coordinate,
    TieBreak,
    assign,
    is_degenerate,
    order_for_tie_break,
    polygon_area,
)
from app.knockbase.modules.territories.models import Territory
from app.knockbase.modules.visibility.service import authorize_mutation
from app.knockbase.utils import normalize_text


def serialize_territory(t: Territory) -> dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "color": t.color,
        "points": list(t.points or []),
        "assignedRep": t.assigned_rep,
        "degenerate": is_degenerate(t.points or []),
        "area": polygon_area(t.points or []),
        "createdAt": t.created_at.isoformat() if t.created_at else None,
        "updatedAt": t.updated_at.isoformat() if t.updated_at else None,
    }


def parse_points(raw: Any) -> tuple[list[dict[str, float]], list[FieldError]]:
    if raw is None:
        return [], []
    if not isinstance(raw, list):
        return [], [FieldError("points", "Points must be a list of coordinates.")]
    points: list[dict[str, float]] = []
    for idx, item in enumerate(raw):
        try:
            points.append(Coordinate.from_mapping(item).to_dict())
        except (TypeError, ValueError):
            return [], [FieldError("points", f"Point {idx} is not a valid coordinate.")]
    return points, []


def _next_color(s: Session) -> str:
    return TERRITORY_COLORS[len(store.list_territories(s)) % len(TERRITORY_COLORS)]


def create_territory(
    s: Session,
    ctx: ActorContext,
    payload: dict[str, Any],
    *,
    tie_break: TieBreak = TieBreak.OLDEST,
) -> Territory:
    if not ctx.is_privileged:
        raise AuthorizationDenied("Only owners and managers may create territories.")

    errors: list[FieldError] = []
    name = normalize_text(payload.get("name"))
    if not name:
        errors.append(FieldError("name", "Name is required."))
    points, point_errors = parse_points(payload.get("points"))
    errors.extend(point_errors)
    if errors:
        raise ValidationFailed(errors)

    territory = store.create_territory(
        s,
        name=name,
        color=normalize_text(payload.get("color")) or _next_color(s),
        points=points,
        assigned_rep=normalize_text(payload.get("assignedRep", payload.get("assigned_rep"))),
    )
    relinked = relink_leads(s, policy=tie_break)
    record_event(
        s,
        actor=ctx,
        action="territory.create",
        entity_type="Territory",
        entity_id=str(territory.id),
        metadata={
            "name": territory.name,
            "points": len(points),
            "degenerate": is_degenerate(points),
            "leads_relinked": relinked,
        },
    )
    return territory


def update_territory(
    s: Session,
    ctx: ActorContext,
    territory_id: int,
    payload: dict[str, Any],
    *,
    tie_break: TieBreak = TieBreak.OLDEST,
) -> Territory:
    territory: Territory = authorize_mutation(s, ctx, "territory", territory_id)

    patch: dict[str, Any] = {}
    errors: list[FieldError] = []
    if "name" in payload:
        name = normalize_text(payload.get("name"))
        if not name:
            errors.append(FieldError("name", "Name is required."))
        patch["name"] = name
    if "color" in payload:
        color = normalize_text(payload.get("color"))
        if not color:
            errors.append(FieldError("color", "Color cannot be blank."))
        patch["color"] = color
    if "assignedRep" in payload or "assigned_rep" in payload:
        patch["assigned_rep"] = normalize_text(payload.get("assignedRep", payload.get("assigned_rep")))
    if "points" in payload:
        # Vertices are replaced wholesale, never patched.
        points, point_errors = parse_points(payload.get("points"))
        errors.extend(point_errors)
        patch["points"] = points
    if errors:
        raise ValidationFailed(errors)

    territory = store.update_territory(s, territory.id, patch) or territory
    relinked = relink_leads(s, policy=tie_break) if "points" in patch else 0
    record_event(
        s,
        actor=ctx,
        action="territory.edit",
        entity_type="Territory",
        entity_id=str(territory.id),
        metadata={"name": territory.name, "fields": sorted(patch.keys()), "leads_relinked": relinked},
    )
    return territory


def delete_territory(
    s: Session,
    ctx: ActorContext,
    territory_id: int,
    *,
    tie_break: TieBreak = TieBreak.OLDEST,
) -> None:
    territory: Territory = authorize_mutation(s, ctx, "territory", territory_id)
    name = territory.name
    store.delete_territory(s, territory.id)
    relinked = relink_leads(s, policy=tie_break)
    record_event(
        s,
        actor=ctx,
        action="territory.delete",
        entity_type="Territory",
        entity_id=str(territory_id),
        metadata={"name": name, "leads_relinked": relinked},
    )


def assign_territory(s: Session, point: Coordinate, *, policy: TieBreak = TieBreak.OLDEST) -> Territory | None:
    """Territory containing ``point`` under the named tie-break policy, or None."""
    return assign(point, order_for_tie_break(store.list_territories(s), policy))


def relink_leads(s: Session, *, policy: TieBreak = TieBreak.OLDEST) -> int:
    """
    Recompute every lead's stored territory against the current polygons.

    Called after any change to territory geometry so that a lead's
    ``territory_id`` always equals what ``assign_territory`` returns for its
    coordinate. ``updated_at`` is left alone; the link is derived data.
    Returns the number of leads whose territory changed.
    """
    ordered = order_for_tie_break(store.list_territories(s), policy)
    changed = 0
    for lead in store.list_leads(s):
        match = assign(Coordinate(lead.latitude, lead.longitude), ordered)
        territory_id = match.id if match else None
        if lead.territory_id != territory_id:
            lead.territory_id = territory_id
            changed += 1
    if changed:
        s.flush()
    return changed
