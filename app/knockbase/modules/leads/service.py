from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.knockbase import store
from app.knockbase.audit import record_event
from app.knockbase.constants import VALID_LEAD_STATUSES, LeadStatus
from app.knockbase.context import ActorContext
from app.knockbase.errors import AuthorizationDenied, FieldError, TargetNotFound, ValidationFailed
from app.knockbase.models import User
from app.knockbase.modules.leads.models import Lead
from app.knockbase.modules.territories.geofence import Coordinate, TieBreak
from app.knockbase.modules.territories.service import assign_territory
from app.knockbase.modules.visibility.service import (
    authorize_mutation,
    resolve_visible_actors,
    resolve_visible_leads,
)
from app.knockbase.utils import isoformat, normalize_text, parse_datetime, parse_float, parse_int, utcnow

logger = logging.getLogger(__name__)

# API field name -> model attribute
TEXT_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "email": "email",
    "address": "address",
    "notes": "notes",
}
DATE_FIELDS = {
    "followUpDate": "follow_up_date",
    "appointmentDate": "appointment_date",
    "knockedAt": "knocked_at",
}
OWNERSHIP_FIELDS = ("userId", "ownerId", "owner_id", "user_id")


def serialize_lead(lead: Lead, owner: User | None = None) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": lead.id,
        "userId": lead.owner_id,
        "firstName": lead.first_name,
        "lastName": lead.last_name,
        "phone": lead.phone,
        "email": lead.email,
        "address": lead.address,
        "latitude": lead.latitude,
        "longitude": lead.longitude,
        "territoryId": lead.territory_id,
        "status": lead.status,
        "notes": lead.notes,
        "tags": list(lead.tags or []),
        "followUpDate": isoformat(lead.follow_up_date),
        "appointmentDate": isoformat(lead.appointment_date),
        "knockedAt": isoformat(lead.knocked_at),
        "createdAt": isoformat(lead.created_at),
        "updatedAt": isoformat(lead.updated_at),
    }
    if owner is not None:
        d["repName"] = owner.display_name
        d["repEmail"] = owner.email
    return d


def parse_status(value: Any) -> LeadStatus | None:
    try:
        return LeadStatus(normalize_text(value).lower())
    except ValueError:
        return None


def _read_fields(payload: dict[str, Any]) -> tuple[dict[str, Any], list[FieldError]]:
    """Translate API payload keys into model fields; only keys present in the payload are returned."""
    data: dict[str, Any] = {}
    errors: list[FieldError] = []

    for api_key, attr in TEXT_FIELDS.items():
        if api_key in payload:
            data[attr] = normalize_text(payload.get(api_key))

    for api_key in ("latitude", "longitude"):
        if api_key in payload:
            value = parse_float(payload.get(api_key))
            if value is None:
                errors.append(FieldError(api_key, f"{api_key.capitalize()} must be a number."))
            else:
                data[api_key] = value
    if "latitude" in data and not -90.0 <= data["latitude"] <= 90.0:
        errors.append(FieldError("latitude", "Latitude must be between -90 and 90."))
    if "longitude" in data and not -180.0 <= data["longitude"] <= 180.0:
        errors.append(FieldError("longitude", "Longitude must be between -180 and 180."))

    if "status" in payload:
        status = parse_status(payload.get("status"))
        if status is None:
            errors.append(FieldError("status", f"Status must be one of: {', '.join(VALID_LEAD_STATUSES)}"))
        else:
            data["status"] = status.value

    if "tags" in payload:
        tags = payload.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            errors.append(FieldError("tags", "Tags must be a list of strings."))
        else:
            data["tags"] = [t.strip() for t in tags if t.strip()]

    for api_key, attr in DATE_FIELDS.items():
        if api_key in payload:
            try:
                data[attr] = parse_datetime(payload.get(api_key))
            except ValueError:
                errors.append(FieldError(api_key, f"{api_key} must be an ISO-8601 timestamp."))
    return data, errors


def _territory_for(s: Session, latitude: float, longitude: float, policy: TieBreak) -> int | None:
    territory = assign_territory(s, Coordinate(latitude, longitude), policy=policy)
    return territory.id if territory else None


def list_visible_leads(
    s: Session,
    ctx: ActorContext,
    *,
    org_unit_id: int | None = None,
    status: str | None = None,
) -> list[Lead]:
    leads = resolve_visible_leads(s, ctx, org_unit_id=org_unit_id)
    if status:
        leads = [lead for lead in leads if lead.status == status]
    return leads


def list_leads_with_owners(s: Session, ctx: ActorContext, *, org_unit_id: int | None = None) -> list[dict[str, Any]]:
    """Console view: visible leads with the owning rep's name/email, most recently updated first."""
    owners = {a.id: a for a in resolve_visible_actors(s, ctx)}
    leads = resolve_visible_leads(s, ctx, org_unit_id=org_unit_id)
    leads.sort(key=lambda lead: (lead.updated_at or datetime.min, lead.id), reverse=True)
    return [serialize_lead(lead, owners.get(lead.owner_id)) for lead in leads]


def get_lead(s: Session, ctx: ActorContext, lead_id: int) -> Lead:
    lead = store.find_lead_by_id(s, lead_id)
    if lead is None:
        raise TargetNotFound("lead", lead_id)
    if lead.id not in {v.id for v in resolve_visible_leads(s, ctx)}:
        raise AuthorizationDenied("You are not permitted to view this lead.")
    return lead


def create_lead(
    s: Session,
    ctx: ActorContext,
    payload: dict[str, Any],
    *,
    tie_break: TieBreak = TieBreak.OLDEST,
) -> Lead:
    """Leads are always created for the acting identity; any owner in the payload is ignored."""
    data, errors = _read_fields(payload)
    if errors:
        raise ValidationFailed(errors)

    data.setdefault("status", LeadStatus.UNTOUCHED.value)
    data.setdefault("tags", [])
    data.setdefault("latitude", 0.0)
    data.setdefault("longitude", 0.0)
    data["territory_id"] = _territory_for(s, data["latitude"], data["longitude"], tie_break)

    lead = store.create_lead(s, owner_id=ctx.id, **data)
    record_event(
        s,
        actor=ctx,
        action="lead.create",
        entity_type="Lead",
        entity_id=str(lead.id),
        metadata={"status": lead.status, "territory_id": lead.territory_id},
    )
    return lead


def update_lead(
    s: Session,
    ctx: ActorContext,
    lead_id: int,
    payload: dict[str, Any],
    *,
    tie_break: TieBreak = TieBreak.OLDEST,
) -> Lead:
    lead: Lead = authorize_mutation(s, ctx, "lead", lead_id)

    if any(k in payload and payload[k] not in (None, lead.owner_id) for k in OWNERSHIP_FIELDS):
        raise ValidationFailed([FieldError("userId", "Ownership changes go through reassignment.")])

    data, errors = _read_fields(payload)
    if errors:
        raise ValidationFailed(errors)

    if "latitude" in data or "longitude" in data:
        data["territory_id"] = _territory_for(
            s,
            data.get("latitude", lead.latitude),
            data.get("longitude", lead.longitude),
            tie_break,
        )

    changes = {k: {"old": str(getattr(lead, k)), "new": str(v)} for k, v in data.items() if getattr(lead, k) != v}
    lead = store.update_lead(s, lead.id, data) or lead
    record_event(
        s,
        actor=ctx,
        action="lead.edit",
        entity_type="Lead",
        entity_id=str(lead.id),
        metadata={"changes": changes},
    )
    return lead


def disposition_lead(
    s: Session,
    ctx: ActorContext,
    lead_id: int,
    status: Any,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> Lead:
    """Record a door knock: set the outcome status and stamp knocked_at."""
    lead: Lead = authorize_mutation(s, ctx, "lead", lead_id)
    parsed = parse_status(status)
    if parsed is None:
        raise ValidationFailed([FieldError("status", f"Status must be one of: {', '.join(VALID_LEAD_STATUSES)}")])

    patch: dict[str, Any] = {"status": parsed.value, "knocked_at": now or utcnow()}
    if notes is not None:
        patch["notes"] = normalize_text(notes)

    old_status = lead.status
    lead = store.update_lead(s, lead.id, patch) or lead
    record_event(
        s,
        actor=ctx,
        action="lead.disposition",
        entity_type="Lead",
        entity_id=str(lead.id),
        metadata={"old_status": old_status, "new_status": lead.status},
    )
    return lead


def reassign_lead(s: Session, ctx: ActorContext, lead_id: int, new_owner_id: Any, *, reason: str | None = None) -> Lead:
    if not ctx.is_privileged:
        raise AuthorizationDenied("Only owners and managers may reassign leads.")
    lead: Lead = authorize_mutation(s, ctx, "lead", lead_id)

    owner_id = parse_int(new_owner_id)
    if owner_id is None:
        raise ValidationFailed([FieldError("userId", "New owner id is required.")])
    new_owner = store.find_actor_by_id(s, owner_id)
    if new_owner is None:
        raise TargetNotFound("actor", owner_id)
    if new_owner.id not in {a.id for a in resolve_visible_actors(s, ctx)}:
        raise AuthorizationDenied("You can only reassign leads to members of your own team.")
    if not new_owner.is_active:
        raise ValidationFailed([FieldError("userId", "Leads cannot be assigned to a deactivated account.")])

    old_owner_id = lead.owner_id
    lead = store.reassign_lead(s, lead.id, new_owner.id) or lead
    record_event(
        s,
        actor=ctx,
        action="lead.reassign",
        entity_type="Lead",
        entity_id=str(lead.id),
        reason=reason,
        metadata={"old_owner_id": old_owner_id, "new_owner_id": new_owner.id},
    )
    logger.info("Lead %s reassigned %s -> %s by actor %s", lead.id, old_owner_id, new_owner.id, ctx.id)
    return lead


def delete_lead(s: Session, ctx: ActorContext, lead_id: int) -> None:
    lead: Lead = authorize_mutation(s, ctx, "lead", lead_id)
    owner_id = lead.owner_id
    store.delete_lead(s, lead.id)
    record_event(
        s,
        actor=ctx,
        action="lead.delete",
        entity_type="Lead",
        entity_id=str(lead_id),
        metadata={"owner_id": owner_id},
    )
