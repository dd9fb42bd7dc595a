from flask import Blueprint, current_app, jsonify, request

from app.knockbase.constants import VALID_LEAD_STATUSES, ActorRole
from app.knockbase.db import db_session
from app.knockbase.errors import FieldError, ValidationFailed
from app.knockbase.modules.leads import service as lead_service
from app.knockbase.modules.territories.geofence import TieBreak
from app.knockbase.rbac import current_context, require_login, require_role
from app.knockbase.utils import parse_org_unit_filter

bp = Blueprint("leads", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _tie_break() -> TieBreak:
    return TieBreak.parse(current_app.config.get("TERRITORY_TIE_BREAK"))


@bp.get("/leads")
@require_login
def leads_list():
    s = db_session()
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in VALID_LEAD_STATUSES:
        raise ValidationFailed([FieldError("status", f"Status must be one of: {', '.join(VALID_LEAD_STATUSES)}")])
    leads = lead_service.list_visible_leads(
        s,
        current_context(),
        org_unit_id=parse_org_unit_filter(request.args),
        status=status,
    )
    return jsonify({"leads": [lead_service.serialize_lead(lead) for lead in leads]})


@bp.post("/leads")
@require_login
def leads_create():
    s = db_session()
    lead = lead_service.create_lead(s, current_context(), _payload(), tie_break=_tie_break())
    s.commit()
    return jsonify({"lead": lead_service.serialize_lead(lead)}), 201


@bp.get("/leads/<int:lead_id>")
@require_login
def leads_detail(lead_id: int):
    s = db_session()
    lead = lead_service.get_lead(s, current_context(), lead_id)
    return jsonify({"lead": lead_service.serialize_lead(lead)})


@bp.put("/leads/<int:lead_id>")
@require_login
def leads_update(lead_id: int):
    s = db_session()
    lead = lead_service.update_lead(s, current_context(), lead_id, _payload(), tie_break=_tie_break())
    s.commit()
    return jsonify({"lead": lead_service.serialize_lead(lead)})


@bp.post("/leads/<int:lead_id>/disposition")
@require_login
def leads_disposition(lead_id: int):
    s = db_session()
    payload = _payload()
    lead = lead_service.disposition_lead(
        s,
        current_context(),
        lead_id,
        payload.get("status"),
        notes=payload.get("notes"),
    )
    s.commit()
    return jsonify({"lead": lead_service.serialize_lead(lead)})


@bp.post("/leads/<int:lead_id>/reassign")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def leads_reassign(lead_id: int):
    s = db_session()
    payload = _payload()
    lead = lead_service.reassign_lead(
        s,
        current_context(),
        lead_id,
        payload.get("userId", payload.get("newOwnerId")),
        reason=(payload.get("reason") or "").strip() or None,
    )
    s.commit()
    return jsonify({"lead": lead_service.serialize_lead(lead)})


@bp.delete("/leads/<int:lead_id>")
@require_login
def leads_delete(lead_id: int):
    s = db_session()
    lead_service.delete_lead(s, current_context(), lead_id)
    s.commit()
    return jsonify({"ok": True})


@bp.get("/admin/leads")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def admin_leads_list():
    s = db_session()
    leads = lead_service.list_leads_with_owners(s, current_context(), org_unit_id=parse_org_unit_filter(request.args))
    return jsonify({"leads": leads})
