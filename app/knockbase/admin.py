import json

from flask import Blueprint, jsonify, request

from app.knockbase.constants import ActorRole
from app.knockbase.db import db_session
from app.knockbase.models import AuditEvent
from app.knockbase.rbac import require_role
from app.knockbase.utils import isoformat, parse_int

bp = Blueprint("admin", __name__)

MAX_AUDIT_EVENTS = 500


def _serialize_event(ev: AuditEvent) -> dict:
    return {
        "id": ev.id,
        "createdAt": isoformat(ev.created_at),
        "requestId": ev.request_id,
        "clientIp": ev.client_ip,
        "actorUserId": ev.actor_user_id,
        "actorUserEmail": ev.actor_user_email,
        "action": ev.action,
        "entityType": ev.entity_type,
        "entityId": ev.entity_id,
        "reason": ev.reason,
        "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
    }


@bp.get("/audit")
@require_role(ActorRole.OWNER)
def audit_list():
    """
    Audit trail, newest first, with simple filters:
    - action (contains)
    - actorId (exact)
    - entityType (exact)
    - limit (default 200, capped)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_id = parse_int(request.args.get("actorId"))
    entity_type = (request.args.get("entityType") or "").strip()
    limit = min(parse_int(request.args.get("limit")) or 200, MAX_AUDIT_EVENTS)

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_id is not None:
        q = q.filter(AuditEvent.actor_user_id == actor_id)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(max(limit, 1)).all()
    return jsonify({"events": [_serialize_event(ev) for ev in events]})
