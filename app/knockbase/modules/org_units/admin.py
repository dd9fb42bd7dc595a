from flask import Blueprint, jsonify, request

from app.knockbase import store
from app.knockbase.constants import ActorRole
from app.knockbase.db import db_session
from app.knockbase.modules.org_units import service as org_unit_service
from app.knockbase.rbac import current_context, require_login, require_role

bp = Blueprint("org_units", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _serialize(s, unit) -> dict:
    return org_unit_service.serialize_org_unit(unit, store.list_org_units(s), store.list_actors(s))


@bp.get("/org-units")
@require_login
def org_units_list():
    s = db_session()
    return jsonify({"orgUnits": org_unit_service.list_org_units_with_counts(s)})


@bp.post("/org-units")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def org_units_create():
    s = db_session()
    unit = org_unit_service.create_org_unit(s, current_context(), _payload())
    s.commit()
    return jsonify({"orgUnit": _serialize(s, unit)}), 201


@bp.put("/org-units/<int:unit_id>")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def org_units_update(unit_id: int):
    s = db_session()
    unit = org_unit_service.update_org_unit(s, current_context(), unit_id, _payload())
    s.commit()
    return jsonify({"orgUnit": _serialize(s, unit)})


@bp.delete("/org-units/<int:unit_id>")
@require_role(ActorRole.OWNER)
def org_units_delete(unit_id: int):
    s = db_session()
    org_unit_service.delete_org_unit(s, current_context(), unit_id)
    s.commit()
    return jsonify({"ok": True})
