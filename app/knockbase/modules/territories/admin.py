from flask import Blueprint, current_app, jsonify, request

from app.knockbase import store
from app.knockbase.constants import ActorRole
from app.knockbase.db import db_session
from app.knockbase.errors import FieldError, ValidationFailed
from app.knockbase.modules.territories import service as territory_service
from app.knockbase.modules.territories.geofence import Coordinate, TieBreak
from app.knockbase.rbac import current_context, require_login, require_role

bp = Blueprint("territories", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _tie_break() -> TieBreak:
    return TieBreak.parse(current_app.config.get("TERRITORY_TIE_BREAK"))


@bp.get("/territories")
@require_login
def territories_list():
    s = db_session()
    return jsonify({"territories": [territory_service.serialize_territory(t) for t in store.list_territories(s)]})


@bp.post("/territories")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def territories_create():
    s = db_session()
    territory = territory_service.create_territory(s, current_context(), _payload(), tie_break=_tie_break())
    s.commit()
    return jsonify({"territory": territory_service.serialize_territory(territory)}), 201


@bp.put("/territories/<int:territory_id>")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def territories_update(territory_id: int):
    s = db_session()
    territory = territory_service.update_territory(
        s, current_context(), territory_id, _payload(), tie_break=_tie_break()
    )
    s.commit()
    return jsonify({"territory": territory_service.serialize_territory(territory)})


@bp.delete("/territories/<int:territory_id>")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def territories_delete(territory_id: int):
    s = db_session()
    territory_service.delete_territory(s, current_context(), territory_id, tie_break=_tie_break())
    s.commit()
    return jsonify({"ok": True})


@bp.post("/territories/assign")
@require_login
def territories_assign():
    s = db_session()
    try:
        point = Coordinate.from_mapping(_payload())
    except (TypeError, ValueError):
        raise ValidationFailed([FieldError("latitude", "Latitude and longitude are required numbers.")])
    territory = territory_service.assign_territory(s, point, policy=_tie_break())
    return jsonify({"territory": territory_service.serialize_territory(territory) if territory else None})
