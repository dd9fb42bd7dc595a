from flask import Blueprint, jsonify, request

from app.knockbase.constants import ActorRole
from app.knockbase.db import db_session
from app.knockbase.modules.accounts import service as account_service
from app.knockbase.rbac import current_context, require_login, require_role
from app.knockbase.utils import parse_org_unit_filter

bp = Blueprint("accounts", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("/users")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def users_list():
    s = db_session()
    actors = account_service.list_visible_actors(s, current_context(), org_unit_id=parse_org_unit_filter(request.args))
    return jsonify({"users": [account_service.serialize_actor(a) for a in actors]})


@bp.get("/users/summary")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def users_summary():
    s = db_session()
    return jsonify(account_service.role_summary(s, current_context()))


@bp.post("/users")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def users_create():
    s = db_session()
    actor = account_service.create_actor(s, current_context(), _payload())
    s.commit()
    return jsonify({"user": account_service.serialize_actor(actor)}), 201


@bp.put("/users/<int:user_id>")
@require_login
def users_update(user_id: int):
    s = db_session()
    actor = account_service.update_actor(s, current_context(), user_id, _payload())
    s.commit()
    return jsonify({"user": account_service.serialize_actor(actor)})


@bp.delete("/users/<int:user_id>")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def users_delete(user_id: int):
    s = db_session()
    account_service.delete_actor(s, current_context(), user_id)
    s.commit()
    return jsonify({"ok": True})
