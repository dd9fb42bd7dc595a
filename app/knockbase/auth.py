from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.knockbase import store
from app.knockbase.audit import record_event
from app.knockbase.db import db_session
from app.knockbase.models import User
from app.knockbase.modules.accounts.service import serialize_actor
from app.knockbase.rbac import current_user, require_login
from app.knockbase.utils import utcnow

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)


def _check_rate_limit(ip: str) -> bool:
    now = utcnow()
    cutoff = now - timedelta(seconds=current_app.config["LOGIN_RATE_WINDOW_SECONDS"])
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= current_app.config["LOGIN_RATE_LIMIT"]


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None

    user_id = session.get("user_id")
    if not user_id:
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


@bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    login_name = (payload.get("username") or payload.get("email") or "").strip()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        return jsonify({"error": "rate_limited", "message": "Too many login attempts. Please wait and try again."}), 429

    _record_attempt(ip)

    s = db_session()
    user = store.find_actor_by_login(s, login_name)
    if not user or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=login_name,
            reason="Invalid credentials",
            metadata={"login": login_name},
        )
        s.commit()
        return jsonify({"error": "invalid_credentials", "message": "Invalid credentials."}), 401

    if not user.is_active:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=str(user.id),
            reason="Account deactivated",
        )
        s.commit()
        return jsonify({"error": "account_inactive", "message": "This account has been deactivated."}), 403

    session.permanent = True
    session["user_id"] = user.id
    _login_attempts[ip].clear()
    user.last_login_at = utcnow()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"user": serialize_actor(user)})


@bp.post("/logout")
def logout():
    user = current_user()
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return jsonify({"ok": True})


@bp.get("/me")
@require_login
def me():
    return jsonify({"user": serialize_actor(current_user())})
