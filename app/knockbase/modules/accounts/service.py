from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.knockbase import store
from app.knockbase.audit import record_event
from app.knockbase.constants import MIN_PASSWORD_LENGTH, ActorRole
from app.knockbase.context import ActorContext
from app.knockbase.errors import AuthorizationDenied, Conflict, FieldError, ValidationFailed
from app.knockbase.models import User
from app.knockbase.modules.visibility.service import (
    authorize_actor_delete,
    authorize_actor_patch,
    authorize_mutation,
    managed_unit_ids,
    resolve_visible_actors,
)
from app.knockbase.utils import is_valid_email, isoformat, normalize_text, parse_int

logger = logging.getLogger(__name__)


def serialize_actor(u: User) -> dict[str, Any]:
    # password_hash is never serialized
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "fullName": u.full_name,
        "phone": u.phone,
        "role": u.role.value,
        "managerId": u.manager_id,
        "orgUnitId": u.org_unit_id,
        "isActive": bool(u.is_active),
        "lastLoginAt": isoformat(u.last_login_at),
        "createdAt": isoformat(u.created_at),
        "updatedAt": isoformat(u.updated_at),
    }


def parse_role(value: Any) -> ActorRole | None:
    if isinstance(value, ActorRole):
        return value
    return ActorRole.from_legacy(normalize_text(value))


def _check_password(password: str, errors: list[FieldError]) -> None:
    if not password:
        errors.append(FieldError("password", "Password is required."))
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append(FieldError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters."))


def _check_manager(s: Session, manager_id: int | None, errors: list[FieldError]) -> None:
    if manager_id is None:
        return
    manager = store.find_actor_by_id(s, manager_id)
    if manager is None or manager.role is not ActorRole.MANAGER:
        errors.append(FieldError("managerId", "Supervisor must be an existing manager."))


def _check_org_unit(s: Session, org_unit_id: int | None, errors: list[FieldError]) -> None:
    if org_unit_id is not None and store.find_org_unit_by_id(s, org_unit_id) is None:
        errors.append(FieldError("orgUnitId", f"Org unit {org_unit_id} does not exist."))


def _check_unique(s: Session, *, username: str | None, email: str | None, exclude_id: int | None = None) -> None:
    if username:
        existing = store.list_actors(s, User.username == username)
        if any(u.id != exclude_id for u in existing):
            raise Conflict("That username is already taken.")
    if email:
        existing = store.list_actors(s, User.email == email)
        if any(u.id != exclude_id for u in existing):
            raise Conflict("An account with this email already exists.")


def list_visible_actors(s: Session, ctx: ActorContext, *, org_unit_id: int | None = None) -> list[User]:
    if not ctx.is_privileged:
        raise AuthorizationDenied("Only owners and managers may list accounts.")
    return resolve_visible_actors(s, ctx, org_unit_id=org_unit_id)


def role_summary(s: Session, ctx: ActorContext) -> dict[str, int]:
    actors = list_visible_actors(s, ctx)
    return {
        "total": len(actors),
        "owners": sum(1 for a in actors if a.role is ActorRole.OWNER),
        "managers": sum(1 for a in actors if a.role is ActorRole.MANAGER),
        "reps": sum(1 for a in actors if a.role is ActorRole.REP),
        "active": sum(1 for a in actors if a.is_active),
    }


def create_actor(s: Session, ctx: ActorContext, payload: dict[str, Any]) -> User:
    """
    Owners may create any tier. Accounts created by a manager are always reps
    supervised by that manager.
    """
    if not ctx.is_privileged:
        raise AuthorizationDenied("Only owners and managers may create accounts.")

    errors: list[FieldError] = []
    email = normalize_text(payload.get("email")).lower()
    username = normalize_text(payload.get("username")) or email
    password = payload.get("password") or ""
    full_name = normalize_text(payload.get("fullName", payload.get("full_name")))
    phone = normalize_text(payload.get("phone"))

    if not email:
        errors.append(FieldError("email", "Email is required."))
    elif not is_valid_email(email):
        errors.append(FieldError("email", "Invalid email format."))
    _check_password(password, errors)

    role = parse_role(payload.get("role") or ActorRole.REP.value)
    if role is None:
        errors.append(FieldError("role", "Role must be one of: owner, manager, rep."))
        role = ActorRole.REP
    manager_id = parse_int(payload.get("managerId", payload.get("manager_id")))
    org_unit_id = parse_int(payload.get("orgUnitId", payload.get("org_unit_id")))

    if ctx.is_manager:
        role = ActorRole.REP
        manager_id = ctx.id
        if org_unit_id is not None and org_unit_id != ctx.org_unit_id and org_unit_id not in managed_unit_ids(s, ctx):
            raise AuthorizationDenied("You can only place accounts in your own org units.")
    elif role is not ActorRole.REP:
        manager_id = None

    _check_manager(s, manager_id, errors)
    _check_org_unit(s, org_unit_id, errors)
    if errors:
        raise ValidationFailed(errors)
    _check_unique(s, username=username, email=email)

    actor = store.create_actor(
        s,
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
        phone=phone,
        role=role,
        manager_id=manager_id,
        org_unit_id=org_unit_id,
        is_active=True,
    )
    record_event(
        s,
        actor=ctx,
        action="user.create",
        entity_type="User",
        entity_id=str(actor.id),
        metadata={"email": email, "role": role.value, "manager_id": manager_id, "org_unit_id": org_unit_id},
    )
    return actor


def _read_patch(s: Session, payload: dict[str, Any]) -> tuple[dict[str, Any], list[FieldError], str | None]:
    patch: dict[str, Any] = {}
    errors: list[FieldError] = []
    password: str | None = None

    if "email" in payload:
        email = normalize_text(payload.get("email")).lower()
        if not email or not is_valid_email(email):
            errors.append(FieldError("email", "Invalid email format."))
        patch["email"] = email
    if "username" in payload:
        username = normalize_text(payload.get("username"))
        if not username:
            errors.append(FieldError("username", "Username cannot be blank."))
        patch["username"] = username
    if "fullName" in payload or "full_name" in payload:
        patch["full_name"] = normalize_text(payload.get("fullName", payload.get("full_name")))
    if "phone" in payload:
        patch["phone"] = normalize_text(payload.get("phone"))
    if "role" in payload:
        role = parse_role(payload.get("role"))
        if role is None:
            errors.append(FieldError("role", "Role must be one of: owner, manager, rep."))
        else:
            patch["role"] = role
    if "managerId" in payload or "manager_id" in payload:
        patch["manager_id"] = parse_int(payload.get("managerId", payload.get("manager_id")))
    if "orgUnitId" in payload or "org_unit_id" in payload:
        patch["org_unit_id"] = parse_int(payload.get("orgUnitId", payload.get("org_unit_id")))
        _check_org_unit(s, patch["org_unit_id"], errors)
    if "isActive" in payload or "is_active" in payload:
        is_active = payload.get("isActive", payload.get("is_active"))
        if isinstance(is_active, bool):
            patch["is_active"] = is_active
        else:
            errors.append(FieldError("isActive", "isActive must be true or false."))
    if payload.get("password"):
        password = str(payload.get("password"))
        _check_password(password, errors)
    return patch, errors, password


def update_actor(s: Session, ctx: ActorContext, actor_id: int, payload: dict[str, Any]) -> User:
    target: User = authorize_mutation(s, ctx, "actor", actor_id)
    patch, errors, password = _read_patch(s, payload)
    if errors:
        raise ValidationFailed(errors)

    authorize_actor_patch(ctx, target, patch, managed_units=managed_unit_ids(s, ctx))

    new_role = patch.get("role", target.role)
    if new_role is not ActorRole.REP:
        # Only reps report to a manager.
        if target.manager_id is not None or patch.get("manager_id") is not None:
            patch["manager_id"] = None
    elif "manager_id" in patch:
        _check_manager(s, patch["manager_id"], errors)
        if patch["manager_id"] == target.id:
            errors.append(FieldError("managerId", "An account cannot supervise itself."))
    if errors:
        raise ValidationFailed(errors)
    _check_unique(s, username=patch.get("username"), email=patch.get("email"), exclude_id=target.id)

    changes = {
        k: {"old": str(getattr(target, k)), "new": str(v)}
        for k, v in patch.items()
        if getattr(target, k) != v
    }
    if password:
        patch["password_hash"] = generate_password_hash(password)
        changes["password"] = {"old": "***", "new": "***"}

    if target.role is ActorRole.MANAGER and new_role is not ActorRole.MANAGER:
        released = store.release_reports(s, target.id)
        if released:
            changes["reports_released"] = {"old": str(released), "new": "[]"}

    actor = store.update_actor(s, target.id, patch) or target
    record_event(
        s,
        actor=ctx,
        action="user.update",
        entity_type="User",
        entity_id=str(actor.id),
        metadata={"changes": changes},
    )
    if "role" in changes or "is_active" in changes:
        logger.info("Account %s changed by actor %s: %s", actor.id, ctx.id, sorted(changes))
    return actor


def delete_actor(s: Session, ctx: ActorContext, actor_id: int) -> None:
    target: User = authorize_mutation(s, ctx, "actor", actor_id)
    authorize_actor_delete(ctx, target)

    owned = store.count_leads_owned_by(s, target.id)
    if owned:
        raise Conflict(f"This account still owns {owned} lead(s); reassign them first.")

    email = target.email
    store.delete_actor(s, target.id)
    record_event(
        s,
        actor=ctx,
        action="user.delete",
        entity_type="User",
        entity_id=str(actor_id),
        metadata={"email": email},
    )
    logger.info("Account %s (%s) deleted by actor %s", actor_id, email, ctx.id)
