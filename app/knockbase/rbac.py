from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.knockbase.constants import ActorRole
from app.knockbase.context import ActorContext
from app.knockbase.models import User


def current_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return user


def current_context() -> ActorContext:
    """
    The acting identity for the current request, as an explicit value.
    Routes build it once and hand it to the services; services never read ``g``.
    """
    user = current_user()
    if user is None:
        raise RuntimeError("No current user")
    ctx = getattr(g, "actor_context", None)
    if ctx is None or ctx.id != user.id:
        ctx = ActorContext.from_user(user)
        g.actor_context = ctx
    return ctx


def _unauthenticated():
    return jsonify({"error": "not_authenticated", "message": "Sign in to continue."}), 401


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_user() is None:
            return _unauthenticated()
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: ActorRole) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Unauthenticated -> 401
            if user is None:
                return _unauthenticated()
            # Authenticated but wrong tier -> 403
            if user.role not in roles:
                g.missing_role = ",".join(r.value for r in roles)
                return jsonify({"error": "not_permitted", "message": "You are not permitted to do that."}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
