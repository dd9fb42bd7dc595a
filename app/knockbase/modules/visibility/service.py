"""
Who may see and change what.

Role scoping (before any org-unit narrowing):

    owner    -> every actor, every lead
    manager  -> self + reps whose manager_id is self; leads owned by that set
    rep      -> self; own leads

Org-unit narrowing runs after role scoping and only ever removes records.
The pure functions take the acting identity and the fetched records explicitly;
the ``resolve_*`` helpers fetch from the store and delegate to them.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable
from typing import Any, TypeVar

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.knockbase import store
from app.knockbase.constants import ActorRole
from app.knockbase.context import ActorContext
from app.knockbase.errors import AuthorizationDenied, TargetNotFound
from app.knockbase.models import User
from app.knockbase.modules.leads.models import Lead
from app.knockbase.modules.org_units.hierarchy import UnitLike, descendant_ids, subtree_ids

logger = logging.getLogger(__name__)

T = TypeVar("T")

TARGET_KINDS = ("actor", "lead", "territory", "org_unit")

# Fields on an actor that only a supervising tier may change.
PRIVILEGED_ACTOR_FIELDS = ("role", "manager_id", "org_unit_id", "is_active")


# ---------- Pure scoping ----------
def visible_actors(ctx: ActorContext, actors: Iterable[User]) -> list[User]:
    if ctx.is_owner:
        return list(actors)
    if ctx.is_manager:
        return [
            a
            for a in actors
            if a.id == ctx.id or (a.manager_id == ctx.id and a.role is ActorRole.REP)
        ]
    return [a for a in actors if a.id == ctx.id]


def visible_actor_ids(ctx: ActorContext, actors: Iterable[User]) -> set[int]:
    return {a.id for a in visible_actors(ctx, actors)}


def visible_leads(ctx: ActorContext, actors: Iterable[User], leads: Iterable[Lead]) -> list[Lead]:
    if ctx.is_owner:
        return list(leads)
    owner_ids = visible_actor_ids(ctx, actors)
    return [lead for lead in leads if lead.owner_id in owner_ids]


def scope_by_org_unit(
    collection: Iterable[T],
    unit_id: Hashable,
    *,
    units: Iterable[UnitLike],
    org_unit_of: Callable[[T], Hashable | None],
) -> list[T]:
    """Keep items whose org unit is ``unit_id`` or one of its descendants."""
    allowed = subtree_ids(units, unit_id)
    return [item for item in collection if org_unit_of(item) in allowed]


def scope_actors_by_org_unit(actors: Iterable[User], unit_id: Hashable, units: Iterable[UnitLike]) -> list[User]:
    return scope_by_org_unit(actors, unit_id, units=units, org_unit_of=lambda a: a.org_unit_id)


def scope_leads_by_org_unit(
    leads: Iterable[Lead],
    unit_id: Hashable,
    units: Iterable[UnitLike],
    actors: Iterable[User],
) -> list[Lead]:
    """Narrow leads by their owning actor's org-unit membership."""
    unit_of_owner = {a.id: a.org_unit_id for a in actors}
    return scope_by_org_unit(leads, unit_id, units=units, org_unit_of=lambda lead: unit_of_owner.get(lead.owner_id))


# ---------- Store-backed resolution ----------
def _candidate_actors(s: Session, ctx: ActorContext) -> list[User]:
    if ctx.is_owner:
        return store.list_actors(s)
    if ctx.is_manager:
        return store.list_actors(s, or_(User.id == ctx.id, User.manager_id == ctx.id))
    return store.list_actors(s, User.id == ctx.id)


def resolve_visible_actors(s: Session, ctx: ActorContext, org_unit_id: int | None = None) -> list[User]:
    actors = visible_actors(ctx, _candidate_actors(s, ctx))
    if org_unit_id is not None:
        actors = scope_actors_by_org_unit(actors, org_unit_id, store.list_org_units(s))
    return actors


def resolve_visible_leads(s: Session, ctx: ActorContext, org_unit_id: int | None = None) -> list[Lead]:
    actors = visible_actors(ctx, _candidate_actors(s, ctx))
    if ctx.is_owner:
        candidates = store.list_leads(s)
    else:
        candidates = store.list_leads(s, Lead.owner_id.in_([a.id for a in actors]))
    leads = visible_leads(ctx, actors, candidates)
    if org_unit_id is not None:
        leads = scope_leads_by_org_unit(leads, org_unit_id, store.list_org_units(s), actors)
    return leads


def managed_unit_ids(s: Session, ctx: ActorContext) -> set[int]:
    """Org units strictly beneath the manager's own unit (empty for reps and unit-less managers)."""
    if not ctx.is_manager or ctx.org_unit_id is None:
        return set()
    return descendant_ids(store.list_org_units(s), ctx.org_unit_id)  # type: ignore[return-value]


# ---------- Mutation authorization ----------
def _deny(ctx: ActorContext, kind: str, target_id: Any, message: str) -> AuthorizationDenied:
    logger.warning(
        "[AUTHZ_DENIED] actor=%s role=%s target=%s:%s reason=%s",
        ctx.id,
        ctx.role.value,
        kind,
        target_id,
        message,
    )
    return AuthorizationDenied(message)


def authorize_mutation(s: Session, ctx: ActorContext, target_kind: str, target_id: int) -> Any:
    """
    Verify ``ctx`` may create/update/delete the given target and return it.

    Raises TargetNotFound when the id does not exist and AuthorizationDenied when it
    exists but lies outside the actor's scope. The two are never folded together.
    """
    if target_kind == "actor":
        target = store.find_actor_by_id(s, target_id)
        if target is None:
            raise TargetNotFound("actor", target_id)
        if target.id not in visible_actor_ids(ctx, _candidate_actors(s, ctx)):
            raise _deny(ctx, target_kind, target_id, "You can only manage accounts on your own team.")
        return target

    if target_kind == "lead":
        target = store.find_lead_by_id(s, target_id)
        if target is None:
            raise TargetNotFound("lead", target_id)
        if not ctx.is_owner and target.owner_id not in visible_actor_ids(ctx, _candidate_actors(s, ctx)):
            raise _deny(ctx, target_kind, target_id, "You can only change leads within your scope.")
        return target

    if target_kind == "territory":
        target = store.find_territory_by_id(s, target_id)
        if target is None:
            raise TargetNotFound("territory", target_id)
        if not ctx.is_privileged:
            raise _deny(ctx, target_kind, target_id, "Only owners and managers may change territories.")
        return target

    if target_kind == "org_unit":
        target = store.find_org_unit_by_id(s, target_id)
        if target is None:
            raise TargetNotFound("org_unit", target_id)
        if ctx.is_owner:
            return target
        if ctx.is_manager and target.id in managed_unit_ids(s, ctx):
            return target
        raise _deny(ctx, target_kind, target_id, "You can only change org units beneath your own.")

    raise ValueError(f"Unknown target kind: {target_kind!r}")


def can_mutate(s: Session, ctx: ActorContext, target_kind: str, target_id: int) -> bool:
    """
    Boolean form of authorize_mutation. A missing target still raises TargetNotFound
    so that "does not exist" is never reported as "not permitted".
    """
    try:
        authorize_mutation(s, ctx, target_kind, target_id)
    except AuthorizationDenied:
        return False
    return True


def authorize_actor_patch(
    ctx: ActorContext,
    target: User,
    patch: dict[str, Any],
    *,
    managed_units: set[int] | None = None,
) -> None:
    """
    Field-level rules on top of scope membership (checked by authorize_mutation):
    - nobody changes their own role or deactivates themselves here
    - reps may not change role/manager/org unit/active flag at all
    - managers may only assign the rep tier, only supervise reps themselves,
      and only place accounts in units beneath their own
    """
    changed = {k: v for k, v in patch.items() if getattr(target, k, None) != v}

    if target.id == ctx.id:
        if "is_active" in changed and not changed["is_active"]:
            raise _deny(ctx, "actor", target.id, "You cannot deactivate your own account.")
        if "role" in changed:
            raise _deny(ctx, "actor", target.id, "You cannot change your own role.")

    if ctx.is_owner:
        return

    if ctx.role is ActorRole.REP:
        touched = [k for k in PRIVILEGED_ACTOR_FIELDS if k in changed]
        if touched:
            raise _deny(ctx, "actor", target.id, f"Reps cannot change: {', '.join(touched)}.")
        return

    # manager
    if "role" in changed and changed["role"] is not ActorRole.REP:
        raise _deny(ctx, "actor", target.id, "Managers can only assign the rep role.")
    if "manager_id" in changed and changed["manager_id"] != ctx.id and target.id != ctx.id:
        raise _deny(ctx, "actor", target.id, "Managers can only supervise their own reps.")
    if "manager_id" in changed and target.id == ctx.id:
        raise _deny(ctx, "actor", target.id, "Managers cannot change their own supervisor.")
    if "org_unit_id" in changed and changed["org_unit_id"] is not None:
        if changed["org_unit_id"] not in (managed_units or set()) and changed["org_unit_id"] != ctx.org_unit_id:
            raise _deny(ctx, "actor", target.id, "You can only place accounts in your own org units.")


def authorize_actor_delete(ctx: ActorContext, target: User) -> None:
    if target.id == ctx.id:
        raise _deny(ctx, "actor", target.id, "You cannot delete your own account.")
    if not ctx.is_owner:
        raise _deny(ctx, "actor", target.id, "Only owners can delete accounts.")
