"""
Region -> area -> team containment tree.

Pure functions over any records exposing ``id`` and ``parent_id``; callers fetch
the unit collection fresh and pass it in.
"""
from __future__ import annotations

from collections.abc import Hashable, Iterable
from typing import Protocol


class UnitLike(Protocol):
    id: Hashable
    parent_id: Hashable | None


def children_index(units: Iterable[UnitLike]) -> dict[Hashable, list[Hashable]]:
    index: dict[Hashable, list[Hashable]] = {}
    for u in units:
        if u.parent_id is not None:
            index.setdefault(u.parent_id, []).append(u.id)
    return index


def descendant_ids(units: Iterable[UnitLike], unit_id: Hashable) -> set[Hashable]:
    """
    Every unit transitively parented by ``unit_id``, excluding ``unit_id`` itself.

    Unknown ``unit_id`` -> empty set. Iterative walk with a visited set: a cyclic
    parent chain stops at the first repeat instead of looping forever.
    """
    units = list(units)
    if not any(u.id == unit_id for u in units):
        return set()
    index = children_index(units)

    found: set[Hashable] = set()
    stack = list(index.get(unit_id, ()))
    while stack:
        current = stack.pop()
        if current == unit_id or current in found:
            continue
        found.add(current)
        stack.extend(index.get(current, ()))
    return found


def subtree_ids(units: Iterable[UnitLike], unit_id: Hashable) -> set[Hashable]:
    """``{unit_id} | descendant_ids(unit_id)``; the membership set used for org-unit narrowing."""
    return {unit_id} | descendant_ids(units, unit_id)


def would_create_cycle(units: Iterable[UnitLike], unit_id: Hashable, new_parent_id: Hashable | None) -> bool:
    if new_parent_id is None:
        return False
    if new_parent_id == unit_id:
        return True
    return new_parent_id in descendant_ids(units, unit_id)


def ancestor_ids(units: Iterable[UnitLike], unit_id: Hashable) -> list[Hashable]:
    """Parent chain from nearest to root (cycle-safe)."""
    by_id = {u.id: u for u in units}
    chain: list[Hashable] = []
    seen = {unit_id}
    current = by_id.get(unit_id)
    while current is not None and current.parent_id is not None and current.parent_id not in seen:
        chain.append(current.parent_id)
        seen.add(current.parent_id)
        current = by_id.get(current.parent_id)
    return chain
