"""
Unit tests for the org-unit tree walk.

Tests cover:
- Transitive descendants (never the unit itself)
- Unknown ids and leaf units
- Cyclic parent chains terminate
- Write-time cycle detection and ancestor paths
"""

from types import SimpleNamespace

from app.knockbase.modules.org_units.hierarchy import (
    ancestor_ids,
    children_index,
    descendant_ids,
    subtree_ids,
    would_create_cycle,
)


def _unit(id, parent_id=None):
    return SimpleNamespace(id=id, parent_id=parent_id)


def _west():
    # West (region) > Bay (area) > Alpha (team); East (region) > Beta (team)
    return [
        _unit("West"),
        _unit("Bay", "West"),
        _unit("Alpha", "Bay"),
        _unit("East"),
        _unit("Beta", "East"),
    ]


class TestDescendantIds:
    def test_region_contains_area_and_team(self):
        assert descendant_ids(_west(), "West") == {"Bay", "Alpha"}

    def test_excludes_self(self):
        for u in _west():
            assert u.id not in descendant_ids(_west(), u.id)

    def test_leaf_has_no_descendants(self):
        assert descendant_ids(_west(), "Alpha") == set()

    def test_unknown_unit_is_empty(self):
        assert descendant_ids(_west(), "Nowhere") == set()

    def test_idempotent(self):
        units = _west()
        assert descendant_ids(units, "West") == descendant_ids(units, "West")

    def test_accepts_any_iterable(self):
        assert descendant_ids(iter(_west()), "East") == {"Beta"}

    def test_cycle_terminates(self):
        """A -> B -> C -> A never loops forever"""
        units = [_unit("A", "C"), _unit("B", "A"), _unit("C", "B")]
        assert descendant_ids(units, "A") == {"B", "C"}

    def test_self_parented_unit(self):
        assert descendant_ids([_unit("A", "A")], "A") == set()


class TestSubtreeAndIndex:
    def test_subtree_includes_self(self):
        assert subtree_ids(_west(), "Bay") == {"Bay", "Alpha"}

    def test_children_index(self):
        index = children_index(_west())
        assert index["West"] == ["Bay"]
        assert "Alpha" not in index


class TestCycleGuard:
    def test_moving_under_descendant_is_cycle(self):
        assert would_create_cycle(_west(), "West", "Alpha") is True

    def test_moving_under_self_is_cycle(self):
        assert would_create_cycle(_west(), "Bay", "Bay") is True

    def test_moving_to_other_branch_is_fine(self):
        assert would_create_cycle(_west(), "Bay", "East") is False

    def test_detaching_is_fine(self):
        assert would_create_cycle(_west(), "Bay", None) is False


class TestAncestorIds:
    def test_nearest_first(self):
        assert ancestor_ids(_west(), "Alpha") == ["Bay", "West"]

    def test_root_has_none(self):
        assert ancestor_ids(_west(), "West") == []

    def test_cycle_safe(self):
        units = [_unit("A", "B"), _unit("B", "A")]
        assert ancestor_ids(units, "A") == ["B"]
