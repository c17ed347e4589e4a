"""Tests for hierarchy rule sets."""

from __future__ import annotations

import pytest

from decomposer.rules import DEFAULT_HIERARCHY_RULES, HierarchyRuleSet


class TestFromDict:
    def test_default_rules(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.to_dict() == DEFAULT_HIERARCHY_RULES

    def test_children_deduplicated_in_order(self) -> None:
        rules = HierarchyRuleSet.from_dict({"Feature": ["Task", "Bug", "Task"]})
        assert rules.allowed_children("Feature") == ("Task", "Bug")

    def test_dedup_is_case_sensitive(self) -> None:
        rules = HierarchyRuleSet.from_dict({"Feature": ["Task", "task"]})
        assert rules.allowed_children("Feature") == ("Task", "task")

    @pytest.mark.parametrize(
        "raw",
        [
            {"": ["Task"]},
            {"Feature": "Task"},
            {"Feature": ["Task", ""]},
            {"Feature": [3]},
        ],
    )
    def test_rejects_malformed(self, raw: dict) -> None:
        with pytest.raises(ValueError):
            HierarchyRuleSet.from_dict(raw)

    def test_rejects_non_mapping(self) -> None:
        with pytest.raises(ValueError, match="mapping"):
            HierarchyRuleSet.from_dict(["Feature"])  # type: ignore[arg-type]


class TestQueries:
    def test_absent_type_has_no_children(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.allowed_children("Task") == ()
        assert rules.allowed_children(None) == ()

    def test_can_be_child_of(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.can_be_child_of("Task", "User Story")
        assert not rules.can_be_child_of("Task", "Feature")
        assert not rules.can_be_child_of(None, "Feature")

    def test_type_names_are_case_sensitive(self) -> None:
        rules = HierarchyRuleSet.default()
        assert not rules.can_be_child_of("task", "User Story")

    def test_canonical_type_is_case_insensitive(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.canonical_type("user story") == "User Story"
        assert rules.canonical_type("  TASK ") == "Task"
        assert rules.canonical_type("Spike") is None

    def test_known_types(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.known_types() == ("Epic", "Feature", "User Story", "Task", "Bug")

    def test_creatable_types(self) -> None:
        creatable = HierarchyRuleSet.default().creatable_types()
        assert creatable.root == ("Epic",)
        assert creatable.child == ("Feature", "User Story", "Task", "Bug")
        assert set(creatable.all) == {"Epic", "Feature", "User Story", "Task", "Bug"}

    def test_creatable_types_ignore_childless_entries(self) -> None:
        rules = HierarchyRuleSet.from_dict({"Issue": [], "Epic": ["Issue"]})
        creatable = rules.creatable_types()
        assert creatable.root == ("Epic",)
        assert creatable.child == ("Issue",)


class TestReachableTypes:
    def test_breadth_first_depths(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.reachable_types("Feature") == [(0, "User Story"), (1, "Task"), (1, "Bug")]

    def test_each_type_once(self) -> None:
        rules = HierarchyRuleSet.from_dict({"A": ["B", "C"], "B": ["C"], "C": ["A"]})
        reached = [t for _, t in rules.reachable_types("A")]
        assert sorted(reached) == ["A", "B", "C"]
        assert len(reached) == len(set(reached))

    def test_none_starts_from_roots(self) -> None:
        rules = HierarchyRuleSet.default()
        assert rules.reachable_types(None)[0] == (0, "Epic")

    def test_leaf_type_reaches_nothing(self) -> None:
        assert HierarchyRuleSet.default().reachable_types("Task") == []
