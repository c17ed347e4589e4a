"""Turn per-type policy into concrete tag and assignee values for one node."""

from __future__ import annotations

from collections.abc import Set

from decomposer.hierarchy import WorkItemNode
from decomposer.settings import SettingsScope, WitSettings


class ConfigurationResolver:
    """Resolve tags, assignee and effective policy scope for tree nodes.

    Holds a settings snapshot and the decomposing item's area path for the
    duration of one materialization run. Never mutates a node.
    """

    def __init__(self, scope: SettingsScope, decomposing_area_path: str | None = None) -> None:
        self.scope = scope
        self.decomposing_area_path = decomposing_area_path or None

    def effective_area_path(self, node: WorkItemNode) -> str | None:
        return node.area_path or self.decomposing_area_path

    def scope_for(self, node: WorkItemNode) -> WitSettings:
        return self.scope.for_area_path(self.effective_area_path(node))

    def resolve_tags(
        self,
        node: WorkItemNode,
        parent_tags: Set[str],
        ancestor_tags: Set[str],
        scope: WitSettings | None = None,
    ) -> frozenset[str]:
        """Explicit tags, plus the parent's applied tags or the ancestor union per policy."""
        policy = (scope if scope is not None else self.scope_for(node)).tag_policy(node.type)
        tags = set(policy.tags)
        if policy.inheritance == "parent":
            tags |= parent_tags
        elif policy.inheritance == "ancestors":
            tags |= ancestor_tags
        return frozenset(tags)

    def resolve_assignment(
        self,
        node: WorkItemNode,
        decomposing_item_assignee: str | None,
        current_actor: str | None,
        scope: WitSettings | None = None,
    ) -> str | None:
        policy = (scope if scope is not None else self.scope_for(node)).assignment_policy(node.type)
        if policy.behavior == "decomposing_item":
            return decomposing_item_assignee or None
        if policy.behavior == "creator":
            return current_actor or None
        return None
