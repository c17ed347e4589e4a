"""In-memory composition tree and the manager that mutates it.

The tree exists only for the lifetime of one decomposition session. Nodes
are owned by value: a node lives in exactly one ``children`` list (or the
root list), and there are no back-references.

Every mutation is validated before it is applied. A rejected mutation raises
(``RuleViolation``, ``KeyError`` or ``ValueError``) and leaves the tree
exactly as it was.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from decomposer.rules import HierarchyRuleSet, RuleViolation
from decomposer.types.core import NodeDict

logger = logging.getLogger(__name__)


def new_node_id() -> str:
    """Process-unique temporary id. Never reused after a node is deleted."""
    return f"tmp-{uuid.uuid4().hex[:12]}"


def default_title(type_name: str | None) -> str:
    return f"New {type_name}" if type_name else "New item"


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------


@dataclass
class WorkItemNode:
    id: str
    title: str = ""
    type: str | None = None
    area_path: str | None = None
    iteration_path: str | None = None
    children: list[WorkItemNode] = field(default_factory=list)

    def to_dict(self) -> NodeDict:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "area_path": self.area_path,
            "iteration_path": self.iteration_path,
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WorkItemNode:
        """Build a node (and its subtree) from a JSON-compatible dict.

        Missing ids are generated. Raises ValueError on malformed input.
        """
        if not isinstance(raw, Mapping):
            msg = f"node must be an object, got {type(raw).__name__}"
            raise ValueError(msg)
        title = raw.get("title", "")
        if not isinstance(title, str):
            msg = "node title must be a string"
            raise ValueError(msg)
        type_name = raw.get("type")
        if type_name is not None and not isinstance(type_name, str):
            msg = "node type must be a string"
            raise ValueError(msg)
        for key in ("area_path", "iteration_path"):
            value = raw.get(key)
            if value is not None and not isinstance(value, str):
                msg = f"node {key} must be a string"
                raise ValueError(msg)
        children = raw.get("children") or []
        if not isinstance(children, list):
            msg = "node children must be a list"
            raise ValueError(msg)
        return cls(
            id=str(raw.get("id") or new_node_id()),
            title=title,
            type=type_name,
            area_path=raw.get("area_path") or None,
            iteration_path=raw.get("iteration_path") or None,
            children=[cls.from_dict(c) for c in children],
        )

    def walk(self) -> Iterator[WorkItemNode]:
        """Yield this node and all descendants, depth-first in document order."""
        yield self
        for child in self.children:
            yield from child.walk()


# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------


def count_nodes(nodes: Sequence[WorkItemNode]) -> int:
    return sum(1 + count_nodes(n.children) for n in nodes)


def find_node(nodes: Sequence[WorkItemNode], node_id: str) -> WorkItemNode | None:
    for node in nodes:
        if node.id == node_id:
            return node
        found = find_node(node.children, node_id)
        if found is not None:
            return found
    return None


def _locate(
    nodes: list[WorkItemNode],
    node_id: str,
    parent: WorkItemNode | None = None,
) -> tuple[WorkItemNode, WorkItemNode | None, list[WorkItemNode], int] | None:
    """Return ``(node, parent, sibling_list, index)`` for *node_id*, or None."""
    for index, node in enumerate(nodes):
        if node.id == node_id:
            return node, parent, nodes, index
        found = _locate(node.children, node_id, node)
        if found is not None:
            return found
    return None


def is_descendant(node: WorkItemNode, target_id: str) -> bool:
    return any(child.id == target_id or is_descendant(child, target_id) for child in node.children)


def validate_forest(nodes: Sequence[WorkItemNode], root_type: str | None, rules: HierarchyRuleSet) -> None:
    """Raise RuleViolation unless every node is legal under its parent.

    Also rejects duplicate node ids, since each node must have a single owner.
    """
    seen: set[str] = set()

    def _check(level: Sequence[WorkItemNode], parent_type: str | None, parent_label: str) -> None:
        for node in level:
            if node.id in seen:
                msg = f"Node id '{node.id}' appears more than once in the hierarchy"
                raise RuleViolation(msg, node_id=node.id, type_name=node.type)
            seen.add(node.id)
            if node.type is None:
                msg = f"Node '{node.title}' ({node.id}) has no work item type"
                raise RuleViolation(msg, node_id=node.id, parent_type=parent_type)
            if not rules.can_be_child_of(node.type, parent_type):
                allowed = ", ".join(rules.allowed_children(parent_type)) or "none"
                msg = f"'{node.type}' is not a valid child of {parent_label}. Allowed: {allowed}"
                raise RuleViolation(msg, node_id=node.id, type_name=node.type, parent_type=parent_type)
            _check(node.children, node.type, f"'{node.type}'")

    if nodes and root_type is None:
        msg = "Parent work item type is not set; call set_parent_work_item_type() first"
        raise RuleViolation(msg)
    _check(nodes, root_type, f"the parent work item type '{root_type}'")


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class HierarchyManager:
    """Owns the mutable composition tree and enforces the hierarchy rules.

    Snapshots returned by the public methods are deep copies; mutating them
    has no effect on the managed tree.
    """

    def __init__(
        self,
        rules: HierarchyRuleSet,
        *,
        parent_work_item_type: str | None = None,
        initial_hierarchy: Sequence[WorkItemNode] | None = None,
    ) -> None:
        self.rules = rules
        self._root_type: str | None = parent_work_item_type
        self._nodes: list[WorkItemNode] = []
        self._count = 0
        if initial_hierarchy:
            self.set_initial_hierarchy(initial_hierarchy, parent_work_item_type)

    # -- Root context --------------------------------------------------------

    def set_parent_work_item_type(self, type_name: str) -> None:
        if self._root_type == type_name:
            return
        for node in self._nodes:
            if not self.rules.can_be_child_of(node.type, type_name):
                msg = f"Existing root item '{node.title}' ({node.type}) is not a valid child of '{type_name}'"
                raise RuleViolation(msg, node_id=node.id, type_name=node.type, parent_type=type_name)
        self._root_type = type_name

    def get_parent_work_item_type(self) -> str | None:
        return self._root_type

    # -- Read-only views -----------------------------------------------------

    def get_hierarchy(self) -> list[WorkItemNode]:
        return copy.deepcopy(self._nodes)

    def get_hierarchy_count(self) -> int:
        return self._count

    @property
    def is_empty(self) -> bool:
        return self._count == 0

    def find_node(self, node_id: str) -> WorkItemNode | None:
        node = find_node(self._nodes, node_id)
        return copy.deepcopy(node) if node is not None else None

    def _require(self, node_id: str) -> tuple[WorkItemNode, WorkItemNode | None, list[WorkItemNode], int]:
        found = _locate(self._nodes, node_id)
        if found is None:
            msg = f"Node not found: {node_id}"
            raise KeyError(msg)
        return found

    def _parent_type_of(self, parent: WorkItemNode | None) -> str | None:
        return parent.type if parent is not None else self._root_type

    def get_possible_child_types(self, parent_id: str | None = None) -> list[str]:
        if parent_id is None:
            return list(self.rules.allowed_children(self._root_type))
        node, _, _, _ = self._require(parent_id)
        return list(self.rules.allowed_children(node.type))

    def get_possible_promote_types(self, node_id: str) -> list[str]:
        """Types the node could take if it became a sibling of its parent."""
        node, parent, _, _ = self._require(node_id)
        if parent is None:
            return []
        _, grandparent, _, _ = self._require(parent.id)
        return list(self.rules.allowed_children(self._parent_type_of(grandparent)))

    def get_possible_demote_types(self, node_id: str) -> list[str]:
        """Types the node could take under its preceding sibling."""
        _, _, siblings, index = self._require(node_id)
        if index == 0:
            return []
        return list(self.rules.allowed_children(siblings[index - 1].type))

    # -- Bulk operations -----------------------------------------------------

    def set_initial_hierarchy(self, nodes: Sequence[WorkItemNode], parent_type: str | None = None) -> list[WorkItemNode]:
        root_type = parent_type if parent_type is not None else self._root_type
        candidate = copy.deepcopy(list(nodes))
        validate_forest(candidate, root_type, self.rules)
        self._nodes = candidate
        self._root_type = root_type
        self._count = count_nodes(candidate)
        return self.get_hierarchy()

    def import_nodes(self, nodes: Sequence[WorkItemNode]) -> list[WorkItemNode]:
        """Append already-built subtrees at root level, validating the result as a whole."""
        candidate = copy.deepcopy(self._nodes) + copy.deepcopy(list(nodes))
        validate_forest(candidate, self._root_type, self.rules)
        self._nodes = candidate
        self._count = count_nodes(candidate)
        logger.debug("Imported %d root item(s); hierarchy now has %d item(s)", len(nodes), self._count)
        return self.get_hierarchy()

    def clear_hierarchy(self) -> None:
        self._nodes = []
        self._count = 0

    # -- Mutations -----------------------------------------------------------

    def add_item(
        self,
        parent_id: str | None = None,
        *,
        type: str | None = None,
        title: str | None = None,
    ) -> list[WorkItemNode]:
        """Add a new node under *parent_id* (root when None).

        The type defaults to the first allowed child type of the parent.
        """
        if parent_id is None:
            if self._root_type is None:
                msg = "Parent work item type is not set; call set_parent_work_item_type() first"
                raise RuleViolation(msg)
            siblings = self._nodes
            parent_type: str | None = self._root_type
        else:
            parent, _, _, _ = self._require(parent_id)
            siblings = parent.children
            parent_type = parent.type

        allowed = self.rules.allowed_children(parent_type)
        if type is None:
            if not allowed:
                msg = f"'{parent_type}' has no creatable child types"
                raise RuleViolation(msg, node_id=parent_id, parent_type=parent_type)
            type = allowed[0]
        elif type not in allowed:
            msg = f"'{type}' is not a valid child of '{parent_type}'. Allowed: {', '.join(allowed) or 'none'}"
            raise RuleViolation(msg, node_id=parent_id, type_name=type, parent_type=parent_type)

        node = WorkItemNode(id=new_node_id(), title=default_title(type) if title is None else title, type=type)
        siblings.append(node)
        self._count += 1
        logger.debug("Added %s %s under %s", node.type, node.id, parent_id or "root")
        return self.get_hierarchy()

    def remove_item(self, node_id: str) -> list[WorkItemNode]:
        node, _, siblings, index = self._require(node_id)
        del siblings[index]
        self._count -= 1 + count_nodes(node.children)
        return self.get_hierarchy()

    def update_item_title(self, node_id: str, title: str) -> list[WorkItemNode]:
        node, _, _, _ = self._require(node_id)
        node.title = title
        return self.get_hierarchy()

    def update_item_paths(
        self,
        node_id: str,
        *,
        area_path: str | None = None,
        iteration_path: str | None = None,
    ) -> list[WorkItemNode]:
        """Set (or clear, with None) the area/iteration path overrides of a node."""
        node, _, _, _ = self._require(node_id)
        node.area_path = area_path or None
        node.iteration_path = iteration_path or None
        return self.get_hierarchy()

    def update_item_type(self, node_id: str, type_name: str) -> list[WorkItemNode]:
        node, parent, _, _ = self._require(node_id)
        parent_type = self._parent_type_of(parent)
        if not self.rules.can_be_child_of(type_name, parent_type):
            allowed = ", ".join(self.rules.allowed_children(parent_type)) or "none"
            msg = f"'{type_name}' is not a valid child of '{parent_type}'. Allowed: {allowed}"
            raise RuleViolation(msg, node_id=node_id, type_name=type_name, parent_type=parent_type)
        for child in node.children:
            if not self.rules.can_be_child_of(child.type, type_name):
                msg = f"Existing child '{child.title}' ({child.type}) is not a valid child of '{type_name}'"
                raise RuleViolation(msg, node_id=child.id, type_name=child.type, parent_type=type_name)
        if node.title == default_title(node.type):
            node.title = default_title(type_name)
        node.type = type_name
        return self.get_hierarchy()

    def move_item(self, node_id: str, new_parent_id: str | None, index: int | None = None) -> list[WorkItemNode]:
        """Reparent a node (root when *new_parent_id* is None) at *index*."""
        node, _, old_siblings, old_index = self._require(node_id)
        if new_parent_id is None:
            new_parent: WorkItemNode | None = None
            target = self._nodes
        else:
            if new_parent_id == node_id or is_descendant(node, new_parent_id):
                msg = f"Cannot move '{node.title}' under itself or one of its descendants"
                raise RuleViolation(msg, node_id=node_id, type_name=node.type)
            new_parent, _, _, _ = self._require(new_parent_id)
            target = new_parent.children

        parent_type = self._parent_type_of(new_parent)
        if not self.rules.can_be_child_of(node.type, parent_type):
            allowed = ", ".join(self.rules.allowed_children(parent_type)) or "none"
            msg = f"'{node.type}' is not a valid child of '{parent_type}'. Allowed: {allowed}"
            raise RuleViolation(msg, node_id=node_id, type_name=node.type, parent_type=parent_type)

        same_list = target is old_siblings
        max_index = len(target) - 1 if same_list else len(target)
        if index is None:
            index = max_index
        if not 0 <= index <= max_index:
            msg = f"Index {index} out of range (0..{max_index})"
            raise ValueError(msg)

        del old_siblings[old_index]
        target.insert(index, node)
        return self.get_hierarchy()

    def promote_item(self, node_id: str, type_map: Mapping[str, str] | None = None) -> list[WorkItemNode]:
        """Lift a node to be the next sibling of its parent.

        The node adopts the siblings that followed it as its own children.
        """
        candidate = copy.deepcopy(self._nodes)
        found = _locate(candidate, node_id)
        if found is None:
            msg = f"Node not found: {node_id}"
            raise KeyError(msg)
        node, parent, siblings, index = found
        if parent is None:
            msg = f"'{node.title}' is a root item and cannot be promoted"
            raise RuleViolation(msg, node_id=node_id, type_name=node.type)

        del siblings[index]
        adopted = siblings[index:]
        del siblings[index:]
        node.children.extend(adopted)

        parent_found = _locate(candidate, parent.id)
        if parent_found is None:  # pragma: no cover -- parent was located above
            msg = f"Node not found: {parent.id}"
            raise KeyError(msg)
        _, grandparent, parent_siblings, parent_index = parent_found
        parent_siblings.insert(parent_index + 1, node)

        self._retype_subtree(node, self._parent_type_of(grandparent), type_map or {})
        return self._commit(candidate)

    def demote_item(self, node_id: str, type_map: Mapping[str, str] | None = None) -> list[WorkItemNode]:
        """Push a node down to be the last child of its preceding sibling."""
        candidate = copy.deepcopy(self._nodes)
        found = _locate(candidate, node_id)
        if found is None:
            msg = f"Node not found: {node_id}"
            raise KeyError(msg)
        node, _, siblings, index = found
        if index == 0:
            msg = f"'{node.title}' has no preceding sibling to be demoted under"
            raise RuleViolation(msg, node_id=node_id, type_name=node.type)

        new_parent = siblings[index - 1]
        if not self.rules.allowed_children(new_parent.type):
            msg = f"'{new_parent.type}' has no creatable child types"
            raise RuleViolation(msg, node_id=node_id, type_name=node.type, parent_type=new_parent.type)
        del siblings[index]
        new_parent.children.append(node)

        self._retype_subtree(node, new_parent.type, type_map or {})
        return self._commit(candidate)

    # -- Internals -----------------------------------------------------------

    def _retype_subtree(self, node: WorkItemNode, parent_type: str | None, type_map: Mapping[str, str]) -> None:
        """Fit *node* and its descendants to their (new) parents' rules.

        Explicit choices in *type_map* win; otherwise a node keeps its type
        when still legal and falls back to the first allowed type when not.
        Illegal leftovers are caught by the final whole-tree validation.
        """
        allowed = self.rules.allowed_children(parent_type)
        old_type = node.type
        if node.id in type_map:
            node.type = type_map[node.id]
        elif node.type not in allowed and allowed:
            node.type = allowed[0]
        if node.type != old_type and node.title == default_title(old_type):
            node.title = default_title(node.type)
        for child in node.children:
            self._retype_subtree(child, node.type, type_map)

    def _commit(self, candidate: list[WorkItemNode]) -> list[WorkItemNode]:
        validate_forest(candidate, self._root_type, self.rules)
        self._nodes = candidate
        self._count = count_nodes(candidate)
        return self.get_hierarchy()
