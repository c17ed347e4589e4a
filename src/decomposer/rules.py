"""Hierarchy rules -- which work item types may be created under which.

Rules describe relationships between *types*, not instances. A type that is
absent as a key has no creatable children.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import NewType

WorkItemTypeName = NewType("WorkItemTypeName", str)

DEFAULT_HIERARCHY_RULES: dict[str, list[str]] = {
    "Epic": ["Feature"],
    "Feature": ["User Story"],
    "User Story": ["Task", "Bug"],
    "Bug": ["Task"],
}


class RuleViolation(ValueError):
    """Raised when a mutation would create an illegal type/parent or type/child combination."""

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        type_name: str | None = None,
        parent_type: str | None = None,
    ) -> None:
        self.node_id = node_id
        self.type_name = type_name
        self.parent_type = parent_type
        super().__init__(message)


@dataclass(frozen=True)
class CreatableTypes:
    """Types that take part in hierarchies, split by position."""

    root: tuple[str, ...]
    child: tuple[str, ...]
    all: tuple[str, ...]


@dataclass(frozen=True)
class HierarchyRuleSet:
    """Immutable mapping of parent type -> ordered allowed child types."""

    rules: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Iterable[str]]) -> HierarchyRuleSet:
        """Build a rule set from a JSON-compatible dict.

        Child lists are deduplicated (first occurrence wins, case-sensitive).

        Raises:
            ValueError: If a key or child entry is not a non-empty string.
        """
        if not isinstance(raw, Mapping):
            msg = f"hierarchy rules must be a mapping, got {type(raw).__name__}"
            raise ValueError(msg)
        parsed: dict[str, tuple[str, ...]] = {}
        for parent, children in raw.items():
            if not isinstance(parent, str) or not parent.strip():
                msg = f"Invalid parent type name: {parent!r}"
                raise ValueError(msg)
            if isinstance(children, str) or not isinstance(children, Iterable):
                msg = f"Children of '{parent}' must be a list of type names"
                raise ValueError(msg)
            ordered: list[str] = []
            for child in children:
                if not isinstance(child, str) or not child.strip():
                    msg = f"Invalid child type name under '{parent}': {child!r}"
                    raise ValueError(msg)
                if child not in ordered:
                    ordered.append(child)
            parsed[parent] = tuple(ordered)
        return cls(rules=parsed)

    @classmethod
    def default(cls) -> HierarchyRuleSet:
        return cls.from_dict(DEFAULT_HIERARCHY_RULES)

    def to_dict(self) -> dict[str, list[str]]:
        return {parent: list(children) for parent, children in self.rules.items()}

    def allowed_children(self, parent_type: str | None) -> tuple[str, ...]:
        if parent_type is None:
            return ()
        return self.rules.get(parent_type, ())

    def can_be_child_of(self, child_type: str | None, parent_type: str | None) -> bool:
        if child_type is None:
            return False
        return child_type in self.allowed_children(parent_type)

    def known_types(self) -> tuple[str, ...]:
        """Every type mentioned by the rules, parents first, in declaration order."""
        seen: list[str] = []
        for parent, children in self.rules.items():
            if parent not in seen:
                seen.append(parent)
            for child in children:
                if child not in seen:
                    seen.append(child)
        return tuple(seen)

    def canonical_type(self, name: str) -> str | None:
        """Return the declared spelling of *name*, matched case-insensitively."""
        folded = name.strip().casefold()
        for known in self.known_types():
            if known.casefold() == folded:
                return known
        return None

    def creatable_types(self) -> CreatableTypes:
        """Split participating types into roots (never a child) and children."""
        participating: list[str] = []
        children: list[str] = []
        for parent, allowed in self.rules.items():
            if not allowed:
                continue
            if parent not in participating:
                participating.append(parent)
            for child in allowed:
                if child not in participating:
                    participating.append(child)
                if child not in children:
                    children.append(child)
        roots = tuple(t for t in participating if t not in children)
        return CreatableTypes(root=roots, child=tuple(children), all=tuple(participating))

    def reachable_types(self, start_type: str | None) -> list[tuple[int, str]]:
        """Breadth-first walk of types reachable below *start_type*.

        Returns ``(depth, type)`` pairs, each type once at the depth it is
        first reached (depth 0 = direct children of *start_type*). When
        *start_type* is None, walking starts from the root types.
        """
        if start_type is None:
            frontier = list(self.creatable_types().root)
        else:
            frontier = list(self.allowed_children(start_type))
        seen: set[str] = set()
        result: list[tuple[int, str]] = []
        depth = 0
        while frontier:
            next_frontier: list[str] = []
            for type_name in frontier:
                if type_name in seen:
                    continue
                seen.add(type_name)
                result.append((depth, type_name))
                next_frontier.extend(c for c in self.allowed_children(type_name) if c not in seen)
            frontier = next_frontier
            depth += 1
        return result
