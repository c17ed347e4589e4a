"""Dash-indented text format for hierarchies.

One work item per line::

    Feature: Checkout flow
    - User Story: Pay by card
    -- Task: Card form
    - User Story: Pay by invoice

Leading dashes give the depth, the text before the first colon is the work
item type and the rest is the title. Blank lines are ignored but still count
towards line numbers. Types match case-insensitively and are stored in the
casing the hierarchy rules declare.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from decomposer.hierarchy import HierarchyManager, WorkItemNode, new_node_id
from decomposer.rules import CreatableTypes, HierarchyRuleSet

logger = logging.getLogger(__name__)

DEPTH_MARKER = "-"
_LINE_RE = re.compile(r"^(-*)\s*(.*)$")


@dataclass(frozen=True)
class ParseIssue:
    line_number: int
    line: str
    error: str

    def __str__(self) -> str:
        return f"Line {self.line_number}: {self.error}"


class FormatError(ValueError):
    """The text could not be turned into a valid hierarchy.

    ``line_number`` is the first offending line (None when the input as a
    whole is unusable, e.g. empty). ``issues`` lists every problem found.
    """

    def __init__(self, message: str, *, line_number: int | None = None, issues: Sequence[ParseIssue] = ()) -> None:
        self.line_number = line_number
        self.issues = tuple(issues)
        super().__init__(message)


@dataclass
class ParseResult:
    nodes: list[WorkItemNode] = field(default_factory=list)
    issues: list[ParseIssue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.issues

    @property
    def errors(self) -> list[str]:
        return [str(issue) for issue in self.issues]


@dataclass(frozen=True)
class FormatTemplate:
    pattern: str
    description: str
    example: str


@dataclass(frozen=True)
class DecompositionExample:
    parent_type: str
    example: str


@dataclass(frozen=True)
class FormatReferenceEntry:
    code: str
    description: str


_FORMAT_REFERENCE = (
    FormatReferenceEntry("Type: Title", "root level item"),
    FormatReferenceEntry("- Type: Title", "1st level child"),
    FormatReferenceEntry("-- Type: Title", "2nd level child"),
    FormatReferenceEntry("--- Type: Title", "3rd level child"),
)


def format_line(depth: int, type_name: str, title: str) -> str:
    if depth == 0:
        return f"{type_name}: {title}"
    return f"{DEPTH_MARKER * depth} {type_name}: {title}"


class TextHierarchyParser:
    """Parse and generate hierarchy text against one rule set."""

    def __init__(self, rules: HierarchyRuleSet) -> None:
        self.rules = rules

    # -- Parsing -------------------------------------------------------------

    def parse_text(
        self,
        text: str,
        *,
        parent_type: str | None = None,
        area_path: str | None = None,
        iteration_path: str | None = None,
    ) -> ParseResult:
        """Parse *text*, collecting every problem instead of stopping at the first.

        Root-level lines are checked against *parent_type* when given. A line
        with a problem is left out of the tree, so later lines are checked
        against the last line that was accepted.
        """
        result = ParseResult()
        stack: list[tuple[int, WorkItemNode]] = []

        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue
            parsed = self._parse_line(line)
            if isinstance(parsed, str):
                result.issues.append(ParseIssue(line_number, line, parsed))
                continue
            depth, type_text, title = parsed

            if stack:
                last_depth = stack[-1][0]
                if depth > last_depth + 1:
                    msg = (
                        f"Invalid depth progression. Cannot go from depth {last_depth} to {depth}. "
                        f"Maximum allowed is {last_depth + 1}."
                    )
                    result.issues.append(ParseIssue(line_number, line, msg))
                    continue
            elif depth > 0:
                msg = "First item cannot have depth indicators. Root items should start without dashes."
                result.issues.append(ParseIssue(line_number, line, msg))
                continue

            type_name = self.rules.canonical_type(type_text)
            if type_name is None:
                available = ", ".join(self.rules.creatable_types().child)
                msg = f'Unknown work item type: "{type_text}". Available types: {available}'
                result.issues.append(ParseIssue(line_number, line, msg))
                continue

            while stack and stack[-1][0] >= depth:
                stack.pop()
            parent = stack[-1][1] if stack else None

            if parent is not None:
                if not self.rules.can_be_child_of(type_name, parent.type):
                    msg = f'Work item type "{type_name}" is not a valid child of "{parent.type}"'
                    result.issues.append(ParseIssue(line_number, line, msg))
                    continue
            elif parent_type is not None and not self.rules.can_be_child_of(type_name, parent_type):
                msg = f'Work item type "{type_name}" is not a valid child of "{parent_type}"'
                result.issues.append(ParseIssue(line_number, line, msg))
                continue

            node = WorkItemNode(
                id=new_node_id(),
                title=title,
                type=type_name,
                area_path=area_path or None,
                iteration_path=iteration_path or None,
            )
            if parent is None:
                result.nodes.append(node)
            else:
                parent.children.append(node)
            stack.append((depth, node))

        logger.debug("Parsed %d root item(s) with %d issue(s)", len(result.nodes), len(result.issues))
        return result

    @staticmethod
    def _parse_line(line: str) -> tuple[int, str, str] | str:
        """``(depth, type, title)`` for a well-formed line, else the error message."""
        match = _LINE_RE.match(line)
        if match is None:  # pragma: no cover -- the pattern matches any single line
            return "Invalid line format"
        depth = len(match.group(1))
        remainder = match.group(2)
        type_text, sep, title = remainder.partition(":")
        if not sep:
            return "Missing colon (:) separator between work item type and title"
        if not type_text.strip():
            return "Work item type cannot be empty"
        if not title.strip():
            return "Work item title cannot be empty"
        return depth, type_text.strip(), title.strip()

    def parse(
        self,
        text: str,
        *,
        parent_type: str | None = None,
        area_path: str | None = None,
        iteration_path: str | None = None,
    ) -> list[WorkItemNode]:
        """Parse *text* into root nodes, or raise FormatError. Never returns a partial tree."""
        if not text or not text.strip():
            msg = "Input text is empty."
            raise FormatError(msg)
        result = self.parse_text(text, parent_type=parent_type, area_path=area_path, iteration_path=iteration_path)
        if result.issues:
            first = result.issues[0]
            msg = "; ".join(result.errors)
            raise FormatError(msg, line_number=first.line_number, issues=result.issues)
        if not result.nodes:  # pragma: no cover -- non-blank text yields a node or an issue
            msg = "No valid work items found in the input text."
            raise FormatError(msg)
        return result.nodes

    # -- Rendering and examples ----------------------------------------------

    def render(self, nodes: Sequence[WorkItemNode]) -> str:
        """Text that parses back to the same shape, types and titles."""
        lines: list[str] = []

        def _emit(level: Sequence[WorkItemNode], depth: int) -> None:
            for node in level:
                if not node.type:
                    msg = f"Cannot render node {node.id}: no work item type"
                    raise ValueError(msg)
                title = " ".join(node.title.split())
                if not title:
                    msg = f"Cannot render node {node.id}: blank title"
                    raise ValueError(msg)
                lines.append(format_line(depth, node.type, title))
                _emit(node.children, depth + 1)

        _emit(nodes, 0)
        return "\n".join(lines)

    def get_creatable_types(self) -> CreatableTypes:
        return self.rules.creatable_types()

    def _decomposable_types(self, parent_type: str | None) -> list[str]:
        """Types that can appear in a decomposition, limited to *parent_type*'s children when known."""
        creatable = self.rules.creatable_types()
        if parent_type is not None:
            allowed = self.rules.allowed_children(parent_type)
            if allowed:
                return [t for t in creatable.child if t in allowed]
        return list(creatable.child)

    def generate_example(self, parent_type: str | None = None) -> str:
        """One line per type reachable below *parent_type*, each nested under a legal parent."""
        seen: set[str] = set()
        lines: list[str] = []

        def _visit(type_name: str, depth: int) -> None:
            seen.add(type_name)
            lines.append(format_line(depth, type_name, f"Example {type_name.lower()}"))
            for child in self.rules.allowed_children(type_name):
                if child not in seen:
                    _visit(child, depth + 1)

        if parent_type is not None:
            starts = list(self.rules.allowed_children(parent_type))
        else:
            starts = list(self._decomposable_types(None)[:1])
        for start in starts:
            if start not in seen:
                _visit(start, 0)
        return "\n".join(lines)

    def generate_format_template(self, parent_type: str | None = None) -> FormatTemplate:
        types = self._decomposable_types(parent_type)
        if parent_type is not None:
            reachable = [t for _, t in self.rules.reachable_types(parent_type)]
            types = types + [t for t in reachable if t not in types]
        type_lines = "\n".join(f"- {t}" for t in types) or "- (none configured)"
        pattern = (
            "Hierarchy Format:\n"
            "- Use dashes (-) to indicate depth level\n"
            "- Follow with a space, then work item type name, then colon (:), then title\n"
            "- Type names are case-insensitive\n"
            "- No skipping depth levels (e.g., no -- directly after a root item)\n"
            "\n"
            "Format: [dashes] [Type]: [Title]\n"
            "\n"
            "Creatable Work Item Types:\n"
            f"{type_lines}"
        )
        description = (
            "Text format for creating work item hierarchies. Each line represents one work item.\n"
            "Use dashes to indicate parent-child relationships."
        )
        return FormatTemplate(pattern=pattern, description=description, example=self.generate_example(parent_type))

    def generate_decomposition_examples(self) -> list[DecompositionExample]:
        """A short multi-level example for every type that can be decomposed."""
        examples: list[DecompositionExample] = []
        for parent_type, children in self.rules.rules.items():
            if not children:
                continue
            primary = children[0]
            lines = [format_line(0, primary, f"Main {primary.lower()}")]
            chain = self.rules.allowed_children(primary)
            if chain:
                depth = 1
                current: str | None = chain[0]
                while current is not None and depth <= 3:
                    lines.append(format_line(depth, current, f"Level {depth} {current.lower()}"))
                    below = self.rules.allowed_children(current)
                    current = below[0] if below else None
                    depth += 1
                if len(chain) > 1:
                    lines.append(format_line(1, chain[1], f"Another {chain[1].lower()}"))
            lines.append(format_line(0, primary, f"Second {primary.lower()}"))
            for secondary in children[1:3]:
                lines.append(format_line(0, secondary, f"Related {secondary.lower()}"))
            examples.append(DecompositionExample(parent_type=parent_type, example="\n".join(lines)))
        return examples

    @staticmethod
    def format_reference() -> list[FormatReferenceEntry]:
        return list(_FORMAT_REFERENCE)


def import_text(manager: HierarchyManager, text: str) -> int:
    """Parse *text* under the manager's root context and append it.

    New root items inherit area/iteration paths from the first existing root
    item. Returns the number of nodes added.

    Raises:
        FormatError: If the text has any problem; the manager is untouched.
    """
    parser = TextHierarchyParser(manager.rules)
    existing = manager.get_hierarchy()
    area_path = existing[0].area_path if existing else None
    iteration_path = existing[0].iteration_path if existing else None
    nodes = parser.parse(
        text,
        parent_type=manager.get_parent_work_item_type(),
        area_path=area_path,
        iteration_path=iteration_path,
    )
    manager.import_nodes(nodes)
    added = sum(1 for root in nodes for _ in root.walk())
    logger.info("Imported %d item(s) from text", added)
    return added
