"""Create a composed hierarchy in the work item store.

The walk is depth-first with parents before children. Siblings are created
one at a time, and every creation is awaited before the node's children are
attempted, because each child links to the id its parent was just given.
A failed creation is recorded and its whole subtree is skipped; the walk
then carries on with the next sibling. Nothing is rolled back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from decomposer.hierarchy import WorkItemNode
from decomposer.identity import IdentityProvider
from decomposer.resolver import ConfigurationResolver
from decomposer.settings import DecomposerSettings
from decomposer.store import WorkItemSnapshot, WorkItemStore
from decomposer.validation import TAG_SEPARATOR

logger = logging.getLogger(__name__)


class PreconditionError(ValueError):
    """The run could not start; nothing was created."""


class CreationError(RuntimeError):
    """One node could not be created. ``str()`` is the user-facing message."""

    def __init__(self, node: WorkItemNode, parent_id: int, cause: BaseException) -> None:
        self.node = node
        self.parent_id = parent_id
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Failed to create '{node.title}' ({node.type}) under parent {parent_id}: {detail}")


class SettingsProvider(Protocol):
    def get_settings(self) -> DecomposerSettings: ...


@dataclass(frozen=True)
class CreationRequest:
    title: str
    type: str
    parent_id: int
    tags: frozenset[str] = frozenset()
    assignee: str | None = None
    area_path: str | None = None
    iteration_path: str | None = None
    comment: str | None = None

    @property
    def tag_string(self) -> str:
        return f"{TAG_SEPARATOR} ".join(sorted(self.tags))

    def to_fields(self) -> dict[str, Any]:
        """Fields for :meth:`WorkItemStore.create_item`; unset values are omitted."""
        fields: dict[str, Any] = {"title": self.title}
        if self.tags:
            fields["tags"] = self.tag_string
        if self.assignee:
            fields["assignee"] = self.assignee
        if self.area_path:
            fields["area_path"] = self.area_path
        if self.iteration_path:
            fields["iteration_path"] = self.iteration_path
        if self.comment:
            fields["comment"] = self.comment
        return fields


@dataclass(frozen=True)
class CreatedItem:
    node_id: str
    item_id: int
    parent_id: int
    title: str
    type: str
    tags: frozenset[str] = frozenset()
    assignee: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "item_id": self.item_id,
            "parent_id": self.parent_id,
            "title": self.title,
            "type": self.type,
            "tags": sorted(self.tags),
            "assignee": self.assignee,
        }


@dataclass
class MaterializationResult:
    errors: list[str] = field(default_factory=list)
    created: list[CreatedItem] = field(default_factory=list)
    failures: list[CreationError] = field(default_factory=list)
    precondition_failed: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def created_ids(self) -> list[int]:
        return [c.item_id for c in self.created]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "precondition_failed": self.precondition_failed,
            "created": [c.to_dict() for c in self.created],
            "errors": list(self.errors),
        }


def count_creatable(nodes: Sequence[WorkItemNode]) -> int:
    """Nodes that would be submitted: titled and typed, under a creatable parent."""
    return sum(1 + count_creatable(n.children) for n in nodes if n.title.strip() and n.type)


@dataclass(frozen=True)
class _RunContext:
    """Values captured once at the start of a run."""

    resolver: ConfigurationResolver
    comment: str | None
    actor: str | None
    decomposing_assignee: str | None


class MaterializationEngine:
    """Materialize a composed tree under an existing work item."""

    def __init__(
        self,
        store: WorkItemStore,
        settings_store: SettingsProvider,
        identity_provider: IdentityProvider,
    ) -> None:
        self.store = store
        self.settings_store = settings_store
        self.identity_provider = identity_provider

    async def materialize(self, nodes: Sequence[WorkItemNode], root_parent_id: int | None, project: str | None) -> list[str]:
        """Error strings only; an empty list means every item was created."""
        result = await self.run(nodes, root_parent_id, project)
        return result.errors

    async def run(self, nodes: Sequence[WorkItemNode], root_parent_id: int | None, project: str | None) -> MaterializationResult:
        result = MaterializationResult()
        try:
            decomposing = await self._check_preconditions(nodes, root_parent_id, project)
        except PreconditionError as exc:
            logger.warning("Materialization aborted: %s", exc)
            result.errors.append(str(exc))
            result.precondition_failed = True
            return result
        settings = self.settings_store.get_settings()
        actor = self.identity_provider.current_actor()
        ctx = _RunContext(
            resolver=ConfigurationResolver(settings.wit_settings, decomposing.area_path),
            comment=settings.effective_comment,
            actor=actor.name or None,
            decomposing_assignee=decomposing.assignee,
        )
        logger.info(
            "Starting materialization under %d in project '%s'",
            decomposing.id,
            project,
            extra={"op": "materialize", "args_data": {"root_parent_id": root_parent_id, "project": project}},
        )
        t0 = time.monotonic()
        seed = frozenset(decomposing.tags)
        await self._create_level(nodes, decomposing.id, seed, seed, ctx, result)
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info(
            "Materialization finished: %d created, %d errors",
            len(result.created),
            len(result.errors),
            extra={"op": "materialize", "duration_ms": duration_ms},
        )
        return result

    async def _check_preconditions(
        self, nodes: Sequence[WorkItemNode], root_parent_id: int | None, project: str | None
    ) -> WorkItemSnapshot:
        if not isinstance(root_parent_id, int) or isinstance(root_parent_id, bool) or root_parent_id <= 0:
            msg = "Parent Work Item ID is invalid. Cannot create work items."
            raise PreconditionError(msg)
        if not project or not project.strip():
            msg = "Project name is missing. Cannot create work items."
            raise PreconditionError(msg)
        if count_creatable(nodes) == 0:
            msg = "No items in the hierarchy to create."
            raise PreconditionError(msg)
        try:
            return await self.store.get_item(root_parent_id)
        except KeyError:
            msg = f"Parent Work Item {root_parent_id} not found. Cannot create work items."
            raise PreconditionError(msg) from None

    async def _create_level(
        self,
        nodes: Sequence[WorkItemNode],
        parent_id: int,
        parent_tags: frozenset[str],
        ancestor_tags: frozenset[str],
        ctx: _RunContext,
        result: MaterializationResult,
    ) -> None:
        for node in nodes:
            if not node.title.strip():
                continue
            if not node.type:
                logger.warning("Skipping node %s ('%s'): no work item type", node.id, node.title)
                continue

            scope = ctx.resolver.scope_for(node)
            tags = ctx.resolver.resolve_tags(node, parent_tags, ancestor_tags, scope)
            request = CreationRequest(
                title=node.title,
                type=node.type,
                parent_id=parent_id,
                tags=tags,
                assignee=ctx.resolver.resolve_assignment(node, ctx.decomposing_assignee, ctx.actor, scope),
                area_path=node.area_path,
                iteration_path=node.iteration_path,
                comment=ctx.comment,
            )
            item_id = await self._submit(node, request, result)
            if item_id is None:
                continue
            if node.children:
                await self._create_level(node.children, item_id, tags, ancestor_tags | tags, ctx, result)

    async def _submit(self, node: WorkItemNode, request: CreationRequest, result: MaterializationResult) -> int | None:
        logger.info(
            "Attempting to create '%s' (%s) under parent %d",
            request.title,
            request.type,
            request.parent_id,
            extra={"op": "create_item", "args_data": request.to_fields()},
        )
        t0 = time.monotonic()
        try:
            item_id = await self.store.create_item(request.type, request.to_fields(), request.parent_id)
        except Exception as exc:
            failure = CreationError(node, request.parent_id, exc)
            logger.error(str(failure), extra={"op": "create_item", "error": str(exc)})
            result.failures.append(failure)
            result.errors.append(str(failure))
            return None
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info(
            "Created work item %d for '%s'",
            item_id,
            request.title,
            extra={"op": "create_item", "duration_ms": duration_ms},
        )
        result.created.append(
            CreatedItem(
                node_id=node.id,
                item_id=item_id,
                parent_id=request.parent_id,
                title=request.title,
                type=request.type,
                tags=request.tags,
                assignee=request.assignee,
            )
        )
        return item_id
