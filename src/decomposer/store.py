"""The work item store the materialization engine writes to.

:class:`WorkItemStore` is the collaborator interface; :class:`LocalWorkItemStore`
implements it on top of the SQLite :class:`~decomposer.core.WorkItemDB`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from decomposer.core import WorkItem, WorkItemDB
from decomposer.validation import split_tags

logger = logging.getLogger(__name__)

# Keys a creation request may carry in its ``fields`` mapping.
CREATION_FIELDS: frozenset[str] = frozenset({"title", "tags", "assignee", "area_path", "iteration_path", "comment"})


@dataclass(frozen=True)
class WorkItemSnapshot:
    """What the engine needs to know about an existing work item."""

    id: int
    type: str
    title: str
    tags: tuple[str, ...] = ()
    assignee: str | None = None
    area_path: str | None = None

    @classmethod
    def from_work_item(cls, item: WorkItem) -> WorkItemSnapshot:
        return cls(
            id=item.id,
            type=item.type,
            title=item.title,
            tags=tuple(item.tags),
            assignee=item.assignee or None,
            area_path=item.area_path or None,
        )


class WorkItemStore(Protocol):
    async def create_item(self, type: str, fields: Mapping[str, Any], parent_id: int | None = None) -> int:
        """Create one item linked under *parent_id*; return its id (> 0)."""
        ...

    async def get_item(self, item_id: int) -> WorkItemSnapshot:
        """Raise KeyError when the item does not exist."""
        ...


class LocalWorkItemStore:
    """Async adapter over :class:`WorkItemDB`.

    SQLite calls run synchronously on the event loop thread; one creation at
    a time is all the engine ever asks for.
    """

    def __init__(self, db: WorkItemDB, *, actor: str = "") -> None:
        self.db = db
        self.actor = actor

    async def create_item(self, type: str, fields: Mapping[str, Any], parent_id: int | None = None) -> int:
        unknown = set(fields) - CREATION_FIELDS
        if unknown:
            msg = f"Unknown work item fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        item = self.db.create_item(
            fields.get("title", ""),
            type=type,
            parent_id=parent_id,
            assignee=fields.get("assignee") or "",
            area_path=fields.get("area_path") or "",
            iteration_path=fields.get("iteration_path") or "",
            tags=split_tags(fields.get("tags")),
            comment=fields.get("comment") or "",
            actor=self.actor,
        )
        return item.id

    async def get_item(self, item_id: int) -> WorkItemSnapshot:
        return WorkItemSnapshot.from_work_item(self.db.get_item(item_id))
