"""One decomposition of one existing work item, from first edit to save."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from decomposer.hierarchy import HierarchyManager, WorkItemNode
from decomposer.materialize import MaterializationEngine, MaterializationResult
from decomposer.rules import HierarchyRuleSet
from decomposer.store import WorkItemSnapshot, WorkItemStore
from decomposer.text_format import import_text

logger = logging.getLogger(__name__)


class DecompositionSession:
    """Ties a :class:`HierarchyManager` to the item being decomposed and saves it once.

    Create with :meth:`open`, which fetches the decomposing item and fixes the
    root context type. Edits go through :attr:`manager`. :meth:`save` may run
    only one materialization at a time; after a save that got past its
    preconditions the session is closed.
    """

    def __init__(
        self,
        manager: HierarchyManager,
        engine: MaterializationEngine,
        decomposing_item: WorkItemSnapshot,
        project: str,
    ) -> None:
        self.manager = manager
        self.engine = engine
        self.decomposing_item = decomposing_item
        self.project = project
        self._baseline = self._snapshot()
        self._saving = False
        self.closed = False

    @classmethod
    async def open(
        cls,
        store: WorkItemStore,
        rules: HierarchyRuleSet,
        engine: MaterializationEngine,
        item_id: int,
        project: str,
        *,
        initial_hierarchy: Sequence[WorkItemNode] | None = None,
    ) -> DecompositionSession:
        """Fetch *item_id* from *store* and start a session for it. KeyError if missing."""
        item = await store.get_item(item_id)
        manager = HierarchyManager(rules, parent_work_item_type=item.type, initial_hierarchy=initial_hierarchy)
        logger.debug("Opened decomposition of %d (%s)", item.id, item.type)
        return cls(manager, engine, item, project)

    def _snapshot(self) -> list[dict[str, object]]:
        return [dict(n.to_dict()) for n in self.manager.get_hierarchy()]

    @property
    def is_dirty(self) -> bool:
        """True when the tree differs from how it looked when the session opened."""
        return self._snapshot() != self._baseline

    @property
    def is_saving(self) -> bool:
        return self._saving

    def import_text(self, text: str) -> int:
        self._require_open()
        return import_text(self.manager, text)

    def _require_open(self) -> None:
        if self.closed:
            msg = f"Decomposition of {self.decomposing_item.id} is already saved"
            raise RuntimeError(msg)

    async def save(self) -> MaterializationResult:
        """Materialize the current tree under the decomposing item.

        Raises:
            RuntimeError: If a save is already running or the session is closed.
        """
        self._require_open()
        if self._saving:
            msg = f"A save of {self.decomposing_item.id} is already in progress"
            raise RuntimeError(msg)
        self._saving = True
        try:
            result = await self.engine.run(self.manager.get_hierarchy(), self.decomposing_item.id, self.project)
        finally:
            self._saving = False
        if not result.precondition_failed:
            self.closed = True
            self._baseline = self._snapshot()
        return result
