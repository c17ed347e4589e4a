"""Tests for DecompositionSession: open, dirty tracking and the single save."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from decomposer.identity import StaticIdentityProvider
from decomposer.materialize import MaterializationEngine
from decomposer.rules import HierarchyRuleSet
from decomposer.session import DecompositionSession
from decomposer.settings import InMemorySettingsStore
from tests._fakes import FakeStore


@dataclass
class GatedStore(FakeStore):
    """Holds every creation until ``gate`` is set."""

    gate: asyncio.Event = field(default_factory=asyncio.Event)

    async def create_item(self, type: str, fields: Mapping[str, Any], parent_id: int | None = None) -> int:
        await self.gate.wait()
        return await super().create_item(type, fields, parent_id)


async def _open(fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine) -> DecompositionSession:
    return await DecompositionSession.open(fake_store, rules, engine, 100, "Proj")


class TestOpen:
    async def test_root_context_is_decomposing_type(
        self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine
    ) -> None:
        session = await _open(fake_store, rules, engine)
        assert session.manager.get_parent_work_item_type() == "Feature"
        assert session.decomposing_item.tags == ("shop",)
        assert not session.is_dirty

    async def test_missing_item(self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine) -> None:
        with pytest.raises(KeyError):
            await DecompositionSession.open(fake_store, rules, engine, 404, "Proj")


class TestEditing:
    async def test_dirty_after_edit(self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine) -> None:
        session = await _open(fake_store, rules, engine)
        node_id = session.manager.add_item()[0].id
        assert session.is_dirty
        session.manager.remove_item(node_id)
        assert not session.is_dirty

    async def test_import_text(self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine) -> None:
        session = await _open(fake_store, rules, engine)
        assert session.import_text("User Story: A\n- Task: B") == 2
        assert session.is_dirty


class TestSave:
    async def test_save_creates_and_closes(
        self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine
    ) -> None:
        session = await _open(fake_store, rules, engine)
        session.import_text("User Story: A\n- Task: B")
        result = await session.save()
        assert result.ok
        assert fake_store.created_titles == ["A", "B"]
        assert session.closed
        assert not session.is_dirty
        with pytest.raises(RuntimeError, match="already saved"):
            await session.save()
        with pytest.raises(RuntimeError, match="already saved"):
            session.import_text("User Story: C")

    async def test_precondition_failure_keeps_session_open(
        self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine
    ) -> None:
        session = await _open(fake_store, rules, engine)
        result = await session.save()
        assert result.errors == ["No items in the hierarchy to create."]
        assert not session.closed

    async def test_partial_failure_still_closes(
        self, fake_store: FakeStore, rules: HierarchyRuleSet, engine: MaterializationEngine
    ) -> None:
        fake_store.fail_titles = {"A"}
        session = await _open(fake_store, rules, engine)
        session.import_text("User Story: A\nUser Story: B")
        result = await session.save()
        assert len(result.errors) == 1
        assert session.closed

    async def test_concurrent_save_rejected(self, rules: HierarchyRuleSet, fake_store: FakeStore) -> None:
        gate = asyncio.Event()
        store = GatedStore(items=fake_store.items, gate=gate)
        engine = MaterializationEngine(store, InMemorySettingsStore(), StaticIdentityProvider("carol"))
        session = await DecompositionSession.open(store, rules, engine, 100, "Proj")
        session.import_text("User Story: A")
        first = asyncio.ensure_future(session.save())
        await asyncio.sleep(0)
        assert session.is_saving
        with pytest.raises(RuntimeError, match="in progress"):
            await session.save()
        gate.set()
        result = await first
        assert result.ok
        assert not session.is_saving
