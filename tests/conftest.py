"""Shared pytest fixtures for decomposer tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from decomposer.core import DB_FILENAME, DECOMPOSER_DIR_NAME, WorkItemDB, write_config
from decomposer.hierarchy import HierarchyManager
from decomposer.identity import StaticIdentityProvider
from decomposer.materialize import MaterializationEngine
from decomposer.rules import DEFAULT_HIERARCHY_RULES, HierarchyRuleSet
from decomposer.settings import InMemorySettingsStore
from tests._fakes import FakeStore


@pytest.fixture
def db(tmp_path: Path) -> Generator[WorkItemDB, None, None]:
    """Fresh WorkItemDB for each test."""
    d = WorkItemDB(tmp_path / "decomposer.db", project="Test")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def decomposer_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a decomposer project (.decomposer/ with config + db).

    Returns the project root (parent of .decomposer/).
    """
    decomposer_dir = tmp_path / DECOMPOSER_DIR_NAME
    decomposer_dir.mkdir()
    write_config(
        decomposer_dir,
        {
            "prefix": "proj",
            "project": "Proj",
            "version": 1,
            "hierarchy_rules": DEFAULT_HIERARCHY_RULES,
            "users": [{"name": "alice", "display_name": "Alice Example", "email": "alice@example.com"}],
        },
    )
    with WorkItemDB(decomposer_dir / DB_FILENAME, project="Proj") as d:
        d.initialize()
    return tmp_path


@pytest.fixture
def rules() -> HierarchyRuleSet:
    return HierarchyRuleSet.default()


@pytest.fixture
def manager(rules: HierarchyRuleSet) -> HierarchyManager:
    """Manager decomposing a Feature under the default rules."""
    return HierarchyManager(rules, parent_work_item_type="Feature")


@pytest.fixture
def fake_store() -> FakeStore:
    store = FakeStore()
    store.add_existing(100, "Feature", title="Checkout", tags=("shop",), assignee="bob", area_path="Proj\\Web")
    return store


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def engine(fake_store: FakeStore, settings_store: InMemorySettingsStore) -> MaterializationEngine:
    return MaterializationEngine(fake_store, settings_store, StaticIdentityProvider("carol"))


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
