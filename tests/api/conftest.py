"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from decomposer.api import create_app
from decomposer.core import DB_FILENAME, DECOMPOSER_DIR_NAME, WorkItem, WorkItemDB


@pytest.fixture
def api_db(decomposer_project: Path) -> Generator[WorkItemDB, None, None]:
    d = WorkItemDB(decomposer_project / DECOMPOSER_DIR_NAME / DB_FILENAME, project="Proj", check_same_thread=False)
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def feature(api_db: WorkItemDB) -> WorkItem:
    """An existing Feature to decompose."""
    return api_db.create_item("Checkout", type="Feature", tags=["shop"], assignee="bob", area_path="Proj\\Web")


@pytest.fixture
async def client(decomposer_project: Path, api_db: WorkItemDB) -> AsyncIterator[AsyncClient]:
    """Test client bound to the project in decomposer_project."""
    app = create_app(decomposer_project / DECOMPOSER_DIR_NAME, actor="alice", db=api_db)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
