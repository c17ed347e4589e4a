"""Fixtures for core DB tests."""

from __future__ import annotations

import pytest

from decomposer.core import WorkItem, WorkItemDB


@pytest.fixture
def small_tree(db: WorkItemDB) -> tuple[WorkItem, WorkItem, WorkItem]:
    """Returns (feature, story, task), each the child of the one before."""
    feature = db.create_item("Checkout", type="Feature", area_path="Proj\\Web", iteration_path="Proj\\S1")
    story = db.create_item("Pay by card", type="User Story", parent_id=feature.id, tags=["ui"])
    task = db.create_item("Card form", type="Task", parent_id=story.id, assignee="bob")
    return feature, story, task
