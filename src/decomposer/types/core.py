"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class UserRecord(TypedDict, total=False):
    """A known user entry in config.json."""

    name: str
    display_name: str
    email: str


class ProjectConfig(TypedDict, total=False):
    """Shape of .decomposer/config.json."""

    prefix: str
    project: str
    version: int
    hierarchy_rules: dict[str, list[str]]
    users: list[UserRecord]


class NodeDict(TypedDict):
    id: str
    title: str
    type: str | None
    area_path: str | None
    iteration_path: str | None
    children: list[NodeDict]


class WorkItemDict(TypedDict):
    id: int
    title: str
    type: str
    parent_id: int | None
    assignee: str
    area_path: str
    iteration_path: str
    tags: list[str]
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    children: list[int]


class CommentRecord(TypedDict):
    id: int
    author: str
    text: str
    created_at: ISOTimestamp
