# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py or any other decomposer module -- this prevents circular imports.
"""Typed return-value contracts for decomposer core and API layers."""

from __future__ import annotations

from decomposer.types.core import (
    CommentRecord,
    ISOTimestamp,
    NodeDict,
    ProjectConfig,
    UserRecord,
    WorkItemDict,
)
from decomposer.types.settings import (
    AssignmentPolicyDict,
    DecomposerSettingsDict,
    SettingsScopeDict,
    TagPolicyDict,
    WitSettingsDict,
)

__all__ = [
    "AssignmentPolicyDict",
    "CommentRecord",
    "DecomposerSettingsDict",
    "ISOTimestamp",
    "NodeDict",
    "ProjectConfig",
    "SettingsScopeDict",
    "TagPolicyDict",
    "UserRecord",
    "WitSettingsDict",
    "WorkItemDict",
]
