"""Decomposer: break a work item into a hierarchy of new work items and create them."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("decomposer")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from decomposer.hierarchy import HierarchyManager, WorkItemNode
from decomposer.materialize import MaterializationEngine, MaterializationResult
from decomposer.rules import HierarchyRuleSet, RuleViolation

__all__ = [
    "HierarchyManager",
    "HierarchyRuleSet",
    "MaterializationEngine",
    "MaterializationResult",
    "RuleViolation",
    "WorkItemNode",
    "__version__",
]
