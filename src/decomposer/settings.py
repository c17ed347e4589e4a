"""Per-type tag and assignment policy, area-path scoping, and the settings file.

Settings live in ``.decomposer/settings.json``. Loading deep-merges the saved
document over :data:`DEFAULT_SETTINGS`; a missing or unreadable file yields
the defaults.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, cast

from decomposer.core import SETTINGS_FILENAME, write_atomic
from decomposer.types.settings import (
    AssignmentPolicyDict,
    DecomposerSettingsDict,
    SettingsScopeDict,
    TagPolicyDict,
    WitSettingsDict,
)
from decomposer.validation import sanitize_tag

logger = logging.getLogger(__name__)

TagInheritance = Literal["none", "parent", "ancestors"]
AssignmentBehavior = Literal["none", "decomposing_item", "creator"]

TAG_INHERITANCE_VALUES: frozenset[str] = frozenset({"none", "parent", "ancestors"})
ASSIGNMENT_BEHAVIOR_VALUES: frozenset[str] = frozenset({"none", "decomposing_item", "creator"})

AREA_PATH_SEPARATOR = "\\"

SETTINGS_VERSION = 1

DEFAULT_COMMENT_TEXT = (
    "<i>Created automatically via <strong>Work Item Decomposer</strong> as part of a hierarchy breakdown.</i>"
)


def find_best_matching_area_path(area_path: str, candidates: Iterable[str]) -> str | None:
    """Return the candidate equal to *area_path*, else its longest ancestor.

    ``Proj\\Team`` is an ancestor of ``Proj\\Team\\Sub`` but not of
    ``Proj\\Teammates``.
    """
    if not area_path:
        return None
    best: str | None = None
    for candidate in candidates:
        if candidate == area_path:
            return candidate
        if area_path.startswith(candidate + AREA_PATH_SEPARATOR) and (best is None or len(candidate) > len(best)):
            best = candidate
    return best


@dataclass(frozen=True)
class TagPolicy:
    inheritance: TagInheritance = "none"
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.inheritance not in TAG_INHERITANCE_VALUES:
            msg = f"Invalid tag inheritance {self.inheritance!r}; expected one of {sorted(TAG_INHERITANCE_VALUES)}"
            raise ValueError(msg)
        cleaned: list[str] = []
        for tag in self.tags:
            if isinstance(tag, str) and not tag.strip():
                continue
            tag_value, err = sanitize_tag(tag)
            if err:
                raise ValueError(err)
            if tag_value not in cleaned:
                cleaned.append(tag_value)
        object.__setattr__(self, "tags", tuple(cleaned))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> TagPolicy:
        tags = raw.get("tags", [])
        if isinstance(tags, str) or not isinstance(tags, Iterable):
            msg = "tags must be a list of strings"
            raise ValueError(msg)
        return cls(inheritance=raw.get("inheritance", "none"), tags=tuple(str(t) for t in tags))

    def to_dict(self) -> TagPolicyDict:
        return {"inheritance": self.inheritance, "tags": list(self.tags)}


@dataclass(frozen=True)
class AssignmentPolicy:
    behavior: AssignmentBehavior = "none"

    def __post_init__(self) -> None:
        if self.behavior not in ASSIGNMENT_BEHAVIOR_VALUES:
            msg = f"Invalid assignment behavior {self.behavior!r}; expected one of {sorted(ASSIGNMENT_BEHAVIOR_VALUES)}"
            raise ValueError(msg)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> AssignmentPolicy:
        return cls(behavior=raw.get("behavior", "none"))

    def to_dict(self) -> AssignmentPolicyDict:
        return {"behavior": self.behavior}


_NO_TAGS = TagPolicy()
_NO_ASSIGNMENT = AssignmentPolicy()


@dataclass(frozen=True)
class WitSettings:
    """Tag and assignment policy keyed by work item type."""

    tags: Mapping[str, TagPolicy] = field(default_factory=dict)
    assignments: Mapping[str, AssignmentPolicy] = field(default_factory=dict)

    def tag_policy(self, type_name: str | None) -> TagPolicy:
        if type_name is None:
            return _NO_TAGS
        return self.tags.get(type_name, _NO_TAGS)

    def assignment_policy(self, type_name: str | None) -> AssignmentPolicy:
        if type_name is None:
            return _NO_ASSIGNMENT
        return self.assignments.get(type_name, _NO_ASSIGNMENT)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WitSettings:
        if not isinstance(raw, Mapping):
            msg = "wit settings must be a mapping"
            raise ValueError(msg)
        tags = {t: TagPolicy.from_dict(p) for t, p in (raw.get("tags") or {}).items()}
        assignments = {t: AssignmentPolicy.from_dict(p) for t, p in (raw.get("assignments") or {}).items()}
        return cls(tags=tags, assignments=assignments)

    def to_dict(self) -> WitSettingsDict:
        return {
            "tags": {t: p.to_dict() for t, p in self.tags.items()},
            "assignments": {t: p.to_dict() for t, p in self.assignments.items()},
        }


@dataclass(frozen=True)
class SettingsScope:
    """Default policy plus overrides for area-path subtrees."""

    default: WitSettings = field(default_factory=WitSettings)
    by_area_path: Mapping[str, WitSettings] = field(default_factory=dict)

    def for_area_path(self, area_path: str | None) -> WitSettings:
        if not area_path or not self.by_area_path:
            return self.default
        match = find_best_matching_area_path(area_path, self.by_area_path)
        if match is None:
            return self.default
        return self.by_area_path[match]

    @staticmethod
    def is_legacy_format(raw: Mapping[str, Any]) -> bool:
        """Old documents stored one flat WitSettings with ``tags``/``assignments`` keys."""
        return "tags" in raw or "assignments" in raw

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> SettingsScope:
        if not isinstance(raw, Mapping):
            msg = "wit_settings must be a mapping"
            raise ValueError(msg)
        if cls.is_legacy_format(raw):
            logger.debug("Migrating flat wit_settings to area-based format")
            return cls(default=WitSettings.from_dict(raw), by_area_path={})
        default = WitSettings.from_dict(raw.get("default") or {})
        by_area = {path: WitSettings.from_dict(ws) for path, ws in (raw.get("by_area_path") or {}).items()}
        return cls(default=default, by_area_path=by_area)

    def to_dict(self) -> SettingsScopeDict:
        return {
            "default": self.default.to_dict(),
            "by_area_path": {path: ws.to_dict() for path, ws in self.by_area_path.items()},
        }


@dataclass(frozen=True)
class DeleteConfirmation:
    """How an editor should confirm removing nodes from a tree.

    Persisted in the settings file for interactive clients; decomposer itself
    does not read it.
    """

    enabled: bool = True
    only_for_items_with_children: bool = False
    show_visual_cues: bool = True


@dataclass(frozen=True)
class DecomposerSettings:
    """The whole settings document.

    ``delete_confirmation`` and ``allowed_users`` round-trip through the file
    for other clients and are not consulted here.
    """

    add_comments_to_work_items: bool = True
    comment_text: str = DEFAULT_COMMENT_TEXT
    delete_confirmation: DeleteConfirmation = field(default_factory=DeleteConfirmation)
    allowed_users: tuple[str, ...] = ()
    wit_settings: SettingsScope = field(default_factory=SettingsScope)

    @property
    def effective_comment(self) -> str | None:
        """Comment to attach to created items, or None when disabled or blank."""
        if self.add_comments_to_work_items and self.comment_text.strip():
            return self.comment_text
        return None

    @classmethod
    def from_dict(cls, saved: Mapping[str, Any]) -> DecomposerSettings:
        """Deep-merge *saved* over the defaults.

        Raises:
            ValueError: If a present value has the wrong shape or an unknown policy value.
        """
        merged = merge_settings(DEFAULT_SETTINGS, saved)
        dc = merged["delete_confirmation"]
        return cls(
            add_comments_to_work_items=bool(merged["add_comments_to_work_items"]),
            comment_text=str(merged["comment_text"]),
            delete_confirmation=DeleteConfirmation(
                enabled=bool(dc["enabled"]),
                only_for_items_with_children=bool(dc["only_for_items_with_children"]),
                show_visual_cues=bool(dc["show_visual_cues"]),
            ),
            allowed_users=tuple(merged["user_permissions"]["allowed_users"]),
            wit_settings=SettingsScope.from_dict(merged["wit_settings"]),
        )

    def to_dict(self) -> DecomposerSettingsDict:
        return {
            "version": SETTINGS_VERSION,
            "add_comments_to_work_items": self.add_comments_to_work_items,
            "comment_text": self.comment_text,
            "delete_confirmation": {
                "enabled": self.delete_confirmation.enabled,
                "only_for_items_with_children": self.delete_confirmation.only_for_items_with_children,
                "show_visual_cues": self.delete_confirmation.show_visual_cues,
            },
            "user_permissions": {"allowed_users": list(self.allowed_users)},
            "wit_settings": self.wit_settings.to_dict(),
        }


DEFAULT_SETTINGS: DecomposerSettingsDict = DecomposerSettings().to_dict()


def merge_settings(defaults: DecomposerSettingsDict, saved: Mapping[str, Any]) -> DecomposerSettingsDict:
    """Saved values win; nested sections merge key by key; missing keys come from *defaults*.

    A legacy flat ``wit_settings`` replaces the default scope wholesale.
    """
    if not isinstance(saved, Mapping):
        msg = f"settings must be a JSON object, got {type(saved).__name__}"
        raise ValueError(msg)
    result = cast(DecomposerSettingsDict, copy.deepcopy(dict(defaults)))
    if "add_comments_to_work_items" in saved:
        result["add_comments_to_work_items"] = saved["add_comments_to_work_items"]
    if "comment_text" in saved:
        result["comment_text"] = saved["comment_text"]
    for section in ("delete_confirmation", "user_permissions"):
        value = saved.get(section)
        if value is None:
            continue
        if not isinstance(value, Mapping):
            msg = f"{section} must be a JSON object"
            raise ValueError(msg)
        result[section].update(value)  # type: ignore[literal-required]
    wit = saved.get("wit_settings")
    if wit is not None:
        if not isinstance(wit, Mapping):
            msg = "wit_settings must be a JSON object"
            raise ValueError(msg)
        if SettingsScope.is_legacy_format(wit):
            result["wit_settings"] = cast(SettingsScopeDict, {"default": dict(wit), "by_area_path": {}})
        else:
            default = dict(result["wit_settings"]["default"])
            default.update(wit.get("default") or {})
            result["wit_settings"] = cast(
                SettingsScopeDict,
                {"default": default, "by_area_path": dict(wit.get("by_area_path") or {})},
            )
    return result


class SettingsStore:
    """Read and write ``.decomposer/settings.json``."""

    def __init__(self, decomposer_dir: Path) -> None:
        self.path = decomposer_dir / SETTINGS_FILENAME

    def get_settings(self) -> DecomposerSettings:
        """Current settings; the defaults when the file is missing or invalid."""
        if not self.path.exists():
            return DecomposerSettings()
        try:
            saved = json.loads(self.path.read_text(encoding="utf-8"))
            return DecomposerSettings.from_dict(saved)
        except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Failed to read %s, using default settings: %s", self.path, exc)
            return DecomposerSettings()

    def save_settings(self, settings: DecomposerSettings) -> DecomposerSettings:
        write_atomic(self.path, json.dumps(settings.to_dict(), indent=2) + "\n")
        logger.info("Saved settings to %s", self.path)
        return settings


class InMemorySettingsStore:
    """Settings held in memory (API server tests, embedding)."""

    def __init__(self, settings: DecomposerSettings | None = None) -> None:
        self._settings = settings or DecomposerSettings()

    def get_settings(self) -> DecomposerSettings:
        return self._settings

    def save_settings(self, settings: DecomposerSettings) -> DecomposerSettings:
        self._settings = settings
        return settings
