"""TypedDicts describing the JSON shape of .decomposer/settings.json."""

from __future__ import annotations

from typing import TypedDict


class TagPolicyDict(TypedDict):
    inheritance: str
    tags: list[str]


class AssignmentPolicyDict(TypedDict):
    behavior: str


class WitSettingsDict(TypedDict):
    tags: dict[str, TagPolicyDict]
    assignments: dict[str, AssignmentPolicyDict]


class SettingsScopeDict(TypedDict):
    default: WitSettingsDict
    by_area_path: dict[str, WitSettingsDict]


class DeleteConfirmationDict(TypedDict):
    enabled: bool
    only_for_items_with_children: bool
    show_visual_cues: bool


class UserPermissionsDict(TypedDict):
    allowed_users: list[str]


class DecomposerSettingsDict(TypedDict):
    version: int
    add_comments_to_work_items: bool
    comment_text: str
    delete_confirmation: DeleteConfirmationDict
    user_permissions: UserPermissionsDict
    wit_settings: SettingsScopeDict
