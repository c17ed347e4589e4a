"""CLI commands for decomposer settings (tag and assignment policy, comments)."""

from __future__ import annotations

import json as json_mod
from dataclasses import replace

import click

from decomposer.cli_common import fail, get_decomposer_dir
from decomposer.settings import (
    ASSIGNMENT_BEHAVIOR_VALUES,
    TAG_INHERITANCE_VALUES,
    AssignmentPolicy,
    DecomposerSettings,
    SettingsScope,
    SettingsStore,
    TagPolicy,
    WitSettings,
)


def _with_wit_settings(settings: DecomposerSettings, area_path: str | None, wit: WitSettings) -> DecomposerSettings:
    scope = settings.wit_settings
    if area_path:
        scope = SettingsScope(default=scope.default, by_area_path={**scope.by_area_path, area_path: wit})
    else:
        scope = SettingsScope(default=wit, by_area_path=scope.by_area_path)
    return replace(settings, wit_settings=scope)


def _wit_for_edit(settings: DecomposerSettings, area_path: str | None) -> WitSettings:
    if area_path:
        return settings.wit_settings.by_area_path.get(area_path, WitSettings())
    return settings.wit_settings.default


@click.group()
def settings() -> None:
    """View and change tag/assignment settings."""


@settings.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def settings_show(as_json: bool) -> None:
    """Show the effective settings."""
    current = SettingsStore(get_decomposer_dir()).get_settings()
    if as_json:
        click.echo(json_mod.dumps(current.to_dict(), indent=2))
        return

    click.echo(f"Add comments: {'yes' if current.add_comments_to_work_items else 'no'}")
    if current.add_comments_to_work_items:
        click.echo(f"Comment text: {current.comment_text}")
    scopes: list[tuple[str, WitSettings]] = [("(default)", current.wit_settings.default)]
    scopes.extend(sorted(current.wit_settings.by_area_path.items()))
    for label, wit in scopes:
        click.echo(f"\nScope {label}")
        for type_name, tag_policy in sorted(wit.tags.items()):
            tags = ", ".join(tag_policy.tags) or "-"
            click.echo(f"  {type_name:<14} tags: {tag_policy.inheritance:<9} explicit: {tags}")
        for type_name, assignment in sorted(wit.assignments.items()):
            click.echo(f"  {type_name:<14} assign: {assignment.behavior}")


@settings.command("set-tags")
@click.argument("type_name")
@click.option(
    "--inheritance",
    type=click.Choice(sorted(TAG_INHERITANCE_VALUES)),
    default="none",
    help="Where inherited tags come from",
)
@click.option("--tag", "-t", multiple=True, help="Tags always applied to this type (repeatable)")
@click.option("--area-path", default=None, help="Only for items in this area path subtree")
def settings_set_tags(type_name: str, inheritance: str, tag: tuple[str, ...], area_path: str | None) -> None:
    """Set the tag policy for TYPE_NAME."""
    store = SettingsStore(get_decomposer_dir())
    current = store.get_settings()
    try:
        policy = TagPolicy(inheritance=inheritance, tags=tag)  # type: ignore[arg-type]
    except ValueError as e:
        fail(str(e))
    wit = _wit_for_edit(current, area_path)
    wit = WitSettings(tags={**wit.tags, type_name: policy}, assignments=wit.assignments)
    store.save_settings(_with_wit_settings(current, area_path, wit))
    click.echo(f"Tag policy for {type_name}: {policy.inheritance} {list(policy.tags)}")


@settings.command("set-assignment")
@click.argument("type_name")
@click.argument("behavior", type=click.Choice(sorted(ASSIGNMENT_BEHAVIOR_VALUES)))
@click.option("--area-path", default=None, help="Only for items in this area path subtree")
def settings_set_assignment(type_name: str, behavior: str, area_path: str | None) -> None:
    """Set who new TYPE_NAME items are assigned to."""
    store = SettingsStore(get_decomposer_dir())
    current = store.get_settings()
    wit = _wit_for_edit(current, area_path)
    wit = WitSettings(
        tags=wit.tags,
        assignments={**wit.assignments, type_name: AssignmentPolicy(behavior=behavior)},  # type: ignore[arg-type]
    )
    store.save_settings(_with_wit_settings(current, area_path, wit))
    click.echo(f"Assignment for {type_name}: {behavior}")


@settings.command("set-comment")
@click.option("--enable/--disable", default=None, help="Attach a comment to every created item")
@click.option("--text", default=None, help="Comment body")
def settings_set_comment(enable: bool | None, text: str | None) -> None:
    """Change the comment attached to created items."""
    if enable is None and text is None:
        fail("Nothing to change: pass --enable/--disable and/or --text")
    store = SettingsStore(get_decomposer_dir())
    current = store.get_settings()
    if enable is not None:
        current = replace(current, add_comments_to_work_items=enable)
    if text is not None:
        current = replace(current, comment_text=text)
    store.save_settings(current)
    state = "enabled" if current.add_comments_to_work_items else "disabled"
    click.echo(f"Comments {state}")


@settings.command("reset")
def settings_reset() -> None:
    """Restore the default settings."""
    SettingsStore(get_decomposer_dir()).save_settings(DecomposerSettings())
    click.echo("Settings reset to defaults")


def register(cli: click.Group) -> None:
    """Register the settings group with the CLI."""
    cli.add_command(settings)
