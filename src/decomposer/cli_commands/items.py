"""CLI commands for work item CRUD: create, show, list, comments, tags."""

from __future__ import annotations

import json as json_mod
import sys

import click

from decomposer.cli_common import fail, get_db


@click.command()
@click.argument("title")
@click.option("--type", "item_type", required=True, help="Work item type (e.g. Epic, Feature, Task)")
@click.option("--parent", default=None, type=int, help="Parent work item ID")
@click.option("--assignee", default="", help="Assignee")
@click.option("--area-path", default="", help="Area path (inherited from the parent when omitted)")
@click.option("--iteration-path", default="", help="Iteration path (inherited from the parent when omitted)")
@click.option("--tag", "-t", multiple=True, help="Tags (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    item_type: str,
    parent: int | None,
    assignee: str,
    area_path: str,
    iteration_path: str,
    tag: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a single work item."""
    with get_db() as db:
        try:
            item = db.create_item(
                title,
                type=item_type,
                parent_id=parent,
                assignee=assignee,
                area_path=area_path,
                iteration_path=iteration_path,
                tags=list(tag),
                actor=ctx.obj["actor"],
            )
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {item.id}: {item.title}")


@click.command()
@click.argument("item_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(item_id: int, as_json: bool) -> None:
    """Show work item details."""
    with get_db() as db:
        try:
            item = db.get_item(item_id)
        except KeyError:
            fail(f"Not found: {item_id}", as_json=as_json)

        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
            return

        click.echo(f"ID:        {item.id}")
        click.echo(f"Title:     {item.title}")
        click.echo(f"Type:      {item.type}")
        if item.parent_id:
            click.echo(f"Parent:    {item.parent_id}")
        if item.assignee:
            click.echo(f"Assignee:  {item.assignee}")
        if item.area_path:
            click.echo(f"Area:      {item.area_path}")
        if item.iteration_path:
            click.echo(f"Iteration: {item.iteration_path}")
        click.echo(f"Created:   {item.created_at}")
        if item.tags:
            click.echo(f"Tags:      {'; '.join(item.tags)}")
        if item.children:
            click.echo(f"Children:  {', '.join(str(c) for c in item.children)}")


@click.command("list")
@click.option("--type", "item_type", default=None, help="Filter by type")
@click.option("--parent", default=None, type=int, help="Filter by parent ID")
@click.option("--assignee", default=None, help="Filter by assignee")
@click.option("--tag", default=None, help="Filter by tag")
@click.option("--limit", default=100, type=int, help="Max results (default 100)")
@click.option("--offset", default=0, type=int, help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_items(
    item_type: str | None,
    parent: int | None,
    assignee: str | None,
    tag: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List work items with optional filters."""
    with get_db() as db:
        items = db.list_items(type=item_type, parent_id=parent, assignee=assignee, tag=tag, limit=limit, offset=offset)

        if as_json:
            click.echo(json_mod.dumps([i.to_dict() for i in items], indent=2, default=str))
            return

        for item in items:
            parent_marker = f" (under {item.parent_id})" if item.parent_id else ""
            click.echo(f"{item.id:>5} [{item.type}] {item.title}{parent_marker}")

        click.echo(f"\n{len(items)} work items")


@click.command()
@click.argument("item_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tree(item_id: int, as_json: bool) -> None:
    """Show a work item and everything below it."""
    with get_db() as db:
        try:
            root = db.get_item(item_id)
        except KeyError:
            fail(f"Not found: {item_id}", as_json=as_json)
        descendants = db.get_descendants(item_id)

        if as_json:
            click.echo(json_mod.dumps([root.to_dict(), *(d.to_dict() for d in descendants)], indent=2, default=str))
            return

        depth = {root.id: 0}
        click.echo(f"{root.id} [{root.type}] {root.title}")
        for item in descendants:
            depth[item.id] = depth.get(item.parent_id or root.id, 0) + 1
            click.echo(f"{'  ' * depth[item.id]}{item.id} [{item.type}] {item.title}")


@click.command("add-comment")
@click.argument("item_id", type=int)
@click.argument("text")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def add_comment(ctx: click.Context, item_id: int, text: str, as_json: bool) -> None:
    """Add a comment to a work item."""
    with get_db() as db:
        try:
            comment_id = db.add_comment(item_id, text, author=ctx.obj["actor"])
        except KeyError:
            fail(f"Not found: {item_id}", as_json=as_json)
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps({"comment_id": comment_id, "item_id": item_id}))
        else:
            click.echo(f"Added comment {comment_id} to {item_id}")


@click.command("get-comments")
@click.argument("item_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def get_comments(item_id: int, as_json: bool) -> None:
    """List comments on a work item."""
    with get_db() as db:
        try:
            db.get_item(item_id)
        except KeyError:
            fail(f"Not found: {item_id}", as_json=as_json)
        result = db.get_comments(item_id)
        if as_json:
            click.echo(json_mod.dumps(result, indent=2, default=str))
            return
        if not result:
            click.echo("No comments.")
            return
        for c in result:
            click.echo(f"[{c['created_at']}] {c['author']}: {c['text']}")


@click.command("add-tag")
@click.argument("item_id", type=int)
@click.argument("tag_name")
def add_tag(item_id: int, tag_name: str) -> None:
    """Add a tag to a work item."""
    with get_db() as db:
        try:
            added = db.add_tag(item_id, tag_name)
        except KeyError:
            fail(f"Not found: {item_id}")
        except ValueError as e:
            fail(str(e))
        if added:
            click.echo(f"Added tag '{tag_name.strip()}' to {item_id}")
        else:
            click.echo(f"Tag '{tag_name.strip()}' already on {item_id}")


@click.command("remove-tag")
@click.argument("item_id", type=int)
@click.argument("tag_name")
def remove_tag(item_id: int, tag_name: str) -> None:
    """Remove a tag from a work item."""
    with get_db() as db:
        if not db.remove_tag(item_id, tag_name):
            click.echo(f"Tag '{tag_name}' not on {item_id}", err=True)
            sys.exit(1)
        click.echo(f"Removed tag '{tag_name}' from {item_id}")


def register(cli: click.Group) -> None:
    """Register work item commands with the CLI group."""
    cli.add_command(create)
    cli.add_command(show)
    cli.add_command(list_items, "list")
    cli.add_command(tree)
    cli.add_command(add_comment)
    cli.add_command(get_comments)
    cli.add_command(add_tag)
    cli.add_command(remove_tag)
