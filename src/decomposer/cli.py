"""CLI for the work item decomposer.

Convention-based: discovers .decomposer/ by walking up from cwd.

Usage:
    decomposer init --project Shop                     # Initialize .decomposer/ in cwd
    decomposer create "Checkout" --type Feature        # Create a work item
    decomposer show <id>                               # Show work item details
    decomposer list --parent <id>                      # List work items
    decomposer decompose <id> --file plan.txt          # Create a hierarchy under <id>
    decomposer format-help --parent-type Feature       # Text format reference
    decomposer rules                                   # Hierarchy rules in effect
    decomposer settings show                           # Tag/assignment settings
    decomposer serve                                   # Start the JSON API
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from decomposer import __version__
from decomposer.cli_commands import decompose as _decompose_cmds
from decomposer.cli_commands import items as _items_cmds
from decomposer.cli_commands import server as _server_cmds
from decomposer.cli_commands import settings as _settings_cmds
from decomposer.core import (
    DB_FILENAME,
    DECOMPOSER_DIR_NAME,
    WorkItemDB,
    find_decomposer_root,
    read_config,
    write_config,
)
from decomposer.logging import setup_logging
from decomposer.rules import DEFAULT_HIERARCHY_RULES
from decomposer.validation import sanitize_actor

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="decomposer")
@click.option("--actor", default="cli", help="Acting user, used for 'creator' assignment (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """Decompose work items into hierarchies of new work items."""
    cleaned, err = sanitize_actor(actor)
    if err:
        raise click.BadParameter(err, param_hint="--actor")
    ctx.ensure_object(dict)
    ctx.obj["actor"] = cleaned
    try:
        setup_logging(find_decomposer_root())
    except FileNotFoundError:
        logger.debug("No %s/ yet; file logging disabled", DECOMPOSER_DIR_NAME)


@cli.command()
@click.option("--project", default=None, help="Project name (default: directory name)")
@click.option("--prefix", default=None, help="Short project prefix (default: directory name)")
def init(project: str | None, prefix: str | None) -> None:
    """Initialize .decomposer/ in the current directory."""
    cwd = Path.cwd()
    decomposer_dir = cwd / DECOMPOSER_DIR_NAME

    if decomposer_dir.exists():
        click.echo(f"{DECOMPOSER_DIR_NAME}/ already exists in {cwd}")
        config = read_config(decomposer_dir)
        with WorkItemDB(decomposer_dir / DB_FILENAME, project=config.get("project", cwd.name)) as db:
            db.initialize()
        return

    project = project or cwd.name
    decomposer_dir.mkdir()
    write_config(
        decomposer_dir,
        {
            "prefix": prefix or cwd.name,
            "project": project,
            "version": 1,
            "hierarchy_rules": DEFAULT_HIERARCHY_RULES,
            "users": [],
        },
    )
    with WorkItemDB(decomposer_dir / DB_FILENAME, project=project) as db:
        db.initialize()

    click.echo(f"Initialized {DECOMPOSER_DIR_NAME}/ in {cwd}")
    click.echo(f"  Project:  {project}")
    click.echo(f"  Database: {decomposer_dir / DB_FILENAME}")
    click.echo('\nNext: decomposer create "My epic" --type Epic')


_items_cmds.register(cli)
_decompose_cmds.register(cli)
_settings_cmds.register(cli)
_server_cmds.register(cli)


if __name__ == "__main__":
    cli()
