"""CLI commands for decomposition: decompose, format-help, rules."""

from __future__ import annotations

import asyncio
import json as json_mod
import sys
from dataclasses import asdict
from typing import TextIO

import click

from decomposer.cli_common import build_engine, fail, get_db, get_decomposer_dir
from decomposer.core import load_rules
from decomposer.hierarchy import WorkItemNode
from decomposer.materialize import MaterializationEngine, MaterializationResult
from decomposer.rules import HierarchyRuleSet, RuleViolation
from decomposer.session import DecompositionSession
from decomposer.store import LocalWorkItemStore
from decomposer.text_format import FormatError, TextHierarchyParser


async def _run_decomposition(
    store: LocalWorkItemStore,
    engine: MaterializationEngine,
    rules: HierarchyRuleSet,
    item_id: int,
    project: str,
    text: str,
    *,
    dry_run: bool,
) -> tuple[list[WorkItemNode], MaterializationResult | None]:
    session = await DecompositionSession.open(store, rules, engine, item_id, project)
    session.import_text(text)
    nodes = session.manager.get_hierarchy()
    if dry_run:
        return nodes, None
    return nodes, await session.save()


@click.command()
@click.argument("item_id", type=int)
@click.option("--file", "-f", "source", type=click.File("r"), default="-", help="Hierarchy text (default: stdin)")
@click.option("--dry-run", is_flag=True, help="Parse and validate only; create nothing")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def decompose(ctx: click.Context, item_id: int, source: TextIO, dry_run: bool, as_json: bool) -> None:
    """Create a hierarchy of new work items under ITEM_ID from dash-indented text."""
    text = source.read()
    decomposer_dir = get_decomposer_dir()
    rules = load_rules(decomposer_dir)
    with get_db() as db:
        store, engine = build_engine(db, decomposer_dir, ctx.obj["actor"])
        try:
            nodes, result = asyncio.run(
                _run_decomposition(store, engine, rules, item_id, db.project, text, dry_run=dry_run)
            )
        except KeyError:
            fail(f"Not found: {item_id}", as_json=as_json)
        except FormatError as e:
            if as_json:
                click.echo(
                    json_mod.dumps(
                        {"error": str(e), "line_number": e.line_number, "issues": [asdict(i) for i in e.issues]}
                    )
                )
                sys.exit(1)
            for issue in e.issues:
                click.echo(f"Error: {issue}", err=True)
            if not e.issues:
                click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except RuleViolation as e:
            fail(str(e), as_json=as_json)

    parser = TextHierarchyParser(rules)
    if result is None:
        if as_json:
            click.echo(json_mod.dumps({"dry_run": True, "nodes": [n.to_dict() for n in nodes]}, indent=2))
        else:
            click.echo(parser.render(nodes))
            count = sum(1 for root in nodes for _ in root.walk())
            click.echo(f"\n{count} work items would be created under {item_id}")
        return

    if as_json:
        click.echo(json_mod.dumps(result.to_dict(), indent=2, default=str))
    else:
        for created in result.created:
            click.echo(f"Created {created.item_id} [{created.type}] {created.title} (under {created.parent_id})")
        for error in result.errors:
            click.echo(f"Error: {error}", err=True)
        click.echo(f"\n{len(result.created)} created, {len(result.errors)} errors")
    if result.errors:
        sys.exit(1)


@click.command("format-help")
@click.option("--parent-type", default=None, help="Tailor the example to children of this type")
@click.option("--examples", "show_examples", is_flag=True, help="Show an example for every decomposable type")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def format_help(parent_type: str | None, show_examples: bool, as_json: bool) -> None:
    """Describe the dash-indented hierarchy text format."""
    rules = load_rules(get_decomposer_dir())
    parser = TextHierarchyParser(rules)
    if parent_type is not None:
        canonical = rules.canonical_type(parent_type)
        if canonical is None:
            fail(f"Unknown work item type: {parent_type}", as_json=as_json)
        parent_type = canonical
    template = parser.generate_format_template(parent_type)

    if as_json:
        payload: dict[str, object] = {
            **asdict(template),
            "reference": [asdict(r) for r in parser.format_reference()],
        }
        if show_examples:
            payload["examples"] = [asdict(e) for e in parser.generate_decomposition_examples()]
        click.echo(json_mod.dumps(payload, indent=2))
        return

    click.echo(template.description)
    click.echo(f"\n{template.pattern}")
    click.echo("\nReference:")
    for entry in parser.format_reference():
        click.echo(f"  {entry.code:<18} {entry.description}")
    click.echo(f"\nExample:\n{template.example}")
    if show_examples:
        for example in parser.generate_decomposition_examples():
            click.echo(f"\n# Under {example.parent_type}\n{example.example}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def rules(as_json: bool) -> None:
    """Show which work item types may be created under which."""
    rule_set = load_rules(get_decomposer_dir())
    creatable = rule_set.creatable_types()
    if as_json:
        click.echo(json_mod.dumps({"rules": rule_set.to_dict(), "creatable_types": asdict(creatable)}, indent=2))
        return
    for parent, children in rule_set.rules.items():
        click.echo(f"{parent} -> {', '.join(children) or '(none)'}")
    click.echo(f"\nRoot types:  {', '.join(creatable.root) or '(none)'}")
    click.echo(f"Child types: {', '.join(creatable.child) or '(none)'}")


def register(cli: click.Group) -> None:
    """Register decomposition commands with the CLI group."""
    cli.add_command(decompose)
    cli.add_command(format_help)
    cli.add_command(rules)
