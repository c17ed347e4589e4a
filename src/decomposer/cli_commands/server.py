"""CLI command for running the JSON API."""

from __future__ import annotations

import sys

import click

from decomposer.cli_common import get_decomposer_dir

DEFAULT_PORT = 8378


@click.command()
@click.option("--port", default=DEFAULT_PORT, type=int, help=f"Port (default {DEFAULT_PORT})")
@click.option("--host", default="127.0.0.1", help="Bind address (default 127.0.0.1)")
@click.pass_context
def serve(ctx: click.Context, port: int, host: str) -> None:
    """Serve the decomposer JSON API for this project."""
    try:
        from decomposer.api import main as api_main
    except ImportError:
        click.echo('The API requires extra dependencies. Install with: pip install "decomposer[api]"', err=True)
        sys.exit(1)
    api_main(get_decomposer_dir(), actor=ctx.obj["actor"], host=host, port=port)


def register(cli: click.Group) -> None:
    """Register the serve command with the CLI."""
    cli.add_command(serve)
