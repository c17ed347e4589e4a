"""Shared CLI helpers used by ``cli.py`` and ``cli_commands/*.py``."""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path
from typing import NoReturn

import click

from decomposer.core import (
    DB_FILENAME,
    DECOMPOSER_DIR_NAME,
    WorkItemDB,
    find_decomposer_root,
    read_config,
)
from decomposer.identity import ConfigIdentityProvider
from decomposer.materialize import MaterializationEngine
from decomposer.settings import SettingsStore
from decomposer.store import LocalWorkItemStore


def get_decomposer_dir() -> Path:
    """Discover .decomposer/ or exit with a hint."""
    try:
        return find_decomposer_root()
    except FileNotFoundError:
        click.echo(f"No {DECOMPOSER_DIR_NAME}/ found. Run 'decomposer init' first.", err=True)
        sys.exit(1)


def get_db() -> WorkItemDB:
    """Discover .decomposer/ and return an initialized WorkItemDB."""
    decomposer_dir = get_decomposer_dir()
    config = read_config(decomposer_dir)
    db = WorkItemDB(decomposer_dir / DB_FILENAME, project=config.get("project", decomposer_dir.resolve().parent.name))
    db.initialize()
    return db


def build_engine(db: WorkItemDB, decomposer_dir: Path, actor: str) -> tuple[LocalWorkItemStore, MaterializationEngine]:
    """Wire the SQLite store, settings file and config users into an engine."""
    store = LocalWorkItemStore(db, actor=actor)
    engine = MaterializationEngine(store, SettingsStore(decomposer_dir), ConfigIdentityProvider(decomposer_dir, actor))
    return store, engine


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    """Report *message* the way every command does and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)
