"""Fixtures for CLI interface tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from decomposer.cli import cli


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a decomposer project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--project", "Shop", "--prefix", "shop"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)
    logger = logging.getLogger("decomposer")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)


def _extract_id(create_output: str) -> int:
    """Extract the item ID from 'Created 12: Title' output."""
    return int(create_output.split(":")[0].replace("Created ", "").strip())
