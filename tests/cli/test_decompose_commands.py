"""CLI tests for decompose, format-help, rules and settings."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from decomposer.cli import cli
from tests.cli.conftest import _extract_id

PLAN = """\
User Story: Pay by card
- Task: Card form
- Bug: Rounding
User Story: Pay by invoice
"""


def _feature(runner: CliRunner) -> int:
    result = runner.invoke(cli, ["create", "Checkout", "--type", "Feature", "--area-path", "Shop\\Web", "-t", "shop"])
    return _extract_id(result.output)


class TestDecompose:
    def test_creates_hierarchy_from_stdin(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        result = runner.invoke(cli, ["decompose", str(feature)], input=PLAN)
        assert result.exit_code == 0, result.output
        assert "4 created, 0 errors" in result.output
        listed = json.loads(runner.invoke(cli, ["list", "--parent", str(feature), "--json"]).output)
        assert [i["title"] for i in listed] == ["Pay by card", "Pay by invoice"]
        assert all(i["area_path"] == "Shop\\Web" for i in listed)

    def test_default_comment_attached(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        data = json.loads(runner.invoke(cli, ["decompose", str(feature), "--json"], input="User Story: A").output)
        item_id = data["created"][0]["item_id"]
        comments = json.loads(runner.invoke(cli, ["get-comments", str(item_id), "--json"]).output)
        assert "Work Item Decomposer" in comments[0]["text"]

    def test_from_file(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        feature = _feature(runner)
        plan = root / "plan.txt"
        plan.write_text(PLAN)
        result = runner.invoke(cli, ["decompose", str(feature), "--file", str(plan), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ok"] is True
        assert [c["title"] for c in data["created"]] == ["Pay by card", "Card form", "Rounding", "Pay by invoice"]
        assert data["created"][1]["parent_id"] == data["created"][0]["item_id"]

    def test_dry_run_creates_nothing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        result = runner.invoke(cli, ["decompose", str(feature), "--dry-run"], input=PLAN)
        assert result.exit_code == 0
        assert "- Task: Card form" in result.output
        assert "4 work items would be created" in result.output
        assert "1 work items" in runner.invoke(cli, ["list"]).output

    def test_format_errors_report_lines(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        result = runner.invoke(cli, ["decompose", str(feature)], input="User Story: A\n--- Task: B\nno colon")
        assert result.exit_code == 1
        assert "Error: Line 2: Invalid depth progression" in result.output
        assert "Error: Line 3: Missing colon" in result.output

    def test_format_error_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        result = runner.invoke(cli, ["decompose", str(feature), "--json"], input="Task: A")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["line_number"] == 1
        assert 'not a valid child of "Feature"' in data["issues"][0]["error"]

    def test_empty_input(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        result = runner.invoke(cli, ["decompose", str(feature)], input="")
        assert result.exit_code == 1
        assert "Input text is empty" in result.output

    def test_missing_item(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["decompose", "77"], input=PLAN)
        assert result.exit_code == 1
        assert "Not found: 77" in result.output

    def test_tag_and_assignment_settings_apply(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        feature = _feature(runner)
        assert runner.invoke(cli, ["settings", "set-tags", "User Story", "--inheritance", "parent", "-t", "auto"]).exit_code == 0
        assert runner.invoke(cli, ["settings", "set-assignment", "Task", "creator"]).exit_code == 0
        result = runner.invoke(cli, ["--actor", "alice", "decompose", str(feature), "--json"], input=PLAN)
        created = {c["title"]: c for c in json.loads(result.output)["created"]}
        assert created["Pay by card"]["tags"] == ["auto", "shop"]
        assert created["Card form"]["assignee"] == "alice"
        assert created["Rounding"]["assignee"] is None


class TestFormatHelp:
    def test_text_output(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["format-help", "--parent-type", "feature"])
        assert result.exit_code == 0
        assert "Format: [dashes] [Type]: [Title]" in result.output
        assert "User Story: Example user story" in result.output

    def test_json_with_examples(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["format-help", "--examples", "--json"])
        data = json.loads(result.output)
        assert {"pattern", "description", "example", "reference", "examples"} <= set(data)
        assert data["examples"][0]["parent_type"] == "Epic"

    def test_unknown_parent_type(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["format-help", "--parent-type", "Widget"])
        assert result.exit_code == 1
        assert "Unknown work item type: Widget" in result.output


class TestRules:
    def test_rules_text(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["rules"])
        assert "User Story -> Task, Bug" in result.output
        assert "Root types:  Epic" in result.output

    def test_rules_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        data = json.loads(runner.invoke(cli, ["rules", "--json"]).output)
        assert data["rules"]["Bug"] == ["Task"]
        assert data["creatable_types"]["root"] == ["Epic"]


class TestSettingsCommands:
    def test_show_defaults(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "show"])
        assert result.exit_code == 0
        assert "Add comments: yes" in result.output

    def test_area_scoped_policy(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["settings", "set-tags", "Task", "--inheritance", "ancestors", "--area-path", "Shop\\Web"])
        data = json.loads(runner.invoke(cli, ["settings", "show", "--json"]).output)
        assert data["wit_settings"]["by_area_path"]["Shop\\Web"]["tags"]["Task"]["inheritance"] == "ancestors"
        assert data["wit_settings"]["default"]["tags"] == {}

    def test_set_comment_and_reset(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        assert "Comments disabled" in runner.invoke(cli, ["settings", "set-comment", "--disable"]).output
        assert "Add comments: no" in runner.invoke(cli, ["settings", "show"]).output
        runner.invoke(cli, ["settings", "reset"])
        assert "Add comments: yes" in runner.invoke(cli, ["settings", "show"]).output

    def test_set_comment_needs_an_option(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "set-comment"])
        assert result.exit_code == 1
        assert "Nothing to change" in result.output

    def test_invalid_inheritance_choice(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "set-tags", "Task", "--inheritance", "everything"])
        assert result.exit_code == 2

    def test_tag_with_separator_rejected(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "set-tags", "Task", "-t", "team;alpha"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        shown = runner.invoke(cli, ["settings", "show", "--json"])
        assert '"team' not in shown.output
