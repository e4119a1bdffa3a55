"""Tests for the nv CLI."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from notevault import __version__
from notevault.cli import cli


class TestGroup:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_typo_suggestion(self, runner):
        result = runner.invoke(cli, ["reslove", "x"])

        assert result.exit_code != 0
        assert "Did you mean 'resolve'?" in result.output

    def test_json_errors_for_usage_error(self, runner):
        result = runner.invoke(cli, ["--json-errors", "resolve"])

        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["error"] == "MISSING_ARGUMENT"


class TestResolve:
    def test_text(self, cli_invoke):
        result = cli_invoke(["resolve", "foo"])

        assert result.exit_code == 0
        assert result.output.strip() == "foo  foo.md"

    def test_json(self, cli_invoke):
        result = cli_invoke(["resolve", "Bar Note", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["id"] == "bar"
        assert data["aliases"] == ["Bar Note"]
        assert data["path"] == "bar.md"

    def test_not_found(self, cli_invoke):
        result = cli_invoke(["resolve", "unknown"])

        assert result.exit_code == 1
        assert "Error: Could not resolve note 'unknown'" in result.output

    def test_not_found_json_errors(self, cli_invoke):
        result = cli_invoke(["--json-errors", "resolve", "unknown"])

        assert result.exit_code == 1
        assert json.loads(result.output)["error"] == "NOTE_NOT_FOUND"


class TestQueries:
    def test_find(self, cli_invoke):
        result = cli_invoke(["find", "foo", "--json"])

        assert result.exit_code == 0
        assert sorted(n["id"] for n in json.loads(result.output)) == ["bar", "foo"]

    def test_find_nothing(self, cli_invoke):
        result = cli_invoke(["find", "zzz-nothing"])

        assert result.exit_code == 0
        assert "No notes found." in result.output

    def test_tags(self, cli_invoke):
        result = cli_invoke(["tags", "idea"])

        assert result.exit_code == 0
        assert "foo.md:11  #idea" in result.output

    def test_tags_list(self, cli_invoke):
        result = cli_invoke(["tags", "--list", "--json"])

        assert json.loads(result.output) == ["idea", "misc", "project"]

    def test_backlinks(self, cli_invoke):
        result = cli_invoke(["backlinks", "foo", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [(b["note"], b["path"]) for b in data] == [("bar", "bar.md")]
        assert data[0]["matches"][0]["line"] == 8

    def test_link(self, cli_invoke):
        assert cli_invoke(["link", "foo"]).output.strip() == "[[foo|Foo]]"
        assert cli_invoke(["link", "foo", "--style", "markdown"]).output.strip() == "[Foo](foo.md)"


class TestMutations:
    def test_rename_dry_run(self, cli_invoke, sample_vault: Path):
        before = (sample_vault / "bar.md").read_text()

        result = cli_invoke(["rename", "renamed", "--target", "foo", "--dry-run"])

        assert result.exit_code == 0
        assert "Would rename foo -> renamed" in result.output
        assert (sample_vault / "foo.md").is_file()
        assert (sample_vault / "bar.md").read_text() == before

    def test_rename(self, cli_invoke, sample_vault: Path):
        result = cli_invoke(["rename", "renamed", "--target", "foo", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["new_id"] == "renamed"
        assert data["replacements"] == 2
        assert (sample_vault / "renamed.md").is_file()
        assert "[[renamed|Foo]]" in (sample_vault / "bar.md").read_text()

    def test_rename_invalid_id(self, cli_invoke):
        result = cli_invoke(["--json-errors", "rename", "dir/", "--target", "foo"])

        assert result.exit_code == 1
        assert json.loads(result.output)["error"] == "INVALID_NOTE_ID"

    def test_new(self, cli_invoke, sample_vault: Path):
        result = cli_invoke(["new", "My Idea", "--id", "my-idea"])

        assert result.exit_code == 0
        assert "Created: my-idea.md" in result.output
        assert (sample_vault / "my-idea.md").is_file()

    def test_today(self, cli_invoke):
        result = cli_invoke(["today", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["tags"] == ["daily-notes"]
        assert Path(data["path"]).suffix == ".md"


class TestConfigIntegration:
    """Commands that build their client from the configuration file."""

    def test_workspaces(self, runner, tmp_path: Path, vault: Path):
        config = tmp_path / "config.yaml"
        config.write_text(yaml.safe_dump({"workspaces": [{"name": "main", "path": str(vault)}]}))

        result = runner.invoke(cli, ["workspaces", "--json"], env={"NOTEVAULT_CONFIG": str(config)})

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"name": "main", "path": str(vault), "root": str(vault), "current": True}
        ]

    def test_unknown_workspace(self, runner, tmp_path: Path, vault: Path):
        config = tmp_path / "config.yaml"
        config.write_text(yaml.safe_dump({"workspaces": [{"name": "main", "path": str(vault)}]}))

        result = runner.invoke(
            cli,
            ["--json-errors", "--workspace", "other", "workspaces"],
            env={"NOTEVAULT_CONFIG": str(config)},
        )

        assert result.exit_code == 1
        assert json.loads(result.output)["error"] == "WORKSPACE_NOT_FOUND"
