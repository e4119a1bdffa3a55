"""Tests for configuration loading, workspaces, templates and error codes."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
import yaml
from conftest import write_note

from notevault.config import (
    CONFIG_FILENAME,
    ConfigurationError,
    TemplatesOptions,
    VaultOptions,
    WorkspaceSpec,
    _discover_project_config,
    get_config_path,
    load_options,
)
from notevault.errors import (
    ErrorCode,
    NoteNotFoundError,
    ParseError,
    WorkspaceNotFoundError,
    error_code_for,
    format_error_json,
)
from notevault.templates import clone_template, substitute_template_variables
from notevault.workspace import Workspace, find_vault_root


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """No config reachable from the environment, cwd or home directory."""
    home = tmp_path / "home"
    home.mkdir()
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("NOTEVAULT_CONFIG", raising=False)
    monkeypatch.delenv("NOTEVAULT_VAULT", raising=False)
    monkeypatch.chdir(cwd)
    return cwd


# ─────────────────────────────────────────────────────────────────────────────
# Config loading
# ─────────────────────────────────────────────────────────────────────────────


class TestLoadOptions:
    def test_relative_workspace_paths(self, tmp_path: Path):
        config = tmp_path / "config.yaml"
        config.write_text(
            yaml.safe_dump(
                {
                    "workspaces": [{"name": "personal", "path": "vaults/personal"}],
                    "notes_subdir": "notes",
                    "daily_notes": {"folder": "daily"},
                    "search_timeout": 2.5,
                }
            )
        )

        options = load_options(config)

        assert options.workspaces[0].path == str((tmp_path / "vaults" / "personal").resolve())
        assert options.notes_subdir == "notes"
        assert options.daily_notes.folder == "daily"
        assert options.search_timeout == 2.5

    def test_invalid_value(self, tmp_path: Path):
        config = tmp_path / "config.yaml"
        config.write_text("workspaces:\n  - name: a\n    path: .\npreferred_link_style: fancy\n")

        with pytest.raises(ConfigurationError, match="preferred_link_style"):
            load_options(config)

    def test_invalid_yaml(self, tmp_path: Path):
        config = tmp_path / "config.yaml"
        config.write_text("workspaces: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Failed to read config"):
            load_options(config)

    def test_no_workspaces(self, tmp_path: Path):
        config = tmp_path / "config.yaml"
        config.write_text("notes_subdir: notes\n")

        with pytest.raises(ConfigurationError, match="defines no workspaces"):
            load_options(config)

    def test_vault_env_shortcut(self, isolated_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("NOTEVAULT_VAULT", str(tmp_path / "myvault"))

        options = load_options()

        assert [(ws.name, ws.path) for ws in options.workspaces] == [("myvault", str(tmp_path / "myvault"))]

    def test_nothing_configured(self, isolated_env: Path):
        with pytest.raises(ConfigurationError, match="No vault configured"):
            load_options()


class TestConfigDiscovery:
    def test_env_var_wins(self, isolated_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        explicit = tmp_path / "explicit.yaml"
        monkeypatch.setenv("NOTEVAULT_CONFIG", str(explicit))
        (isolated_env / CONFIG_FILENAME).write_text("workspaces: []\n")

        assert get_config_path() == explicit

    def test_walks_up_from_cwd(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).write_text("workspaces: []\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert _discover_project_config(nested) == (tmp_path / CONFIG_FILENAME).resolve()

    def test_user_config(self, isolated_env: Path, tmp_path: Path):
        user_config = tmp_path / "home" / ".config" / "notevault" / "config.yaml"
        user_config.parent.mkdir(parents=True)
        user_config.write_text("workspaces: []\n")

        assert get_config_path() == user_config


class TestMergedOptions:
    def test_deep_merge(self):
        base = VaultOptions(daily_notes={"folder": "daily", "date_format": "%Y%m%d"})

        merged = base.merged({"daily_notes": {"folder": "journal"}, "sort_reversed": False})

        assert merged.daily_notes.folder == "journal"
        assert merged.daily_notes.date_format == "%Y%m%d"
        assert merged.sort_reversed is False
        assert base.daily_notes.folder == "daily"

    def test_no_overrides_copies(self):
        base = VaultOptions(notes_subdir="n")

        assert base.merged(None) == base
        assert base.merged(None) is not base


# ─────────────────────────────────────────────────────────────────────────────
# Workspaces
# ─────────────────────────────────────────────────────────────────────────────


class TestWorkspace:
    def test_root_found_from_nested_path(self, vault: Path):
        nested = vault / "projects" / "alpha"
        nested.mkdir(parents=True)

        ws = Workspace.new("alpha", nested)

        assert ws.path == nested
        assert ws.root == vault

    def test_root_defaults_to_path(self, tmp_path: Path):
        assert find_vault_root(tmp_path / "plain", marker=".no-such-marker") == tmp_path / "plain"

    def test_frozen_snapshots(self, vault: Path):
        ws = Workspace.from_dir(vault)
        locked = ws.lock()

        assert locked.locked and not ws.locked
        assert locked.unlock() == ws
        with pytest.raises(Exception):
            ws.name = "other"

    def test_get_from_options(self, vault: Path):
        options = VaultOptions(workspaces=[WorkspaceSpec(name="a", path=str(vault))])

        assert Workspace.get_from_options(options).name == "a"
        with pytest.raises(WorkspaceNotFoundError):
            Workspace.get_from_options(options, "missing")

    def test_get_workspace_for_dir(self, vault: Path, tmp_path: Path):
        options = VaultOptions(workspaces=[WorkspaceSpec(name="a", path=str(vault))])
        (vault / "deep").mkdir()

        assert Workspace.get_workspace_for_dir(vault / "deep", options).name == "a"
        assert Workspace.get_workspace_for_dir(tmp_path, options) is None


# ─────────────────────────────────────────────────────────────────────────────
# Templates
# ─────────────────────────────────────────────────────────────────────────────


class TestTemplates:
    def test_substitution(self):
        opts = TemplatesOptions(date_format="%Y-%m-%d", time_format="%H:%M")
        now = datetime(2024, 1, 15, 9, 30)

        text = substitute_template_variables("# {{title}}\n{{ date }} {{time}} {{other}}", "T", opts, now)

        assert text == "# T\n2024-01-15 09:30 {{other}}"

    def test_clone(self, client, sample_vault: Path):
        write_note(sample_vault, "templates/meeting.md", "# {{title}}\n")
        client.opts.templates = TemplatesOptions(subdir="templates")

        dest = clone_template("meeting", sample_vault / "m.md", client, "Standup")

        assert dest.read_text() == "# Standup\n"

    def test_clone_without_templates_dir(self, client, sample_vault: Path):
        with pytest.raises(ConfigurationError):
            clone_template("meeting", sample_vault / "m.md", client)

    def test_clone_missing_template(self, client, sample_vault: Path):
        (sample_vault / "templates").mkdir()
        client.opts.templates = TemplatesOptions(subdir="templates")

        with pytest.raises(FileNotFoundError):
            clone_template("nope", sample_vault / "m.md", client)


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class TestErrors:
    def test_to_json(self):
        payload = json.loads(NoteNotFoundError("x").to_json())

        assert payload == {
            "error": "NOTE_NOT_FOUND",
            "message": "Could not resolve note 'x'",
            "details": {"query": "x"},
        }

    def test_parse_error_fields(self):
        error = ParseError("/v/a.md", "bad yaml")

        assert error.path == Path("/v/a.md")
        assert error.reason == "bad yaml"
        assert str(error) == "/v/a.md: bad yaml"

    @pytest.mark.parametrize(
        "exc,code",
        [
            (ConfigurationError("x"), ErrorCode.CONFIGURATION_ERROR),
            (WorkspaceNotFoundError("w"), ErrorCode.WORKSPACE_NOT_FOUND),
            (FileExistsError("x"), ErrorCode.FILE_EXISTS),
            (TimeoutError(), ErrorCode.TIMEOUT),
            (PermissionError("x"), ErrorCode.IO_ERROR),
            (RuntimeError("x"), ErrorCode.UNKNOWN),
        ],
    )
    def test_error_code_for(self, exc: Exception, code: ErrorCode):
        assert error_code_for(exc) is code

    def test_format_without_details(self):
        assert json.loads(format_error_json("X", "msg")) == {"error": "X", "message": "msg"}
