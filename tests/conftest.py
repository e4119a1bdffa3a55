"""Shared test fixtures for the notevault test suite.

Design:
- vault: isolated vault directory (with a .obsidian marker) under tmp_path
- sample_vault: vault seeded with a few linked notes
- client: Client over the vault using the in-process ScanningBackend
- cli_invoke: CliRunner helper that injects the test client
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

import pytest
from click.testing import CliRunner
from fakes import ScanningBackend

from notevault import _logging
from notevault.cli import cli
from notevault.client import Client
from notevault.config import VaultOptions, WorkspaceSpec

# ─────────────────────────────────────────────────────────────────────────────
# Markers
# ─────────────────────────────────────────────────────────────────────────────


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if shutil.which("rg") is not None:
        return

    skip_rg = pytest.mark.skip(reason="ripgrep (rg) is not on PATH")
    for item in items:
        if "ripgrep" in item.keywords:
            item.add_marker(skip_rg)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo --quiet and any level changes between tests."""
    yield
    _logging._quiet = False
    logging.getLogger("notevault").setLevel(logging.NOTSET)


# ─────────────────────────────────────────────────────────────────────────────
# Vault Fixtures
# ─────────────────────────────────────────────────────────────────────────────


FOO_NOTE = """---
id: foo
aliases:
  - Project X
tags:
  - project
---

# Foo

See [[bar]] and #idea here.
"""

BAR_NOTE = """---
id: bar
aliases:
  - Bar Note
tags: [project, misc]
---
# Bar
Links back to [[foo|Foo]] and [the foo](foo.md).
"""

BAZ_NOTE = """# Baz

Nothing here about project x.
"""


def write_note(root: Path, rel_path: str, content: str) -> Path:
    """Helper to write a note file, creating parent directories.

    Usage in tests:
        from conftest import write_note
        path = write_note(vault, "notes/a.md", "# A")
    """
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Empty vault directory with a .obsidian root marker."""
    root = tmp_path / "vault"
    (root / ".obsidian").mkdir(parents=True)
    return root.resolve()


@pytest.fixture
def sample_vault(vault: Path) -> Path:
    """Vault with three notes.

    Creates:
    - foo.md (id foo, alias "Project X", tag project, links to bar, #idea)
    - bar.md (id bar, alias "Bar Note", tags project/misc, links to foo)
    - sub/baz.md (no frontmatter, title Baz)
    """
    write_note(vault, "foo.md", FOO_NOTE)
    write_note(vault, "bar.md", BAR_NOTE)
    write_note(vault, "sub/baz.md", BAZ_NOTE)
    return vault


@pytest.fixture
def options(vault: Path) -> VaultOptions:
    return VaultOptions(workspaces=[WorkspaceSpec(name="test", path=str(vault))])


@pytest.fixture
def backend() -> ScanningBackend:
    return ScanningBackend()


@pytest.fixture
def client(options: VaultOptions, backend: ScanningBackend, sample_vault: Path) -> Client:
    """Client over sample_vault with the scanning backend."""
    return Client(options, backend=backend)


# ─────────────────────────────────────────────────────────────────────────────
# CLI Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def cli_invoke(runner: CliRunner, client: Client):
    """Helper for invoking the CLI against the test client.

    Usage:
        def test_resolve(cli_invoke):
            result = cli_invoke(["resolve", "foo"])
            assert result.exit_code == 0
    """

    def _invoke(args: list[str], input: str | None = None):
        return runner.invoke(cli, args, input=input, obj={"client": client}, catch_exceptions=False)

    return _invoke
