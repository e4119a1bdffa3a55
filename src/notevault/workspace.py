"""Workspaces: named vault roots with per-workspace option overrides."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_VAULT_MARKER, VaultOptions, WorkspaceSpec
from .errors import WorkspaceNotFoundError
from .paths import parent_directories, resolve_path

log = logging.getLogger(__name__)


def find_vault_root(path: Path, marker: str = DEFAULT_VAULT_MARKER) -> Path:
    """Find the vault root for a directory.

    The root is the nearest directory (``path`` itself included) holding the
    marker directory. Without a marker anywhere above, ``path`` is the root.
    """
    for candidate in [path, *parent_directories(path)]:
        if (candidate / marker).is_dir():
            return candidate
    return path


class Workspace(BaseModel):
    """An immutable snapshot of one workspace.

    Switching workspaces builds a new snapshot; operations in flight keep
    the one they captured when they started.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    root: Path
    overrides: dict[str, Any] = Field(default_factory=dict)
    locked: bool = False

    def __str__(self) -> str:
        return f"Workspace(name='{self.name}', path='{self.path}')"

    @classmethod
    def new(
        cls,
        name: str,
        path: str | Path,
        overrides: dict[str, Any] | None = None,
        marker: str = DEFAULT_VAULT_MARKER,
    ) -> Workspace:
        ws_path = resolve_path(path)
        return cls(
            name=name,
            path=ws_path,
            root=find_vault_root(ws_path, marker),
            overrides=dict(overrides or {}),
        )

    @classmethod
    def from_spec(cls, spec: WorkspaceSpec, marker: str = DEFAULT_VAULT_MARKER) -> Workspace:
        return cls.new(spec.name, spec.path, spec.overrides, marker)

    @classmethod
    def from_dir(cls, path: str | Path, marker: str = DEFAULT_VAULT_MARKER) -> Workspace:
        """An anonymous workspace for a bare directory, named after it."""
        ws_path = resolve_path(path)
        return cls.new(ws_path.name, ws_path, marker=marker)

    @classmethod
    def get_from_options(cls, options: VaultOptions, name: str | None = None) -> Workspace:
        """Pick a workspace from options: by name, else the first configured.

        Raises:
            WorkspaceNotFoundError: If ``name`` is not configured.
        """
        for spec in options.workspaces:
            if name is None or spec.name == name:
                return cls.from_spec(spec, options.vault_marker)
        raise WorkspaceNotFoundError(name or "<default>")

    @classmethod
    def get_workspace_for_dir(cls, cwd: str | Path, options: VaultOptions) -> Workspace | None:
        """The configured workspace whose root contains ``cwd``, if any."""
        cwd_path = resolve_path(cwd)
        for spec in options.workspaces:
            ws = cls.from_spec(spec, options.vault_marker)
            if cwd_path == ws.root or ws.root in cwd_path.parents:
                return ws
        return None

    def lock(self) -> Workspace:
        return self.model_copy(update={"locked": True})

    def unlock(self) -> Workspace:
        return self.model_copy(update={"locked": False})
