"""Path helpers: normalization, vault-relative mapping, and parent walks."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Expand ``~`` and normalize separators without touching the filesystem.

    Relative paths stay relative.
    """
    text = os.path.expanduser(os.fspath(path)).replace("\\", "/")
    if len(text) > 1:
        text = text.rstrip("/")
    return text


def resolve_path(path: str | os.PathLike[str]) -> Path:
    """Normalize and resolve a path. The result is an absolute path.

    Symlinks, ``.`` and ``..`` are resolved. Missing files are fine; errors
    from the underlying filesystem call propagate as ``OSError``.
    """
    return Path(normalize_path(path)).resolve()


def is_relative_to(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def vault_relative_path(path: str | os.PathLike[str], vault_root: str | os.PathLike[str]) -> str | None:
    """Make a path relative to the vault root, if possible.

    The path is not made absolute first: that would give the wrong answer when
    the cwd is outside the vault. When plain relativization fails (typically
    the vault root is configured behind a symlink but ``path`` is not) we look
    for the vault's directory name among the path components and keep
    everything after it.

    Args:
        path: Absolute or vault-relative path.
        vault_root: Root directory of the vault.

    Returns:
        POSIX-style relative path, or None if the path cannot be mapped.
    """
    normalized = PurePosixPath(normalize_path(path))
    if not normalized.is_absolute():
        return normalized.as_posix()

    root = PurePosixPath(normalize_path(vault_root))
    try:
        return normalized.relative_to(root).as_posix()
    except ValueError:
        pass

    # Both sides may differ only by symlinks
    try:
        return resolve_path(path).relative_to(resolve_path(vault_root)).as_posix()
    except ValueError:
        pass

    parts = normalized.parts
    if root.name and root.name in parts:
        idx = parts.index(root.name)
        rest = parts[idx + 1 :]
        if rest:
            return PurePosixPath(*rest).as_posix()

    return None


def parent_directory(path: str | os.PathLike[str]) -> Path:
    return Path(normalize_path(path)).parent


def parent_directories(path: str | os.PathLike[str]) -> list[Path]:
    """Get all parent directories of a path, nearest first.

    Stops at the filesystem root (where the parent of a directory is itself).
    """
    parents: list[Path] = []
    current = Path(normalize_path(path))
    parent = current.parent
    while parent != current:
        parents.append(parent)
        current = parent
        parent = current.parent
    return parents
