"""The editor seam.

The core only needs a handful of things from whatever is hosting it: which
file is current, which files are open, where the cursor is, and a way to
save or close buffers around a rename. ``HeadlessEditor`` is the stand-in
used by the CLI and tests, where every buffer is simply a file on disk.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol

from .paths import resolve_path

log = logging.getLogger(__name__)


class Editor(Protocol):
    """What the client and rename engine need from an editor."""

    def write_all(self) -> None:
        """Persist every modified buffer."""
        ...

    def current_path(self) -> Path | None: ...

    def buffer_paths(self) -> list[Path]: ...

    def save_as(self, path: Path) -> None:
        """Save the current buffer to ``path`` and make that the current file."""
        ...

    def close_buffer(self, path: Path) -> None: ...

    def reload(self) -> None:
        """Pick up changes made to open files on disk."""
        ...

    def cursor_line(self) -> str | None: ...

    def cursor_col(self) -> int | None:
        """1-indexed column of the cursor within ``cursor_line()``."""
        ...


class HeadlessEditor:
    """An editor with no unsaved state.

    Args:
        current: The file treated as the current buffer, if any.
        cursor: 1-indexed (line, column) of the cursor in ``current``.
        open_paths: Other files treated as open buffers.
    """

    def __init__(
        self,
        current: str | Path | None = None,
        cursor: tuple[int, int] | None = None,
        open_paths: list[str | Path] | None = None,
    ) -> None:
        self._current = resolve_path(current) if current is not None else None
        self._cursor = cursor
        self._open = [resolve_path(p) for p in open_paths or []]
        if self._current is not None and self._current not in self._open:
            self._open.insert(0, self._current)

    def write_all(self) -> None:
        pass

    def current_path(self) -> Path | None:
        return self._current

    def buffer_paths(self) -> list[Path]:
        return list(self._open)

    def save_as(self, path: Path) -> None:
        if self._current is None:
            raise RuntimeError("No current buffer to save")
        path = resolve_path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self._current, path)
        self._open = [path if p == self._current else p for p in self._open]
        self._current = path

    def close_buffer(self, path: Path) -> None:
        path = resolve_path(path)
        self._open = [p for p in self._open if p != path]
        if self._current == path:
            self._current = None
            self._cursor = None

    def reload(self) -> None:
        pass

    def cursor_line(self) -> str | None:
        if self._current is None or self._cursor is None:
            return None
        lnum = self._cursor[0]
        try:
            lines = self._current.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            log.debug("Cannot read current buffer %s: %s", self._current, e)
            return None
        if 1 <= lnum <= len(lines):
            return lines[lnum - 1]
        return None

    def cursor_col(self) -> int | None:
        return self._cursor[1] if self._cursor is not None else None
