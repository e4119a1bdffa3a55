"""The Note model: a markdown file with an id, aliases, tags, and frontmatter."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from . import frontmatter as fm
from .errors import ParseError

log = logging.getLogger(__name__)

# Frontmatter keys modelled as Note fields rather than kept in `metadata`
_RESERVED_KEYS = ("id", "aliases", "tags")


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


class Note(BaseModel):
    """A single note.

    Notes are plain values: concurrent loads of the same file produce
    independent instances.
    """

    id: str | int
    aliases: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    path: Path | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    title: str | None = None
    has_frontmatter: bool = False
    frontmatter_end_line: int | None = None

    def __str__(self) -> str:
        return f"Note('{self.id}')"

    @classmethod
    def new(
        cls,
        id: str | int,
        aliases: Sequence[str] | None = None,
        tags: Sequence[str] | None = None,
        path: str | Path | None = None,
    ) -> Note:
        """Create a new, unsaved note."""
        return cls(
            id=id,
            aliases=list(aliases or []),
            tags=list(tags or []),
            path=Path(path) if path is not None else None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Accessors
    # ─────────────────────────────────────────────────────────────────────────

    def display_name(self) -> str:
        """Title if there is one, else the first alias, else the id."""
        if self.title:
            return self.title
        if self.aliases:
            return self.aliases[0]
        return str(self.id)

    def fname(self) -> str | None:
        return self.path.name if self.path is not None else None

    def exists(self) -> bool:
        return self.path is not None and self.path.is_file()

    def add_alias(self, alias: str) -> None:
        if alias not in self.aliases:
            self.aliases.append(alias)

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def add_field(self, key: str, value: Any) -> None:
        if key in _RESERVED_KEYS:
            raise ValueError(f"'{key}' is managed by the note itself; use the matching setter")
        self.metadata[key] = value

    def get_field(self, key: str) -> Any:
        return self.metadata.get(key)

    def should_save_frontmatter(self) -> bool:
        return self.metadata.get("notevault_managed", True) is not False

    def frontmatter(self) -> dict[str, Any]:
        """The mapping that ``save()`` writes as frontmatter."""
        data: dict[str, Any] = {"id": self.id, "aliases": list(self.aliases), "tags": list(self.tags)}
        data.update(self.metadata)
        return data

    # ─────────────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def from_lines(cls, lines: Sequence[str], path: str | Path) -> Note:
        """Build a note from the lines of its file.

        Raises:
            ParseError: If the frontmatter is malformed.
        """
        path = Path(path)
        try:
            block = fm.parse_lines(lines)
        except ValueError as e:
            raise ParseError(path, str(e)) from e

        data = dict(block.data)
        note_id = data.pop("id", None)
        if note_id is None or note_id == "":
            note_id = path.stem
        elif not isinstance(note_id, (str, int)) or isinstance(note_id, bool):
            note_id = str(note_id)

        aliases = _as_str_list(data.pop("aliases", None))
        tags = _as_str_list(data.pop("tags", None))

        body_start = block.end_line or 0
        title = None
        for line in lines[body_start:]:
            stripped = line.strip()
            if stripped.startswith("# "):
                title = stripped[2:].strip() or None
                break

        return cls(
            id=note_id,
            aliases=aliases,
            tags=tags,
            path=path,
            metadata=data,
            title=title,
            has_frontmatter=block.present,
            frontmatter_end_line=block.end_line,
        )

    @classmethod
    def from_file(cls, path: str | Path, root: str | Path | None = None) -> Note:
        """Load a note from a file.

        Args:
            path: Absolute path, or a path relative to ``root``.
            root: Vault root used to resolve relative paths.

        Raises:
            ParseError: On I/O failure or malformed frontmatter.
        """
        path = Path(path)
        if root is not None and not path.is_absolute():
            path = Path(root) / path

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(path, f"Failed to read note: {e}") from e

        return cls.from_lines(text.splitlines(), path)

    @classmethod
    async def from_file_async(cls, path: str | Path, root: str | Path | None = None) -> Note:
        return await asyncio.to_thread(cls.from_file, path, root)

    # ─────────────────────────────────────────────────────────────────────────
    # Saving
    # ─────────────────────────────────────────────────────────────────────────

    def frontmatter_lines(self, frontmatter: dict[str, Any] | None = None) -> list[str]:
        data = frontmatter if frontmatter is not None else self.frontmatter()
        return fm.dump(data)

    def save(
        self,
        path: str | Path | None = None,
        insert_frontmatter: bool = True,
        frontmatter: dict[str, Any] | None = None,
    ) -> None:
        """Write the note's frontmatter to disk.

        Only the frontmatter block is replaced; the body of an existing file is
        left untouched. A new file gets the frontmatter and a ``# title`` header.

        Args:
            path: Destination. Defaults to ``self.path``.
            insert_frontmatter: Write (or keep) a frontmatter block.
            frontmatter: Mapping to write instead of ``self.frontmatter()``.
        """
        save_path = Path(path) if path is not None else self.path
        if save_path is None:
            raise ValueError("A path must be provided or set on the note before saving")

        new_lines = self.frontmatter_lines(frontmatter) if insert_frontmatter else []

        if save_path.is_file():
            lines = save_path.read_text(encoding="utf-8").splitlines()
            try:
                block = fm.parse_lines(lines)
            except ValueError:
                log.warning("Replacing unparseable frontmatter in %s", save_path)
                block = fm.FrontmatterBlock({}, self.frontmatter_end_line, True)
            body = lines[block.end_line :] if block.present and block.end_line else lines
        else:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            header = self.title or (self.aliases[0] if self.aliases else None)
            body = [f"# {header}"] if header else []
            if new_lines and body:
                body.insert(0, "")

        save_path.write_text("\n".join([*new_lines, *body]) + "\n", encoding="utf-8")

        self.path = save_path
        self.has_frontmatter = bool(new_lines)
        self.frontmatter_end_line = len(new_lines) if new_lines else None
