"""Pydantic models for query results."""

from pathlib import Path

from pydantic import BaseModel, Field

from .note import Note
from .parser.links import RefTypes


class SubMatch(BaseModel):
    """The span of one pattern match within a line (0-indexed byte offsets)."""

    match: str
    start: int
    end: int


class MatchData(BaseModel):
    """One matching line reported by the search backend."""

    path: str  # As printed by the backend (absolute when the search root is)
    line_number: int  # 1-indexed
    text: str  # Raw line text, trailing newline removed
    absolute_offset: int | None = None
    submatches: list[SubMatch] = Field(default_factory=list)


class TagLocation(BaseModel):
    """An occurrence of a tag in a note."""

    tag: str
    note: Note
    path: Path
    line: int  # 1-indexed
    text: str  # Stripped line text
    tag_start: int | None = None  # 1-indexed inclusive column of the tag within text
    tag_end: int | None = None


class BacklinkMatch(BaseModel):
    line: int
    text: str


class BacklinkMatches(BaseModel):
    """All backlinks to a note found in a single file."""

    note: Note
    path: Path
    matches: list[BacklinkMatch] = Field(default_factory=list)


class ResolveLinkResult(BaseModel):
    """A link resolved to what it points at.

    ``url`` is set for URLs. A link to a note sets both ``note`` and
    ``path``; a link to some other existing file sets only ``path``. When
    none is set, the link points at something that does not exist (yet).
    """

    location: str
    name: str
    link_type: RefTypes
    path: Path | None = None
    note: Note | None = None
    url: str | None = None


class FileOperation(BaseModel):
    """A file-level step of a rename (performed, or planned in dry-run mode)."""

    action: str  # 'save_as' | 'delete' | 'move' | 'update_frontmatter' | 'close_buffer'
    source: Path
    dest: Path | None = None


class RenameResult(BaseModel):
    """Outcome of a rename."""

    old_id: str
    new_id: str
    old_path: Path
    new_path: Path
    files: int = 0  # Files containing at least one rewritten reference
    replacements: int = 0
    dry_run: bool = False
    operations: list[FileOperation] = Field(default_factory=list)
    errors: int = 0
