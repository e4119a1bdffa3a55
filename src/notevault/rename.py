"""Renaming a note and rewriting every reference to it.

The rename itself is sequential. It resolves the target, validates the new
id, then moves the file (through the editor when the note is open). The
reference rewrite afterwards is a batch: one task per file that mentions
the old note, run concurrently.

Nothing is rolled back on failure. Run with ``dry_run=True`` first to see
what would change.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from . import search
from .errors import InvalidNoteIdError, NoteNotFoundError
from .executor import AsyncExecutor, ErrorCollector, block_on
from .models import FileOperation, MatchData, RenameResult
from .note import Note
from .parser.links import parse_cursor_link, string_replace
from .paths import resolve_path

if TYPE_CHECKING:
    from .client import Client

log = logging.getLogger(__name__)


def reference_forms(ref: str) -> list[str]:
    """The textual prefixes/shapes that link to ``ref``.

    ``[[ref]]``, ``[[ref|alias]]``, ``[[ref\\|alias]]`` (inside a table) and
    ``[label](ref)``. ``[[alias]]`` links are left alone since renaming does
    not change aliases.
    """
    return [f"[[{ref}]]", f"[[{ref}|", f"[[{ref}\\|", f"]({ref})"]


def reference_pairs(old_id: str, new_id: str, old_rel_path: str | None, new_rel_path: str | None) -> list[tuple[str, str]]:
    """Old reference forms paired with their replacements.

    Forms are generated for the id, the vault-relative path, and the
    vault-relative path without ``.md``.
    """
    old_refs = [old_id]
    new_refs = [new_id]
    if old_rel_path is not None and new_rel_path is not None:
        old_refs += [old_rel_path, old_rel_path.removesuffix(".md")]
        new_refs += [new_rel_path, new_rel_path.removesuffix(".md")]

    pairs: list[tuple[str, str]] = []
    for old_ref, new_ref in zip(old_refs, new_refs):
        pairs.extend(zip(reference_forms(old_ref), reference_forms(new_ref)))
    return pairs


def parse_new_id(new_name: str, old_path: Path, vault_root: Path) -> tuple[str, Path]:
    """Split a requested name into the new id and the new file path.

    A name with directories is placed relative to the vault root; a bare
    name keeps the note in its current directory.

    Raises:
        InvalidNoteIdError: If the name has no id part.
    """
    parts = new_name.strip().split("/")
    new_id = parts[-1].removesuffix(".md")
    if not new_id:
        raise InvalidNoteIdError(f"Invalid new note ID '{new_name}'")

    if len(parts) > 1:
        new_path = vault_root.joinpath(*[p for p in parts[:-1] if p], f"{new_id}.md")
    else:
        new_path = old_path.parent / f"{new_id}.md"
    return new_id, new_path


def rewrite_references(path: Path, pairs: list[tuple[str, str]], dry_run: bool = False) -> int:
    """Apply every replacement pair, in order, to each line of a file.

    Returns:
        Number of substitutions made (or that would be made, in dry-run mode).
    """
    with open(path, encoding="utf-8", newline="") as f:
        lines = f.readlines()

    count = 0
    for idx, line in enumerate(lines):
        for old, new in pairs:
            line, n = string_replace(line, old, new)
            if n and dry_run:
                log.info(
                    "Dry run: '%s':%d Replacing %d occurrence(s) of '%s' with '%s'", path, idx + 1, n, old, new
                )
            count += n
        lines[idx] = line

    if count and not dry_run:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.writelines(lines)
    return count


class RenameEngine:
    """Rename notes for a client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def rename(
        self,
        new_name: str,
        target: str | None = None,
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> RenameResult:
        """Blocking form of ``rename_async``."""
        return block_on(lambda: self.rename_async(new_name, target, dry_run, timeout))

    async def rename_async(
        self,
        new_name: str,
        target: str | None = None,
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> RenameResult:
        """Rename a note and rewrite references to it across the vault.

        Args:
            new_name: New id, or a vault-relative path ending in the new id.
            target: Query for the note to rename. Defaults to the link under
                the editor's cursor, then to the editor's current note.
            dry_run: Log every step and count substitutions without touching
                any file.
            timeout: Bound (seconds) on the reference-rewrite phase.

        Raises:
            NoteNotFoundError: If there is nothing to rename.
            InvalidNoteIdError: If ``new_name`` has no id part.
            FileExistsError: If the destination file already exists.
            OSError: If moving the file fails.
        """
        client = self.client
        editor = client.editor
        root = client.dir
        timeout = client.opts.rename_timeout if timeout is None else timeout

        note, old_path, is_current_buf = await self._resolve_target(target)
        old_id = str(note.id)

        new_id, new_path = parse_new_id(new_name, old_path, root)
        result = RenameResult(old_id=old_id, new_id=new_id, old_path=old_path, new_path=new_path, dry_run=dry_run)

        if new_id == old_id:
            log.warning("New note ID is the same, doing nothing")
            return result

        if new_path.exists():
            raise FileExistsError(f"Cannot rename '{old_id}': {new_path} already exists")

        editor.write_all()

        self._move(old_path, new_path, is_current_buf, result)

        # Runs for the current buffer too: after save_as the buffer's content
        # lives on disk at new_path, and nothing else rewrites its id.
        result.operations.append(FileOperation(action="update_frontmatter", source=new_path))
        if dry_run:
            log.info("Dry run: updating frontmatter of '%s'", new_path)
        else:
            renamed = note.model_copy(update={"id": new_id, "path": new_path})
            if client.should_save_frontmatter(renamed):
                renamed.save()

        pairs = reference_pairs(
            old_id,
            new_id,
            client.vault_relative_path(old_path),
            client.vault_relative_path(new_path),
        )
        result.files, result.replacements, result.errors = await self._rewrite_all(root, pairs, dry_run, timeout)

        prefix = "Dry run: replaced" if dry_run else "Replaced"
        log.info("%s %d reference(s) across %d file(s)", prefix, result.replacements, result.files)

        editor.reload()
        return result

    async def _resolve_target(self, target: str | None) -> tuple[Note, Path, bool]:
        client = self.client
        editor = client.editor

        if target is None:
            line, col = editor.cursor_line(), editor.cursor_col()
            if line is not None and col is not None:
                link = parse_cursor_link(line, col)
                if link is not None:
                    target = link[0]

        if target is not None:
            note = await client.resolve_note_async(target)
            if note is None or note.path is None:
                raise NoteNotFoundError(target)
            note_path = resolve_path(note.path)
            return note, note_path, note_path == editor.current_path()

        current = editor.current_path()
        if current is None:
            raise NoteNotFoundError("<current buffer>")
        return Note.from_file(current, client.dir), resolve_path(current), True

    def _move(self, old_path: Path, new_path: Path, is_current_buf: bool, result: RenameResult) -> None:
        editor = self.client.editor
        dry_run = result.dry_run
        ops = result.operations

        if is_current_buf:
            ops.append(FileOperation(action="save_as", source=old_path, dest=new_path))
            ops.append(FileOperation(action="delete", source=old_path))
            if dry_run:
                log.info("Dry run: saving current buffer as '%s' and removing old file", new_path)
                return
            editor.save_as(new_path)
            old_path.unlink()
            return

        if old_path in editor.buffer_paths():
            ops.append(FileOperation(action="close_buffer", source=old_path))
            ops.append(FileOperation(action="move", source=old_path, dest=new_path))
            if dry_run:
                log.info("Dry run: removing buffer '%s' and renaming file to '%s'", old_path, new_path)
                return
            editor.close_buffer(old_path)
        else:
            ops.append(FileOperation(action="move", source=old_path, dest=new_path))
            if dry_run:
                log.info("Dry run: renaming file '%s' to '%s'", old_path, new_path)
                return

        new_path.parent.mkdir(parents=True, exist_ok=True)
        os.rename(old_path, new_path)

    async def _rewrite_all(
        self,
        root: Path,
        pairs: list[tuple[str, str]],
        dry_run: bool,
        timeout: float,
    ) -> tuple[int, int, int]:
        """Search the vault for old reference forms and rewrite each matching file.

        Returns:
            (files changed, substitutions, files that failed).
        """
        client = self.client
        executor = AsyncExecutor(client.opts.executor_max_workers)
        errors = ErrorCollector()
        seen: set[Path] = set()
        totals = {"files": 0, "replacements": 0}

        def on_rewritten(path: Path):
            def callback(count: int | None, error: BaseException | None) -> None:
                if error is not None:
                    errors.record(error, path)
                elif count:
                    totals["files"] += 1
                    totals["replacements"] += count

            return callback

        def on_match(match: MatchData) -> None:
            path = resolve_path(match.path)
            if path in seen:
                return
            seen.add(path)
            executor.submit(rewrite_references, path, pairs, dry_run, callback=on_rewritten(path))

        await client.backend.search_content(
            root,
            [old for old, _ in pairs],
            search.SearchOpts(fixed_strings=True, max_count_per_file=1),
            on_match,
            timeout=timeout,
        )

        if not await executor.join_async(timeout):
            log.warning("Timed out after %.1fs waiting for reference rewrites; some files may not be updated", timeout)

        errors.report(log, "rename")
        return totals["files"], totals["replacements"], errors.count
