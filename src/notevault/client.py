"""The notevault client: finding, resolving and creating notes in a vault.

Every query has an async form (``*_async``) and a blocking wrapper that runs
it with a timeout. On timeout the blocking wrapper returns an empty result
rather than partial results; use the async form to accumulate partial
results yourself.

Queries capture the vault root and options when they start, so switching
workspaces does not affect queries already in flight.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import re
import string
import time
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from . import search
from .config import (
    DEFAULT_DAILY_ALIAS_FORMAT,
    DEFAULT_DAILY_DATE_FORMAT,
    DEFAULT_DAILY_TAG,
    NEW_NOTES_LOCATIONS,
    NOTE_SUFFIX,
    ConfigurationError,
    VaultOptions,
)
from .editor import Editor, HeadlessEditor
from .errors import ParseError, WorkspaceNotFoundError
from .executor import AsyncExecutor, ErrorCollector, TaskResult, ThreadPoolExecutor, block_on
from .models import BacklinkMatch, BacklinkMatches, MatchData, ResolveLinkResult, TagLocation
from .note import Note
from .parser.links import (
    WIKI_LINK_FUNCS,
    find_tags,
    is_url,
    markdown_link,
    parse_cursor_link,
    parse_link,
    string_replace,
)
from .paths import is_relative_to, normalize_path, resolve_path, vault_relative_path
from .search import RipgrepBackend, SearchBackend, tag_search_terms
from .workspace import Workspace

log = logging.getLogger(__name__)

# Trailing "#Some Header" anchor on a link location
_HEADER_ANCHOR = re.compile(r"#[A-Za-z0-9\s_^-]+$")


class SearchOpts(BaseModel):
    """User-facing search options.

    Queries accept None, a bare bool (meaning "sort or not"), a mapping, or
    an instance; ``from_arg()`` turns any of those into an instance.
    """

    sort: bool = False
    include_templates: bool = False
    ignore_case: bool = False

    @classmethod
    def default(cls) -> SearchOpts:
        return cls()

    @classmethod
    def sorted(cls, sort: bool = True) -> SearchOpts:
        return cls(sort=sort)

    @classmethod
    def from_arg(cls, arg: SearchOpts | bool | Mapping[str, Any] | None) -> SearchOpts:
        """Normalize any accepted option shape.

        Raises:
            ConfigurationError: For any other type.
        """
        if arg is None:
            return cls.default()
        if isinstance(arg, SearchOpts):
            return arg
        if isinstance(arg, bool):
            return cls.sorted(arg)
        if isinstance(arg, Mapping):
            return cls.model_validate(dict(arg))
        raise ConfigurationError(f"unexpected type for SearchOpts: '{type(arg).__name__}'")


SearchOptsArg = SearchOpts | bool | Mapping[str, Any] | None


# ─────────────────────────────────────────────────────────────────────────────
# Ids and dates
# ─────────────────────────────────────────────────────────────────────────────


def zettel_id() -> str:
    """A Zettelkasten-style id: epoch seconds plus four random uppercase letters."""
    suffix = "".join(random.choice(string.ascii_uppercase) for _ in range(4))
    return f"{int(time.time())}-{suffix}"


def is_working_day(day: date) -> bool:
    return day.weekday() < 5


def working_day_before(day: datetime) -> datetime:
    previous = day - timedelta(days=1)
    while not is_working_day(previous):
        previous -= timedelta(days=1)
    return previous


def working_day_after(day: datetime) -> datetime:
    following = day + timedelta(days=1)
    while not is_working_day(following):
        following += timedelta(days=1)
    return following


def _unique(items: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class Client:
    """Programmatic access to a vault.

    Args:
        options: Vault options (see ``config.load_options``).
        backend: Search backend. Defaults to ripgrep.
        editor: Editor state. Defaults to a HeadlessEditor.
        workspace: Initial workspace. Defaults to the first configured one.

    Raises:
        ConfigurationError: If no workspace is configured.
    """

    def __init__(
        self,
        options: VaultOptions,
        backend: SearchBackend | None = None,
        editor: Editor | None = None,
        workspace: Workspace | None = None,
    ) -> None:
        if workspace is None and not options.workspaces:
            raise ConfigurationError("At least one workspace is required")

        self._default_opts = options
        self.editor: Editor = editor or HeadlessEditor()
        self._set_workspace(workspace or Workspace.get_from_options(options))
        self.backend: SearchBackend = backend or RipgrepBackend(self.opts.search_executable)

    def __repr__(self) -> str:
        return f"Client('{self.dir}')"

    # ─────────────────────────────────────────────────────────────────────────
    # Workspaces
    # ─────────────────────────────────────────────────────────────────────────

    def _set_workspace(self, workspace: Workspace, lock: bool = False) -> None:
        if lock:
            workspace = workspace.lock()
        self.workspace = workspace
        self.dir = workspace.root
        self.opts = self.opts_for_workspace(workspace)

        self.dir.mkdir(parents=True, exist_ok=True)
        if self.opts.notes_subdir:
            (self.dir / self.opts.notes_subdir).mkdir(parents=True, exist_ok=True)
        if self.opts.daily_notes.folder:
            (self.dir / self.opts.daily_notes.folder).mkdir(parents=True, exist_ok=True)

    def opts_for_workspace(self, workspace: Workspace | None = None) -> VaultOptions:
        if workspace is None:
            return self.opts
        return self._default_opts.merged(workspace.overrides)

    def switch_workspace(self, workspace: Workspace | str, lock: bool = False) -> Workspace:
        """Make another workspace current.

        Callers must not switch while queries against the previous workspace
        are still running if they expect those to see the new root.

        Raises:
            WorkspaceNotFoundError: If a name is given that is not configured.
        """
        if isinstance(workspace, str):
            if workspace == self.workspace.name:
                log.info("Already in workspace '%s' @ '%s'", workspace, self.workspace.path)
                return self.workspace
            for spec in self._default_opts.workspaces:
                if spec.name == workspace:
                    return self.switch_workspace(Workspace.from_spec(spec, self._default_opts.vault_marker), lock)
            raise WorkspaceNotFoundError(workspace)

        if workspace == self.workspace:
            log.info("Already in workspace '%s' @ '%s'", workspace.name, workspace.path)
            return self.workspace

        log.info("Switching to workspace '%s' @ '%s'", workspace.name, workspace.path)
        self._set_workspace(workspace, lock)
        return self.workspace

    def auto_switch_workspace(self, path: str | Path) -> bool:
        """Switch to the configured workspace containing ``path``, unless locked.

        Returns:
            True if the current workspace changed.
        """
        if self.workspace.locked:
            return False
        path = resolve_path(path)
        if is_relative_to(path, self.dir):
            return False
        ws = Workspace.get_workspace_for_dir(path if path.is_dir() else path.parent, self._default_opts)
        if ws is None or ws.root == self.dir:
            return False
        self.switch_workspace(ws)
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Vault layout
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def buf_dir(self) -> Path | None:
        """Directory of the editor's current file, if there is one."""
        current = self.editor.current_path()
        return current.parent if current is not None else None

    def vault_name(self) -> str:
        return self.dir.name

    def vault_relative_path(self, path: str | os.PathLike[str]) -> str | None:
        return vault_relative_path(path, self.dir)

    def templates_dir(self, workspace: Workspace | None = None) -> Path | None:
        opts = self.opts_for_workspace(workspace) if workspace and workspace != self.workspace else self.opts
        if opts.templates is None or not opts.templates.subdir:
            return None
        root = workspace.root if workspace is not None else self.dir
        templates_dir = root / opts.templates.subdir
        if not templates_dir.is_dir():
            log.error("'%s' is not a valid directory for templates", templates_dir)
            return None
        return templates_dir

    def path_is_note(self, path: str | Path, workspace: Workspace | None = None) -> bool:
        """Markdown files are notes, except those in the templates folder."""
        path = resolve_path(path)
        if path.suffix != NOTE_SUFFIX:
            return False
        templates_dir = self.templates_dir(workspace)
        if templates_dir is not None and is_relative_to(path, resolve_path(templates_dir)):
            return False
        return True

    def should_save_frontmatter(self, note: Note) -> bool:
        if not note.should_save_frontmatter():
            return False
        return not self.opts.disable_frontmatter

    def iter_note_paths(self) -> list[Path]:
        """Every note in the vault, skipping hidden directories and templates."""
        templates_dir = self.templates_dir()
        templates_dir = resolve_path(templates_dir) if templates_dir is not None else None

        paths: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(self.dir):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames if not d.startswith(".") and resolve_path(current / d) != templates_dir
            )
            for filename in sorted(filenames):
                if filename.endswith(NOTE_SUFFIX) and not filename.startswith("."):
                    paths.append(current / filename)
        return paths

    # ─────────────────────────────────────────────────────────────────────────
    # Search plumbing
    # ─────────────────────────────────────────────────────────────────────────

    def _prepare_search_opts(
        self,
        opts: SearchOptsArg = None,
        additional: search.SearchOpts | None = None,
    ) -> search.SearchOpts:
        opts = SearchOpts.from_arg(opts)

        fields: dict[str, Any] = {}
        if opts.sort:
            fields["sort_by"] = self.opts.sort_by
            fields["sort_reversed"] = self.opts.sort_reversed
        if opts.ignore_case:
            fields["ignore_case"] = True
        search_opts = search.SearchOpts.model_validate(fields)

        if not opts.include_templates and self.opts.templates is not None and self.opts.templates.subdir:
            search_opts.add_exclude(self.opts.templates.subdir)

        if additional is not None:
            search_opts = search_opts.merge(additional)
        return search_opts

    async def _search_paths(
        self,
        term: str,
        search_opts: SearchOptsArg = None,
        find_opts: SearchOptsArg = None,
    ) -> AsyncIterator[Path]:
        """Stream unique absolute paths matching ``term`` by content or by file name.

        Both searches run concurrently and feed one queue, so the output is a
        set union with no defined order between the two sources.
        """
        root = self.dir
        queue: asyncio.Queue[Path | None] = asyncio.Queue()
        seen: set[Path] = set()

        def push(raw_path: str) -> None:
            path = resolve_path(raw_path)
            if path not in seen:
                seen.add(path)
                queue.put_nowait(path)

        async def produce(start: Callable[[], Any]) -> None:
            try:
                await start()
            finally:
                queue.put_nowait(None)

        content_opts = self._prepare_search_opts(
            search_opts, search.SearchOpts(fixed_strings=True, max_count_per_file=1)
        )
        name_opts = self._prepare_search_opts(find_opts)

        producers = [
            asyncio.create_task(
                produce(lambda: self.backend.search_content(root, term, content_opts, lambda m: push(m.path)))
            ),
            asyncio.create_task(produce(lambda: self.backend.find_paths(root, term, name_opts, push))),
        ]
        remaining = len(producers)

        try:
            while remaining:
                path = await queue.get()
                if path is None:
                    remaining -= 1
                    continue
                yield path
            # Surfaces a backend launch failure from either producer
            await asyncio.gather(*producers)
        finally:
            pending = [p for p in producers if not p.done()]
            for producer in pending:
                producer.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def _block(self, fn: Callable[[], Any], timeout: float | None) -> Any:
        return block_on(fn, self.opts.search_timeout if timeout is None else timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Finding notes
    # ─────────────────────────────────────────────────────────────────────────

    async def find_notes_async(self, term: str, opts: SearchOptsArg = None) -> list[Note]:
        """Find notes whose content or file name contains ``term``.

        Notes that fail to load are left out and reported in one warning.
        """
        root = self.dir
        errors = ErrorCollector()
        executor = AsyncExecutor(self.opts.executor_max_workers)

        def load(path: Path) -> Note | None:
            try:
                return Note.from_file(path, root)
            except ParseError as e:
                errors.record(e, path)
                return None

        results = await executor.map(load, self._search_paths(term, opts, opts))
        errors.report(log, "search")
        return [r.value for r in results if r.value is not None]

    def find_notes(self, term: str, opts: SearchOptsArg = None, timeout: float | None = None) -> list[Note]:
        return self._block(lambda: self.find_notes_async(term, opts), timeout) or []

    async def find_files_async(self, term: str, opts: SearchOptsArg = None) -> list[Path]:
        """Find non-markdown files (attachments, images) by name."""
        find_opts = self._prepare_search_opts(opts)
        find_opts.add_exclude(f"*{NOTE_SUFFIX}")
        find_opts.include_non_markdown = True

        matches: list[Path] = []
        await self.backend.find_paths(self.dir, term, find_opts, lambda p: matches.append(resolve_path(p)))
        return matches

    def find_files(self, term: str, opts: SearchOptsArg = None, timeout: float | None = None) -> list[Path]:
        return self._block(lambda: self.find_files_async(term, opts), timeout) or []

    # ─────────────────────────────────────────────────────────────────────────
    # Resolving
    # ─────────────────────────────────────────────────────────────────────────

    async def resolve_note_async(self, query: str) -> Note | None:
        """Resolve a path, file name, id, alias or title to a single note.

        Resolution order:
        1. Picker completions ("<display>  <relative path>") load that path
           when it names an existing file.
        2. An existing file named by the query (``.md`` optional), checked
           as given, under the vault root, the notes subdir, the daily notes
           folder, and the current buffer's directory.
        3. A note whose id, display name or an alias equals the query.
        4. The first note (in search order) with a case-insensitive alias match.

        Returns:
            The note, or None if nothing matched.

        Raises:
            ParseError: If a file matched in steps 1-2 cannot be loaded.
        """
        root = self.dir
        opts = self.opts

        query = query.strip()
        if not query:
            return None

        if "  " in query:
            completion_path = root / query.rsplit("  ", 1)[1]
            if completion_path.is_file():
                return await Note.from_file_async(completion_path, root)

        fname = query if query.endswith(NOTE_SUFFIX) else f"{query}{NOTE_SUFFIX}"
        candidates = [Path(normalize_path(fname)), root / fname]
        if opts.notes_subdir:
            candidates.append(root / opts.notes_subdir / fname)
        if opts.daily_notes.folder:
            candidates.append(root / opts.daily_notes.folder / fname)
        buf_dir = self.buf_dir
        if buf_dir is not None:
            candidates.append(buf_dir / fname)

        for candidate in candidates:
            if candidate.is_file():
                return await Note.from_file_async(candidate, root)

        notes = await self.find_notes_async(query, SearchOpts(ignore_case=True))

        query_lower = query.lower()
        maybe_matches: list[Note] = []
        for note in notes:
            if query == str(note.id) or query == note.display_name() or query in note.aliases:
                return note
            if any(alias.lower() == query_lower for alias in note.aliases):
                maybe_matches.append(note)

        return maybe_matches[0] if maybe_matches else None

    def resolve_note(self, query: str, timeout: float | None = None) -> Note | None:
        return self._block(lambda: self.resolve_note_async(query), timeout)

    async def resolve_link_async(self, link: str | None = None) -> ResolveLinkResult | None:
        """Resolve a link to a URL, a note, or an existing file.

        With no ``link``, the link under the editor's cursor is used.

        Returns:
            ResolveLinkResult, or None if there is no link to resolve.
        """
        if link is not None:
            parsed = parse_link(link, include_naked_urls=True, include_file_urls=True)
        else:
            line, col = self.editor.cursor_line(), self.editor.cursor_col()
            if line is None or col is None:
                return None
            parsed = parse_cursor_link(line, col, include_naked_urls=True, include_file_urls=True)

        if parsed is None:
            return None
        location, name, link_type = parsed

        if is_url(location):
            return ResolveLinkResult(location=location, name=name, link_type=link_type, url=location)

        # Spaces in links may be URL-encoded
        location, _ = string_replace(location, "%20", " ")
        anchor = _HEADER_ANCHOR.search(location)
        if anchor is not None:
            location = location[: anchor.start()]

        result = ResolveLinkResult(location=location, name=name, link_type=link_type)
        if not location:
            return result

        note = await self.resolve_note_async(location)
        if note is not None:
            result.note = note
            result.path = note.path
        elif Path(location).exists():
            result.path = Path(location)
        return result

    def resolve_link(self, link: str | None = None, timeout: float | None = None) -> ResolveLinkResult | None:
        return self._block(lambda: self.resolve_link_async(link), timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Tags and backlinks
    # ─────────────────────────────────────────────────────────────────────────

    async def _collect_matches(
        self,
        patterns: list[str],
        search_opts: search.SearchOpts,
        executor: AsyncExecutor,
    ) -> tuple[dict[Path, list[MatchData]], dict[Path, TaskResult]]:
        """Run a content search, loading each matching note once while it streams.

        Returns:
            Matches grouped by path (in first-seen order) and each path's load result.
        """
        root = self.dir
        matches: dict[Path, list[MatchData]] = {}
        loaders: dict[Path, asyncio.Task[TaskResult]] = {}

        def on_match(match: MatchData) -> None:
            path = resolve_path(match.path)
            if path not in matches:
                matches[path] = []
                loaders[path] = executor.submit(Note.from_file, path, root)
            matches[path].append(match)

        await self.backend.search_content(root, patterns, search_opts, on_match)
        results = await asyncio.gather(*loaders.values())
        return matches, dict(zip(loaders, results))

    async def find_tags_async(self, term: str | Sequence[str], opts: SearchOptsArg = None) -> list[TagLocation]:
        """Find every occurrence of tags containing any of the terms.

        An empty term matches all tags. Results are grouped by file in the
        order files were first reported, then sorted by line within a file.
        """
        terms = [term] if isinstance(term, str) else list(term)
        terms = _unique([t[1:] if t.startswith("#") else t for t in terms]) or [""]
        terms_lower = [t.lower() for t in terms]

        def wanted(tag: str) -> bool:
            tag = tag.lower()
            return any(not t or t in tag for t in terms_lower)

        errors = ErrorCollector()
        executor = AsyncExecutor(self.opts.executor_max_workers)
        matches, loaded = await self._collect_matches(
            tag_search_terms(terms),
            self._prepare_search_opts(opts, search.SearchOpts(ignore_case=True)),
            executor,
        )

        tag_locations: list[TagLocation] = []
        for path, path_matches in matches.items():
            result = loaded[path]
            if result.error is not None:
                errors.record(result.error, path)
                continue
            note: Note = result.value

            found: list[TagLocation] = []
            for match in path_matches:
                text = match.text.strip()

                for start, end, _ in find_tags(text):
                    tag = text[start:end]
                    if wanted(tag):
                        found.append(
                            TagLocation(
                                tag=tag,
                                note=note,
                                path=path,
                                line=match.line_number,
                                text=text,
                                tag_start=start,
                                tag_end=end,
                            )
                        )

                in_frontmatter = note.frontmatter_end_line is not None and match.line_number < note.frontmatter_end_line
                if not in_frontmatter or not note.tags:
                    continue
                if text.startswith("tags:"):
                    frontmatter_tags = [t for t in note.tags if t in text]
                elif text.startswith("- "):
                    item = text[2:].strip().strip("'\"")
                    frontmatter_tags = [item] if item in note.tags else []
                else:
                    frontmatter_tags = []
                for tag in frontmatter_tags:
                    if wanted(tag):
                        found.append(TagLocation(tag=tag, note=note, path=path, line=match.line_number, text=text))

            found.sort(key=lambda loc: loc.line)
            tag_locations.extend(found)

        errors.report(log, "search")
        return tag_locations

    def find_tags(
        self,
        term: str | Sequence[str],
        opts: SearchOptsArg = None,
        timeout: float | None = None,
    ) -> list[TagLocation]:
        return self._block(lambda: self.find_tags_async(term, opts), timeout) or []

    async def list_tags_async(self, term: str | None = None) -> list[str]:
        locations = await self.find_tags_async(term or "")
        return sorted({loc.tag for loc in locations})

    def list_tags(self, term: str | None = None, timeout: float | None = None) -> list[str]:
        """All distinct tags in the vault, optionally only those containing ``term``."""
        return self._block(lambda: self.list_tags_async(term), timeout) or []

    async def find_backlinks_async(self, note: Note, opts: SearchOptsArg = None) -> list[BacklinkMatches]:
        """Find links to ``note`` by id, file name, or alias. One entry per linking file."""
        patterns: list[str] = []
        for ref in (str(note.id), note.fname()):
            if ref:
                patterns.extend([f"[[{ref}]]", f"[[{ref}|", f"({ref})"])
        patterns.extend(f"[[{alias}]]" for alias in note.aliases)

        errors = ErrorCollector()
        executor = AsyncExecutor(self.opts.executor_max_workers)
        matches, loaded = await self._collect_matches(
            _unique(patterns),
            self._prepare_search_opts(opts, search.SearchOpts(fixed_strings=True)),
            executor,
        )

        backlinks: list[BacklinkMatches] = []
        for path, path_matches in matches.items():
            result = loaded[path]
            if result.error is not None:
                errors.record(result.error, path)
                continue
            backlinks.append(
                BacklinkMatches(
                    note=result.value,
                    path=path,
                    matches=[BacklinkMatch(line=m.line_number, text=m.text.rstrip()) for m in path_matches],
                )
            )

        errors.report(log, "search")
        return backlinks

    def find_backlinks(
        self,
        note: Note,
        opts: SearchOptsArg = None,
        timeout: float | None = None,
    ) -> list[BacklinkMatches]:
        return self._block(lambda: self.find_backlinks_async(note, opts), timeout) or []

    # ─────────────────────────────────────────────────────────────────────────
    # Whole-vault traversal
    # ─────────────────────────────────────────────────────────────────────────

    async def apply_async(self, on_note: Callable[[Note], Any]) -> int:
        """Load every note in the vault and pass it to ``on_note``.

        Returns:
            Number of notes visited. Notes that fail to load are skipped with a warning.
        """
        root = self.dir
        executor = AsyncExecutor(self.opts.executor_max_workers)
        results = await executor.map(lambda path: Note.from_file(path, root), self.iter_note_paths())

        visited = 0
        for result in results:
            if result.error is not None:
                log.warning("Failed to load note: %s", result.error)
                continue
            on_note(result.value)
            visited += 1
        return visited

    def apply(self, on_note: Callable[[Note], Any], timeout: float | None = None) -> bool:
        """Blocking counterpart of ``apply_async``.

        ``on_note`` runs in worker threads, so it must be thread-safe.

        Returns:
            True if every note was processed before ``timeout``.
        """
        root = self.dir

        def visit(path: Path) -> None:
            try:
                note = Note.from_file(path, root)
            except ParseError as e:
                log.warning("Failed to load note at '%s': %s", path, e.reason)
                return
            on_note(note)

        with ThreadPoolExecutor(self.opts.executor_max_workers) as executor:
            for path in self.iter_note_paths():
                executor.submit(visit, path)
            return executor.join(timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Creating notes
    # ─────────────────────────────────────────────────────────────────────────

    def new_note_id(self, title: str | None = None) -> str:
        if self.opts.note_id_func is not None:
            return self.opts.note_id_func(title).removesuffix(NOTE_SUFFIX)
        return zettel_id()

    def parse_title_id_path(
        self,
        title: str | None = None,
        id: str | None = None,
        dir: str | Path | None = None,
    ) -> tuple[str | None, str, Path]:
        """Work out the title, id and path of a new note.

        A title or id containing ``/`` (or ending in ``.md``) is treated as a
        vault-relative path. Without a directory, ``new_notes_location``
        decides where the note goes.

        Raises:
            ConfigurationError: If ``new_notes_location`` is not a known value.
        """
        title = _strip_or_none(title)
        id = _strip_or_none(id)

        def parse_as_path(s: str, strict_paths_only: bool) -> tuple[str | None, bool, str | None]:
            is_path = False
            parent = None
            if s.endswith(NOTE_SUFFIX):
                s = s[: -len(NOTE_SUFFIX)]
                is_path = True
            parts = s.split("/")
            if len(parts) > 1:
                s = parts[-1]
                if not strict_paths_only:
                    is_path = True
                parent = "/".join(parts[:-1])
            return (s or None), is_path, parent

        parent = None
        if id:
            id, _, parent = parse_as_path(id, False)
        elif title:
            title, title_is_path, parent = parse_as_path(title, True)
            if title_is_path:
                id = title

        if parent:
            base_dir = self.dir / parent
        elif dir is not None:
            base_dir = Path(dir)
        else:
            location = self.opts.new_notes_location
            if location not in NEW_NOTES_LOCATIONS:
                raise ConfigurationError(f"Bad option value for 'new_notes_location': '{location}'")
            if location == "notes_subdir":
                base_dir = self.dir / self.opts.notes_subdir if self.opts.notes_subdir else self.dir
            else:
                base_dir = self.buf_dir or self.dir

        if not id:
            id = self.new_note_id(title)

        return title, id, base_dir / f"{id}{NOTE_SUFFIX}"

    def new_note(
        self,
        title: str | None = None,
        id: str | None = None,
        dir: str | Path | None = None,
        aliases: Sequence[str] | None = None,
    ) -> Note:
        """Create and save a new note. The title becomes an alias."""
        new_title, new_id, path = self.parse_title_id_path(title, id, dir)

        today_id = datetime.now().strftime(self.opts.daily_notes.date_format or DEFAULT_DAILY_DATE_FORMAT)
        if new_id == today_id:
            return self.today()

        note_aliases = list(aliases or [])
        if new_title and new_title not in note_aliases:
            note_aliases.append(new_title)

        note = Note.new(new_id, note_aliases, [], path)
        frontmatter = self.opts.note_frontmatter_func(note) if self.opts.note_frontmatter_func else None
        note.save(insert_frontmatter=self.should_save_frontmatter(note), frontmatter=frontmatter)

        log.info("Created note %s at %s", note.id, self.vault_relative_path(path) or path)
        return note

    def daily_note_path(self, dt: datetime | None = None) -> tuple[Path, str]:
        """Path and id of the daily note for ``dt`` (default: now)."""
        dt = dt or datetime.now()
        folder = self.opts.daily_notes.folder or self.opts.notes_subdir
        base = self.dir / folder if folder else self.dir
        note_id = dt.strftime(self.opts.daily_notes.date_format or DEFAULT_DAILY_DATE_FORMAT)
        return base / f"{note_id}{NOTE_SUFFIX}", note_id

    def _daily(self, dt: datetime) -> Note:
        from .templates import clone_template

        path, note_id = self.daily_note_path(dt)
        alias = dt.strftime(self.opts.daily_notes.alias_format or DEFAULT_DAILY_ALIAS_FORMAT)

        note = Note.new(note_id, [alias], [DEFAULT_DAILY_TAG], path)
        if note.exists():
            return Note.from_file(path, self.dir)

        write_frontmatter = True
        if self.opts.daily_notes.template:
            clone_template(self.opts.daily_notes.template, path, self, note.display_name())
            note = Note.from_file(path, self.dir)
            write_frontmatter = not note.has_frontmatter

        if write_frontmatter:
            frontmatter = self.opts.note_frontmatter_func(note) if self.opts.note_frontmatter_func else None
            note.save(insert_frontmatter=self.should_save_frontmatter(note), frontmatter=frontmatter)

        log.info("Created note %s at %s", note.id, self.vault_relative_path(path) or path)
        return note

    def daily(self, offset_days: int = 0) -> Note:
        """Open (creating if needed) the daily note ``offset_days`` from today."""
        return self._daily(datetime.now() + timedelta(days=offset_days))

    def today(self) -> Note:
        return self._daily(datetime.now())

    def yesterday(self) -> Note:
        """The daily note for the previous working day."""
        return self._daily(working_day_before(datetime.now()))

    def tomorrow(self) -> Note:
        """The daily note for the next working day."""
        return self._daily(working_day_after(datetime.now()))

    # ─────────────────────────────────────────────────────────────────────────
    # Links
    # ─────────────────────────────────────────────────────────────────────────

    def format_link(
        self,
        note: Note | str | Path,
        label: str | None = None,
        link_style: str | None = None,
        id: str | None = None,
    ) -> str:
        """Format a wiki or markdown link to a note (or a vault path).

        Raises:
            ValueError: If the target is outside the vault.
            ConfigurationError: For an unknown link style.
        """
        if isinstance(note, Note):
            if note.path is None:
                raise ValueError(f"{note} has no path")
            rel_path = self.vault_relative_path(note.path)
            label = label or note.display_name()
            note_id = str(note.id)
        else:
            rel_path = self.vault_relative_path(note)
            label = label or str(note)
            note_id = id
        if rel_path is None:
            raise ValueError(f"'{note}' is not inside the vault")

        style = link_style or self.opts.preferred_link_style
        if style == "markdown":
            return markdown_link(rel_path, label, note_id)
        if style == "wiki":
            return WIKI_LINK_FUNCS[self.opts.wiki_link_style](rel_path, label, note_id)
        raise ConfigurationError(f"Invalid link style '{style}'")
