"""Streaming search over a vault, backed by ripgrep.

Two primitives, both coroutines that stream results through callbacks:

- ``search_content``: per-line matches for any of several patterns.
- ``find_paths``: file paths whose name matches a term.

Both take a timeout. When it expires the ripgrep process is terminated and
``on_done`` still runs, so callers waiting on it never hang.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
import shlex
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from .config import SEARCH_TERMINATE_GRACE
from .errors import SearchBackendError
from .models import MatchData, SubMatch
from .parser.links import TAG_CHARS_OPTIONAL, TAG_CHARS_REQUIRED

log = logging.getLogger(__name__)

# Maximum length of a single output line from the search process.
# Matches on minified or generated markdown can be long.
STREAM_LINE_LIMIT = 2**20

OnDone = Callable[[int | None], None]


class SortBy(str, Enum):
    PATH = "path"
    MODIFIED = "modified"
    ACCESSED = "accessed"
    CREATED = "created"


class SearchOpts(BaseModel):
    """Low-level search knobs, translated directly into ripgrep flags.

    ``None`` means "not set", which matters for ``merge()``.
    """

    sort_by: SortBy | None = None
    sort_reversed: bool | None = None
    fixed_strings: bool | None = None
    ignore_case: bool | None = None
    smart_case: bool | None = None
    exclude: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    max_count_per_file: int | None = None
    include_non_markdown: bool | None = None

    def merge(self, other: SearchOpts) -> SearchOpts:
        """Combine two option sets. Fields set on ``other`` win; globs accumulate."""
        data = self.model_dump()
        for name in type(self).model_fields:
            value = getattr(other, name)
            if name in ("exclude", "include"):
                data[name] = list(dict.fromkeys([*data[name], *value]))
            elif value is not None:
                data[name] = value
        return SearchOpts.model_validate(data)

    def add_exclude(self, pattern: str) -> None:
        if pattern not in self.exclude:
            self.exclude.append(pattern)

    def add_include(self, pattern: str) -> None:
        if pattern not in self.include:
            self.include.append(pattern)

    def to_ripgrep_opts(self) -> list[str]:
        opts: list[str] = []
        if self.sort_by is not None:
            flag = "--sort" if self.sort_reversed is False else "--sortr"
            opts.append(f"{flag}={self.sort_by.value}")
        if self.fixed_strings:
            opts.append("--fixed-strings")
        if self.ignore_case:
            opts.append("--ignore-case")
        if self.smart_case:
            opts.append("--smart-case")
        for pattern in self.exclude:
            opts.extend(["-g", f"!{pattern}"])
        for pattern in self.include:
            opts.extend(["-g", pattern])
        if self.max_count_per_file is not None:
            opts.append(f"--max-count={self.max_count_per_file}")
        return opts


# ─────────────────────────────────────────────────────────────────────────────
# Command building and output parsing
# ─────────────────────────────────────────────────────────────────────────────


def build_search_cmd(
    root: str | Path,
    patterns: str | Sequence[str],
    opts: SearchOpts,
    executable: str = "rg",
) -> list[str]:
    """Build the argv for a content search. Patterns are OR-ed."""
    if isinstance(patterns, str):
        patterns = [patterns]

    cmd = [executable, "--no-config", "--json"]
    if not opts.include_non_markdown:
        cmd.append("--type=md")
    cmd.extend(opts.to_ripgrep_opts())
    for pattern in patterns:
        cmd.extend(["-e", pattern])
    cmd.append(str(root))
    return cmd


def build_find_cmd(
    root: str | Path,
    term: str | None,
    opts: SearchOpts,
    executable: str = "rg",
) -> list[str]:
    """Build the argv for a file-name search.

    The term matches anywhere in the file name. Unless non-markdown files are
    included, a term without the ``.md`` suffix only matches markdown files.
    """
    cmd = [executable, "--no-config", "--files"]
    if not opts.include_non_markdown:
        cmd.append("--type=md")
    cmd.extend(opts.to_ripgrep_opts())

    if term:
        if opts.include_non_markdown:
            glob = f"*{term}*"
        elif not term.endswith(".md"):
            glob = f"*{term}*.md"
        else:
            glob = f"*{term}"
        cmd.extend(["-g", glob])

    if opts.ignore_case:
        cmd.append("--glob-case-insensitive")

    cmd.append(str(root))
    return cmd


def _arbitrary_data_text(data: dict) -> str:
    # ripgrep reports non-UTF-8 data as {"bytes": <base64>} instead of {"text": ...}
    if "text" in data:
        return data["text"]
    return os.fsdecode(base64.b64decode(data.get("bytes", "")))


def parse_match_line(line: str | bytes) -> MatchData | None:
    """Parse one line of ``rg --json`` output.

    Returns:
        MatchData for ``match`` messages, None for everything else
        (``begin``, ``end``, ``context``, ``summary``, blank lines).
    """
    line = line.strip()
    if not line:
        return None

    message = json.loads(line)
    if message.get("type") != "match":
        return None

    data = message["data"]
    return MatchData(
        path=_arbitrary_data_text(data["path"]),
        line_number=data["line_number"],
        text=_arbitrary_data_text(data["lines"]).rstrip("\r\n"),
        absolute_offset=data.get("absolute_offset"),
        submatches=[
            SubMatch(match=_arbitrary_data_text(sub["match"]), start=sub["start"], end=sub["end"])
            for sub in data.get("submatches", [])
        ],
    )


def tag_search_terms(terms: Sequence[str]) -> list[str]:
    """Regex queries that find tags in note text.

    Each term yields three queries: an inline ``#tag``, an item of a
    multi-line frontmatter ``tags`` list, and an inline ``tags: [...]`` list.
    An empty term matches any tag.
    """
    queries: list[str] = []
    for term in terms:
        tag = f"{TAG_CHARS_OPTIONAL}{term}{TAG_CHARS_OPTIONAL}" if term else TAG_CHARS_REQUIRED
        queries.extend([f"#{tag}", rf"\s*- {tag}", f"tags: .*{tag}"])
    return queries


# ─────────────────────────────────────────────────────────────────────────────
# Backends
# ─────────────────────────────────────────────────────────────────────────────


class SearchBackend(Protocol):
    """Anything that can stream content matches and file paths for a vault."""

    async def search_content(
        self,
        root: Path,
        patterns: str | Sequence[str],
        opts: SearchOpts,
        on_match: Callable[[MatchData], None],
        on_done: OnDone | None = None,
        timeout: float | None = None,
    ) -> None: ...

    async def find_paths(
        self,
        root: Path,
        pattern: str | None,
        opts: SearchOpts,
        on_match: Callable[[str], None],
        on_done: OnDone | None = None,
        timeout: float | None = None,
    ) -> None: ...


class RipgrepBackend:
    """Search backend that shells out to ripgrep."""

    # Executables whose launch failure has already been reported
    _reported_failures: set[str] = set()

    def __init__(self, executable: str = "rg") -> None:
        self.executable = executable

    async def search_content(
        self,
        root: Path,
        patterns: str | Sequence[str],
        opts: SearchOpts,
        on_match: Callable[[MatchData], None],
        on_done: OnDone | None = None,
        timeout: float | None = None,
    ) -> None:
        cmd = build_search_cmd(root, patterns, opts, self.executable)

        def handle_line(line: bytes) -> None:
            try:
                match = parse_match_line(line)
            except (ValueError, KeyError) as e:
                log.debug("Skipping unparseable search output %r: %s", line[:200], e)
                return
            if match is not None:
                on_match(match)

        await self._run(cmd, handle_line, on_done, timeout)

    async def find_paths(
        self,
        root: Path,
        pattern: str | None,
        opts: SearchOpts,
        on_match: Callable[[str], None],
        on_done: OnDone | None = None,
        timeout: float | None = None,
    ) -> None:
        cmd = build_find_cmd(root, pattern, opts, self.executable)

        def handle_line(line: bytes) -> None:
            path = os.fsdecode(line.rstrip(b"\r\n"))
            if path:
                on_match(path)

        await self._run(cmd, handle_line, on_done, timeout)

    async def _run(
        self,
        cmd: list[str],
        handle_line: Callable[[bytes], None],
        on_done: OnDone | None,
        timeout: float | None,
    ) -> None:
        log.debug("Running search: %s", shlex.join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LINE_LIMIT,
            )
        except (FileNotFoundError, PermissionError) as e:
            if on_done is not None:
                on_done(None)
            if self.executable not in self._reported_failures:
                self._reported_failures.add(self.executable)
                log.error("Failed to launch search executable '%s': %s", self.executable, e)
            raise SearchBackendError(
                f"Search executable '{self.executable}' could not be launched: {e}",
                {"executable": self.executable},
            ) from e

        exit_code: int | None = None
        try:
            exit_code = await asyncio.wait_for(self._consume(proc, handle_line), timeout)
        except asyncio.TimeoutError:
            log.warning("Search timed out after %.2fs: %s", timeout, shlex.join(cmd))
        finally:
            if proc.returncode is None:
                await _terminate(proc)
            if on_done is not None:
                on_done(exit_code)

    @staticmethod
    async def _consume(proc: asyncio.subprocess.Process, handle_line: Callable[[bytes], None]) -> int:
        assert proc.stdout is not None and proc.stderr is not None
        stderr_task = asyncio.create_task(proc.stderr.read())
        try:
            async for line in proc.stdout:
                handle_line(line)
            exit_code = await proc.wait()
            stderr = await stderr_task
        except BaseException:
            stderr_task.cancel()
            raise

        # ripgrep: 0 = matches, 1 = no matches, 2 = error (possibly with partial results)
        if exit_code > 1:
            log.warning("Search exited with status %d: %s", exit_code, stderr.decode(errors="replace").strip())
        return exit_code


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), SEARCH_TERMINATE_GRACE)
    except asyncio.TimeoutError:
        log.debug("Search process %d ignored SIGTERM, killing", proc.pid)
        proc.kill()
        await proc.wait()
