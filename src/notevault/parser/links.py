"""Link and tag recognition for note text.

Recognizes markdown links, wiki links (with and without an alias), naked
URLs, file URLs, and inline ``#tags``. Columns are 1-indexed and inclusive,
matching how editors report cursor positions.
"""

from __future__ import annotations

import re
from enum import Enum

TAG_CHARS_OPTIONAL = r"[A-Za-z0-9_/-]*"
TAG_CHARS_REQUIRED = r"[A-Za-z]+[A-Za-z0-9_/-]*[A-Za-z0-9]+"


class RefTypes(str, Enum):
    """Kinds of references that can appear in a line of note text."""

    WIKI_WITH_ALIAS = "WikiWithAlias"
    WIKI = "Wiki"
    MARKDOWN = "Markdown"
    NAKED_URL = "NakedUrl"
    FILE_URL = "FileUrl"
    TAG = "Tag"


PATTERNS: dict[RefTypes, re.Pattern[str]] = {
    # [[location|name]], also [[location\|name]] inside tables
    RefTypes.WIKI_WITH_ALIAS: re.compile(r"\[\[[^\[\]|]+\|[^\]]+\]\]"),
    RefTypes.WIKI: re.compile(r"\[\[[^\[\]|]+\]\]"),
    RefTypes.MARKDOWN: re.compile(r"\[[^\[\]]+\]\([^)]+\)"),
    RefTypes.NAKED_URL: re.compile(r"https?://[a-zA-Z0-9._-]+[a-zA-Z0-9._#/=&?:+%-]+[a-zA-Z0-9/]"),
    RefTypes.FILE_URL: re.compile(r"file:/{1,3}[^\s)\]]+"),
    RefTypes.TAG: re.compile(r"(?<![\w#&/])#" + TAG_CHARS_REQUIRED),
}

# Priority order when the kind of a link is not given. Earlier patterns win
# overlaps, so a URL inside a markdown link is reported as the markdown link.
REF_PRIORITY = (
    RefTypes.MARKDOWN,
    RefTypes.NAKED_URL,
    RefTypes.FILE_URL,
    RefTypes.WIKI_WITH_ALIAS,
    RefTypes.WIKI,
)

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_ESCAPED_ALIAS_PIPE = re.compile(r"(\[\[[^\\\]]+)\\(\|[^\\\]]+\]\])")

Match = tuple[int, int, RefTypes]


def find_matches(s: str, kinds: tuple[RefTypes, ...] | list[RefTypes]) -> list[Match]:
    """Find non-overlapping matches of the given kinds.

    Kinds are tried in order; a match overlapping one found earlier is
    dropped. The result is sorted by start column.
    """
    matches: list[Match] = []
    for kind in kinds:
        for m in PATTERNS[kind].finditer(s):
            start, end = m.start() + 1, m.end()
            overlaps = any(
                other_start <= start <= other_end or other_start <= end <= other_end
                for other_start, other_end, _ in matches
            )
            if not overlaps:
                matches.append((start, end, kind))
    matches.sort(key=lambda match: match[0])
    return matches


def find_refs(line: str, include_naked_urls: bool = False, include_file_urls: bool = False) -> list[Match]:
    """Find all link references in a line.

    Returns:
        List of (start_col, end_col, kind), 1-indexed inclusive.
    """
    kinds = [
        kind
        for kind in REF_PRIORITY
        if (kind is not RefTypes.NAKED_URL or include_naked_urls)
        and (kind is not RefTypes.FILE_URL or include_file_urls)
    ]
    return find_matches(line, kinds)


def find_tags(line: str) -> list[Match]:
    """Find inline ``#tags`` in a line, ignoring hex colors and tags inside links."""
    refs = find_refs(line, include_naked_urls=True, include_file_urls=True)
    tags: list[Match] = []
    for start, end, kind in find_matches(line, [RefTypes.TAG]):
        if _HEX_COLOR.match(line[start - 1 : end]):
            continue
        if any(r_start <= start <= r_end for r_start, r_end, _ in refs):
            continue
        tags.append((start, end, kind))
    return tags


def is_url(s: str) -> bool:
    """Check if a string is a valid naked or file URL."""
    s = s.strip()
    return bool(PATTERNS[RefTypes.NAKED_URL].fullmatch(s) or PATTERNS[RefTypes.FILE_URL].fullmatch(s))


def unescape_single_backslash(text: str) -> str:
    """Remove the backslash escaping an alias pipe inside double brackets."""
    return _ESCAPED_ALIAS_PIPE.sub(r"\1\2", text)


def parse_link(
    link: str,
    link_type: RefTypes | None = None,
    include_naked_urls: bool = False,
    include_file_urls: bool = False,
) -> tuple[str, str, RefTypes] | None:
    """Split a link into (location, name, kind).

    Args:
        link: The raw link text, e.g. ``[[2023-01-01|Today]]``.
        link_type: Kind of the link if already known; detected otherwise.
        include_naked_urls: Recognize bare http(s) URLs.
        include_file_urls: Recognize file:/ URLs.

    Returns:
        Tuple of (location, name, kind), or None if the text is not a link.
    """
    if link_type is None:
        refs = find_refs(link, include_naked_urls=include_naked_urls, include_file_urls=include_file_urls)
        if not refs:
            return None
        link_type = refs[0][2]

    if link_type is RefTypes.MARKDOWN:
        m = re.fullmatch(r"\[(.*?)\]\((.*)\)", link)
        if m is None:
            return None
        return m.group(2), m.group(1), link_type

    if link_type in (RefTypes.NAKED_URL, RefTypes.FILE_URL):
        return link, link, link_type

    if link_type is RefTypes.WIKI_WITH_ALIAS:
        inner = unescape_single_backslash(link)[2:-2]
        location, sep, name = inner.partition("|")
        if not sep:
            return None
        return location, name, link_type

    if link_type is RefTypes.WIKI:
        inner = link[2:-2]
        return inner, inner, link_type

    raise ValueError(f"not implemented for {link_type}")


def cursor_on_link(
    line: str,
    col: int,
    include_naked_urls: bool = False,
    include_file_urls: bool = False,
) -> Match | None:
    """Return the reference under a 1-indexed column, if any."""
    for start, end, kind in find_refs(line, include_naked_urls=include_naked_urls, include_file_urls=include_file_urls):
        if start <= col <= end:
            return start, end, kind
    return None


def parse_cursor_link(
    line: str,
    col: int,
    include_naked_urls: bool = False,
    include_file_urls: bool = False,
) -> tuple[str, str, RefTypes] | None:
    """Get the link location and name of the link under the cursor, if there is one."""
    hit = cursor_on_link(line, col, include_naked_urls=include_naked_urls, include_file_urls=include_file_urls)
    if hit is None:
        return None
    start, end, kind = hit
    return parse_link(line[start - 1 : end], link_type=kind, include_naked_urls=include_naked_urls)


def cursor_tag(line: str, col: int) -> str | None:
    """Get the tag (without ``#``) under a 1-indexed column, if there is one."""
    for start, end, _ in find_tags(line):
        if start <= col <= end:
            return line[start:end]
    return None


def string_replace(s: str, what: str, with_: str, n: int | None = None) -> tuple[str, int]:
    """Replace up to ``n`` occurrences of ``what`` in ``s`` with ``with_``.

    Returns:
        Tuple of (new string, number of replacements made).
    """
    if not what:
        return s, 0

    pieces: list[str] = []
    count = 0
    pos = 0
    while n is None or count < n:
        idx = s.find(what, pos)
        if idx < 0:
            break
        pieces.append(s[pos:idx])
        pieces.append(with_)
        pos = idx + len(what)
        count += 1
    pieces.append(s[pos:])
    return "".join(pieces), count


# ─────────────────────────────────────────────────────────────────────────────
# Link formatting
# ─────────────────────────────────────────────────────────────────────────────


def wiki_link_path_only(path: str, label: str, id: str | None = None) -> str:
    return f"[[{path}]]"


def wiki_link_path_prefix(path: str, label: str, id: str | None = None) -> str:
    if label != path:
        return f"[[{path}|{label}]]"
    return f"[[{path}]]"


def wiki_link_id_prefix(path: str, label: str, id: str | None = None) -> str:
    if id is None:
        return f"[[{label}]]"
    if label != id:
        return f"[[{id}|{label}]]"
    return f"[[{id}]]"


def markdown_link(path: str, label: str, id: str | None = None) -> str:
    return f"[{label}]({path})"


WIKI_LINK_FUNCS = {
    "id_prefix": wiki_link_id_prefix,
    "path_prefix": wiki_link_path_prefix,
    "path_only": wiki_link_path_only,
}
