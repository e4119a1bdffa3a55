"""Parsing of note text: links, tags, and reference rewriting helpers."""

from .links import (
    RefTypes,
    find_refs,
    find_tags,
    is_url,
    parse_cursor_link,
    parse_link,
    string_replace,
)

__all__ = [
    "RefTypes",
    "find_refs",
    "find_tags",
    "is_url",
    "parse_cursor_link",
    "parse_link",
    "string_replace",
]
