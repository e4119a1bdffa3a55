"""Line-oriented YAML frontmatter codec.

Notes only ever rewrite their frontmatter block, so the codec works on lines:
it reports where the block ends and turns a mapping back into the lines to
splice in at the top of the file.
"""

from collections.abc import Mapping, Sequence
from typing import Any, NamedTuple

import yaml
from frontmatter import YAMLHandler

DELIMITER = "---"

_handler = YAMLHandler()


class FrontmatterBlock(NamedTuple):
    """Result of parsing the top of a note."""

    data: dict[str, Any]
    end_line: int | None  # 1-indexed line of the closing delimiter
    present: bool


def parse_lines(lines: Sequence[str]) -> FrontmatterBlock:
    """Parse the frontmatter block at the top of a note.

    Args:
        lines: Lines of the note, with or without trailing newlines.

    Returns:
        FrontmatterBlock. ``present`` is False (and ``data`` empty) when the
        note does not start with a closed ``---`` block.

    Raises:
        ValueError: If the block is not valid YAML or not a mapping.
    """
    if not lines or lines[0].rstrip() != DELIMITER:
        return FrontmatterBlock({}, None, False)

    for idx in range(1, len(lines)):
        if lines[idx].rstrip() == DELIMITER:
            closing = idx
            break
    else:
        return FrontmatterBlock({}, None, False)

    raw = "\n".join(line.rstrip("\n") for line in lines[1:closing])
    try:
        data = _handler.load(raw) if raw.strip() else {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Frontmatter must be a mapping, got {type(data).__name__}")

    return FrontmatterBlock(data, closing + 1, True)


def _yaml_quote_if_needed(value: str) -> str:
    """Quote a string value if it contains YAML special characters.

    Uses PyYAML to determine if quoting is needed by testing if the value
    roundtrips correctly through YAML parsing.
    """
    test_yaml = f"key: {value}"
    try:
        parsed = yaml.safe_load(test_yaml)
        if isinstance(parsed, dict) and parsed.get("key") == value:
            return value
    except yaml.YAMLError:
        pass
    dumped = yaml.safe_dump({"key": value}, default_flow_style=False, allow_unicode=True).strip()
    # Returns 'key: VALUE' or "key: 'VALUE'" - extract the value part
    return dumped[5:]


def _format_scalar(value: Any) -> str:
    if isinstance(value, str):
        return _yaml_quote_if_needed(value)
    return yaml.safe_dump(value, default_flow_style=True, allow_unicode=True).strip().removesuffix("\n...").strip()


def dump(data: Mapping[str, Any]) -> list[str]:
    """Serialize a mapping to frontmatter lines, delimiters included.

    Key order is preserved. Lists of scalars use block style; nested mappings
    are delegated to PyYAML.
    """
    lines = [DELIMITER]
    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            if not value:
                lines.append(f"{key}: []")
            elif all(not isinstance(item, (list, tuple, dict)) for item in value):
                lines.append(f"{key}:")
                lines.extend(f"  - {_format_scalar(item)}" for item in value)
            else:
                lines.extend(_dump_nested(key, value))
        elif isinstance(value, dict):
            lines.extend(_dump_nested(key, value))
        elif value is None:
            lines.append(f"{key}:")
        else:
            lines.append(f"{key}: {_format_scalar(value)}")
    lines.append(DELIMITER)
    return lines


def _dump_nested(key: str, value: Any) -> list[str]:
    dumped = yaml.safe_dump({key: value}, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return dumped.rstrip("\n").splitlines()
