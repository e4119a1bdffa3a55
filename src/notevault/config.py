"""Configuration management for notevault.

This module contains all configurable constants plus the option models that
describe a vault. Magic numbers are documented here rather than scattered
throughout the codebase.

Discovery order for the configuration file:
1. NOTEVAULT_CONFIG environment variable (explicit path to a YAML file)
2. Walk up from cwd looking for .notevault.yaml
3. ~/.config/notevault/config.yaml
4. NOTEVAULT_VAULT environment variable (single-workspace shortcut, no file)
"""

import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ConfigurationError(Exception):
    """Raised when configuration is missing or an option value is invalid."""

    pass


# =============================================================================
# File Discovery
# =============================================================================

CONFIG_FILENAME = ".notevault.yaml"

# Maximum directory traversal depth when searching for CONFIG_FILENAME.
# Prevents runaway walks on circular symlinks or unusual filesystems.
MAX_CONFIG_SEARCH_DEPTH = 50


# =============================================================================
# Timeouts and Concurrency
# =============================================================================

# Default timeout (seconds) for the blocking wrappers around async queries
# (find_notes, resolve_note, find_tags, find_backlinks).
DEFAULT_SEARCH_TIMEOUT = 5.0

# Timeout (seconds) for the whole reference-rewrite phase of a rename.
# Rewrites are file-local and fast; a long stall means the search backend hung.
DEFAULT_RENAME_TIMEOUT = 10.0

# Grace period (seconds) between SIGTERM and SIGKILL for a timed-out search process.
SEARCH_TERMINATE_GRACE = 0.5

# Upper bound on concurrently running load/parse/rewrite tasks.
# Work is I/O bound, so this is above cpu_count on most machines.
DEFAULT_EXECUTOR_WORKERS = 8


# =============================================================================
# Note Defaults
# =============================================================================

NOTE_SUFFIX = ".md"

# Directory that marks the root of a vault. A workspace path nested inside a
# vault resolves to the directory holding this marker.
DEFAULT_VAULT_MARKER = ".obsidian"

DEFAULT_DAILY_DATE_FORMAT = "%Y-%m-%d"
DEFAULT_DAILY_ALIAS_FORMAT = "%B %-d, %Y"
DEFAULT_DAILY_TAG = "daily-notes"


# =============================================================================
# Option Models
# =============================================================================


class DailyNotesOptions(BaseModel):
    """Where and how daily notes are created."""

    folder: str | None = None
    date_format: str | None = None  # strftime format for the note id
    alias_format: str | None = None  # strftime format for the note alias
    template: str | None = None  # template name under templates.subdir


class TemplatesOptions(BaseModel):
    """Template directory and substitution formats."""

    subdir: str | None = None
    date_format: str = "%Y-%m-%d"
    time_format: str = "%H:%M"


class WorkspaceSpec(BaseModel):
    """A named workspace as written in the config file."""

    name: str
    path: str
    overrides: dict[str, Any] = Field(default_factory=dict)


class VaultOptions(BaseModel):
    """All options for a notevault client.

    Per-workspace ``overrides`` are merged on top of these with ``merged()``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    workspaces: list[WorkspaceSpec] = Field(default_factory=list)
    notes_subdir: str | None = None
    daily_notes: DailyNotesOptions = Field(default_factory=DailyNotesOptions)
    templates: TemplatesOptions | None = None
    # Validated at use time: an unknown value is a ConfigurationError for the
    # single operation that needs it, not for the whole client.
    new_notes_location: str = "current_dir"
    preferred_link_style: Literal["wiki", "markdown"] = "wiki"
    wiki_link_style: Literal["id_prefix", "path_prefix", "path_only"] = "id_prefix"
    sort_by: Literal["path", "modified", "accessed", "created"] | None = "modified"
    sort_reversed: bool = True
    disable_frontmatter: bool = False
    search_timeout: float = DEFAULT_SEARCH_TIMEOUT
    rename_timeout: float = DEFAULT_RENAME_TIMEOUT
    executor_max_workers: int = DEFAULT_EXECUTOR_WORKERS
    search_executable: str = "rg"
    vault_marker: str = DEFAULT_VAULT_MARKER
    # Programmatic hooks (not loadable from YAML)
    note_id_func: Callable[[str | None], str] | None = None
    note_frontmatter_func: Callable[[Any], dict[str, Any]] | None = None

    def merged(self, overrides: Mapping[str, Any] | None) -> "VaultOptions":
        """Return a copy with ``overrides`` deep-merged on top."""
        if not overrides:
            return self.model_copy()
        data = _deep_merge(self.model_dump(), dict(overrides))
        return VaultOptions.model_validate(data)


NEW_NOTES_LOCATIONS = ("current_dir", "notes_subdir")


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = _deep_merge(dict(result[key]), dict(value))
        else:
            result[key] = value
    return result


# =============================================================================
# Loading
# =============================================================================


def _discover_project_config(start_dir: Path | None = None, max_depth: int = MAX_CONFIG_SEARCH_DEPTH) -> Path | None:
    """Walk up from start_dir looking for CONFIG_FILENAME.

    Args:
        start_dir: Directory to start from (defaults to cwd)
        max_depth: Maximum directories to traverse up

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        config_file = current / CONFIG_FILENAME
        if config_file.is_file():
            return config_file

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def get_config_path() -> Path | None:
    """Find the configuration file, if any.

    Returns:
        Path to the YAML config file, or None when no file is configured.
    """
    explicit = os.environ.get("NOTEVAULT_CONFIG")
    if explicit:
        return Path(explicit).expanduser()

    project_config = _discover_project_config()
    if project_config:
        return project_config

    user_config = Path.home() / ".config" / "notevault" / "config.yaml"
    if user_config.is_file():
        return user_config

    return None


def load_options(path: Path | None = None) -> VaultOptions:
    """Load and validate vault options.

    Args:
        path: Explicit config file. Discovered when omitted.

    Returns:
        Validated VaultOptions with workspace paths made absolute.

    Raises:
        ConfigurationError: If no vault is configured or the file is invalid.
    """
    config_path = path or get_config_path()

    if config_path is None:
        vault = os.environ.get("NOTEVAULT_VAULT")
        if vault:
            vault_path = Path(vault).expanduser()
            return VaultOptions(workspaces=[WorkspaceSpec(name=vault_path.name, path=str(vault_path))])
        raise ConfigurationError(
            "No vault configured. Options:\n"
            f"  1. Create {CONFIG_FILENAME} with a 'workspaces' list\n"
            "  2. Set NOTEVAULT_CONFIG to a YAML config file\n"
            "  3. Set NOTEVAULT_VAULT to an existing vault directory"
        )

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_path} must be a mapping")

    try:
        options = VaultOptions.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise ConfigurationError(f"Invalid config {config_path}:\n" + "\n".join(errors)) from e

    # Workspace paths are relative to the config file
    base = config_path.parent
    for spec in options.workspaces:
        ws_path = Path(spec.path).expanduser()
        if not ws_path.is_absolute():
            spec.path = str((base / ws_path).resolve())

    if not options.workspaces:
        raise ConfigurationError(f"Config {config_path} defines no workspaces")

    return options
