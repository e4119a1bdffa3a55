"""Error types and codes for notevault.

Batch operations (search, tag/backlink indexing, reference rewrites) never
raise these for a single failing note; they count failures and log one
aggregate warning instead. Single-item operations raise immediately.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from .config import ConfigurationError


class ErrorCode(str, Enum):
    """Stable error codes for --json-errors output."""

    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    INVALID_NOTE_ID = "INVALID_NOTE_ID"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    SEARCH_BACKEND_ERROR = "SEARCH_BACKEND_ERROR"
    WORKSPACE_NOT_FOUND = "WORKSPACE_NOT_FOUND"
    FILE_EXISTS = "FILE_EXISTS"
    IO_ERROR = "IO_ERROR"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class NotevaultError(Exception):
    """Base error carrying a code and optional structured details."""

    code = ErrorCode.UNKNOWN

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_json(self) -> str:
        return format_error_json(self.code.value, self.message, self.details)


class ParseError(NotevaultError):
    """Raised when a single note cannot be loaded."""

    code = ErrorCode.PARSE_ERROR

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{path}: {message}", {"path": str(path)})
        self.reason = message


class NoteNotFoundError(NotevaultError):
    """Raised by commands that require a note when resolution found nothing."""

    code = ErrorCode.NOTE_NOT_FOUND

    def __init__(self, query: str) -> None:
        self.query = query
        super().__init__(f"Could not resolve note '{query}'", {"query": query})


class InvalidNoteIdError(NotevaultError, ValueError):
    """Raised when a new note id is syntactically empty."""

    code = ErrorCode.INVALID_NOTE_ID


class WorkspaceNotFoundError(NotevaultError, ConfigurationError):
    """Raised when switching to a workspace name that is not configured."""

    code = ErrorCode.WORKSPACE_NOT_FOUND

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Workspace '{name}' not found", {"workspace": name})


class SearchBackendError(NotevaultError, ConfigurationError):
    """Raised when the external search executable cannot be launched."""

    code = ErrorCode.SEARCH_BACKEND_ERROR


def format_error_json(code: str, message: str, details: dict[str, Any] | None = None) -> str:
    payload: dict[str, Any] = {"error": code, "message": message}
    if details:
        payload["details"] = details
    return json.dumps(payload)


def error_code_for(exc: BaseException) -> ErrorCode:
    """Map an arbitrary exception to an ErrorCode."""
    if isinstance(exc, NotevaultError):
        return exc.code
    if isinstance(exc, ConfigurationError):
        return ErrorCode.CONFIGURATION_ERROR
    if isinstance(exc, FileExistsError):
        return ErrorCode.FILE_EXISTS
    if isinstance(exc, FileNotFoundError):
        return ErrorCode.NOTE_NOT_FOUND
    if isinstance(exc, TimeoutError):
        return ErrorCode.TIMEOUT
    if isinstance(exc, OSError):
        return ErrorCode.IO_ERROR
    return ErrorCode.UNKNOWN
