"""Error types shared by the registry, the build runner and the API layer."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    PARSE_ERROR = "ParseError"
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    INVALID_FIELD = "InvalidField"
    INVALID_PROJECT_ID = "InvalidProjectId"
    UNKNOWN_TOOL = "UnknownTool"
    IO_ERROR = "IOError"
    PROCESS_SPAWN_ERROR = "ProcessSpawnError"
    PROCESS_EXIT_ERROR = "ProcessExitError"


class PakeGUIError(Exception):
    """Base class for every error raised by pakegui."""

    kind: ErrorKind = ErrorKind.IO_ERROR

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class NotFoundError(PakeGUIError, FileNotFoundError):
    kind = ErrorKind.NOT_FOUND


class ParseError(PakeGUIError, ValueError):
    kind = ErrorKind.PARSE_ERROR


class ValidationError(PakeGUIError, ValueError):
    kind = ErrorKind.INVALID_FIELD


class StorageError(PakeGUIError, OSError):
    kind = ErrorKind.IO_ERROR


class ProcessSpawnError(PakeGUIError):
    kind = ErrorKind.PROCESS_SPAWN_ERROR


class ProcessExitError(PakeGUIError):
    """The external tool finished with a non-zero exit code."""

    kind = ErrorKind.PROCESS_EXIT_ERROR

    def __init__(self, returncode: int, detail: str = "") -> None:
        message = f"Command terminated with non-zero exit code {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.returncode = returncode


__all__ = [
    "ErrorKind",
    "NotFoundError",
    "PakeGUIError",
    "ParseError",
    "ProcessExitError",
    "ProcessSpawnError",
    "StorageError",
    "ValidationError",
]
