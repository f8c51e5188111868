"""Error taxonomy shared by every build stage."""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any


class BuildError(RuntimeError):
    """Base class for every failure surfaced by the engine.

    ``stage`` names the setup or post-build stage that failed (filled in by the
    orchestrator when the raising code does not know it) and ``cause`` keeps
    the underlying OS, library or subprocess error.
    """

    def __init__(self, message: str, *, stage: Any = None, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = self.message
        if self.stage is not None:
            label = getattr(self.stage, "value", self.stage)
            text = f"[{label}] {text}"
        if self.cause is not None:
            text = f"{text}: {self.cause}"
        return text


class ValidationError(BuildError):
    """Raised when a specification is missing data or references a missing ROM."""


class FilesystemErrorKind(str, Enum):
    BASE_DIR_UNAVAILABLE = "base-dir-unavailable"
    CREATE = "create"
    COPY = "copy"
    WRITE = "write"
    PERMISSION = "permission"
    REMOVE = "remove"
    NOT_FOUND = "not-found"


class FilesystemError(BuildError):
    def __init__(
        self,
        message: str,
        *,
        path: Path | str,
        destination: Path | str | None = None,
        kind: FilesystemErrorKind = FilesystemErrorKind.WRITE,
        stage: Any = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, stage=stage, cause=cause)
        self.path = Path(path)
        self.destination = Path(destination) if destination is not None else None
        self.kind = kind


class NetworkError(BuildError):
    """Raised when cloning or fetching the repository fails."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        stage: Any = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, stage=stage, cause=cause)
        self.url = url


class ProcessErrorKind(str, Enum):
    SPAWN_FAILED = "spawn-failed"
    OUTPUT_DECODE_FAILED = "output-decode-failed"
    NON_ZERO_EXIT = "non-zero-exit"


class ProcessError(BuildError):
    def __init__(
        self,
        message: str,
        *,
        executable: Path | str,
        kind: ProcessErrorKind,
        returncode: int | None = None,
        stage: Any = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, stage=stage, cause=cause)
        self.executable = str(executable)
        self.kind = kind
        self.returncode = returncode


class InvariantViolated(BuildError):
    """Engine-internal consistency failure; indicates a bug, not bad input."""


class BuildCancelled(BuildError):
    """Raised when the operator interrupts the build."""


__all__ = [
    "BuildCancelled",
    "BuildError",
    "FilesystemError",
    "FilesystemErrorKind",
    "InvariantViolated",
    "NetworkError",
    "ProcessError",
    "ProcessErrorKind",
    "ValidationError",
]
