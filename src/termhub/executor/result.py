"""Structured outcomes of a command execution."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from termhub.errors import (
    DirectoryNotAccessible,
    HistoryPersistError,
    InvalidArgument,
    TermhubError,
)
from termhub.executor.models import HistoryEntry


class ExecErrorKind(enum.StrEnum):
    """Why the executor could not deliver a clean result."""

    INVALID_ARGUMENT = "invalid_argument"
    DIRECTORY_NOT_ACCESSIBLE = "directory_not_accessible"
    HISTORY_PERSIST = "history_persist"


_KIND_FOR_ERROR: dict[type[TermhubError], ExecErrorKind] = {
    InvalidArgument: ExecErrorKind.INVALID_ARGUMENT,
    DirectoryNotAccessible: ExecErrorKind.DIRECTORY_NOT_ACCESSIBLE,
    HistoryPersistError: ExecErrorKind.HISTORY_PERSIST,
}


@dataclass(frozen=True)
class ExecOutcome:
    """Base outcome.

    ``entry`` is the command result whenever a process was run; a non-zero
    exit or a timeout is still an ``ExecOk``. Only tooling failures set
    ``error_kind``, and ``cause`` then holds the matching error.
    """

    entry: HistoryEntry | None = None
    error_kind: ExecErrorKind | None = None
    message: str = ""
    cause: TermhubError | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def raise_for_error(self) -> None:
        """Raise ``cause`` for callers that prefer exceptions."""
        if self.cause is not None:
            raise self.cause


@dataclass(frozen=True)
class ExecOk(ExecOutcome):
    """The command ran and its entry was persisted."""


@dataclass(frozen=True)
class ExecRejected(ExecOutcome):
    """Precondition failed; nothing was spawned and nothing persisted."""

    @classmethod
    def from_error(cls, error: InvalidArgument | DirectoryNotAccessible) -> ExecRejected:
        return cls(error_kind=_KIND_FOR_ERROR[type(error)], message=error.message, cause=error)


@dataclass(frozen=True)
class ExecPersistFailed(ExecOutcome):
    """The command ran but the history log could not be written.

    ``entry`` still carries the valid result.
    """

    error_kind: ExecErrorKind | None = ExecErrorKind.HISTORY_PERSIST

    @classmethod
    def from_error(cls, entry: HistoryEntry, error: HistoryPersistError) -> ExecPersistFailed:
        return cls(entry=entry, message=error.message, cause=error)
