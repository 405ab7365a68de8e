"""One-shot command execution with timeout, telemetry header, and history."""

from termhub.executor.models import (
    NO_EXIT_CODE,
    TIMED_OUT_EXIT_CODE,
    CommandRequest,
    HistoryEntry,
)
from termhub.executor.result import (
    ExecErrorKind,
    ExecOk,
    ExecOutcome,
    ExecPersistFailed,
    ExecRejected,
)
from termhub.executor.runner import CommandExecutor
from termhub.executor.workdir import resolve_working_directory

__all__ = [
    "CommandExecutor",
    "CommandRequest",
    "HistoryEntry",
    "ExecErrorKind",
    "ExecOk",
    "ExecOutcome",
    "ExecPersistFailed",
    "ExecRejected",
    "NO_EXIT_CODE",
    "TIMED_OUT_EXIT_CODE",
    "resolve_working_directory",
]
