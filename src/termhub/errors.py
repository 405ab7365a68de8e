"""Error taxonomy for terminal sessions and command execution.

Session operations raise these. The command executor never raises them for
command-level failures; it maps them onto structured outcomes instead (see
``termhub.executor.result``).
"""

from __future__ import annotations


class TermhubError(Exception):
    """Base class for all termhub errors.

    Attributes:
        message: Human-readable error message.
        code: Stable machine-readable error code.
    """

    code: str = "TERMHUB_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class EnvironmentUnavailable(TermhubError):
    """The PTY backend is missing on this host.

    Disables terminal sessions; never fatal to the host process.
    """

    code = "ENVIRONMENT_UNAVAILABLE"


class SessionNotFound(TermhubError):
    """Operation on a session id that is not (or no longer) tracked."""

    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Terminal session not found: {session_id}")


class SessionExists(TermhubError):
    """A live session is already registered under this id."""

    code = "SESSION_EXISTS"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Terminal session already exists: {session_id}")


class InvalidArgument(TermhubError):
    code = "INVALID_ARGUMENT"


class DirectoryNotAccessible(TermhubError):
    """Working directory precondition failed; nothing was spawned."""

    code = "DIRECTORY_NOT_ACCESSIBLE"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Working directory is not accessible: {path}")


class ProcessSpawnFailure(TermhubError):
    code = "PROCESS_SPAWN_FAILURE"


class HistoryPersistError(TermhubError):
    """The history log could not be written.

    Best effort: an already-completed command result stays valid.
    """

    code = "HISTORY_PERSIST_ERROR"
