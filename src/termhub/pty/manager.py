"""PTY Manager: creates, drives, and tears down terminal sessions."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

from termhub.config import TerminalConfig
from termhub.errors import EnvironmentUnavailable, SessionNotFound
from termhub.pty.registry import SessionRegistry
from termhub.pty.session import PTYSession, clamp_size, pty_available
from termhub.pty.sink import Sink

logger = logging.getLogger(__name__)


def default_shell(configured: str | None = None) -> str:
    """Pick the shell for new sessions: config, then $SHELL, then /bin/bash."""
    return configured or os.environ.get("SHELL") or "/bin/bash"


def resolve_session_cwd(requested: str | None = None) -> str:
    """Explicit option, then the user's home, then the process cwd."""
    for candidate in (requested, os.environ.get("HOME"), str(Path.home())):
        if candidate and os.path.isdir(candidate):
            return candidate
    return os.getcwd()


class PTYManager:
    """Owns every live terminal session of the hosting process.

    The manager ensures:
    - Sessions are tracked by caller-supplied id and can be looked up
    - Unknown ids never crash an operation
    - Each session leaves the registry exactly once, through its own exit
      path, whether it was killed or ended by itself
    - All sessions are killed on cleanup (no orphan processes)
    """

    def __init__(
        self,
        config: TerminalConfig | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self._config = config or TerminalConfig()
        self._registry = registry if registry is not None else SessionRegistry()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @staticmethod
    def available() -> bool:
        return pty_available()

    async def create(
        self,
        session_id: str,
        sink: Sink,
        cwd: str | None = None,
        cols: int | None = None,
        rows: int | None = None,
        command: list[str] | None = None,
    ) -> PTYSession:
        """Spawn a new PTY session streaming to ``sink``.

        Args:
            session_id: Caller-supplied id; must not name a live session.
            sink: Destination for output and exit messages (held weakly).
            cwd: Working directory. Falls back to $HOME, then the process cwd.
            cols: Terminal width (default from config, 80).
            rows: Terminal height (default from config, 24).
            command: Argument vector to run instead of the configured shell.

        Raises:
            EnvironmentUnavailable: No PTY backend on this host.
            SessionExists: ``session_id`` is already live.
            ProcessSpawnFailure: The OS refused to start the process.
        """
        if not pty_available():
            raise EnvironmentUnavailable(
                "PTY backend is not available; terminal sessions are disabled on this host."
            )

        width, height = clamp_size(
            cols or self._config.default_cols,
            rows or self._config.default_rows,
        )
        env = {
            "TERM": self._config.term,
            "COLORTERM": self._config.colorterm,
        }
        session = PTYSession(
            id=session_id,
            command=command or [default_shell(self._config.shell)],
            cwd=resolve_session_cwd(cwd),
            env=env,
            cols=width,
            rows=height,
            chunk_size=self._config.read_chunk_size,
        )
        session.set_sink(sink)
        session.set_on_exit(self._on_session_exit)

        # Reserve the id before spawning so a duplicate never starts a process.
        self._registry.add(session)
        try:
            await session.start()
        except BaseException:
            self._registry.pop(session_id, session)
            raise
        return session

    def _on_session_exit(
        self, session: PTYSession, exit_code: int | None, signal: int | None
    ) -> None:
        if self._registry.pop(session.id, session) is not None:
            logger.debug("Session %s removed from registry", session.id)

    def get(self, session_id: str) -> PTYSession | None:
        return self._registry.get(session_id)

    def write(self, session_id: str, data: str | bytes) -> None:
        """Forward input to a session's process.

        Raises:
            SessionNotFound: Unknown id, or the session is no longer running.
            TimeoutError: The process stopped reading its input.
        """
        session = self._registry.get(session_id)
        if session is None or not session.alive:
            raise SessionNotFound(session_id)
        try:
            session.write(data)
        except TimeoutError as e:
            logger.warning("Write to PTY session %s timed out: %s", session_id, e)
            raise
        except OSError as e:
            logger.warning("Write to PTY session %s failed: %s", session_id, e)
            raise SessionNotFound(session_id) from e

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        session = self._registry.get(session_id)
        if session is None:
            return False
        return session.resize(cols, rows)

    async def kill(self, session_id: str) -> None:
        """Kill a session. Unknown or already-dead ids are a no-op."""
        session = self._registry.get(session_id)
        if session is None:
            logger.debug("Kill requested for unknown session %s", session_id)
            return
        await session.kill()

    def list_sessions(self) -> list[dict[str, Any]]:
        """Diagnostics: every tracked session with its creation time."""
        return [s.describe() for s in self._registry.snapshot()]

    async def cleanup(self) -> None:
        """Kill all sessions. Called on shutdown; safe to call repeatedly."""
        sessions = self._registry.snapshot()
        if not sessions:
            logger.debug("No PTY sessions to clean up")
            return
        results = await asyncio.gather(
            *(s.kill() for s in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.error("Error killing PTY session %s: %s", session.id, result)
        logger.info("All PTY sessions cleaned up (%d)", len(sessions))

    def cleanup_sync(self) -> None:
        """Signal every tracked process group without touching the event loop.

        For ``atexit`` and other paths where no loop is running.
        """
        for session in self._registry.snapshot():
            session.terminate()

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._registry
