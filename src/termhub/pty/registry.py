"""Session registry: thread-safe map of session id to PTY session."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Iterator

from termhub.errors import SessionExists

if TYPE_CHECKING:
    from termhub.pty.session import PTYSession


class SessionRegistry:
    """Tracks live PTY sessions by caller-supplied id.

    The lock only guards the map itself; it is never held while touching a
    process or a sink, so sessions never serialize each other. ``pop()`` is
    the single removal path: whoever gets the session back owns its teardown.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, PTYSession] = {}
        self._lock = threading.Lock()

    def add(self, session: PTYSession) -> None:
        with self._lock:
            if session.id in self._sessions:
                raise SessionExists(session.id)
            self._sessions[session.id] = session

    def get(self, session_id: str) -> PTYSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def pop(self, session_id: str, session: PTYSession | None = None) -> PTYSession | None:
        """Remove and return a session.

        When ``session`` is given, only remove the entry if it is still that
        exact object, so a stale exit cannot evict a newer session that
        reused the id.
        """
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            if session is not None and current is not session:
                return None
            del self._sessions[session_id]
            return current

    def snapshot(self) -> list[PTYSession]:
        with self._lock:
            return list(self._sessions.values())

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __iter__(self) -> Iterator[PTYSession]:
        return iter(self.snapshot())
