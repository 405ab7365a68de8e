"""PTY session management: live pseudo-terminal sessions.

Interactive shells run in managed PTY sessions with process group
isolation, ordered output streaming to a caller-owned sink, and
exactly-once exit handling.
"""

from termhub.pty.manager import PTYManager
from termhub.pty.protocol import handle_control_message, parse_control_message
from termhub.pty.registry import SessionRegistry
from termhub.pty.session import PTYSession, PTYStatus, pty_available
from termhub.pty.sink import CallbackSink, QueueSink, Sink, SinkClosed, StreamSink

__all__ = [
    "PTYSession",
    "PTYStatus",
    "PTYManager",
    "SessionRegistry",
    "Sink",
    "SinkClosed",
    "QueueSink",
    "CallbackSink",
    "StreamSink",
    "handle_control_message",
    "parse_control_message",
    "pty_available",
]
