"""PTY session: one interactive process on a pseudo-terminal."""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
import os
import select
import signal
import struct
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from termhub.config import DEFAULT_COLS, DEFAULT_ROWS
from termhub.errors import ProcessSpawnFailure
from termhub.pty.sink import Sink, exit_message, output_message

if sys.platform != "win32":
    import fcntl
    import pty
    import termios

logger = logging.getLogger(__name__)

# Seconds to wait for a killed process to be reaped and its output drained.
KILL_GRACE = 2.0
MAX_DIMENSION = 500

# Seconds a write may wait for the process to drain its input buffer.
WRITE_TIMEOUT = 5.0


def pty_available() -> bool:
    """Whether this host can back terminal sessions with a real PTY."""
    return sys.platform != "win32" and hasattr(os, "openpty")


def clamp_size(cols: int, rows: int) -> tuple[int, int]:
    return (
        max(1, min(int(cols), MAX_DIMENSION)),
        max(1, min(int(rows), MAX_DIMENSION)),
    )


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY session."""

    STARTING = "starting"
    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for the process to die
    KILLED = "killed"  # Killed by us (SIGKILL)
    EXITED = "exited"  # Process exited on its own


ExitCallback = Callable[["PTYSession", "int | None", "int | None"], None]


@dataclass(eq=False)
class PTYSession:
    """A process attached to a pseudo-terminal and streamed to a sink.

    - Process group isolation (start_new_session) for safe tree-killing
    - A non-blocking master fd watched by the event loop, feeding raw chunks
      into a FIFO queue, and one consumer task draining it to the sink, so
      byte order is preserved and no thread is parked per session
    - Exactly one exit notification, whether the process exits on its own
      or is killed

    The session keeps its sink adapter alive. Adapters that wrap a
    transport (``CallbackSink``) reference it weakly, so the transport may
    go away at any time without affecting the process.
    """

    id: str
    command: list[str] = field(default_factory=list)
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)
    cols: int = DEFAULT_COLS
    rows: int = DEFAULT_ROWS
    chunk_size: int = 4096
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Internal state
    _sink: Sink | None = field(default=None, init=False, repr=False)
    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pid: int = field(default=0, init=False)
    _pgid: int = field(default=0, init=False)
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False, repr=False)
    _queue: asyncio.Queue[bytes | None] | None = field(default=None, init=False)
    _reading: bool = field(default=False, init=False)
    _consumer_task: asyncio.Task | None = field(default=None, init=False)
    _status: PTYStatus = field(default=PTYStatus.STARTING, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _finalized: bool = field(default=False, init=False)
    _sink_failures: int = field(default=0, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _exit_signal: int | None = field(default=None, init=False)
    _on_exit: ExitCallback | None = field(default=None, init=False, repr=False)

    def set_sink(self, sink: Sink | None) -> None:
        """Point output at ``sink`` (``None`` detaches)."""
        self._sink = sink

    @property
    def sink(self) -> Sink | None:
        return self._sink

    def set_on_exit(self, callback: ExitCallback) -> None:
        """Set a callback invoked once, after the exit notification.

        The callback receives (session, exit_code, signal). It runs for both
        natural exits and kills.
        """
        self._on_exit = callback

    async def start(self) -> None:
        """Spawn the process in a new PTY with its own process group."""
        master_fd, slave_fd = pty.openpty()

        try:
            _set_winsize(slave_fd, self.cols, self.rows)
            self._proc = subprocess.Popen(
                self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,  # Creates new process group
                env={**os.environ, **self.env},
                cwd=self.cwd,
            )
        except OSError as e:
            os.close(master_fd)
            raise ProcessSpawnFailure(
                f"Failed to spawn {' '.join(self.command)!r}: {e}"
            ) from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        self._master_fd = master_fd
        self._pid = self._proc.pid
        try:
            self._pgid = os.getpgid(self._pid)
        except ProcessLookupError:
            # Already gone; start_new_session makes pgid == pid.
            self._pgid = self._pid
        self._status = PTYStatus.RUNNING

        os.set_blocking(master_fd, False)
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._loop.add_reader(master_fd, self._on_readable)
        self._reading = True
        self._consumer_task = asyncio.create_task(self._consume_loop())

        logger.info(
            "PTY session %s started: pid=%d pgid=%d cmd=%s cwd=%s",
            self.id,
            self._pid,
            self._pgid,
            " ".join(self.command),
            self.cwd,
        )

    def _on_readable(self) -> None:
        """Move one raw chunk from the master fd into the queue; EOF ends it."""
        queue = self._queue
        assert queue is not None
        try:
            data = os.read(self._master_fd, self.chunk_size)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave fd is closed
            data = b""
        if data:
            queue.put_nowait(data)
            return
        self._stop_reading()
        queue.put_nowait(None)

    def _stop_reading(self) -> None:
        if not self._reading or self._loop is None:
            return
        self._reading = False
        try:
            self._loop.remove_reader(self._master_fd)
        except (OSError, ValueError, RuntimeError) as e:
            logger.debug("PTY session %s: remove_reader failed: %s", self.id, e)

    async def _consume_loop(self) -> None:
        """Forward queued chunks to the sink, then finish the session."""
        queue = self._queue
        assert queue is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                text = decoder.decode(chunk)
                if text:
                    self._deliver(output_message(text))
            tail = decoder.decode(b"", final=True)
            if tail:
                self._deliver(output_message(tail))
        finally:
            exit_code, sig = await self._reap()
            self._finalize(exit_code, sig)

    def _deliver(self, message: dict[str, Any]) -> None:
        """Send to the sink if it is still there; never raise."""
        sink = self.sink
        if sink is None:
            self._sink_failures += 1
            if self._sink_failures == 1:
                logger.debug("PTY session %s: no sink attached, dropping output", self.id)
            return
        try:
            sink.try_send(message)
        except Exception as e:
            self._sink_failures += 1
            if self._sink_failures == 1:
                logger.warning("PTY session %s: sink rejected message: %s", self.id, e)
            else:
                logger.debug("PTY session %s: sink rejected message: %s", self.id, e)

    async def _reap(self) -> tuple[int | None, int | None]:
        """Wait for the process and split its return code into (code, signal)."""
        if self._proc is None:
            return None, None
        loop = asyncio.get_running_loop()
        try:
            returncode = await loop.run_in_executor(None, self._proc.wait, KILL_GRACE)
        except subprocess.TimeoutExpired:
            # Output closed but the process lingers: force it.
            self._signal_group(signal.SIGKILL)
            try:
                returncode = await loop.run_in_executor(
                    None, self._proc.wait, KILL_GRACE
                )
            except subprocess.TimeoutExpired:
                logger.error("PTY session %s: pid %d could not be reaped", self.id, self._pid)
                return None, None
        if returncode < 0:
            return None, -returncode
        return returncode, None

    def _finalize(self, exit_code: int | None, sig: int | None) -> bool:
        """Emit the exit notification and release resources, exactly once.

        Returns True for the single caller that actually finalized.
        """
        with self._lock:
            if self._finalized:
                return False
            self._finalized = True
            killed = self._status is PTYStatus.KILLING
            self._status = PTYStatus.KILLED if killed else PTYStatus.EXITED
            self._exit_code = exit_code
            self._exit_signal = sig

        logger.info(
            "PTY session %s %s (code=%s, signal=%s)",
            self.id,
            "killed" if killed else "exited",
            exit_code,
            sig,
        )
        self._deliver(exit_message(exit_code, sig))

        self._stop_reading()
        try:
            os.close(self._master_fd)
        except OSError:
            pass

        if self._on_exit is not None:
            try:
                self._on_exit(self, exit_code, sig)
            except Exception:
                logger.exception("Error in on_exit callback for session %s", self.id)
        return True

    def write(self, data: str | bytes) -> None:
        """Forward input to the process.

        Raises OSError if the PTY is gone, and TimeoutError if the process
        stops reading its input for longer than WRITE_TIMEOUT.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        view = memoryview(data)
        while view:
            try:
                written = os.write(self._master_fd, view)
            except BlockingIOError:
                _, ready, _ = select.select([], [self._master_fd], [], WRITE_TIMEOUT)
                if not ready:
                    raise TimeoutError(
                        f"PTY session {self.id} is not accepting input"
                    ) from None
                continue
            view = view[written:]

    def resize(self, cols: int, rows: int) -> bool:
        """Best-effort resize; returns False if the PTY refused it."""
        if not self.alive:
            return False
        cols, rows = clamp_size(cols, rows)
        try:
            _set_winsize(self._master_fd, cols, rows)
        except OSError as e:
            logger.warning("Resize failed for PTY session %s: %s", self.id, e)
            return False
        self.cols, self.rows = cols, rows
        # The shell is not a controlling-tty owner, so notify it directly.
        self._signal_group(signal.SIGWINCH)
        return True

    async def kill(self) -> bool:
        """Kill the process tree and wait for the exit notification.

        Returns False when the session was already exiting or dead.
        """
        with self._lock:
            if self._status is not PTYStatus.RUNNING:
                return False
            self._status = PTYStatus.KILLING

        self._signal_group(signal.SIGKILL)

        consumer = self._consumer_task
        if consumer is not None and consumer is not asyncio.current_task():
            try:
                await asyncio.wait_for(asyncio.shield(consumer), timeout=KILL_GRACE * 2)
            except asyncio.TimeoutError:
                logger.warning("PTY session %s did not drain after kill", self.id)
                self._stop_reading()
                consumer.cancel()

        if not self._finalized:
            exit_code, sig = await self._reap()
            self._finalize(exit_code, sig)
        return True

    def terminate(self) -> None:
        """Synchronously SIGKILL the process group without waiting.

        For interpreter shutdown paths where the event loop is gone. The
        session is marked as killing so a later finalize reports KILLED.
        """
        with self._lock:
            if self._status is PTYStatus.RUNNING:
                self._status = PTYStatus.KILLING
            elif self._status is not PTYStatus.KILLING:
                return
        self._signal_group(signal.SIGKILL)

    def _signal_group(self, sig: int) -> None:
        if not self._pgid:
            return
        try:
            os.killpg(self._pgid, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error signalling PTY session %s: %s", self.id, e)

    async def wait_closed(self, timeout: float | None = None) -> None:
        """Wait until the exit notification has been emitted."""
        if self._consumer_task is None:
            return
        await asyncio.wait_for(asyncio.shield(self._consumer_task), timeout=timeout)

    @property
    def alive(self) -> bool:
        return self._status is PTYStatus.RUNNING

    @property
    def status(self) -> PTYStatus:
        return self._status

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def exit_signal(self) -> int | None:
        return self._exit_signal

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "pid": self._pid,
            "command": " ".join(self.command),
            "cwd": self.cwd,
            "cols": self.cols,
            "rows": self.rows,
            "alive": self.alive,
            "status": self._status.value,
        }
