"""Command executor: runs one shell command to completion or timeout.

Each invocation is independent of the interactive PTY sessions: a fresh
``bash -c`` in its own process group, stdout and stderr captured
separately, a hard timeout enforced with a group-wide SIGKILL, and one
history entry appended per run.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from termhub.config import ExecutorConfig
from termhub.errors import DirectoryNotAccessible, HistoryPersistError, InvalidArgument
from termhub.executor.models import (
    NO_EXIT_CODE,
    TIMED_OUT_EXIT_CODE,
    TIMEOUT_ERROR,
    CommandRequest,
    HistoryEntry,
)
from termhub.executor.result import (
    ExecOk,
    ExecOutcome,
    ExecPersistFailed,
    ExecRejected,
)
from termhub.executor.truncation import CappedOutput
from termhub.executor.workdir import is_accessible, relative_cwd, resolve_working_directory
from termhub.history import HistoryStore, MemoryHistoryStore, append_bounded
from termhub.telemetry import StaticTelemetrySource, TelemetrySnapshot, TelemetrySource
from termhub.telemetry.header import prepend_header, render_header

logger = logging.getLogger(__name__)

# Seconds to wait for pipes to drain once the process is gone.
DRAIN_TIMEOUT = 2.0


@dataclass
class _RunResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    timed_out: bool = False
    error: str | None = None


class CommandExecutor:
    """Runs one-shot shell commands with a hard timeout and telemetry overlay.

    Failures are returned as structured outcomes, never raised, so "the
    command failed" (a non-zero ``exit_code`` on an ``ExecOk``) stays
    distinguishable from "we failed to run the tooling" (``ExecRejected``,
    ``ExecPersistFailed``).
    """

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        telemetry: TelemetrySource | None = None,
        history: HistoryStore | None = None,
    ) -> None:
        self._config = config or ExecutorConfig()
        self._telemetry = telemetry or StaticTelemetrySource()
        self._history = history if history is not None else MemoryHistoryStore()
        self._root = Path(self._config.root_dir).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def history(self) -> HistoryStore:
        return self._history

    async def execute(self, command: str, cwd: str | None = None) -> ExecOutcome:
        """Run ``command`` and record it.

        Args:
            command: Shell command; must be non-empty after trimming.
            cwd: Working directory relative to the executor root.
        """
        trimmed = command.strip() if isinstance(command, str) else ""
        if not trimmed:
            return ExecRejected.from_error(InvalidArgument("Command is required"))

        workdir = resolve_working_directory(self._root, cwd)
        if not is_accessible(workdir):
            logger.warning("Working directory is not accessible: %s", workdir)
            return ExecRejected.from_error(DirectoryNotAccessible(str(workdir)))

        ran_at = datetime.now(timezone.utc)
        started = time.monotonic()
        run = await self._run(trimmed, workdir)
        duration_ms = int((time.monotonic() - started) * 1000)

        header = render_header(self._snapshot(), trimmed)
        entry = HistoryEntry(
            id=uuid.uuid4().hex[:12],
            command=trimmed,
            cwd=relative_cwd(self._root, workdir),
            stdout=prepend_header(header, run.stdout),
            stderr=run.stderr,
            exit_code=run.exit_code,
            ran_at=ran_at.isoformat(),
            duration_ms=duration_ms,
            timed_out=run.timed_out,
            error=run.error,
        )
        logger.info(
            "Command finished: exit=%d timed_out=%s %.1fs: %s",
            entry.exit_code,
            entry.timed_out,
            duration_ms / 1000,
            trimmed[:80],
        )

        try:
            await append_bounded(
                self._history,
                entry.to_history_record(self._config.history_entry_max_chars),
                self._config.history_max_entries,
            )
        except Exception as e:
            logger.error("Failed to persist terminal history: %s", e, exc_info=True)
            error = HistoryPersistError(f"Failed to persist terminal history: {e}")
            error.__cause__ = e
            return ExecPersistFailed.from_error(entry, error)

        return ExecOk(entry=entry)

    async def run_request(self, request: CommandRequest) -> ExecOutcome:
        return await self.execute(request.command, cwd=request.cwd)

    def _snapshot(self) -> TelemetrySnapshot:
        try:
            return self._telemetry.snapshot()
        except Exception as e:
            logger.error("Telemetry snapshot failed, using defaults: %s", e)
            return TelemetrySnapshot()

    async def _run(self, command: str, workdir: Path) -> _RunResult:
        try:
            process = await asyncio.create_subprocess_exec(
                self._config.shell,
                "-c",
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(workdir),
                start_new_session=True,  # New process group
            )
        except OSError as e:
            logger.error("Failed to spawn %s: %s", self._config.shell, e)
            return _RunResult(exit_code=NO_EXIT_CODE, error=f"Failed to spawn process: {e}")

        stdout = CappedOutput(self._config.max_output_bytes)
        stderr = CappedOutput(self._config.max_output_bytes)
        readers = [
            asyncio.create_task(_drain(process.stdout, stdout)),
            asyncio.create_task(_drain(process.stderr, stderr)),
        ]

        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=self._config.timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(
                "Command timed out after %ss, killing pgid %d", self._config.timeout, process.pid
            )
            _kill_group(process.pid)
            try:
                await asyncio.wait_for(process.wait(), timeout=DRAIN_TIMEOUT)
            except asyncio.TimeoutError:
                logger.error("Timed-out process %d was not reaped", process.pid)

        _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT)
        for task in pending:
            # A detached descendant still holds the pipe open.
            task.cancel()

        result = _RunResult(stdout=stdout.text(), stderr=stderr.text(), timed_out=timed_out)
        returncode = process.returncode

        if timed_out:
            result.exit_code = TIMED_OUT_EXIT_CODE
            result.error = TIMEOUT_ERROR
        elif returncode is None or returncode < 0:
            result.exit_code = NO_EXIT_CODE
            result.error = _signal_error(returncode)
        elif returncode != 0:
            result.exit_code = returncode
            result.error = f"Command failed with exit code {returncode}"
        return result


async def _drain(stream: asyncio.StreamReader | None, sink: CappedOutput) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            break
        sink.feed(chunk)


def _kill_group(pid: int) -> None:
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except ProcessLookupError:
        pass


def _signal_error(returncode: int | None) -> str:
    if returncode is None:
        return "Process ended without an exit code"
    try:
        name = signal.Signals(-returncode).name
    except ValueError:
        name = str(-returncode)
    return f"Process terminated by signal {name}"
