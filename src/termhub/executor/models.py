"""Request and history-entry models for one-shot command runs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from termhub.executor.truncation import truncate_for_history

# Exit-code sentinels. Real exit codes are 0-255, so neither can collide.
NO_EXIT_CODE = -1  # Ended without a real exit code (signaled or never spawned)
TIMED_OUT_EXIT_CODE = -2  # Force-killed by us after the hard timeout

TIMEOUT_ERROR = "Process terminated"


class CommandRequest(BaseModel):
    command: str = Field(description="The shell command to execute.")
    cwd: str | None = Field(
        default=None, description="Working directory, relative to the executor root."
    )


class HistoryEntry(BaseModel):
    """One completed command invocation. Immutable once built."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    id: str
    command: str
    cwd: str = Field(description="Working directory relative to the executor root")
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    ran_at: str = Field(description="ISO-8601 start time (UTC)")
    duration_ms: int = 0
    timed_out: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and self.error is None

    @property
    def has_real_exit_code(self) -> bool:
        return self.exit_code >= 0

    def to_wire(self) -> dict:
        """camelCase dict, as returned to callers."""
        return self.model_dump(by_alias=True)

    def to_history_record(self, max_chars: int) -> dict:
        """camelCase dict with each stream capped for the persisted log."""
        record = self.to_wire()
        record["stdout"] = truncate_for_history(self.stdout, max_chars)
        record["stderr"] = truncate_for_history(self.stderr, max_chars)
        return record
