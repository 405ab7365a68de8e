"""Telemetry header: the status line prepended to command output.

Pure presentation: every function here takes plain values and returns a
string, so nothing needs a process or a clock to test.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from termhub.telemetry import TelemetrySnapshot

BAR_LENGTH = 10
WARN_PERCENT = 75.0
CRITICAL_PERCENT = 90.0

CYAN = "\x1b[36m"
YELLOW = "\x1b[33m"
RED = "\x1b[31m"
RESET = "\x1b[0m"

ULTRATHINK_RE = re.compile(r"\[\[\s*ultrathink\s*\]\]", re.IGNORECASE)
ULTRATHINK_LABEL = "UltraThink Analysis"
LIMIT_WARNING = "⚠️  CONTEXT LIMIT APPROACHING"

# Every header line contains this; command output is everything after it.
_HEADER_RE = re.compile(r"^\x1b\[\d+m[█░]{%d} .* \| DAIC: [^\n]*$" % BAR_LENGTH)


def context_percentage(used: int, limit: int) -> float:
    return used / (limit or 1) * 100


def render_bar(percentage: float) -> str:
    filled = max(0, min(BAR_LENGTH, math.floor(percentage / 10)))
    return "█" * filled + "░" * (BAR_LENGTH - filled)


def color_for(percentage: float) -> str:
    if percentage >= CRITICAL_PERCENT:
        return RED
    if percentage >= WARN_PERCENT:
        return YELLOW
    return CYAN


def is_ultrathink(command: str) -> bool:
    return bool(ULTRATHINK_RE.search(command))


def format_header(
    context_used: int,
    context_limit: int,
    task: str,
    files_edited: int,
    daic_state: str,
) -> str:
    """Render one header line from fixed inputs."""
    percentage = context_percentage(context_used, context_limit)
    display = (
        f"{color_for(percentage)}{render_bar(percentage)} {percentage:.1f}% "
        f"({context_used // 1000}k/{context_limit // 1000}k){RESET}"
    )
    line = f"{display} | Task: {task} | Files: {files_edited} | DAIC: {daic_state}"
    if percentage >= CRITICAL_PERCENT:
        line += f" | {LIMIT_WARNING}"
    return line


def render_header(snapshot: TelemetrySnapshot, command: str = "") -> str:
    """Header for ``command`` run under ``snapshot``."""
    task = ULTRATHINK_LABEL if is_ultrathink(command) else snapshot.current_task
    return format_header(
        snapshot.context_used,
        snapshot.context_limit,
        task,
        snapshot.files_edited,
        snapshot.daic_state,
    )


def prepend_header(header: str, stdout: str) -> str:
    return f"{header}\n{stdout}" if stdout else header


def split_header(stdout: str) -> tuple[str | None, str]:
    """Separate a leading header line from the command's own output."""
    first, sep, rest = stdout.partition("\n")
    if _HEADER_RE.match(first):
        return first, rest
    return None, stdout
