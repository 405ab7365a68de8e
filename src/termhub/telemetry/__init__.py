"""Telemetry: read-only snapshots of context usage and workflow state.

The command executor samples a snapshot per invocation and never mutates
it. Sources are pure accessors.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from termhub.telemetry.header import (
    ULTRATHINK_LABEL,
    context_percentage,
    render_bar,
    render_header,
    split_header,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LIMIT = 160_000


class TelemetrySnapshot(BaseModel):
    """Context usage and workflow state at one instant."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    context_used: int = Field(default=0, ge=0)
    context_limit: int = Field(default=DEFAULT_CONTEXT_LIMIT, ge=0)
    current_task: str = "System Ready"
    files_edited: int = Field(default=0, ge=0)
    daic_state: str = "Discussion"
    ultra_think_mode: str = "api"


@runtime_checkable
class TelemetrySource(Protocol):
    def snapshot(self) -> TelemetrySnapshot: ...


class StaticTelemetrySource:
    """Always returns the same snapshot."""

    def __init__(self, snapshot: TelemetrySnapshot | None = None) -> None:
        self._snapshot = snapshot or TelemetrySnapshot()

    def snapshot(self) -> TelemetrySnapshot:
        return self._snapshot


class TelemetryState:
    """In-process telemetry holder that other components update.

    ``snapshot()`` hands out an immutable copy, so readers never observe a
    half-applied update.
    """

    def __init__(self, **initial: Any) -> None:
        self._lock = threading.Lock()
        self._snapshot = TelemetrySnapshot(**initial)

    def update(self, **fields: Any) -> TelemetrySnapshot:
        with self._lock:
            data = self._snapshot.model_dump()
            data.update(fields)
            self._snapshot = TelemetrySnapshot.model_validate(data)
            return self._snapshot

    def snapshot(self) -> TelemetrySnapshot:
        with self._lock:
            return self._snapshot


class FileTelemetrySource:
    """Reads a JSON telemetry file (camelCase or snake_case keys) per call.

    A missing or malformed file yields the default snapshot.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def snapshot(self) -> TelemetrySnapshot:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return TelemetrySnapshot()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable telemetry file %s: %s", self.path, e)
            return TelemetrySnapshot()
        if not isinstance(data, dict):
            return TelemetrySnapshot()
        try:
            return TelemetrySnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid telemetry file %s: %s", self.path, e)
            return TelemetrySnapshot()


def context_status(snapshot: TelemetrySnapshot) -> dict[str, Any]:
    """Status payload for dashboards: percentage, remaining budget, warning."""
    percentage = min(100.0, max(0.0, context_percentage(snapshot.context_used, snapshot.context_limit)))
    if percentage >= 90:
        warning = "CRITICAL: Wrap up immediately!"
    elif percentage >= 75:
        warning = "WARNING: Start wrapping up"
    else:
        warning = None
    return {
        "contextUsed": snapshot.context_used,
        "contextLimit": snapshot.context_limit,
        "percentage": round(percentage, 1),
        "remaining": max(0, snapshot.context_limit - snapshot.context_used),
        "visualBar": render_bar(percentage),
        "currentTask": snapshot.current_task,
        "filesEdited": snapshot.files_edited,
        "daicState": snapshot.daic_state,
        "warning": warning,
    }


__all__ = [
    "DEFAULT_CONTEXT_LIMIT",
    "FileTelemetrySource",
    "StaticTelemetrySource",
    "TelemetrySnapshot",
    "TelemetrySource",
    "TelemetryState",
    "ULTRATHINK_LABEL",
    "context_percentage",
    "context_status",
    "render_bar",
    "render_header",
    "split_header",
]
