"""Tests for termhub.telemetry (snapshots, sources, status payload)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from termhub.telemetry import (
    FileTelemetrySource,
    StaticTelemetrySource,
    TelemetrySnapshot,
    TelemetrySource,
    TelemetryState,
    context_status,
)


class TestSnapshot:
    def test_defaults(self) -> None:
        snap = TelemetrySnapshot()
        assert snap.context_used == 0
        assert snap.context_limit == 160_000
        assert snap.current_task == "System Ready"
        assert snap.files_edited == 0
        assert snap.daic_state == "Discussion"
        assert snap.ultra_think_mode == "api"

    def test_camel_case_input(self) -> None:
        snap = TelemetrySnapshot.model_validate(
            {"contextUsed": 1000, "currentTask": "T", "daicState": "Implementation"}
        )
        assert snap.context_used == 1000
        assert snap.current_task == "T"
        assert snap.daic_state == "Implementation"

    def test_camel_case_output(self) -> None:
        dumped = TelemetrySnapshot().model_dump(by_alias=True)
        assert set(dumped) == {
            "contextUsed",
            "contextLimit",
            "currentTask",
            "filesEdited",
            "daicState",
            "ultraThinkMode",
        }

    def test_frozen(self) -> None:
        snap = TelemetrySnapshot()
        with pytest.raises(ValidationError):
            snap.context_used = 5  # type: ignore[misc]

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TelemetrySnapshot(context_used=-1)


class TestSources:
    def test_static(self) -> None:
        snap = TelemetrySnapshot(files_edited=3)
        source = StaticTelemetrySource(snap)
        assert isinstance(source, TelemetrySource)
        assert source.snapshot() is snap

    def test_state_update(self) -> None:
        state = TelemetryState(current_task="A")
        before = state.snapshot()
        after = state.update(context_used=5000, current_task="B")
        assert before.current_task == "A"
        assert after.current_task == "B"
        assert state.snapshot().context_used == 5000

    def test_state_rejects_invalid_update(self) -> None:
        state = TelemetryState()
        with pytest.raises(ValidationError):
            state.update(files_edited=-3)
        assert state.snapshot().files_edited == 0

    def test_file_missing(self, tmp_path: Path) -> None:
        assert FileTelemetrySource(tmp_path / "none.json").snapshot() == TelemetrySnapshot()

    def test_file_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "context.json"
        path.write_text(json.dumps({"contextUsed": 42_000, "filesEdited": 2}))
        snap = FileTelemetrySource(path).snapshot()
        assert snap.context_used == 42_000
        assert snap.files_edited == 2

    def test_file_reread_each_call(self, tmp_path: Path) -> None:
        path = tmp_path / "context.json"
        source = FileTelemetrySource(path)
        path.write_text(json.dumps({"contextUsed": 1}))
        assert source.snapshot().context_used == 1
        path.write_text(json.dumps({"contextUsed": 2}))
        assert source.snapshot().context_used == 2

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]", '{"contextUsed": "lots"}'])
    def test_file_bad_content(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "context.json"
        path.write_text(content)
        assert FileTelemetrySource(path).snapshot() == TelemetrySnapshot()


class TestContextStatus:
    def test_fresh(self) -> None:
        status = context_status(TelemetrySnapshot())
        assert status["percentage"] == 0.0
        assert status["remaining"] == 160_000
        assert status["visualBar"] == "░" * 10
        assert status["warning"] is None

    def test_warning_band(self) -> None:
        status = context_status(TelemetrySnapshot(context_used=120_000))
        assert status["percentage"] == 75.0
        assert status["warning"] == "WARNING: Start wrapping up"

    def test_critical(self) -> None:
        status = context_status(TelemetrySnapshot(context_used=150_000))
        assert status["percentage"] == 93.8
        assert status["warning"] == "CRITICAL: Wrap up immediately!"

    def test_over_limit_is_capped(self) -> None:
        status = context_status(TelemetrySnapshot(context_used=200_000))
        assert status["percentage"] == 100.0
        assert status["remaining"] == 0
        assert status["visualBar"] == "█" * 10
