"""Configuration: Pydantic models for termhub settings."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_COLS = 80
DEFAULT_ROWS = 24


class TerminalConfig(BaseModel):
    """Interactive PTY session configuration."""

    shell: str | None = Field(
        default=None,
        description="Shell for new sessions. Defaults to $SHELL, then /bin/bash.",
    )
    term: str = Field(default="xterm-256color")
    colorterm: str = Field(default="truecolor")
    default_cols: int = Field(default=DEFAULT_COLS, ge=1)
    default_rows: int = Field(default=DEFAULT_ROWS, ge=1)
    read_chunk_size: int = Field(default=4096, ge=1)


class ExecutorConfig(BaseModel):
    """One-shot command execution configuration."""

    root_dir: str = Field(
        default=".",
        description="Fixed root that requested working directories resolve against",
    )
    shell: str = Field(default="/bin/bash")
    timeout: float = Field(default=20.0, gt=0, description="Hard timeout in seconds")
    max_output_bytes: int = Field(
        default=1024 * 1024, description="Capture cap per stream (stdout, stderr)"
    )
    history_max_entries: int = Field(default=200, ge=1)
    history_entry_max_chars: int = Field(
        default=8000, description="Per-stream cap for the copy kept in history"
    )


class TermhubConfig(BaseModel):
    """Top-level termhub configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    data_dir: str = Field(default="~/.termhub", description="Directory for data files")
    history_file: str | None = Field(
        default=None, description="Defaults to <data_dir>/terminal-history.json"
    )
    telemetry_file: str | None = Field(
        default=None, description="Defaults to <data_dir>/context.json"
    )

    @property
    def history_path(self) -> Path:
        if self.history_file:
            return Path(self.history_file).expanduser()
        return Path(self.data_dir).expanduser() / "terminal-history.json"

    @property
    def telemetry_path(self) -> Path:
        if self.telemetry_file:
            return Path(self.telemetry_file).expanduser()
        return Path(self.data_dir).expanduser() / "context.json"

    @classmethod
    def load(cls, config_path: str | None = None) -> TermhubConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TERMHUB_SHELL         - Shell for interactive sessions
            TERMHUB_ROOT_DIR      - Root directory for one-shot commands
            TERMHUB_EXEC_TIMEOUT  - Hard timeout for one-shot commands (seconds)
            TERMHUB_HISTORY_MAX   - Maximum number of history entries kept
            TERMHUB_DATA_DIR      - Directory for history and telemetry files
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal", {})
        executor = config_data.get("executor", {})

        env_shell = os.environ.get("TERMHUB_SHELL")
        if env_shell:
            terminal["shell"] = env_shell

        env_root = os.environ.get("TERMHUB_ROOT_DIR")
        if env_root:
            executor["root_dir"] = env_root

        env_timeout = os.environ.get("TERMHUB_EXEC_TIMEOUT")
        if env_timeout:
            executor["timeout"] = float(env_timeout)

        env_history_max = os.environ.get("TERMHUB_HISTORY_MAX")
        if env_history_max:
            executor["history_max_entries"] = int(env_history_max)

        env_data_dir = os.environ.get("TERMHUB_DATA_DIR")
        if env_data_dir:
            config_data["data_dir"] = env_data_dir

        if terminal:
            config_data["terminal"] = terminal
        if executor:
            config_data["executor"] = executor

        return cls.model_validate(config_data)
