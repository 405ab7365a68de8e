"""Output truncation: bound captured command output."""

from __future__ import annotations

import re

MAX_OUTPUT_BYTES = 1024 * 1024  # 1 MiB per stream
HISTORY_MAX_CHARS = 8000
HISTORY_TRUNCATION_NOTICE = "\n… output truncated"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


class CappedOutput:
    """Accumulates a stream, keeping at most ``limit`` bytes.

    Bytes past the limit are counted and dropped, so the producer never
    blocks on a full pipe and the capture is truncated rather than rejected.
    """

    def __init__(self, limit: int = MAX_OUTPUT_BYTES) -> None:
        self.limit = limit
        self._chunks: list[bytes] = []
        self._size = 0
        self.dropped = 0

    def feed(self, data: bytes) -> None:
        room = self.limit - self._size
        if room <= 0:
            self.dropped += len(data)
            return
        kept = data[:room]
        self._chunks.append(kept)
        self._size += len(kept)
        self.dropped += len(data) - len(kept)

    @property
    def truncated(self) -> bool:
        return self.dropped > 0

    def text(self) -> str:
        # Cutting at a byte limit may split a character; "ignore" drops the stub.
        result = b"".join(self._chunks).decode("utf-8", errors="ignore" if self.truncated else "replace")
        if self.truncated:
            result += f"\n[Output truncated: {self.dropped} bytes skipped]"
        return result


def truncate_for_history(text: str, max_chars: int = HISTORY_MAX_CHARS) -> str:
    """Cap a stream for the persisted history log."""
    if not isinstance(text, str):
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + HISTORY_TRUNCATION_NOTICE


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)
