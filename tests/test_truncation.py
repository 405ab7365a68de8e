"""Tests for termhub.executor.truncation."""

from __future__ import annotations

from termhub.executor.truncation import (
    HISTORY_MAX_CHARS,
    HISTORY_TRUNCATION_NOTICE,
    CappedOutput,
    strip_ansi,
    truncate_for_history,
)


# ---------------------------------------------------------------------------
# CappedOutput
# ---------------------------------------------------------------------------


class TestCappedOutput:
    def test_empty(self) -> None:
        out = CappedOutput(limit=10)
        assert out.text() == ""
        assert not out.truncated

    def test_within_limit(self) -> None:
        out = CappedOutput(limit=10)
        out.feed(b"hello")
        out.feed(b"world")
        assert out.text() == "helloworld"
        assert not out.truncated

    def test_over_limit_keeps_head(self) -> None:
        out = CappedOutput(limit=4)
        out.feed(b"abcdef")
        out.feed(b"ghi")
        assert out.dropped == 5
        assert out.text().startswith("abcd\n")
        assert "[Output truncated: 5 bytes skipped]" in out.text()

    def test_split_multibyte_char_is_dropped(self) -> None:
        out = CappedOutput(limit=1)
        out.feed("é".encode())
        assert out.text().startswith("\n[Output truncated")

    def test_invalid_utf8_replaced(self) -> None:
        out = CappedOutput(limit=10)
        out.feed(b"a\xffb")
        assert out.text() == "a�b"


# ---------------------------------------------------------------------------
# truncate_for_history
# ---------------------------------------------------------------------------


class TestTruncateForHistory:
    def test_short_unchanged(self) -> None:
        assert truncate_for_history("abc") == "abc"

    def test_exact_limit_unchanged(self) -> None:
        text = "x" * HISTORY_MAX_CHARS
        assert truncate_for_history(text) == text

    def test_over_limit(self) -> None:
        text = "x" * (HISTORY_MAX_CHARS + 1)
        result = truncate_for_history(text)
        assert result == "x" * HISTORY_MAX_CHARS + HISTORY_TRUNCATION_NOTICE

    def test_custom_limit(self) -> None:
        assert truncate_for_history("abcdef", max_chars=3) == "abc\n… output truncated"

    def test_non_string(self) -> None:
        assert truncate_for_history(None) == ""  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# strip_ansi
# ---------------------------------------------------------------------------


class TestStripAnsi:
    def test_removes_color_codes(self) -> None:
        assert strip_ansi("\x1b[31mred\x1b[0m") == "red"

    def test_plain_text(self) -> None:
        assert strip_ansi("plain") == "plain"
