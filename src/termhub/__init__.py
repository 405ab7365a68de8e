"""termhub: live PTY sessions and one-shot command execution."""

__version__ = "0.1.0"
