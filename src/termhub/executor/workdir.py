"""Working-directory resolution for one-shot commands."""

from __future__ import annotations

import os
from pathlib import Path


def resolve_working_directory(root: Path | str, requested: str | None = None) -> Path:
    """Resolve ``requested`` against ``root``.

    Anything that escapes the root (``..``, absolute paths elsewhere)
    collapses to the root itself.
    """
    base = Path(root).expanduser().resolve()
    if not requested or not isinstance(requested, str):
        return base
    candidate = (base / requested).resolve()
    if candidate == base or candidate.is_relative_to(base):
        return candidate
    return base


def is_accessible(path: Path | str) -> bool:
    return os.path.isdir(path) and os.access(path, os.R_OK | os.X_OK)


def relative_cwd(root: Path | str, path: Path | str) -> str:
    rel = os.path.relpath(path, Path(root).expanduser().resolve())
    return rel or "."
