"""Candidate file enumeration under a source root."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

HTML_SUFFIXES = frozenset({".html", ".htm"})
JSON_SUFFIXES = frozenset({".json"})


def collect_inputs(target: str | Path, suffixes: Iterable[str] = HTML_SUFFIXES) -> list[Path]:
    """Return matching files in a stable, sorted order; a file target is returned as-is."""

    root = Path(target)
    allowed = {suffix.lower() for suffix in suffixes}
    if root.is_file():
        return [root]
    if root.is_dir():
        return sorted(path for path in root.rglob("*") if path.is_file() and path.suffix.lower() in allowed)
    return []
