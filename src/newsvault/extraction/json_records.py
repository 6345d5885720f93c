"""Load previously extracted record JSON, including the legacy key set."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any

from newsvault.extraction.extractor import DocumentReadError, MissingIdentifierError
from newsvault.extraction.models import ExtractedRecord

# Legacy dumps used `@id`, `articleSection` and `raw_content`.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "@id"),
    "section": ("section", "articleSection"),
    "description": ("description",),
    "date_modified": ("dateModified",),
    "date_published": ("datePublished",),
    "headline": ("headline",),
    "keywords": ("keywords",),
    "raw_content": ("rawContent", "raw_content"),
    "author": ("author",),
}
_KNOWN_KEYS = frozenset(alias for aliases in _FIELD_ALIASES.values() for alias in aliases)


@dataclass(slots=True)
class RecordFormatError(Exception):
    """Record file is not a JSON object."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"


def record_from_mapping(data: dict[str, Any], *, source: str = "<memory>") -> ExtractedRecord | None:
    values = {field: _first_present(data, aliases) for field, aliases in _FIELD_ALIASES.items()}

    identifier = values.pop("id")
    if not isinstance(identifier, str) or not identifier.strip():
        raise MissingIdentifierError(source)

    raw_content = values.pop("raw_content")
    if raw_content is not None and not isinstance(raw_content, list):
        raw_content = [str(raw_content)]

    record = ExtractedRecord(
        id=identifier.strip(),
        raw_content=raw_content,
        extras={key: value for key, value in data.items() if key not in _KNOWN_KEYS},
        **values,
    )
    return record if record.is_worth_persisting() else None


def load_record_file(path: str | Path) -> ExtractedRecord | None:
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(source, f"Failed to read record file: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RecordFormatError(source, f"Record file is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise RecordFormatError(source, "Record file does not hold a JSON object")

    return record_from_mapping(data, source=str(source))


def _first_present(data: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        if data.get(alias) is not None:
            return data[alias]
    return None
