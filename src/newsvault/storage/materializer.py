"""Atomic JSON persistence of accepted records under their canonical path."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
import tempfile

from newsvault.canonical import CanonicalKey
from newsvault.extraction.models import ExtractedRecord
from newsvault.extraction.normalization import replace_lone_surrogates

logger = logging.getLogger(__name__)

DEFAULT_RECORD_FILENAME = "index.json"


@dataclass(slots=True)
class MaterializationError(Exception):
    """Directory creation or record write failed."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"


def serialize_record(record: ExtractedRecord) -> str:
    text = json.dumps(record.to_payload(), ensure_ascii=False, indent=2) + "\n"
    return replace_lone_surrogates(text)


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class RecordMaterializer:
    """Write one record per canonical key at `<root>/<category>/<date>/<hash>/<filename>`."""

    def __init__(self, destination_root: str | Path, *, filename: str = DEFAULT_RECORD_FILENAME) -> None:
        if not filename or "/" in filename or "\\" in filename:
            raise ValueError("filename must be a bare file name")
        self._root = Path(destination_root)
        self._filename = filename
        self._file_mode = _default_file_mode()

    def target_path(self, key: CanonicalKey) -> Path:
        return self._root / key.category / key.date / key.hash / self._filename

    def has_persisted(self, key: CanonicalKey) -> bool:
        return self.target_path(key).exists()

    def materialize(self, key: CanonicalKey, record: ExtractedRecord) -> Path:
        """Persist `record` with its id rewritten to the canonical URL.

        The payload goes to a temporary sibling first and is renamed into place,
        so a failed write never leaves a truncated record behind.
        """

        target = self.target_path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MaterializationError(target.parent, f"Failed to create record directory: {exc}") from exc

        payload = serialize_record(record.with_id(key.url))
        temp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=target.parent,
                prefix=f".{self._filename}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(temp_name, self._file_mode)
            os.replace(temp_name, target)
        except (OSError, UnicodeError) as exc:
            _discard(temp_name)
            raise MaterializationError(target, f"Failed to write record: {exc}") from exc
        except BaseException:
            _discard(temp_name)
            raise

        logger.debug("Wrote %s", target)
        return target


def _discard(temp_name: str | None) -> None:
    if temp_name is not None:
        Path(temp_name).unlink(missing_ok=True)
