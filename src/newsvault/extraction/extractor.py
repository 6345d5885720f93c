"""Article extractor combining linked-data metadata with embedded body content."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path, PurePosixPath

from charset_normalizer import from_bytes

from newsvault.extraction.body import BodyStrategy, SandboxedEvaluationStrategy, extract_body
from newsvault.extraction.linked_data import (
    MalformedMetadataError,
    parse_document,
    parse_linked_data,
    select_body_script_text,
    select_linked_data_text,
)
from newsvault.extraction.models import ExtractedRecord, LinkedDataMetadata, SourceDocument

logger = logging.getLogger(__name__)

_INDEX_PAGE = "index.html"


@dataclass(slots=True)
class DocumentReadError(Exception):
    """Source file could not be read or decoded."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"


@dataclass(slots=True)
class MissingIdentifierError(Exception):
    """Neither metadata nor the file path yields an identifier."""

    path: str

    def __str__(self) -> str:
        return f"No identifier obtainable for {self.path}"


def decode_document(raw: bytes) -> str:
    """Decode page bytes, preferring UTF-8 and falling back to charset detection."""

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass

    best = from_bytes(raw).best()
    if best is not None and best.encoding:
        return str(best)
    return raw.decode("utf-8", errors="replace")


def read_document(path: str | Path) -> SourceDocument:
    source = Path(path)
    try:
        raw = source.read_bytes()
    except OSError as exc:
        raise DocumentReadError(source, f"Failed to read source file: {exc}") from exc
    return SourceDocument(path=str(source), raw_text=decode_document(raw))


def path_identifier(path: str | Path, source_root: str | Path | None) -> str:
    """Derive a provisional identifier from the document path.

    The source root prefix and a trailing `index.html` segment are removed, e.g.
    `<root>/tw.appledaily.com/local/20200101/ABC/index.html` becomes
    `tw.appledaily.com/local/20200101/ABC/`.
    """

    document_path = Path(path)
    if source_root is not None:
        try:
            document_path = document_path.resolve().relative_to(Path(source_root).resolve())
        except ValueError:
            pass

    parts = [part for part in PurePosixPath(document_path.as_posix()).parts if part != "/"]
    trailing = ""
    if parts and parts[-1] == _INDEX_PAGE:
        parts = parts[:-1]
        trailing = "/"
    if not parts:
        return ""
    return "/".join(parts) + trailing


class ArticleExtractor:
    """Produce one ExtractedRecord per archived page, or None for id-only pages."""

    def __init__(
        self,
        *,
        source_root: str | Path | None = None,
        body_strategy: BodyStrategy | None = None,
    ) -> None:
        self._source_root = Path(source_root) if source_root is not None else None
        self._body_strategy = body_strategy or SandboxedEvaluationStrategy()

    def extract_path(self, path: str | Path) -> ExtractedRecord | None:
        return self.extract(read_document(path))

    def extract(self, document: SourceDocument) -> ExtractedRecord | None:
        soup = parse_document(document.raw_text)

        metadata = self._extract_metadata(document, select_linked_data_text(soup))
        raw_content = extract_body(select_body_script_text(soup), self._body_strategy)

        identifier = metadata.source_id or path_identifier(document.path, self._source_root)
        if not identifier:
            raise MissingIdentifierError(document.path)

        record = ExtractedRecord.from_metadata(identifier, metadata, raw_content)
        if not record.is_worth_persisting():
            logger.debug("Discarding id-only record for %s", document.path)
            return None
        return record

    def _extract_metadata(self, document: SourceDocument, payload: str | None) -> LinkedDataMetadata:
        if payload is None:
            return LinkedDataMetadata()
        try:
            return parse_linked_data(payload)
        except MalformedMetadataError as exc:
            logger.warning("Ignoring malformed linked data in %s: %s", document.path, exc)
            return LinkedDataMetadata()
