"""Canonical data structures shared by the article extraction stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Output mapping-key order for persisted records.
RECORD_FIELD_ORDER: tuple[str, ...] = (
    "id",
    "section",
    "description",
    "dateModified",
    "datePublished",
    "headline",
    "keywords",
    "rawContent",
    "author",
)

MetadataValue = str | list[str] | None


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """Immutable view of one input file."""

    path: str
    raw_text: str


@dataclass(slots=True)
class LinkedDataMetadata:
    """Article metadata pulled from an embedded linked-data block."""

    source_id: str | None = None
    section: MetadataValue = None
    description: MetadataValue = None
    date_modified: MetadataValue = None
    date_published: MetadataValue = None
    headline: MetadataValue = None
    keywords: MetadataValue = None
    author: MetadataValue = None


@dataclass(frozen=True, slots=True)
class ContentElement:
    """One typed item of the embedded body content model."""

    kind: str
    content: str


@dataclass(slots=True)
class ExtractedRecord:
    """The unit of output: identity, metadata, and cleaned body text."""

    id: str
    section: MetadataValue = None
    description: MetadataValue = None
    date_modified: MetadataValue = None
    date_published: MetadataValue = None
    headline: MetadataValue = None
    keywords: MetadataValue = None
    raw_content: list[str] | None = None
    author: MetadataValue = None
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_metadata(
        cls,
        identifier: str,
        metadata: LinkedDataMetadata,
        raw_content: list[str] | None = None,
    ) -> "ExtractedRecord":
        return cls(
            id=identifier,
            section=metadata.section,
            description=metadata.description,
            date_modified=metadata.date_modified,
            date_published=metadata.date_published,
            headline=metadata.headline,
            keywords=metadata.keywords,
            raw_content=raw_content,
            author=metadata.author,
        )

    def populated_field_count(self) -> int:
        """Count fields carrying information, `id` included."""

        return sum(1 for value in self.to_payload().values() if _is_populated(value))

    def is_worth_persisting(self) -> bool:
        return self.populated_field_count() >= 2

    def with_id(self, identifier: str) -> "ExtractedRecord":
        return ExtractedRecord(
            id=identifier,
            section=self.section,
            description=self.description,
            date_modified=self.date_modified,
            date_published=self.date_published,
            headline=self.headline,
            keywords=self.keywords,
            raw_content=list(self.raw_content) if self.raw_content is not None else None,
            author=self.author,
            extras=dict(self.extras),
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the persisted mapping, in stable key order, omitting absent fields."""

        values: dict[str, Any] = {
            "id": self.id,
            "section": self.section,
            "description": self.description,
            "dateModified": self.date_modified,
            "datePublished": self.date_published,
            "headline": self.headline,
            "keywords": self.keywords,
            "rawContent": self.raw_content,
            "author": self.author,
        }
        payload = {key: values[key] for key in RECORD_FIELD_ORDER if values[key] is not None}
        for key, value in self.extras.items():
            if key not in payload and value is not None:
                payload[key] = value
        return payload


def _is_populated(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True
