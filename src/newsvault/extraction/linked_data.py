"""Linked-data (JSON-LD) metadata reader for archived article pages."""

from __future__ import annotations

from dataclasses import dataclass
import html
import json
from typing import Any

from bs4 import BeautifulSoup

from newsvault.extraction.models import LinkedDataMetadata, MetadataValue
from newsvault.extraction.normalization import normalize_whitespace

LINKED_DATA_SELECTOR = 'script[type="application/ld+json"]'
BODY_SCRIPT_SELECTOR = 'script[id="fusion-metadata"]'
_BODY_SCRIPT_MARKER = "globalContent"
_ARTICLE_TYPES = frozenset({"NewsArticle", "Article", "ReportageNewsArticle"})


@dataclass(slots=True)
class MalformedMetadataError(Exception):
    """Linked-data block is present but not usable."""

    message: str

    def __str__(self) -> str:
        return self.message


def parse_document(raw_text: str) -> BeautifulSoup:
    return BeautifulSoup(raw_text, "lxml")


def select_linked_data_text(soup: BeautifulSoup) -> str | None:
    """Return the first linked-data block's text, or None when the page has none."""

    node = soup.select_one(LINKED_DATA_SELECTOR)
    if node is None:
        return None
    text = node.string if node.string is not None else node.get_text()
    return text if text and text.strip() else None


def select_body_script_text(soup: BeautifulSoup) -> str | None:
    """Return the embedded client-state script, or None when the page has none."""

    node = soup.select_one(BODY_SCRIPT_SELECTOR)
    if node is None:
        node = next(
            (script for script in soup.find_all("script") if _BODY_SCRIPT_MARKER in (script.string or "")),
            None,
        )
    if node is None:
        return None
    text = node.string if node.string is not None else node.get_text()
    return text if text and text.strip() else None


def parse_linked_data(payload: str) -> LinkedDataMetadata:
    """Parse a JSON-LD payload into article metadata.

    The first object carrying `mainEntityOfPage` wins, then the first object
    typed as an article. An article without an entity yields `source_id=None`
    so the caller can fall back to a path-derived identifier.

    Raises MalformedMetadataError when the payload is not JSON or carries no
    article object.
    """

    data = _load_json(payload)
    article = _find_article(data)
    if article is None:
        raise MalformedMetadataError("Linked data has no article object")

    description = _pass_through(article.get("description"))
    if isinstance(description, str):
        description = description.strip()

    return LinkedDataMetadata(
        source_id=_main_entity_id(article.get("mainEntityOfPage")),
        section=_pass_through(article.get("articleSection")),
        description=description,
        date_modified=_pass_through(article.get("dateModified")),
        date_published=_pass_through(article.get("datePublished")),
        headline=_pass_through(article.get("headline")),
        keywords=_pass_through(article.get("keywords")),
        author=_author_names(article.get("author")),
    )


def _load_json(payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        pass
    # Some archived pages entity-escape the script body.
    try:
        return json.loads(html.unescape(payload), strict=False)
    except json.JSONDecodeError as exc:
        raise MalformedMetadataError(f"Linked data is not valid JSON: {exc}") from exc


def _find_article(data: Any) -> dict[str, Any] | None:
    if isinstance(data, dict) and isinstance(data.get("@graph"), list):
        data = data["@graph"]
    items = [item for item in (data if isinstance(data, list) else [data]) if isinstance(item, dict)]
    for item in items:
        if "mainEntityOfPage" in item:
            return item
    for item in items:
        if _ARTICLE_TYPES.intersection(_types_of(item)):
            return item
    return None


def _types_of(item: dict[str, Any]) -> list[str]:
    value = item.get("@type")
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [entry for entry in value if isinstance(entry, str)]
    return []


def _main_entity_id(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("@id")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _pass_through(value: Any) -> MetadataValue:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        strings = [item for item in value if isinstance(item, str)]
        return strings if strings else None
    return None


def _author_names(value: Any) -> MetadataValue:
    entries = value if isinstance(value, list) else [value]
    names: list[str] = []
    for entry in entries:
        if isinstance(entry, dict):
            entry = entry.get("name")
        if isinstance(entry, str):
            cleaned = normalize_whitespace(entry)
            if cleaned:
                names.append(cleaned)
    if not names:
        return None
    return names[0] if len(names) == 1 else names
