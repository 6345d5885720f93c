"""Text cleanup helpers applied to body fragments and metadata values."""

from __future__ import annotations

import re
from typing import Iterable

_MARKUP_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_LONE_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")

BOILERPLATE_SENTINELS: frozenset[str] = frozenset({"在APP內訂閱"})
TRUNCATED_MARKUP_SENTINELS: frozenset[str] = frozenset({"<div style=\\"})


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def replace_lone_surrogates(text: str) -> str:
    """Swap unpaired UTF-16 surrogates (e.g. a truncated emoji escape) for U+FFFD."""

    return _LONE_SURROGATE_RE.sub("\ufffd", text)


def strip_markup(text: str) -> str:
    """Remove `<...>` spans, leaving their inner text."""

    return _MARKUP_TAG_RE.sub("", text)


def is_sentinel(fragment: str) -> bool:
    return fragment in BOILERPLATE_SENTINELS or fragment in TRUNCATED_MARKUP_SENTINELS


def clean_fragments(fragments: Iterable[str]) -> list[str]:
    """Strip markup and trailing carriage returns, then drop sentinels and blanks."""

    cleaned: list[str] = []
    for fragment in fragments:
        text = strip_markup(fragment).rstrip("\r")
        if not text or is_sentinel(text) or is_sentinel(fragment):
            continue
        cleaned.append(text)
    return cleaned
