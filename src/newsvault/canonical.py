"""Canonical article identity derived from archived source URLs."""

from __future__ import annotations

from dataclasses import dataclass
import re

DEFAULT_SOURCE_DOMAIN = "appledaily.com"
DEFAULT_CANONICAL_HOST = "tw.appledaily.com"

_QUERY_OR_FRAGMENT_RE = re.compile(r"[?#].*$", re.DOTALL)
_INDEX_PAGE = "index.html"


@dataclass(frozen=True, slots=True)
class CanonicalKey:
    """Normalized (category, date, hash) triple plus its rewritten URL."""

    category: str
    date: str
    hash: str
    url: str

    @property
    def parts(self) -> tuple[str, str, str]:
        return (self.category, self.date, self.hash)


class CanonicalResolver:
    """Match identifiers against `<domain>/.../<category>/<yyyymmdd>/<hash>[/index.html][/]`."""

    def __init__(
        self,
        *,
        source_domain: str = DEFAULT_SOURCE_DOMAIN,
        canonical_host: str = DEFAULT_CANONICAL_HOST,
    ) -> None:
        if not source_domain:
            raise ValueError("source_domain cannot be empty")
        if not canonical_host:
            raise ValueError("canonical_host cannot be empty")
        self._source_domain = source_domain
        self._canonical_host = canonical_host.strip("/")
        self._pattern = re.compile(
            re.escape(source_domain)
            + r"(?:/[^/]+)*?/(?P<category>[^/]+)/(?P<date>[0-9]{8})/(?P<hash>[^/]+?)(?:/index\.html)?/?$"
        )

    def resolve(self, identifier: str | None) -> CanonicalKey | None:
        """Return the canonical key for an identifier, or None when the shape does not match."""

        if not identifier:
            return None

        cleaned = _QUERY_OR_FRAGMENT_RE.sub("", identifier.strip())
        match = self._pattern.search(cleaned)
        if match is None:
            return None

        category = match.group("category")
        date = match.group("date")
        article_hash = match.group("hash")
        if article_hash == _INDEX_PAGE or self._source_domain in category:
            return None

        return CanonicalKey(
            category=category,
            date=date,
            hash=article_hash,
            url=self.canonical_url(category, date, article_hash),
        )

    def canonical_url(self, category: str, date: str, article_hash: str) -> str:
        return f"https://{self._canonical_host}/{category}/{date}/{article_hash}/"


_DEFAULT_RESOLVER = CanonicalResolver()


def resolve(identifier: str | None) -> CanonicalKey | None:
    """Resolve with the default domain and canonical host."""

    return _DEFAULT_RESOLVER.resolve(identifier)
