"""Run-scoped canonical-key claims for first-writer-wins deduplication."""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Callable

from newsvault.canonical import CanonicalKey

REASON_ID_COLLISION = "id-collision"
REASON_TARGET_EXISTS = "target-exists"


@dataclass(frozen=True, slots=True)
class ClaimRecord:
    """Who claimed a key first and whether storage already held it at that moment."""

    owner: str
    preexisting: bool


@dataclass(frozen=True, slots=True)
class ClaimDecision:
    """Result of one claim attempt."""

    claimed: bool
    reason: str | None
    key: CanonicalKey
    owner: str

    @property
    def is_duplicate(self) -> bool:
        return not self.claimed


class DedupIndex:
    """In-memory claim registry guarded by a single lock.

    A key has at most one live claim per run; a claimant whose write fails
    releases it. The claimant also records whether storage already held the
    key (a previous run's output), so later claimants report the same reason.
    """

    def __init__(self, has_persisted: Callable[[CanonicalKey], bool] | None = None) -> None:
        self._has_persisted = has_persisted or (lambda _key: False)
        self._claims: dict[str, ClaimRecord] = {}
        self._lock = threading.Lock()

    def try_claim(self, key: CanonicalKey, owner: str) -> ClaimDecision:
        with self._lock:
            existing = self._claims.get(key.url)
            if existing is not None:
                reason = REASON_TARGET_EXISTS if existing.preexisting else REASON_ID_COLLISION
                return ClaimDecision(claimed=False, reason=reason, key=key, owner=existing.owner)

            preexisting = self._has_persisted(key)
            self._claims[key.url] = ClaimRecord(owner=owner, preexisting=preexisting)

        if preexisting:
            return ClaimDecision(claimed=False, reason=REASON_TARGET_EXISTS, key=key, owner=owner)
        return ClaimDecision(claimed=True, reason=None, key=key, owner=owner)

    def release(self, key: CanonicalKey, owner: str) -> bool:
        """Drop `owner`'s claim after a failed write so a later copy can place the key."""

        with self._lock:
            existing = self._claims.get(key.url)
            if existing is None or existing.owner != owner:
                return False
            del self._claims[key.url]
            return True

    def has_persisted(self, key: CanonicalKey) -> bool:
        return self._has_persisted(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._claims)

    def snapshot(self) -> dict[str, str]:
        """Canonical URL to owning path, for reporting."""

        with self._lock:
            return {url: claim.owner for url, claim in self._claims.items()}
