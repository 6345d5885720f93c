"""Per-task outcomes and run-level summary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

SKIP_NO_MATCH = "no-match"
SKIP_EMPTY_RECORD = "empty-record"
SKIP_MISSING_ID = "missing-id"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """Terminal result of one task; never mutated after creation."""

    path: str
    status: OutcomeStatus
    reason: str | None = None
    key: str | None = None
    message: str | None = None
    target: str | None = None

    @classmethod
    def success(cls, path: str, *, key: str, target: str) -> "TaskOutcome":
        return cls(path=path, status=OutcomeStatus.SUCCESS, key=key, target=target)

    @classmethod
    def duplicate(cls, path: str, *, key: str, reason: str, owner: str | None = None) -> "TaskOutcome":
        message = f"first claimed by {owner}" if owner and owner != path else None
        return cls(path=path, status=OutcomeStatus.DUPLICATE, reason=reason, key=key, message=message)

    @classmethod
    def skipped(cls, path: str, *, reason: str, key: str | None = None) -> "TaskOutcome":
        return cls(path=path, status=OutcomeStatus.SKIPPED, reason=reason, key=key)

    @classmethod
    def failed(cls, path: str, message: str, *, key: str | None = None, reason: str = "error") -> "TaskOutcome":
        return cls(path=path, status=OutcomeStatus.FAILED, reason=reason, key=key, message=message)

    def to_payload(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "reason": self.reason,
            "key": self.key,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Outcomes and counters of one completed scheduler run."""

    outcomes: tuple[TaskOutcome, ...]
    attempted: int
    succeeded: int
    duplicated: int
    skipped: int
    failed: int
    elapsed_seconds: float
    peak_in_flight: int = 0
    concurrency: int = 0

    @property
    def issues(self) -> tuple[TaskOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.status is not OutcomeStatus.SUCCESS)

    def by_status(self, status: OutcomeStatus) -> list[TaskOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    def to_payload(self, **extra: Any) -> dict[str, Any]:
        payload: dict[str, Any] = dict(extra)
        payload.update(
            {
                "attempted": self.attempted,
                "succeeded": self.succeeded,
                "duplicated": self.duplicated,
                "skipped": self.skipped,
                "failed": self.failed,
                "elapsed_seconds": round(self.elapsed_seconds, 3),
                "concurrency": self.concurrency,
                "peak_in_flight": self.peak_in_flight,
                "issues": [outcome.to_payload() for outcome in self.issues],
            }
        )
        return payload

