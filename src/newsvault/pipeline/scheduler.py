"""Bounded worker pool that drives independent tasks to a terminal outcome."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
import threading
import time
from typing import Awaitable, Callable, Sequence

from newsvault.pipeline.outcomes import OutcomeStatus, RunSummary, TaskOutcome

LOGGER = logging.getLogger(__name__)

TaskHandler = Callable[[Path], Awaitable[TaskOutcome]]
OutcomeCallback = Callable[[int, int, TaskOutcome], None]


def default_concurrency() -> int:
    return os.cpu_count() or 1


class RunAggregator:
    """Run-scoped counters and outcome log shared by every worker slot."""

    def __init__(self, total: int) -> None:
        self._total = total
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak_in_flight = 0
        self._outcomes: list[TaskOutcome] = []
        self._counts = {status: 0 for status in OutcomeStatus}

    @property
    def total(self) -> int:
        return self._total

    @property
    def peak_in_flight(self) -> int:
        with self._lock:
            return self._peak_in_flight

    def dispatched(self) -> int:
        with self._lock:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            return self._in_flight

    def record(self, outcome: TaskOutcome) -> int:
        """Store a terminal outcome and return how many tasks have finished."""

        with self._lock:
            self._in_flight -= 1
            self._outcomes.append(outcome)
            self._counts[outcome.status] += 1
            return len(self._outcomes)

    def summary(self, *, elapsed_seconds: float, concurrency: int) -> RunSummary:
        with self._lock:
            return RunSummary(
                outcomes=tuple(self._outcomes),
                attempted=len(self._outcomes),
                succeeded=self._counts[OutcomeStatus.SUCCESS],
                duplicated=self._counts[OutcomeStatus.DUPLICATE],
                skipped=self._counts[OutcomeStatus.SKIPPED],
                failed=self._counts[OutcomeStatus.FAILED],
                elapsed_seconds=elapsed_seconds,
                peak_in_flight=self._peak_in_flight,
                concurrency=concurrency,
            )


class TaskScheduler:
    """Keep `min(concurrency, remaining)` tasks in flight until every task is terminal.

    Each worker slot pulls the next pending path as soon as its current task
    finishes. Any exception escaping the handler becomes a failed outcome for
    that task only.
    """

    def __init__(
        self,
        handler: TaskHandler,
        *,
        concurrency: int | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        budget = default_concurrency() if concurrency is None else concurrency
        if budget < 1:
            raise ValueError("concurrency must be >= 1")
        self._handler = handler
        self._concurrency = budget
        self._on_outcome = on_outcome

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def run(self, items: Sequence[str | Path]) -> RunSummary:
        started = time.perf_counter()
        aggregator = RunAggregator(total=len(items))
        slots = min(self._concurrency, len(items))

        queue: asyncio.Queue[Path] = asyncio.Queue()
        for item in items:
            queue.put_nowait(Path(item))

        if slots:
            workers = [asyncio.create_task(self._worker(queue, aggregator)) for _ in range(slots)]
            await asyncio.gather(*workers)

        elapsed = time.perf_counter() - started
        return aggregator.summary(elapsed_seconds=elapsed, concurrency=slots)

    async def _worker(self, queue: asyncio.Queue[Path], aggregator: RunAggregator) -> None:
        while True:
            try:
                path = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            aggregator.dispatched()
            try:
                outcome = await self._run_task(path)
            finally:
                queue.task_done()

            completed = aggregator.record(outcome)
            self._report(completed, aggregator.total, outcome)

    async def _run_task(self, path: Path) -> TaskOutcome:
        try:
            return await self._handler(path)
        except Exception as exc:
            LOGGER.error("Task failed for %s: %s", path, exc)
            return TaskOutcome.failed(str(path), f"{type(exc).__name__}: {exc}")

    def _report(self, completed: int, total: int, outcome: TaskOutcome) -> None:
        detail = f" ({outcome.reason})" if outcome.reason and outcome.status is not OutcomeStatus.SUCCESS else ""
        LOGGER.info("(%d/%d) %s%s: %s", completed, total, outcome.status.value, detail, outcome.path)
        if self._on_outcome is None:
            return
        try:
            self._on_outcome(completed, total, outcome)
        except Exception:  # pragma: no cover
            LOGGER.exception("Outcome callback failed for %s", outcome.path)
