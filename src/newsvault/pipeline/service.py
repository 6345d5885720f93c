"""Per-file task flow: load a record, canonicalize it, claim its key, persist it."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Sequence

from newsvault.canonical import CanonicalResolver
from newsvault.extraction.extractor import DocumentReadError, MissingIdentifierError
from newsvault.extraction.json_records import RecordFormatError
from newsvault.extraction.models import ExtractedRecord
from newsvault.extraction.script_eval import EvaluationTimeout
from newsvault.pipeline.outcomes import (
    SKIP_EMPTY_RECORD,
    SKIP_MISSING_ID,
    SKIP_NO_MATCH,
    RunSummary,
    TaskOutcome,
)
from newsvault.pipeline.scheduler import OutcomeCallback, TaskScheduler
from newsvault.storage.dedupe import DedupIndex
from newsvault.storage.materializer import MaterializationError, RecordMaterializer

logger = logging.getLogger(__name__)

RecordLoader = Callable[[Path], ExtractedRecord | None]


class ArticlePipeline:
    """Turn one source path into exactly one TaskOutcome.

    Loading and writing run in worker threads; the claim step is serialized by
    the DedupIndex lock, so the first task to claim a key is the only writer.
    """

    def __init__(
        self,
        *,
        loader: RecordLoader,
        materializer: RecordMaterializer,
        resolver: CanonicalResolver | None = None,
        index: DedupIndex | None = None,
    ) -> None:
        self._loader = loader
        self._materializer = materializer
        self._resolver = resolver or CanonicalResolver()
        self._index = index or DedupIndex(materializer.has_persisted)

    @property
    def index(self) -> DedupIndex:
        return self._index

    async def process(self, path: Path) -> TaskOutcome:
        source = str(path)

        try:
            record = await asyncio.to_thread(self._loader, path)
        except MissingIdentifierError:
            return TaskOutcome.skipped(source, reason=SKIP_MISSING_ID)
        except EvaluationTimeout as exc:
            return TaskOutcome.failed(source, str(exc), reason="evaluation-timeout")
        except (DocumentReadError, RecordFormatError) as exc:
            return TaskOutcome.failed(source, str(exc), reason="io")

        if record is None:
            return TaskOutcome.skipped(source, reason=SKIP_EMPTY_RECORD)

        key = self._resolver.resolve(record.id)
        if key is None:
            logger.debug("No canonical match for %s (id=%s)", source, record.id)
            return TaskOutcome.skipped(source, reason=SKIP_NO_MATCH, key=record.id)

        decision = self._index.try_claim(key, source)
        if decision.is_duplicate:
            return TaskOutcome.duplicate(source, key=key.url, reason=decision.reason or "", owner=decision.owner)

        try:
            target = await asyncio.to_thread(self._materializer.materialize, key, record)
        except MaterializationError as exc:
            self._index.release(key, source)
            return TaskOutcome.failed(source, str(exc), key=key.url, reason="io")

        return TaskOutcome.success(source, key=key.url, target=str(target))

    async def run(
        self,
        paths: Sequence[str | Path],
        *,
        concurrency: int | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> RunSummary:
        scheduler = TaskScheduler(self.process, concurrency=concurrency, on_outcome=on_outcome)
        return await scheduler.run(paths)
