"""CLI command: extract archived article pages into a deduplicated JSON store."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from newsvault.canonical import CanonicalResolver
from newsvault.config import PipelineSettings
from newsvault.extraction.body import BODY_STRATEGIES, build_strategy
from newsvault.extraction.extractor import ArticleExtractor
from newsvault.extraction.script_eval import ScriptSandbox
from newsvault.pipeline.outcomes import RunSummary
from newsvault.pipeline.service import ArticlePipeline
from newsvault.sources import HTML_SUFFIXES, collect_inputs
from newsvault.storage.materializer import RecordMaterializer


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract archived article pages into canonical JSON records")
    parser.add_argument("source", help="Source root holding archived .html pages")
    parser.add_argument("destination", help="Destination root for canonical records (created if absent)")
    parser.add_argument("--concurrency", type=int, default=None, help="Maximum tasks in flight")
    parser.add_argument("--eval-timeout", type=float, default=None, help="Body script evaluation budget in seconds")
    parser.add_argument("--strategy", choices=BODY_STRATEGIES, default=None, help="Body extraction strategy")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _prepare_destination(destination: Path) -> bool:
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.error("Cannot create destination root %s: %s", destination, exc)
        return False
    return True


def build_pipeline(settings: PipelineSettings, *, source_root: Path, destination: Path) -> ArticlePipeline:
    sandbox = ScriptSandbox(timeout_seconds=settings.eval_timeout_seconds)
    extractor = ArticleExtractor(
        source_root=source_root,
        body_strategy=build_strategy(settings.body_strategy, sandbox=sandbox),
    )
    return ArticlePipeline(
        loader=extractor.extract_path,
        materializer=RecordMaterializer(destination, filename=settings.record_filename),
        resolver=CanonicalResolver(source_domain=settings.source_domain, canonical_host=settings.canonical_host),
    )


def emit_summary(summary: RunSummary, *, source: Path, destination: Path) -> None:
    payload = summary.to_payload(source=str(source), destination=str(destination))
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        settings = PipelineSettings.from_env().with_overrides(
            concurrency=args.concurrency,
            eval_timeout_seconds=args.eval_timeout,
            body_strategy=args.strategy,
        )
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    source_root = Path(args.source)
    destination = Path(args.destination)
    if not source_root.exists():
        LOGGER.error("Source root does not exist: %s", source_root)
        return 2
    if not _prepare_destination(destination):
        return 2

    files = collect_inputs(source_root, HTML_SUFFIXES)
    LOGGER.info("Extracting %d pages from %s to %s", len(files), source_root, destination)

    pipeline = build_pipeline(settings, source_root=source_root, destination=destination)
    summary = asyncio.run(pipeline.run(files, concurrency=settings.concurrency))

    LOGGER.info(
        "Done in %.2fs: %d succeeded, %d duplicated, %d skipped, %d failed",
        summary.elapsed_seconds,
        summary.succeeded,
        summary.duplicated,
        summary.skipped,
        summary.failed,
    )
    emit_summary(summary, source=source_root, destination=destination)
    return 0 if not summary.failed else 1


if __name__ == "__main__":
    raise SystemExit(main())
