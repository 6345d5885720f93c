"""CLI command: merge previously extracted record JSON into the canonical store."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from newsvault.canonical import CanonicalResolver
from newsvault.cli.extract_articles import emit_summary
from newsvault.config import PipelineSettings
from newsvault.extraction.json_records import load_record_file
from newsvault.pipeline.service import ArticlePipeline
from newsvault.sources import JSON_SUFFIXES, collect_inputs
from newsvault.storage.materializer import RecordMaterializer


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Canonicalize and deduplicate extracted record JSON files into a canonical tree"
    )
    parser.add_argument("source", help="Directory of extracted .json records")
    parser.add_argument("destination", help="Destination root for canonical records (created if absent)")
    parser.add_argument("--concurrency", type=int, default=None, help="Maximum tasks in flight")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        settings = PipelineSettings.from_env().with_overrides(concurrency=args.concurrency)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    source_root = Path(args.source)
    destination = Path(args.destination)
    if not source_root.exists():
        LOGGER.error("Source directory does not exist: %s", source_root)
        return 2
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.error("Cannot create destination root %s: %s", destination, exc)
        return 2

    destination_resolved = destination.resolve()
    files = [
        path
        for path in collect_inputs(source_root, JSON_SUFFIXES)
        if not path.resolve().is_relative_to(destination_resolved)
    ]
    LOGGER.info("Merging %d record files from %s into %s", len(files), source_root, destination)

    pipeline = ArticlePipeline(
        loader=load_record_file,
        materializer=RecordMaterializer(destination, filename=settings.record_filename),
        resolver=CanonicalResolver(source_domain=settings.source_domain, canonical_host=settings.canonical_host),
    )
    summary = asyncio.run(pipeline.run(files, concurrency=settings.concurrency))

    if summary.duplicated:
        LOGGER.info("Found %d duplicate records", summary.duplicated)
    emit_summary(summary, source=source_root, destination=destination)
    return 0 if not summary.failed else 1


if __name__ == "__main__":
    raise SystemExit(main())
