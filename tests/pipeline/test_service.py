from __future__ import annotations

import asyncio
import json
from pathlib import Path
import random

import pytest

from newsvault.canonical import CanonicalKey
from newsvault.extraction.body import SandboxedEvaluationStrategy
from newsvault.extraction.extractor import ArticleExtractor
from newsvault.extraction.models import ExtractedRecord
from newsvault.extraction.script_eval import ScriptSandbox
from newsvault.pipeline.outcomes import OutcomeStatus
from newsvault.pipeline.service import ArticlePipeline
from newsvault.sources import collect_inputs
from newsvault.storage.materializer import MaterializationError, RecordMaterializer


def _write_page(path: Path, *, source_id: str | None, headline: str | None = "H", body: list[str] | None = None) -> Path:
    head = ""
    if source_id is not None:
        article: dict[str, object] = {"mainEntityOfPage": {"@id": source_id}}
        if headline is not None:
            article["headline"] = headline
            article["description"] = " D "
        head += f'<script type="application/ld+json">{json.dumps(article, ensure_ascii=False)}</script>'
    if body is not None:
        elements = ",".join(json.dumps({"type": "raw_html", "content": f"<p>{text}</p>"}, ensure_ascii=False) for text in body)
        head += (
            '<script id="fusion-metadata" type="application/javascript">'
            f"window.Fusion=window.Fusion||{{}};Fusion.globalContent={{\"content_elements\":[{elements}]}};"
            "</script>"
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"<html><head>{head}</head><body></body></html>", encoding="utf-8")
    return path


def _pipeline(source: Path, destination: Path, *, sandbox: ScriptSandbox | None = None) -> ArticlePipeline:
    extractor = ArticleExtractor(source_root=source, body_strategy=SandboxedEvaluationStrategy(sandbox))
    return ArticlePipeline(loader=extractor.extract_path, materializer=RecordMaterializer(destination))


def _snapshot(root: Path) -> dict[str, bytes]:
    return {str(path.relative_to(root)): path.read_bytes() for path in sorted(root.rglob("*")) if path.is_file()}


def test_end_to_end_record_is_materialized_under_canonical_path(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    _write_page(
        source / "a" / "index.html",
        source_id="https://x.appledaily.com/entertainment/20230101/abc123/index.html",
    )

    summary = asyncio.run(_pipeline(source, destination).run(collect_inputs(source), concurrency=2))

    assert summary.succeeded == 1
    target = destination / "entertainment" / "20230101" / "abc123" / "index.json"
    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["id"] == "https://tw.appledaily.com/entertainment/20230101/abc123/"
    assert payload["description"] == "D"
    assert payload["headline"] == "H"
    assert payload.get("rawContent") in (None, [])
    assert summary.outcomes[0].target == str(target)


def test_skips_are_reported_with_reasons(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    _write_page(source / "other" / "index.html", source_id="https://example.com/news/20230101/zzz/")
    _write_page(
        source / "empty" / "index.html",
        source_id="https://tw.appledaily.com/local/20230101/empty/",
        headline=None,
    )

    summary = asyncio.run(_pipeline(source, destination).run(collect_inputs(source), concurrency=2))

    reasons = {Path(outcome.path).parent.name: outcome.reason for outcome in summary.outcomes}
    assert reasons == {"other": "no-match", "empty": "empty-record"}
    assert summary.skipped == 2
    assert summary.failed == 0
    no_match = next(outcome for outcome in summary.outcomes if outcome.reason == "no-match")
    assert no_match.key == "https://example.com/news/20230101/zzz/"
    assert _snapshot(destination) == {}


@pytest.mark.parametrize("concurrency", [1, 2, 5, 16])
def test_same_key_has_exactly_one_writer(tmp_path: Path, concurrency: int) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    variants = [
        "https://tw.appledaily.com/local/20200101/SAME/",
        "https://hk.appledaily.com/local/20200101/SAME/index.html",
        "https://tw.appledaily.com/local/20200101/SAME",
    ]
    paths = [
        _write_page(source / f"copy-{n:02d}" / "index.html", source_id=variants[n % len(variants)], body=[f"v{n}"])
        for n in range(12)
    ]
    random.shuffle(paths)

    pipeline = _pipeline(source, destination)
    summary = asyncio.run(pipeline.run(paths, concurrency=concurrency))

    assert summary.succeeded == 1
    assert summary.duplicated == 11
    duplicates = summary.by_status(OutcomeStatus.DUPLICATE)
    assert {outcome.reason for outcome in duplicates} == {"id-collision"}
    assert {outcome.key for outcome in duplicates} == {"https://tw.appledaily.com/local/20200101/SAME/"}
    assert list(_snapshot(destination)) == [str(Path("local") / "20200101" / "SAME" / "index.json")]
    assert len(pipeline.index) == 1


def test_second_run_reports_target_exists_and_keeps_bytes(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    for n in range(6):
        _write_page(
            source / f"p{n}" / "index.html",
            source_id=f"https://tw.appledaily.com/local/2020010{n}/H{n % 4}/",
            body=["text"],
        )

    first = asyncio.run(_pipeline(source, destination).run(collect_inputs(source), concurrency=3))
    before = _snapshot(destination)
    second = asyncio.run(_pipeline(source, destination).run(collect_inputs(source), concurrency=3))

    assert first.succeeded == 6
    assert second.succeeded == 0
    assert second.duplicated == 6
    assert {outcome.reason for outcome in second.outcomes} == {"target-exists"}
    assert _snapshot(destination) == before


def test_evaluation_timeout_fails_only_that_task(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    _write_page(source / "huge" / "index.html", source_id="https://tw.appledaily.com/a/20200101/huge/", body=["x"] * 3000)
    _write_page(source / "small" / "index.html", source_id="https://tw.appledaily.com/a/20200101/small/", body=None)

    pipeline = _pipeline(source, destination, sandbox=ScriptSandbox(timeout_seconds=1e-9))
    summary = asyncio.run(pipeline.run(collect_inputs(source), concurrency=2))

    statuses = {Path(outcome.path).parent.name: outcome.status for outcome in summary.outcomes}
    assert statuses == {"huge": OutcomeStatus.FAILED, "small": OutcomeStatus.SUCCESS}
    failed = summary.by_status(OutcomeStatus.FAILED)[0]
    assert failed.reason == "evaluation-timeout"


def test_write_failure_becomes_failed_outcome(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    destination.mkdir()
    (destination / "local").write_text("blocks the category directory", encoding="utf-8")
    _write_page(source / "p" / "index.html", source_id="https://tw.appledaily.com/local/20200101/X/")
    _write_page(source / "q" / "index.html", source_id="https://tw.appledaily.com/world/20200101/Y/")

    summary = asyncio.run(_pipeline(source, destination).run(collect_inputs(source), concurrency=2))

    assert summary.succeeded == 1
    assert summary.failed == 1
    failed = summary.by_status(OutcomeStatus.FAILED)[0]
    assert failed.reason == "io"
    assert failed.key == "https://tw.appledaily.com/local/20200101/X/"


def test_failed_write_releases_the_key_for_a_later_copy(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    first = _write_page(source / "a" / "index.html", source_id="https://tw.appledaily.com/local/20200101/K/")
    second = _write_page(source / "b" / "index.html", source_id="https://hk.appledaily.com/local/20200101/K/index.html")

    class _FlakyMaterializer(RecordMaterializer):
        calls = 0

        def materialize(self, key: CanonicalKey, record: ExtractedRecord) -> Path:
            _FlakyMaterializer.calls += 1
            if _FlakyMaterializer.calls == 1:
                raise MaterializationError(self.target_path(key), "Failed to write record: disk full")
            return super().materialize(key, record)

    extractor = ArticleExtractor(source_root=source)
    pipeline = ArticlePipeline(loader=extractor.extract_path, materializer=_FlakyMaterializer(destination))
    summary = asyncio.run(pipeline.run([first, second], concurrency=1))

    assert [(outcome.status, outcome.reason) for outcome in summary.outcomes] == [
        (OutcomeStatus.FAILED, "io"),
        (OutcomeStatus.SUCCESS, None),
    ]
    assert list(_snapshot(destination)) == [str(Path("local") / "20200101" / "K" / "index.json")]


def test_truncated_emoji_escape_is_persisted(tmp_path: Path) -> None:
    source = tmp_path / "src"
    destination = tmp_path / "dest"
    page = source / "s" / "index.html"
    page.parent.mkdir(parents=True)
    page.write_text(
        "<html><head>"
        '<script type="application/ld+json">'
        '{"mainEntityOfPage": {"@id": "https://tw.appledaily.com/local/20200101/S/"}, "headline": "H"}'
        "</script>"
        '<script id="fusion-metadata">'
        r'window.Fusion={};Fusion.globalContent={"content_elements":[{"type":"text","content":"emoji \ud83d cut"}]};'
        "</script></head></html>",
        encoding="utf-8",
    )

    summary = asyncio.run(_pipeline(source, destination).run([page], concurrency=1))

    assert summary.succeeded == 1
    files = _snapshot(destination)
    assert list(files) == [str(Path("local") / "20200101" / "S" / "index.json")]
    payload = json.loads(next(iter(files.values())).decode("utf-8"))
    assert payload["rawContent"] == ["emoji \ufffd cut"]
