from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from newsvault.canonical import resolve
from newsvault.extraction.models import ExtractedRecord
from newsvault.storage.materializer import MaterializationError, RecordMaterializer


def _record() -> ExtractedRecord:
    return ExtractedRecord(
        id="https://hk.appledaily.com/entertainment/20230101/abc123/index.html",
        section="娛樂",
        description="D",
        headline="H",
        keywords=["k"],
        raw_content=["Hello"],
        author="Reporter",
    )


def test_materialize_writes_canonical_record(tmp_path: Path) -> None:
    key = resolve(_record().id)
    assert key is not None
    materializer = RecordMaterializer(tmp_path / "out")

    target = materializer.materialize(key, _record())

    assert target == tmp_path / "out" / "entertainment" / "20230101" / "abc123" / "index.json"
    text = target.read_text(encoding="utf-8")
    payload = json.loads(text)
    assert payload["id"] == "https://tw.appledaily.com/entertainment/20230101/abc123/"
    assert list(payload) == ["id", "section", "description", "headline", "keywords", "rawContent", "author"]
    assert "娛樂" in text
    assert text.startswith('{\n  "id"')
    assert materializer.has_persisted(key) is True
    assert [path.name for path in target.parent.iterdir()] == ["index.json"]


def test_materialize_is_idempotent_for_existing_directories(tmp_path: Path) -> None:
    key = resolve(_record().id)
    assert key is not None
    materializer = RecordMaterializer(tmp_path, filename="record.json")
    (tmp_path / "entertainment" / "20230101" / "abc123").mkdir(parents=True)

    target = materializer.materialize(key, _record())

    assert target.name == "record.json"
    assert materializer.has_persisted(key)


def test_failed_write_leaves_no_partial_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    key = resolve(_record().id)
    assert key is not None
    materializer = RecordMaterializer(tmp_path)

    def _failing_replace(src: str, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", _failing_replace)

    with pytest.raises(MaterializationError, match="Failed to write record"):
        materializer.materialize(key, _record())

    target_dir = materializer.target_path(key).parent
    assert not materializer.has_persisted(key)
    assert list(target_dir.iterdir()) == []


def test_directory_creation_failure_is_reported(tmp_path: Path) -> None:
    blocker = tmp_path / "entertainment"
    blocker.write_text("not a directory", encoding="utf-8")
    key = resolve(_record().id)
    assert key is not None

    with pytest.raises(MaterializationError, match="Failed to create record directory"):
        RecordMaterializer(tmp_path).materialize(key, _record())


def test_filename_must_be_bare() -> None:
    with pytest.raises(ValueError, match="bare file name"):
        RecordMaterializer("out", filename="nested/index.json")


def test_lone_surrogates_are_written_as_replacement_characters(tmp_path: Path) -> None:
    record = ExtractedRecord(
        id="https://tw.appledaily.com/local/20200101/S/",
        headline="H\udc00",
        raw_content=["emoji \ud83d cut"],
    )
    key = resolve(record.id)
    assert key is not None

    target = RecordMaterializer(tmp_path).materialize(key, record)

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["rawContent"] == ["emoji \ufffd cut"]
    assert payload["headline"] == "H\ufffd"
    assert [path.name for path in target.parent.iterdir()] == ["index.json"]


def test_unexpected_write_error_still_removes_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    key = resolve(_record().id)
    assert key is not None
    materializer = RecordMaterializer(tmp_path)

    def _failing_fsync(fd: int) -> None:
        raise RuntimeError("interrupted")

    monkeypatch.setattr(os, "fsync", _failing_fsync)

    with pytest.raises(RuntimeError, match="interrupted"):
        materializer.materialize(key, _record())

    assert list(materializer.target_path(key).parent.iterdir()) == []


def test_record_mode_follows_umask(tmp_path: Path) -> None:
    key = resolve(_record().id)
    assert key is not None
    previous = os.umask(0o022)
    try:
        materializer = RecordMaterializer(tmp_path)
    finally:
        os.umask(previous)

    target = materializer.materialize(key, _record())

    assert target.stat().st_mode & 0o777 == 0o644
