from __future__ import annotations

import json
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from quotedoc.errors import ConfigurationError, DataError, GenerationError
from quotedoc.models import Artifact, DocumentRecord, GenerationStatus, get_session
from quotedoc.pipeline.ingest import list_records, load_document
from quotedoc.pipeline import run
from quotedoc.pipeline.run import generate, generate_many, retry_failed


def _records() -> list:
    with get_session() as session:
        return list(session.exec(select(DocumentRecord)))


def _artifact_types(record: DocumentRecord) -> list:
    with get_session() as session:
        return sorted(a.type for a in session.exec(select(Artifact).where(Artifact.record_id == record.id)))


def test_generate_writes_pdf_and_record(out_dir: Path, quotation: dict, generated_at) -> None:
    pdf_path = generate(quotation, kind="quotation", generated_at=generated_at, assets={})

    assert pdf_path == out_dir / "Q-2025-001.pdf"
    assert pdf_path.exists()
    assert not list(out_dir.glob(".*.tmp"))
    (record,) = _records()
    assert record.status == GenerationStatus.READY
    assert record.page_count >= 1
    assert record.file_name == "Q-2025-001.pdf"
    assert _artifact_types(record) == ["pdf"]


def test_invoice_file_name(out_dir: Path, generated_at) -> None:
    pdf_path = generate({"items": []}, kind="invoice", generated_at=generated_at, assets={})
    assert pdf_path.name == "Invoice_DRAFT.pdf"


def test_failure_writes_no_pdf(out_dir: Path, quotation: dict, generated_at) -> None:
    del quotation["items"]
    with pytest.raises(DataError):
        generate(quotation, generated_at=generated_at, assets={})

    assert not (out_dir / "Q-2025-001.pdf").exists()
    error_log = out_dir / "Q-2025-001.error.log"
    assert "[items]" in error_log.read_text(encoding="utf-8")
    (record,) = _records()
    assert record.status == GenerationStatus.FAILED
    assert record.fail_code == "DataError"
    assert _artifact_types(record) == ["error"]

    # fixed input: same record, now READY, error log gone
    quotation["items"] = [{"name": "Pump", "quantity": 1, "price": 3}]
    generate(quotation, generated_at=generated_at, assets={})
    (record,) = _records()
    assert record.status == GenerationStatus.READY
    assert record.fail_detail is None
    assert not error_log.exists()


def test_database_failure_leaves_no_pdf(out_dir: Path, quotation: dict, generated_at, monkeypatch) -> None:
    def locked(record, artifacts):
        raise OperationalError("INSERT INTO artifact", {}, Exception("database is locked"))

    monkeypatch.setattr(run, "record_artifacts", locked)
    with pytest.raises(GenerationError, match="OperationalError"):
        generate(quotation, generated_at=generated_at, assets={})

    assert not (out_dir / "Q-2025-001.pdf").exists()
    assert not list(out_dir.glob(".*.tmp"))
    assert (out_dir / "Q-2025-001.error.log").exists()


def test_runs_of_the_same_document_get_their_own_scratch_dir(out_dir: Path) -> None:
    first = run._prepare_temp_dir("Q-2025-001")
    (first / "Q-2025-001.pdf").write_bytes(b"%PDF-")
    second = run._prepare_temp_dir("Q-2025-001")

    assert first != second
    assert (first / "Q-2025-001.pdf").exists()
    assert second.parent == out_dir and second.name.endswith(".tmp")


def test_unknown_page_format_is_recorded(out_dir: Path, quotation: dict) -> None:
    with pytest.raises(ConfigurationError):
        generate(quotation, page_format="a3", assets={})
    (record,) = _records()
    assert record.fail_code == "ConfigurationError"


def test_previews_are_optional(out_dir: Path, quotation: dict, generated_at) -> None:
    generate(quotation, preview=True, generated_at=generated_at, assets={})
    assert (out_dir / "Q-2025-001.preview_1.png").exists()
    (record,) = _records()
    assert "preview_1" in _artifact_types(record)


def test_generate_many_and_retry(out_dir: Path, tmp_path: Path, quotation: dict) -> None:
    good = tmp_path / "good.json"
    good.write_text(json.dumps(quotation), encoding="utf-8")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")

    results = generate_many([good, broken], kind="quotation")
    assert results["READY"] == ["Q-2025-001.pdf"]
    assert len(results["FAILED"]) == 1
    assert results["FAILED"][0].startswith("broken.json")
    failed = list_records([GenerationStatus.FAILED])
    assert [r.file_name for r in failed] == ["broken.pdf"]

    fixed = dict(quotation, quotationId="Q-2025-002")
    broken.write_text(json.dumps(fixed), encoding="utf-8")
    results = retry_failed()
    assert results == {"READY": ["Q-2025-002.pdf"], "FAILED": []}
    assert list_records([GenerationStatus.FAILED]) == []
    assert sorted(r.file_name for r in list_records([])) == ["Q-2025-001.pdf", "Q-2025-002.pdf"]


def test_load_document_rejects_non_objects(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(DataError):
        load_document(path)
    with pytest.raises(DataError):
        load_document(tmp_path / "missing.json")
