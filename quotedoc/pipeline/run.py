from __future__ import annotations

from datetime import datetime
from pathlib import Path
import logging
import shutil
import tempfile
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import delete
from sqlmodel import select

from .. import config
from ..errors import GenerationError
from ..layout.assembler import LayoutReport
from ..layout.profiles import DocumentProfile, PageGeometry, get_profile
from ..models import Artifact, DocumentRecord, GenerationStatus, get_session, init_db, utc_now
from ..storage import artifact_path, document_stem, record_artifacts
from .ingest import list_records, load_document
from .render_pdf import render_pdf
from .render_preview import render_previews


logger = logging.getLogger(__name__)


def _write_error(stem: str, message: str) -> Path:
    error_path = artifact_path(stem, "error", base_dir=config.OUT_DIR)
    error_path.write_text(message, encoding="utf-8")
    return error_path


def _prepare_temp_dir(stem: str) -> Path:
    # one scratch directory per call, so runs of the same id never share it
    config.OUT_DIR.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f".{stem}.", suffix=".tmp", dir=config.OUT_DIR))


def _final_paths(final_dir: Path, artifacts: List[tuple[str, Path]]) -> List[tuple[str, Path]]:
    return [(artifact_type, final_dir / path.name) for artifact_type, path in artifacts]


def _finalize_artifacts(final_dir: Path, artifacts: List[tuple[str, Path]]) -> List[tuple[str, Path]]:
    finalized: List[tuple[str, Path]] = []
    try:
        for (artifact_type, path), (_, target) in zip(artifacts, _final_paths(final_dir, artifacts)):
            path.replace(target)
            finalized.append((artifact_type, target))
    except OSError:
        for _, target in finalized:
            target.unlink(missing_ok=True)
        raise
    return finalized


def _document_id(document: Any, profile: DocumentProfile) -> str:
    value = document.get(profile.id_field) if isinstance(document, Mapping) else None
    text = str(value).strip() if value is not None else ""
    return text or profile.default_id


def _save_record(
    profile: DocumentProfile,
    document_id: str,
    stem: str,
    page_format: str,
    status: GenerationStatus,
    artifacts: List[tuple[str, Path]],
    report: Optional[LayoutReport] = None,
    error: Optional[GenerationError] = None,
    source_path: Optional[Path] = None,
) -> DocumentRecord:
    """Insert or update the record of one output file (kind and file name are the key)."""
    file_name = artifact_path(stem, "pdf", base_dir=config.OUT_DIR).name
    with get_session() as session:
        record = session.exec(
            select(DocumentRecord).where(
                DocumentRecord.kind == profile.kind, DocumentRecord.file_name == file_name
            )
        ).first()
        if record is None:
            record = DocumentRecord(kind=profile.kind, document_id=document_id, file_name=file_name)
        record.document_id = document_id
        record.page_format = page_format
        record.status = status
        record.page_count = report.page_count if report else 0
        if error is not None:
            record.fail_code = type(error).__name__
            record.fail_detail = str(error)
        else:
            record.fail_code = None
            record.fail_detail = None
        if source_path is not None:
            record.source_path = str(source_path)
        record.updated_at = utc_now()
        session.add(record)
        session.commit()
        session.refresh(record)
        if source_path is not None:
            _drop_superseded(session, record)
    record_artifacts(record, artifacts)
    return record


def _drop_superseded(session, record: DocumentRecord) -> None:
    # A file that failed to load was recorded under its file name; once it
    # loads, the record under the document id replaces that one.
    stale = session.exec(
        select(DocumentRecord).where(
            DocumentRecord.kind == record.kind,
            DocumentRecord.source_path == record.source_path,
            DocumentRecord.status == GenerationStatus.FAILED,
            DocumentRecord.id != record.id,
        )
    ).all()
    for old in stale:
        session.execute(delete(Artifact).where(Artifact.record_id == old.id))
        session.delete(old)
    if stale:
        session.commit()


def _record_failure(
    profile: DocumentProfile,
    document_id: str,
    stem: str,
    page_format: str,
    error: GenerationError,
    source_path: Optional[Path],
) -> None:
    """Write the error log and mark the record FAILED; the caller raises ``error``."""
    try:
        error_path = _write_error(stem, str(error))
        _save_record(
            profile, document_id, stem, page_format, GenerationStatus.FAILED,
            [("error", error_path)], error=error, source_path=source_path,
        )
    except Exception:
        logger.exception("Could not record the failure of %s %s", profile.kind, document_id)


def _render(
    document: Mapping[str, Any],
    profile: DocumentProfile,
    geometry: PageGeometry,
    stem: str,
    temp_dir: Path,
    preview: bool,
    generated_at: Optional[datetime],
    assets: Optional[Mapping[str, Any]],
) -> tuple[LayoutReport, List[tuple[str, Path]]]:
    pdf_path = artifact_path(stem, "pdf", base_dir=temp_dir)
    report = render_pdf(document, profile, geometry, pdf_path, generated_at=generated_at, assets=assets)
    artifacts: List[tuple[str, Path]] = [("pdf", pdf_path)]
    if preview:
        previews = render_previews(stem, pdf_path, base_dir=temp_dir)
        artifacts.extend((f"preview_{n}", path) for n, path in enumerate(previews, start=1))
    return report, artifacts


def generate(
    document: Mapping[str, Any],
    kind: str = "quotation",
    page_format: str = "a4",
    preview: bool = False,
    source_path: Optional[Path] = None,
    generated_at: Optional[datetime] = None,
    assets: Optional[Mapping[str, Any]] = None,
) -> Path:
    """
    Lay out ``document`` and write its PDF under ``config.OUT_DIR``.

    Returns the PDF path. Any failure is logged, recorded as FAILED with an
    error log next to where the PDF would have gone, and raised as a
    ``GenerationError``; no PDF is written in that case.
    """
    init_db()
    profile = get_profile(kind)
    stem = document_stem(document, profile)
    document_id = _document_id(document, profile)
    temp_dir = _prepare_temp_dir(stem)
    try:
        geometry = PageGeometry.from_format(page_format)
        report, staged = _render(document, profile, geometry, stem, temp_dir, preview, generated_at, assets)
        # Recorded while everything still sits in the scratch directory.
        _save_record(
            profile, document_id, stem, page_format, GenerationStatus.READY,
            _final_paths(config.OUT_DIR, staged), report=report, source_path=source_path,
        )
        artifacts = _finalize_artifacts(config.OUT_DIR, staged)
        artifact_path(stem, "error", base_dir=config.OUT_DIR).unlink(missing_ok=True)
    except Exception as exc:
        error = exc if isinstance(exc, GenerationError) else GenerationError(f"{type(exc).__name__}: {exc}")
        logger.exception("Generation failed for %s %s", profile.kind, document_id)
        _record_failure(profile, document_id, stem, page_format, error, source_path)
        if error is exc:
            raise
        raise error from exc
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    pdf_path = artifacts[0][1]
    logger.info("Generated %s (%d page(s))", pdf_path.name, report.page_count)
    return pdf_path


def generate_file(
    path: Path,
    kind: str = "quotation",
    page_format: str = "a4",
    preview: bool = False,
) -> Path:
    try:
        document = load_document(path)
    except GenerationError as exc:
        logger.exception("Could not load %s", path)
        profile = get_profile(kind)
        stem = document_stem({profile.id_field: path.stem}, profile)
        _record_failure(profile, path.stem, stem, page_format, exc, path)
        raise
    return generate(document, kind=kind, page_format=page_format, preview=preview, source_path=path)


def generate_many(
    paths: Iterable[Path],
    kind: str = "quotation",
    page_format: str = "a4",
    preview: bool = False,
) -> dict[str, list[str]]:
    init_db()
    results: dict[str, list[str]] = {"READY": [], "FAILED": []}
    for path in paths:
        try:
            pdf_path = generate_file(path, kind=kind, page_format=page_format, preview=preview)
        except GenerationError as exc:
            results["FAILED"].append(f"{path.name}: {exc}")
            continue
        results["READY"].append(pdf_path.name)
    return results


def retry_failed(kind: str | None = None) -> dict[str, list[str]]:
    """Run every FAILED record again from the file it was generated from."""
    results: dict[str, list[str]] = {"READY": [], "FAILED": []}
    for record in list_records([GenerationStatus.FAILED], kind=kind):
        if not record.source_path:
            results["FAILED"].append(f"{record.file_name}: no source file recorded")
            continue
        partial = generate_many(
            [Path(record.source_path)], kind=record.kind, page_format=record.page_format
        )
        for status, names in partial.items():
            results[status].extend(names)
    return results
