from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

from sqlalchemy import delete

from . import config
from .layout.profiles import DocumentProfile
from .models import Artifact, DocumentRecord, get_session
from .pipeline.ingest import stem_from_id


PREVIEW_LIMIT = 3

ARTIFACT_NAMES = {
    "pdf": "{stem}.pdf",
    "error": "{stem}.error.log",
    **{f"preview_{n}": f"{{stem}}.preview_{n}.png" for n in range(1, PREVIEW_LIMIT + 1)},
}


def document_stem(document: Any, profile: DocumentProfile) -> str:
    """File stem for a document: the profile prefix and the sanitized id."""
    value = document.get(profile.id_field) if isinstance(document, Mapping) else None
    raw = str(value).strip() if value is not None else ""
    return f"{profile.file_prefix}{stem_from_id(raw or profile.default_id)}"


def output_dir(base_dir: Path | None = None) -> Path:
    root = base_dir or config.OUT_DIR
    root.mkdir(parents=True, exist_ok=True)
    return root


def artifact_path(stem: str, artifact_type: str, base_dir: Path | None = None) -> Path:
    filename = ARTIFACT_NAMES[artifact_type].format(stem=stem)
    return output_dir(base_dir) / filename


def record_artifacts(record: DocumentRecord, artifacts: Iterable[tuple[str, Path]]) -> None:
    """Replace the artifacts stored for ``record`` with ``artifacts``."""
    with get_session() as session:
        session.execute(delete(Artifact).where(Artifact.record_id == record.id))
        for artifact_type, path in artifacts:
            session.add(
                Artifact(
                    record_id=record.id,
                    type=artifact_type,
                    path=str(path.relative_to(config.OUT_DIR)),
                )
            )
        session.commit()
