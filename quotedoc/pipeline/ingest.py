from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Iterable, List

from slugify import slugify

from sqlmodel import select

from ..errors import DataError
from ..models import DocumentRecord, GenerationStatus, get_session, init_db


# Everything outside this set becomes a separator; case and dots are kept.
STEM_DISALLOWED = r"[^-a-zA-Z0-9_.]+"


def load_document(path: Path) -> dict:
    """Read one document model from a JSON file."""
    if not path.exists():
        raise DataError(f"Document not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
    except json.JSONDecodeError as exc:
        raise DataError(f"{path.name} is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise DataError(f"{path.name} must contain a JSON object")
    return document


def stem_from_id(value: str) -> str:
    stem = slugify(value, lowercase=False, regex_pattern=STEM_DISALLOWED).strip("-.")
    if not stem:
        stem = hashlib.md5(value.encode("utf-8")).hexdigest()[:12]
    if ".." in stem or "/" in stem or "\\" in stem:
        raise DataError(f"Invalid file name generated from id: {value!r}")
    return stem


def list_records(statuses: Iterable[GenerationStatus], kind: str | None = None) -> List[DocumentRecord]:
    init_db()
    with get_session() as session:
        statement = select(DocumentRecord)
        if kind:
            statement = statement.where(DocumentRecord.kind == kind)
        statuses = list(statuses)
        if statuses:
            statement = statement.where(DocumentRecord.status.in_(statuses))
        statement = statement.order_by(DocumentRecord.updated_at)
        return list(session.exec(statement))
