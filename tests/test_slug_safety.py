from __future__ import annotations

import pytest

from quotedoc.errors import DataError
from quotedoc.layout.profiles import INVOICE, QUOTATION
from quotedoc.pipeline.ingest import stem_from_id
from quotedoc.storage import document_stem


def test_stem_sanitization_keeps_case() -> None:
    assert stem_from_id("Q-2025/001") == "Q-2025-001"
    assert stem_from_id("QT 12: Kibali") == "QT-12-Kibali"


def test_stem_falls_back_to_hash() -> None:
    stem = stem_from_id("///")
    assert len(stem) == 12
    assert all(ch in "0123456789abcdef" for ch in stem)


def test_stem_rejects_parent_references() -> None:
    with pytest.raises(DataError):
        stem_from_id("a..b")


def test_document_stem_per_profile() -> None:
    assert document_stem({"quotationId": "Q-7"}, QUOTATION) == "Q-7"
    assert document_stem({}, QUOTATION) == "quotation"
    assert document_stem({"invoiceId": "IN-9"}, INVOICE) == "Invoice_IN-9"
    assert document_stem({"invoiceId": "  "}, INVOICE) == "Invoice_DRAFT"
    assert document_stem(None, INVOICE) == "Invoice_DRAFT"
