from __future__ import annotations

from pathlib import Path

import fitz
import pytest

from quotedoc.errors import DataError, MeasurementError
from quotedoc.layout.profiles import INVOICE, QUOTATION, PageGeometry
from quotedoc.pipeline.render_pdf import ReportLabCanvas, ReportLabMeasurer, render_pdf


def test_measurer_line_height_in_mm() -> None:
    measurer = ReportLabMeasurer(default_size=10.0)
    assert measurer.line_height() == pytest.approx(10 * 1.2 * 25.4 / 72)
    assert measurer.line_height(20) == pytest.approx(2 * measurer.line_height())


def test_measurer_wraps_words_and_newlines() -> None:
    measurer = ReportLabMeasurer()
    lines = measurer.wrap("alpha beta gamma delta\nepsilon", 20)
    assert lines[-1] == "epsilon"
    assert len(lines) >= 3
    assert " ".join(lines[:-1]) == "alpha beta gamma delta"
    assert measurer.measure_paragraph_height("alpha\nbeta", 100) == pytest.approx(2 * measurer.line_height())


def test_measurer_breaks_overlong_words() -> None:
    measurer = ReportLabMeasurer()
    lines = measurer.wrap("X" * 200, 30)
    assert len(lines) > 1
    assert "".join(lines) == "X" * 200
    assert all(pdfwidth <= 30 for pdfwidth in (measurer._width(line, 10) for line in lines))


def test_render_quotation_pdf(tmp_path: Path, quotation: dict, generated_at) -> None:
    quotation["items"] = [
        {"name": f"Item {i}", "description": "line one\nline two\nline three", "quantity": i, "price": 1.5}
        for i in range(60)
    ]
    output = tmp_path / "quotation.pdf"
    report = render_pdf(quotation, QUOTATION, PageGeometry.from_format("a4"), output, generated_at, assets={})

    assert output.exists()
    assert report.page_count > 1
    with fitz.open(output) as doc:
        assert doc.page_count == report.page_count
        first = doc.load_page(0).get_text()
        last = doc.load_page(doc.page_count - 1).get_text()
    assert "QUOTATION" in first
    assert f"Page {report.page_count} | Generated on 1/2/2025" in last


def test_render_invoice_on_letter(tmp_path: Path, generated_at) -> None:
    output = tmp_path / "invoice.pdf"
    document = {"invoiceId": "IN-1", "items": [{"name": "Service", "quantity": 1, "price": 100}], "totalAmount": 100}
    geometry = PageGeometry.from_format("letter")
    report = render_pdf(document, INVOICE, geometry, output, generated_at, assets={})
    with fitz.open(output) as doc:
        page = doc.load_page(0)
        assert page.rect.width == pytest.approx(215.9 / 25.4 * 72, abs=0.1)
        assert "Total Due:" in "".join(doc.load_page(i).get_text() for i in range(doc.page_count))
    assert report.footer_pages == list(range(1, report.page_count + 1))


def test_nothing_written_when_layout_fails(tmp_path: Path, generated_at) -> None:
    output = tmp_path / "broken.pdf"
    with pytest.raises(DataError):
        render_pdf({"quotationId": "Q"}, QUOTATION, PageGeometry.from_format("a4"), output, generated_at, assets={})
    assert not output.exists()


def test_unreadable_image(tmp_path: Path) -> None:
    canv = ReportLabCanvas(tmp_path / "x.pdf", PageGeometry.from_format("a4"), {})
    with pytest.raises(MeasurementError):
        canv.draw_image(tmp_path / "missing.png", 10, 10, 20, 20)
