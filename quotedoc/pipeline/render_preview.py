from __future__ import annotations

from pathlib import Path
from typing import List

import fitz  # PyMuPDF

from ..storage import PREVIEW_LIMIT, artifact_path


def _pick_preview_pages(page_count: int, pages: int = PREVIEW_LIMIT) -> List[int]:
    # first, middle, last; short documents get fewer previews
    picks: List[int] = []
    for index in (0, page_count // 2, page_count - 1):
        if 0 <= index < page_count and index not in picks:
            picks.append(index)
    return picks[: max(0, min(pages, PREVIEW_LIMIT))]


def _render_page_to_png(doc: fitz.Document, page_index: int, out_path: Path, min_px: int = 1200) -> None:
    page = doc.load_page(page_index)

    # Scale so the short side comes out at min_px or more.
    rect = page.rect
    short_side = min(rect.width, rect.height)
    zoom = max(1.0, min_px / float(short_side))
    mat = fitz.Matrix(zoom, zoom)

    pix = page.get_pixmap(matrix=mat, alpha=False)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    pix.save(str(out_path))


def render_previews(stem: str, pdf_path: Path, pages: int = PREVIEW_LIMIT, base_dir: Path | None = None) -> List[Path]:
    """Render the first, middle and last page of ``pdf_path`` to PNG files."""
    previews: List[Path] = []
    with fitz.open(pdf_path) as doc:
        for n, index in enumerate(_pick_preview_pages(doc.page_count, pages), start=1):
            out_path = artifact_path(stem, f"preview_{n}", base_dir=base_dir)
            _render_page_to_png(doc, index, out_path)
            previews.append(out_path)
    return previews
