from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from .. import config
from ..config import load_style_preset
from ..errors import MeasurementError
from ..layout.assembler import DocumentAssembler, LayoutReport
from ..layout.profiles import PT_TO_MM, DocumentProfile, PageGeometry


def _hex(value: str, default=colors.black) -> colors.Color:
    if not value:
        return default
    try:
        return colors.HexColor("#" + str(value).lstrip("#"))
    except ValueError:
        return default


def _s(style: dict, key: str, default):
    return style.get(key, default)


class ReportLabCanvas:
    """
    Drawing surface for the layout engine on top of a reportlab canvas.

    The engine works in millimetres from the top-left corner; reportlab in
    points from the bottom-left. Nothing is written before ``save()``.
    """

    def __init__(self, output_path: Path, geometry: PageGeometry, style: dict, title: str = "") -> None:
        self.geometry = geometry
        self.style = style
        self._canv = canvas.Canvas(str(output_path), pagesize=(geometry.width * mm, geometry.height * mm))
        if title:
            self._canv.setTitle(title)
        self._canv.setAuthor(config.COMPANY_NAME)

    def _y(self, y: float) -> float:
        return (self.geometry.height - y) * mm

    def _font(self, bold: bool = False, italic: bool = False) -> str:
        if bold:
            return _s(self.style, "font_bold", "Helvetica-Bold")
        if italic:
            return _s(self.style, "font_italic", "Helvetica-Oblique")
        return _s(self.style, "font_name", "Helvetica")

    def new_page(self) -> None:
        self._canv.showPage()

    def current_page_number(self) -> int:
        return self._canv.getPageNumber()

    def draw_rect(
        self,
        x: float,
        y: float,
        w: float,
        h: float,
        mode: str = "stroke",
        fill_color: Optional[str] = None,
        stroke_color: Optional[str] = None,
        line_width: Optional[float] = None,
    ) -> None:
        c = self._canv
        c.saveState()
        if fill_color:
            c.setFillColor(_hex(fill_color))
        if stroke_color:
            c.setStrokeColor(_hex(stroke_color))
        if line_width is not None:
            c.setLineWidth(line_width * mm)
        c.rect(
            x * mm,
            self._y(y + h),
            w * mm,
            h * mm,
            stroke=1 if mode in ("stroke", "both") else 0,
            fill=1 if mode in ("fill", "both") else 0,
        )
        c.restoreState()

    def draw_line(
        self,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        color: Optional[str] = None,
        line_width: Optional[float] = None,
    ) -> None:
        c = self._canv
        c.saveState()
        c.setStrokeColor(_hex(color or "", colors.black))
        if line_width is not None:
            c.setLineWidth(line_width * mm)
        c.line(x1 * mm, self._y(y1), x2 * mm, self._y(y2))
        c.restoreState()

    def draw_text(
        self,
        text: str,
        x: float,
        y: float,
        align: str = "left",
        size: Optional[float] = None,
        bold: bool = False,
        italic: bool = False,
        color: Optional[str] = None,
    ) -> None:
        c = self._canv
        c.saveState()
        c.setFont(self._font(bold, italic), size or self.geometry.base_font_size)
        c.setFillColor(_hex(color or "", colors.black))
        if align == "right":
            c.drawRightString(x * mm, self._y(y), text)
        elif align == "center":
            c.drawCentredString(x * mm, self._y(y), text)
        else:
            c.drawString(x * mm, self._y(y), text)
        c.restoreState()

    def draw_image(self, ref: Any, x: float, y: float, w: float, h: float) -> None:
        try:
            self._canv.drawImage(
                str(ref), x * mm, self._y(y + h), w * mm, h * mm, preserveAspectRatio=True, mask="auto"
            )
        except Exception as exc:
            raise MeasurementError(f"Could not draw image {ref}: {exc}") from exc

    def save(self) -> None:
        self._canv.save()


class ReportLabMeasurer:
    """Word wrapping and line heights from reportlab's font metrics, in millimetres."""

    def __init__(self, font_name: str = "Helvetica", default_size: float = 10.0, spacing: float = 1.2) -> None:
        self.font_name = font_name
        self.default_size = default_size
        self.spacing = spacing

    def _width(self, text: str, size: float) -> float:
        return pdfmetrics.stringWidth(text, self.font_name, size) / mm

    def _break_word(self, word: str, size: float, max_width: float) -> List[str]:
        pieces: List[str] = []
        cur = ""
        for ch in word:
            if cur and self._width(cur + ch, size) > max_width:
                pieces.append(cur)
                cur = ch
            else:
                cur += ch
        if cur:
            pieces.append(cur)
        return pieces

    def _wrap_words(self, text: str, size: float, max_width: float) -> List[str]:
        words = text.split()
        if not words:
            return [""]

        lines: List[str] = []
        cur: List[str] = []
        for w in words:
            test = " ".join(cur + [w])
            if self._width(test, size) <= max_width:
                cur.append(w)
                continue
            if cur:
                lines.append(" ".join(cur))
                cur = []
            if self._width(w, size) <= max_width:
                cur = [w]
                continue
            # A word wider than the line is cut by characters.
            pieces = self._break_word(w, size, max_width)
            lines.extend(pieces[:-1])
            cur = [pieces[-1]]

        if cur:
            lines.append(" ".join(cur))
        return lines

    def wrap(self, text: str, max_width: float, font_size: Optional[float] = None) -> List[str]:
        size = font_size or self.default_size
        lines: List[str] = []
        for paragraph in str(text or "").split("\n"):
            lines.extend(self._wrap_words(paragraph, size, max_width))
        return lines

    def line_height(self, font_size: Optional[float] = None) -> float:
        return (font_size or self.default_size) * self.spacing * PT_TO_MM

    def measure_paragraph_height(self, text: str, max_width: float, font_size: Optional[float] = None) -> float:
        return len(self.wrap(text, max_width, font_size)) * self.line_height(font_size)


def render_pdf(
    document: Mapping[str, Any],
    profile: DocumentProfile,
    geometry: PageGeometry,
    output_path: Path,
    generated_at: Optional[datetime] = None,
    assets: Optional[Mapping[str, Any]] = None,
    style: Optional[dict] = None,
) -> LayoutReport:
    style = style or load_style_preset()
    assets = config.load_assets() if assets is None else assets

    title = profile.title
    if isinstance(document, Mapping) and document.get(profile.id_field):
        title = f"{profile.title} {document[profile.id_field]}"
    canv = ReportLabCanvas(output_path, geometry, style, title=title)
    measurer = ReportLabMeasurer(
        font_name=_s(style, "font_name", "Helvetica"),
        default_size=geometry.base_font_size,
        spacing=float(_s(style, "line_spacing", 1.2)),
    )
    assembler = DocumentAssembler(profile, canv, measurer, geometry, style, assets, generated_at)
    report = assembler.assemble(document)
    canv.save()
    return report
