from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from ..errors import ConfigurationError, DataError, GenerationError, MeasurementError
from .columns import Column, resolve_columns
from .flow import Canvas, LayoutCursor, PageFlowController, RepeatedHeader
from .numeric import QUANTITY_KEYS, format_money, format_quantity, resolve_line_amounts, resolve_number
from .profiles import (
    PT_TO_MM,
    SECTION_STATES,
    STATE_ORDER,
    TODAY,
    AssemblyState,
    DetailField,
    DocumentProfile,
    PageGeometry,
)
from .rows import Row, TableMetrics, TextMeasurer, build_row, wrap_text


logger = logging.getLogger(__name__)


class Block(NamedTuple):
    """A measured unit: its height is known before ``draw(y)`` is called."""

    height: float
    draw: Callable[[float], None]


@dataclass(frozen=True)
class RowPlacement:
    index: int
    page: int
    y: float
    height: float


@dataclass
class LayoutReport:
    page_count: int = 0
    header_pages: List[int] = field(default_factory=list)
    footer_pages: List[int] = field(default_factory=list)
    rows: List[RowPlacement] = field(default_factory=list)

    @property
    def table_pages(self) -> List[int]:
        return sorted({row.page for row in self.rows})

    def rows_on_page(self, page: int) -> List[RowPlacement]:
        return [row for row in self.rows if row.page == page]


def format_date(value: datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def _text(value: Any, default: str = "N/A") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


class DocumentAssembler:
    """
    Lays out one quotation or invoice on a canvas.

    Sections run in the profile's order and the assembly state only moves
    forward (BODY, TABLE, TOTALS, SIGNATURE, NOTES, DONE). Every section is
    measured first, then checked against the page, then drawn. An error in
    any section is re-raised tagged with the section name; callers must not
    save the canvas in that case.

    One assembler serves one generation call.
    """

    def __init__(
        self,
        profile: DocumentProfile,
        canvas: Canvas,
        measurer: TextMeasurer,
        geometry: Optional[PageGeometry] = None,
        style: Optional[dict] = None,
        assets: Optional[Mapping[str, Any]] = None,
        generated_at: Optional[datetime] = None,
    ) -> None:
        self.profile = profile
        self.canvas = canvas
        self.measurer = measurer
        self.geometry = geometry or PageGeometry.from_format("a4")
        self.style = style or {}
        self.assets = dict(assets or {})
        self.generated_at = generated_at or datetime.now()
        self.state = AssemblyState.BODY
        self.flow = PageFlowController(canvas, self._draw_footer, self.generated_at)
        self.report = LayoutReport()
        self._document: Mapping[str, Any] = {}
        self._used = False
        self._handlers: Dict[str, Callable[[LayoutCursor], LayoutCursor]] = {
            "header": self._header,
            "addresses": self._addresses,
            "reference": self._reference,
            "requester": self._reference,
            "items": self._items,
            "eta": self._eta,
            "totals": self._totals,
            "signature": self._signature,
            "notes": self._notes,
            "terms": self._terms,
            "closing": self._closing,
        }

    # -------------------- driver --------------------
    def assemble(self, document: Mapping[str, Any]) -> LayoutReport:
        if self._used:
            raise GenerationError("DocumentAssembler instances cannot be reused")
        self._used = True
        if not isinstance(document, Mapping):
            raise DataError("Document model must be a mapping")
        self._document = document

        g = self.geometry
        cursor = self.flow.start(g.height, g.margin, g.footer_height)
        for name in self.profile.sections:
            cursor = self._run_section(name, SECTION_STATES[name], self._handlers[name], cursor)
        cursor = self._run_section("footer", AssemblyState.DONE, self.flow.finish, cursor)

        self.report.page_count = cursor.page_number
        self.report.header_pages = list(self.flow.header_pages)
        self.report.footer_pages = list(self.flow.footer_pages)
        logger.info(
            "Laid out %s %s: %d page(s), %d row(s)",
            self.profile.kind,
            _text(document.get(self.profile.id_field), self.profile.default_id),
            self.report.page_count,
            len(self.report.rows),
        )
        return self.report

    def _run_section(
        self,
        name: str,
        state: AssemblyState,
        handler: Callable[[LayoutCursor], LayoutCursor],
        cursor: LayoutCursor,
    ) -> LayoutCursor:
        try:
            self._enter(state, name)
            return handler(cursor)
        except GenerationError as exc:
            raise exc.in_section(name) from exc
        except Exception as exc:
            raise GenerationError(f"{type(exc).__name__}: {exc}", section=name) from exc

    def _enter(self, state: AssemblyState, name: str) -> None:
        if STATE_ORDER.index(state) < STATE_ORDER.index(self.state):
            raise ConfigurationError(f"Section '{name}' cannot run after {self.state.value}")
        if state is not self.state:
            logger.debug("Assembly %s -> %s", self.state.value, state.value)
        self.state = state

    def _place(self, cursor: LayoutCursor, block: Block) -> LayoutCursor:
        cursor = self.flow.ensure_space(cursor, block.height)
        block.draw(cursor.y)
        return cursor.advanced(block.height)

    # -------------------- helpers --------------------
    def _color(self, key: str, default: str) -> str:
        return str(self.style.get(key, default))

    @property
    def _base(self) -> float:
        return self.geometry.base_font_size

    def _wrap(self, text: str, width: float, size: float) -> List[str]:
        return wrap_text(self.measurer, text, width, size)

    def _detail_value(self, detail: DetailField) -> str:
        for key in detail.keys:
            value = self._document.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
        if detail.default == TODAY:
            return format_date(self.generated_at)
        return detail.default

    def _text_lines(self, lines: Sequence[Tuple[str, bool]], x: float, y: float, step: float, size: float) -> None:
        for i, (line, bold) in enumerate(lines):
            self.canvas.draw_text(
                line,
                x,
                y + i * step,
                size=size,
                bold=bold,
                color=self._color("heading_color" if bold else "text_color", "#374151"),
            )

    # -------------------- BODY --------------------
    def _header(self, cursor: LayoutCursor) -> LayoutCursor:
        g = self.geometry
        m = g.margin
        details = [(f"{f.label}: {self._detail_value(f)}", f.bold) for f in self.profile.header_fields]
        rule_offset = g.mm(max(15.0, 4.0 * len(details) + 3.0))
        primary = self._color("primary_color", "#1A5F7A")

        def draw(y: float) -> None:
            logo = self.assets.get("logo")
            if logo:
                self.canvas.draw_image(logo, m, y, g.mm(50), g.mm(15))
            else:
                self.canvas.draw_text(
                    self.profile.company_name.upper(), m, y + g.mm(8), size=self._base * 1.2, bold=True, color=primary
                )
            self.canvas.draw_text(
                self.profile.title, g.width / 2, y + g.mm(8), align="center", size=self._base * 1.6, bold=True, color=primary
            )
            for i, (line, bold) in enumerate(details):
                self.canvas.draw_text(
                    line,
                    g.width - m,
                    y + g.mm(4 + 4 * i),
                    align="right",
                    size=self._base * 0.9,
                    bold=bold,
                    color=self._color("text_color", "#374151"),
                )
            self.canvas.draw_line(
                m, y + rule_offset, g.width - m, y + rule_offset,
                color=self._color("grid_color", "#D1D5DB"), line_width=g.mm(0.3),
            )

        return self._place(cursor, Block(rule_offset, draw))

    def _addresses(self, cursor: LayoutCursor) -> LayoutCursor:
        g = self.geometry
        size = self._base * 0.9
        step = g.mm(5)
        column_width = g.content_width / 2 - g.mm(5)

        left: List[Tuple[str, bool]] = [(self.profile.company_name, True)]
        for raw in self.profile.company_lines:
            left.extend((line, False) for line in self._wrap(raw, column_width, size))

        right: List[Tuple[str, bool]] = [(self.profile.customer_label, True)]
        customer = [
            _text(self._document.get("customerName")),
            _text(self._document.get("customerAddress")),
        ]
        email = _text(self._document.get("customerEmail"), "")
        if email:
            customer.append(email)
        for raw in customer:
            right.extend((line, False) for line in self._wrap(raw, column_width, size))

        first_baseline = g.mm(5)
        rule_offset = first_baseline + (max(len(left), len(right)) - 1) * step + g.mm(4)

        def draw(y: float) -> None:
            self._text_lines(left, g.margin, y + first_baseline, step, size)
            self._text_lines(right, g.width / 2, y + first_baseline, step, size)
            self.canvas.draw_line(
                g.margin, y + rule_offset, g.width - g.margin, y + rule_offset,
                color=self._color("grid_color", "#D1D5DB"), line_width=g.mm(0.3),
            )

        return self._place(cursor, Block(rule_offset, draw))

    def _reference(self, cursor: LayoutCursor) -> LayoutCursor:
        g = self.geometry
        fields = self.profile.reference_fields
        if not fields:
            return cursor
        size = self._base * 0.9
        step = g.mm(5)
        column_width = g.content_width / len(fields)
        blocks = [
            [(f"{f.label}:", True)] + [(line, False) for line in self._wrap(self._detail_value(f), column_width - g.mm(5), size)]
            for f in fields
        ]
        height = g.mm(4) + (max(len(b) for b in blocks) - 1) * step

        def draw(y: float) -> None:
            for i, lines in enumerate(blocks):
                self._text_lines(lines, g.margin + i * column_width, y + g.mm(4), step, size)

        return self._place(cursor, Block(height, draw))

    # -------------------- TABLE --------------------
    def _items(self, cursor: LayoutCursor) -> LayoutCursor:
        items = self._document.get("items")
        if not isinstance(items, list):
            raise DataError("Document has no item list")

        g = self.geometry
        columns = resolve_columns(g.content_width, self.profile.columns, origin_x=g.margin)
        body_size = self._base * 0.8
        header_size = self._base * 0.9
        padding = g.mm(2)
        line_height = self.measurer.line_height(body_size)
        metrics = TableMetrics(body_size, line_height, padding, line_height + 2 * padding)
        header_height = self.measurer.line_height(header_size) + 2 * padding
        header = RepeatedHeader(
            header_height,
            lambda c: self._draw_table_header(columns, c.y, header_height, header_size, padding),
        )

        if not items:
            logger.info("Document has an empty item list, table skipped")
            return cursor
        cursor = cursor.advanced(g.mm(12))

        # The first row stays with the header that opens the table.
        row = self._build_row(0, items[0], columns, metrics)
        cursor = self.flow.ensure_space(cursor, header_height + row.height)
        cursor = self.flow.draw_header(cursor, header)
        for index in range(len(items)):
            if index:
                row = self._build_row(index, items[index], columns, metrics)
            cursor = self.flow.ensure_space(cursor, row.height, header=header)
            self._draw_row(row, columns, cursor.y, index, metrics)
            self.report.rows.append(RowPlacement(index, cursor.page_number, cursor.y, row.height))
            cursor = cursor.advanced(row.height)
        return cursor

    def _build_row(self, index: int, item: Any, columns: Sequence[Column], metrics: TableMetrics) -> Row:
        if not isinstance(item, Mapping):
            raise DataError(f"Item {index + 1} is not a record")
        return build_row(self._cell_texts(index, item, columns), columns, self.measurer, metrics)

    def _cell_texts(self, index: int, item: Mapping[str, Any], columns: Sequence[Column]) -> List[str]:
        amounts = resolve_line_amounts(item)
        description = str(item.get("description") or "").strip()
        values = {
            "index": str(index + 1),
            "name": _text(item.get("name")),
            "description": _text(description),
            "part_number": _text(item.get("partNumber")),
            "manufacturer": _text(item.get("manufacturer")),
            "quantity": format_quantity(amounts.quantity),
            "unit_price": format_money(amounts.unit_price),
            "total": format_money(amounts.total),
            "name_description": "\n".join(filter(None, [_text(item.get("name"), "Item"), description])),
        }
        try:
            return [values[column.field] for column in columns]
        except KeyError as exc:
            raise ConfigurationError(f"Unknown column field: {exc.args[0]}") from None

    def _draw_table_header(
        self, columns: Sequence[Column], y: float, height: float, size: float, padding: float
    ) -> None:
        for column in columns:
            self.canvas.draw_rect(
                float(column.x), y, float(column.width), height,
                mode="fill", fill_color=self._color("primary_color", "#1A5F7A"),
            )
            self.canvas.draw_text(
                column.header,
                column.text_x(padding),
                y + height / 2 + size * PT_TO_MM * 0.35,
                align=column.align,
                size=size,
                bold=True,
                color=self._color("header_text_color", "#FFFFFF"),
            )

    def _draw_row(self, row: Row, columns: Sequence[Column], y: float, index: int, metrics: TableMetrics) -> None:
        g = self.geometry
        if index % 2 == 1:
            self.canvas.draw_rect(
                g.margin, y, g.content_width, row.height,
                mode="fill", fill_color=self._color("stripe_fill", "#F8FAFC"),
            )
        baseline = metrics.font_size * PT_TO_MM
        for cell, column in zip(row.cells, columns):
            self.canvas.draw_rect(
                float(column.x), y, float(column.width), row.height,
                mode="stroke", stroke_color=self._color("grid_color", "#D1D5DB"), line_width=g.mm(0.2),
            )
            x = column.text_x(metrics.padding)
            for i, line in enumerate(cell.lines):
                self.canvas.draw_text(
                    line,
                    x,
                    y + metrics.padding + baseline + i * metrics.line_height,
                    align=column.align,
                    size=metrics.font_size,
                    color=self._color("text_color", "#374151"),
                )

    # -------------------- TOTALS --------------------
    def _eta(self, cursor: LayoutCursor) -> LayoutCursor:
        g = self.geometry
        height = g.mm(8)
        width = g.content_width * 0.3
        x = g.width - g.margin - width
        eta = _text(self._document.get("eta"), self.profile.default_eta)
        white = self._color("header_text_color", "#FFFFFF")

        def draw(y: float) -> None:
            self.canvas.draw_rect(x, y, width, height, mode="fill", fill_color=self._color("primary_color", "#1A5F7A"))
            baseline = y + height / 2 + self._base * PT_TO_MM * 0.35
            self.canvas.draw_text("ETA:", x + g.mm(3), baseline, size=self._base, bold=True, color=white)
            self.canvas.draw_text(eta, x + width - g.mm(3), baseline, align="right", size=self._base, bold=True, color=white)

        return self._place(cursor.advanced(g.mm(20)), Block(height, draw))

    def _total_lines(self) -> List[Tuple[str, str, bool]]:
        doc = self._document
        lines: List[Tuple[str, str, bool]] = []
        for line in self.profile.total_lines:
            if line.kind == "subtotal":
                lines.append((line.label, format_money(resolve_number(doc, ("subtotal",))), line.bold))
            elif line.kind == "discount":
                label, value = self._discount_line()
                lines.append((label, value, line.bold))
            elif line.kind == "tax":
                rate = resolve_number(doc, ("taxRate",))
                tax = resolve_number(doc, ("tax",))
                lines.append((f"Tax ({rate:.2f}%):", format_money(tax), line.bold))
            elif line.kind == "quantity":
                items = doc.get("items") or []
                quantity = sum(resolve_number(item, QUANTITY_KEYS) for item in items if isinstance(item, Mapping))
                lines.append((line.label, format_quantity(quantity), line.bold))
            elif line.kind == "total":
                lines.append((line.label, format_money(resolve_number(doc, ("totalAmount", "total"))), line.bold))
            else:
                raise ConfigurationError(f"Unknown totals line: {line.kind}")
        return lines

    def _discount_line(self) -> Tuple[str, str]:
        doc = self._document
        # The amount arrives already resolved by the recalculation step.
        amount = resolve_number(doc, ("discountAmount", "discount"))
        if str(doc.get("discountType") or "").strip().lower() == "percentage":
            percentage = resolve_number(doc, ("discountPercentage", "discount"))
            label = f"Discount ({percentage:.2f}%):"
        else:
            label = "Discount ($):"
        value = f"-{format_money(amount)}" if amount > 0 else format_money(0)
        return label, value

    def _totals(self, cursor: LayoutCursor) -> LayoutCursor:
        g = self.geometry
        lines = self._total_lines()
        line_height = g.mm(10)
        height = len(lines) * line_height
        width = g.content_width * 0.35
        x = g.width - g.margin - width
        primary = self._color("primary_color", "#1A5F7A")

        def draw(y: float) -> None:
            self.canvas.draw_rect(
                x, y, width, height,
                mode="both", fill_color=self._color("totals_fill", "#F0F4F5"), stroke_color=primary, line_width=g.mm(0.3),
            )
            for i, (label, value, bold) in enumerate(lines):
                size = self._base if bold else self._base * 0.9
                color = primary if bold else self._color("text_color", "#374151")
                baseline = y + g.mm(6) + i * line_height
                self.canvas.draw_text(label, x + g.mm(3), baseline, size=size, bold=bold, color=color)
                self.canvas.draw_text(value, x + width - g.mm(3), baseline, align="right", size=size, bold=bold, color=color)

        return self._place(cursor.advanced(g.mm(5)), Block(height, draw))

    # -------------------- SIGNATURE --------------------
    def _signature(self, cursor: LayoutCursor) -> LayoutCursor:
        g = self.geometry
        m = g.margin
        height = g.mm(60)
        heading = self._color("heading_color", "#1F2937")

        def draw(y: float) -> None:
            rule_y = y + g.mm(8)
            self.canvas.draw_text("Manager", m, y + g.mm(5), size=self._base * 0.9, bold=True, color=heading)
            self.canvas.draw_line(m, rule_y, m + g.mm(65), rule_y, color=heading, line_width=g.mm(0.2))
            self._signature_image("signature", "Manager Signature", m, rule_y + g.mm(2), g.mm(60), g.mm(30))
            self._signature_image("stamp", "Company Stamp", m + g.mm(70), rule_y + g.mm(2), g.mm(45), g.mm(45))

        return self._place(cursor.advanced(g.mm(15)), Block(height, draw))

    def _signature_image(self, name: str, caption: str, x: float, y: float, w: float, h: float) -> None:
        g = self.geometry
        ref = self.assets.get(name)
        if ref:
            self.canvas.draw_image(ref, x, y, w, h)
        else:
            self.canvas.draw_line(
                x, y + h, x + w, y + h, color=self._color("primary_color", "#1A5F7A"), line_width=g.mm(0.2)
            )
        self.canvas.draw_text(
            caption, x, y + h + g.mm(4), size=self._base * 0.8, color=self._color("text_color", "#374151")
        )

    # -------------------- NOTES --------------------
    def _notes(self, cursor: LayoutCursor) -> LayoutCursor:
        return self._paragraph(cursor, "Notes:", self._document.get("notes"), self.profile.default_notes)

    def _terms(self, cursor: LayoutCursor) -> LayoutCursor:
        return self._paragraph(cursor, "Terms & Conditions:", self._document.get("terms"), self.profile.default_terms)

    def _paragraph(self, cursor: LayoutCursor, heading: str, value: Any, default: Optional[str]) -> LayoutCursor:
        text = _text(value, default or "")
        if not text:
            return cursor
        g = self.geometry
        width = g.content_width
        size = self._base * 0.9
        heading_height = g.mm(6)
        line_height = self.measurer.line_height(size)
        try:
            paragraph_height = float(self.measurer.measure_paragraph_height(text, width, size))
        except Exception as exc:
            raise MeasurementError(f"Could not measure {heading.rstrip(':').lower()}: {exc}") from exc
        lines = self._wrap(text, width, size)

        cursor = cursor.advanced(g.mm(5))
        block_height = heading_height + paragraph_height
        capacity = cursor.bottom - cursor.margin
        if block_height <= capacity:
            block = Block(block_height, lambda y: self._draw_paragraph(heading, lines, y, heading_height, size, line_height))
            return self._place(cursor, block).advanced(g.mm(5))

        # Taller than a page: split between lines, the heading stays with the first chunk.
        start = 0
        first = True
        while start < len(lines):
            top = heading_height if first else 0.0
            # fill what is left of the current page before breaking
            count = int((cursor.remaining - top) // line_height)
            if count < 1:
                count = int((capacity - top) // line_height)
            if count < 1:
                raise DataError(f"{heading.rstrip(':')} line does not fit on a page")
            chunk = lines[start:start + count]
            title = heading if first else None
            block = Block(
                top + len(chunk) * line_height,
                lambda y, t=title, c=chunk, h=top: self._draw_paragraph(t, c, y, h, size, line_height),
            )
            cursor = self._place(cursor, block)
            start += count
            first = False
        return cursor.advanced(g.mm(5))

    def _draw_paragraph(
        self,
        heading: Optional[str],
        lines: Sequence[str],
        y: float,
        heading_height: float,
        size: float,
        line_height: float,
    ) -> None:
        g = self.geometry
        if heading:
            self.canvas.draw_text(
                heading, g.margin, y + self._base * PT_TO_MM, size=self._base, bold=True,
                color=self._color("heading_color", "#1F2937"),
            )
        top = y + heading_height + size * PT_TO_MM
        for i, line in enumerate(lines):
            self.canvas.draw_text(
                line, g.margin, top + i * line_height, size=size, color=self._color("text_color", "#374151")
            )

    def _closing(self, cursor: LayoutCursor) -> LayoutCursor:
        message = self.profile.closing_message
        if not message:
            return cursor
        g = self.geometry

        def draw(y: float) -> None:
            self.canvas.draw_text(
                message, g.width / 2, y + g.mm(5), align="center", size=self._base, italic=True,
                color=self._color("primary_color", "#1A5F7A"),
            )

        return self._place(cursor, Block(g.mm(10), draw))

    # -------------------- footer --------------------
    def _draw_footer(self, page_number: int, generated_at: datetime) -> None:
        g = self.geometry
        size = self._base * 0.8
        color = self._color("muted_color", "#646464")
        bank = _text(self._document.get("bankDetails"), self.profile.bank_details)
        line_height = self.measurer.line_height(size)
        band_top = g.height - g.margin - g.footer_height
        room = g.footer_height - g.mm(6)
        lines = self._wrap(bank, g.content_width * 0.7, size)[: max(1, int(room // line_height))]
        for i, line in enumerate(lines):
            self.canvas.draw_text(line, g.margin, band_top + g.mm(4) + i * line_height, size=size, color=color)
        self.canvas.draw_text(
            f"Page {page_number} | Generated on {format_date(generated_at)}",
            g.width - g.margin,
            g.height - g.margin,
            align="right",
            size=size,
            color=color,
        )
