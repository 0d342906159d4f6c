from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional, Protocol

from ..errors import DataError, GenerationError, MeasurementError


logger = logging.getLogger(__name__)


class Canvas(Protocol):
    def new_page(self) -> None:
        ...

    def draw_rect(self, x: float, y: float, w: float, h: float, mode: str = "stroke", **style) -> None:
        ...

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, **style) -> None:
        ...

    def draw_text(self, text: str, x: float, y: float, align: str = "left", **style) -> None:
        ...

    def draw_image(self, ref, x: float, y: float, w: float, h: float) -> None:
        ...

    def current_page_number(self) -> int:
        ...


@dataclass(frozen=True)
class LayoutCursor:
    page_number: int
    y: float
    page_height: float
    margin: float
    footer_height: float

    @property
    def bottom(self) -> float:
        return self.page_height - self.margin - self.footer_height

    @property
    def remaining(self) -> float:
        return self.bottom - self.y

    def advanced(self, dy: float) -> "LayoutCursor":
        return replace(self, y=self.y + dy)

    def next_page(self) -> "LayoutCursor":
        return replace(self, page_number=self.page_number + 1, y=self.margin)


class RepeatedHeader(NamedTuple):
    """Table header redrawn at the top of every continuation page."""

    height: float
    draw: Callable[[LayoutCursor], None]


FooterDrawer = Callable[[int, datetime], None]


class PageFlowController:
    """
    Decides page breaks for one document.

    The cursor is never stored here; callers pass it in and get the updated
    one back. The controller only remembers which pages got a footer.
    """

    def __init__(self, canvas: Canvas, footer: FooterDrawer, generated_at: datetime) -> None:
        self.canvas = canvas
        self._footer = footer
        self.generated_at = generated_at
        self.footer_pages: List[int] = []
        self.header_pages: List[int] = []

    def start(self, page_height: float, margin: float, footer_height: float) -> LayoutCursor:
        return LayoutCursor(1, margin, page_height, margin, footer_height)

    @staticmethod
    def needs_break(cursor: LayoutCursor, block_height: float) -> bool:
        return cursor.y + block_height > cursor.bottom

    def ensure_space(
        self,
        cursor: LayoutCursor,
        block_height: float,
        header: Optional[RepeatedHeader] = None,
    ) -> LayoutCursor:
        if not self.needs_break(cursor, block_height):
            return cursor

        capacity = cursor.bottom - cursor.margin - (header.height if header else 0.0)
        if block_height > capacity:
            raise DataError(
                f"Block of height {block_height:.2f} does not fit on an empty page ({capacity:.2f} available)"
            )

        self.stamp_footer(cursor.page_number)
        self.canvas.new_page()
        cursor = cursor.next_page()
        canvas_page = self.canvas.current_page_number()
        if canvas_page != cursor.page_number:
            raise MeasurementError(f"Canvas is on page {canvas_page}, layout expected {cursor.page_number}")
        logger.debug("Page break before block of height %.2f, now on page %d", block_height, cursor.page_number)

        if header is not None:
            cursor = self.draw_header(cursor, header)
        return cursor

    def draw_header(self, cursor: LayoutCursor, header: RepeatedHeader) -> LayoutCursor:
        header.draw(cursor)
        self.header_pages.append(cursor.page_number)
        return cursor.advanced(header.height)

    def stamp_footer(self, page_number: int) -> None:
        if page_number in self.footer_pages:
            raise GenerationError(f"Footer for page {page_number} already drawn")
        self._footer(page_number, self.generated_at)
        self.footer_pages.append(page_number)

    def finish(self, cursor: LayoutCursor) -> LayoutCursor:
        """Stamp the footer of the last page. Breaks only stamp the page they leave."""
        self.stamp_footer(cursor.page_number)
        return cursor
