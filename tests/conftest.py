from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, NamedTuple, Optional

import pytest

from quotedoc import config
from quotedoc.errors import MeasurementError
from quotedoc.models import reset_engine


class Op(NamedTuple):
    page: int
    kind: str
    args: tuple
    style: dict


class RecordingCanvas:
    """Canvas that only records what would have been drawn."""

    def __init__(self, fail_images: bool = False, follow_pages: bool = True) -> None:
        self.page = 1
        self.ops: List[Op] = []
        self.fail_images = fail_images
        self.follow_pages = follow_pages

    def new_page(self) -> None:
        if self.follow_pages:
            self.page += 1
        self.ops.append(Op(self.page, "new_page", (), {}))

    def current_page_number(self) -> int:
        return self.page

    def draw_rect(self, x, y, w, h, mode="stroke", **style) -> None:
        self.ops.append(Op(self.page, "rect", (x, y, w, h, mode), style))

    def draw_line(self, x1, y1, x2, y2, **style) -> None:
        self.ops.append(Op(self.page, "line", (x1, y1, x2, y2), style))

    def draw_text(self, text, x, y, align="left", **style) -> None:
        self.ops.append(Op(self.page, "text", (text, x, y, align), style))

    def draw_image(self, ref, x, y, w, h) -> None:
        if self.fail_images:
            raise MeasurementError(f"Could not draw image {ref}")
        self.ops.append(Op(self.page, "image", (ref, x, y, w, h), {}))

    def texts(self, page: Optional[int] = None) -> List[str]:
        return [op.args[0] for op in self.ops if op.kind == "text" and (page is None or op.page == page)]

    def text_ops(self, text: str) -> List[Op]:
        return [op for op in self.ops if op.kind == "text" and op.args[0] == text]


class FakeMeasurer:
    """Every character is 1mm wide and every line 4mm high, whatever the font size."""

    char_width = 1.0
    height = 4.0

    def wrap(self, text, max_width, font_size=None) -> List[str]:
        lines: List[str] = []
        for paragraph in str(text).split("\n"):
            cur = ""
            for word in paragraph.split():
                candidate = f"{cur} {word}" if cur else word
                if not cur or len(candidate) * self.char_width <= max_width:
                    cur = candidate
                else:
                    lines.append(cur)
                    cur = word
            lines.append(cur)
        return lines

    def line_height(self, font_size=None) -> float:
        return self.height

    def measure_paragraph_height(self, text, max_width, font_size=None) -> float:
        return len(self.wrap(text, max_width, font_size)) * self.height


@pytest.fixture
def canvas() -> RecordingCanvas:
    return RecordingCanvas()


@pytest.fixture
def make_canvas():
    return RecordingCanvas


@pytest.fixture
def measurer() -> FakeMeasurer:
    return FakeMeasurer()


@pytest.fixture
def generated_at() -> datetime:
    return datetime(2025, 1, 2, 9, 30)


@pytest.fixture
def quotation() -> dict:
    return {
        "quotationId": "Q-2025-001",
        "customerName": "Kibali Gold Mines",
        "customerAddress": "Durba, Haut-Uele",
        "customerEmail": "procurement@example.com",
        "reference": "RFQ-77",
        "attention": "Stores manager",
        "validUntil": "2/1/2025",
        "items": [
            {"name": "Pump", "description": "Centrifugal pump", "partNumber": "P-1", "manufacturer": "Grundfos",
             "quantity": "3", "price": 10},
            {"name": "Valve", "description": "Gate valve", "qty": 2, "unitPrice": "12.5", "totalPrice": 25},
        ],
        "subtotal": 55,
        "discountType": "fixed",
        "discount": 5,
        "discountAmount": 5,
        "taxRate": 16,
        "tax": 8,
        "totalAmount": 58,
        "notes": "Delivery to site included.",
        "terms": "50% advance payment.",
        "eta": "6 weeks",
    }


@pytest.fixture
def out_dir(tmp_path: Path, monkeypatch) -> Path:
    out = tmp_path / "out"
    monkeypatch.setattr(config, "OUT_DIR", out)
    monkeypatch.setattr(config, "DB_PATH", out / "quotedoc.db")
    reset_engine()
    return out
