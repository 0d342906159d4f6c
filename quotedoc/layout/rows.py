from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from ..errors import ConfigurationError, MeasurementError
from .columns import Column


class TextMeasurer(Protocol):
    def wrap(self, text: str, max_width: float, font_size: Optional[float] = None) -> List[str]:
        ...

    def measure_paragraph_height(self, text: str, max_width: float, font_size: Optional[float] = None) -> float:
        ...

    def line_height(self, font_size: Optional[float] = None) -> float:
        ...


@dataclass(frozen=True)
class TableMetrics:
    font_size: float
    line_height: float
    padding: float
    min_row_height: float


@dataclass(frozen=True)
class Cell:
    text: str
    lines: Tuple[str, ...]


@dataclass(frozen=True)
class Row:
    cells: Tuple[Cell, ...]
    height: float


def wrap_text(measurer: TextMeasurer, text: str, max_width: float, font_size: Optional[float] = None) -> List[str]:
    try:
        lines = measurer.wrap(text, max_width, font_size)
    except Exception as exc:
        raise MeasurementError(f"Could not wrap text {text[:40]!r}: {exc}") from exc
    if lines is None:
        raise MeasurementError(f"Measurer returned no lines for {text[:40]!r}")
    lines = list(lines)
    return lines or [""]


def build_row(
    texts: Sequence[str],
    columns: Sequence[Column],
    measurer: TextMeasurer,
    metrics: TableMetrics,
) -> Row:
    """
    Wrap every cell to its column and size the row to the tallest cell.

    The whole row is measured before anything is drawn, so borders and the
    background can use the final height.
    """
    if len(texts) != len(columns):
        raise ConfigurationError(f"Row has {len(texts)} cells for {len(columns)} columns")

    cells: List[Cell] = []
    height = metrics.min_row_height
    for text, column in zip(texts, columns):
        usable = float(column.width) - 2 * metrics.padding
        if usable <= 0:
            raise ConfigurationError(f"Column '{column.header}' is narrower than its padding")
        lines = wrap_text(measurer, text, usable, metrics.font_size)
        cells.append(Cell(text, tuple(lines)))
        height = max(height, len(lines) * metrics.line_height + 2 * metrics.padding)
    return Row(tuple(cells), height)
