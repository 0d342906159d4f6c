from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence

from ..errors import ConfigurationError


CENT = Decimal("0.01")
ALIGNMENTS = ("left", "center", "right")


@dataclass(frozen=True)
class ColumnSpec:
    header: str
    align: str
    proportion: float
    field: str


@dataclass(frozen=True)
class Column:
    header: str
    align: str
    width: Decimal
    x: Decimal
    field: str

    def text_x(self, padding: float) -> float:
        """Anchor for text drawn with this column's alignment."""
        left = float(self.x)
        width = float(self.width)
        if self.align == "right":
            return left + width - padding
        if self.align == "center":
            return left + width / 2
        return left + padding


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


def resolve_columns(
    content_width: float,
    specs: Sequence[ColumnSpec],
    origin_x: float = 0.0,
) -> List[Column]:
    """
    Turn width proportions into absolute widths that add up to the content width.

    Every column but the last is rounded to 0.01; the last one takes the
    remainder so the sum never drifts, whatever the proportions add up to.
    """
    if not specs:
        raise ConfigurationError("Table needs at least one column")
    total = _cents(_decimal(content_width))
    if total <= 0:
        raise ConfigurationError(f"Content width must be positive, got {content_width}")
    for spec in specs:
        if not (0 < spec.proportion <= 1):
            raise ConfigurationError(f"Column '{spec.header}' proportion out of range: {spec.proportion}")
        if spec.align not in ALIGNMENTS:
            raise ConfigurationError(f"Column '{spec.header}' has unknown alignment: {spec.align}")

    widths: List[Decimal] = []
    accumulated = Decimal("0")
    for spec in specs[:-1]:
        width = _cents(total * _decimal(spec.proportion))
        widths.append(width)
        accumulated += width
    widths.append(max(Decimal("0"), _cents(total - accumulated)))

    columns: List[Column] = []
    x = _decimal(origin_x)
    for spec, width in zip(specs, widths):
        columns.append(Column(spec.header, spec.align, width, x, spec.field))
        x += width
    return columns
