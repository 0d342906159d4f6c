from __future__ import annotations

from decimal import Decimal

import pytest

from quotedoc.errors import ConfigurationError
from quotedoc.layout.columns import ColumnSpec, resolve_columns
from quotedoc.layout.profiles import INVOICE, QUOTATION


def _specs(*proportions: float) -> list:
    return [ColumnSpec(f"c{i}", "left", p, f"f{i}") for i, p in enumerate(proportions)]


def test_quotation_columns_on_184_4mm() -> None:
    columns = resolve_columns(184.4, QUOTATION.columns)
    widths = [c.width for c in columns]
    assert widths[:7] == [
        Decimal("7.38"),
        Decimal("36.88"),
        Decimal("55.32"),
        Decimal("18.44"),
        Decimal("18.44"),
        Decimal("7.38"),
        Decimal("16.60"),
    ]
    assert widths[7] == Decimal("184.40") - sum(widths[:7])
    assert sum(widths) == Decimal("184.40")


@pytest.mark.parametrize("width", [0.01, 1, 99.99, 189.0, 195.9, 1234.567])
def test_widths_add_up_exactly(width: float) -> None:
    for specs in (QUOTATION.columns, INVOICE.columns, _specs(1 / 3, 1 / 3, 1 / 3)):
        columns = resolve_columns(width, specs)
        assert sum(c.width for c in columns) == Decimal(str(width)).quantize(Decimal("0.01"))


def test_offsets_start_at_origin() -> None:
    columns = resolve_columns(100, _specs(0.25, 0.25, 0.5), origin_x=10.5)
    assert [c.x for c in columns] == [Decimal("10.5"), Decimal("35.5"), Decimal("60.5")]


def test_last_column_clamped_when_proportions_overflow() -> None:
    columns = resolve_columns(100, _specs(0.6, 0.6, 0.5))
    assert [c.width for c in columns] == [Decimal("60.00"), Decimal("60.00"), Decimal("0")]


def test_text_anchor_follows_alignment() -> None:
    left, center, right = resolve_columns(
        90,
        [ColumnSpec("a", "left", 1 / 3, "a"), ColumnSpec("b", "center", 1 / 3, "b"), ColumnSpec("c", "right", 1 / 3, "c")],
    )
    assert left.text_x(2) == pytest.approx(2)
    assert center.text_x(2) == pytest.approx(45)
    assert right.text_x(2) == pytest.approx(88)


@pytest.mark.parametrize(
    "width, specs",
    [
        (0, _specs(1.0)),
        (-5, _specs(1.0)),
        (100, []),
        (100, _specs(0.0, 0.5)),
        (100, _specs(1.5)),
        (100, [ColumnSpec("x", "justify", 1.0, "x")]),
    ],
)
def test_invalid_column_sets(width: float, specs: list) -> None:
    with pytest.raises(ConfigurationError):
        resolve_columns(width, specs)
