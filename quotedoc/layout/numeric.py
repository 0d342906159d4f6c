from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Iterable, Mapping, NamedTuple


QUANTITY_KEYS = ("quantity", "qty", "qtyOrdered", "qtyRequested")
UNIT_PRICE_KEYS = ("price", "unitPrice", "sellingPrice")
LINE_TOTAL_KEYS = ("totalPrice", "total")


class LineAmounts(NamedTuple):
    quantity: float
    unit_price: float
    total: float


def _coerce(value: Any) -> float:
    # Empty strings count as zero, same as the form layer sends them.
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        try:
            return float(value)
        except (OverflowError, ValueError):
            return math.nan
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        # digit separators are not numbers in JSON or form input
        if "_" in text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def resolve_number(record: Mapping[str, Any] | None, keys: Iterable[str], default: float = 0.0) -> float:
    """
    Return the first present key of ``record`` as a finite float.

    Only the first key that is present (not None) is looked at. When that
    value does not coerce to a finite number, or no key is present,
    ``default`` is returned. Never raises.
    """
    if not record or not isinstance(record, Mapping):
        return default
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        number = _coerce(value)
        return number if math.isfinite(number) else default
    return default


def resolve_line_amounts(item: Mapping[str, Any] | None) -> LineAmounts:
    quantity = resolve_number(item, QUANTITY_KEYS)
    unit_price = resolve_number(item, UNIT_PRICE_KEYS)
    total = resolve_number(item, LINE_TOTAL_KEYS, default=quantity * unit_price)
    return LineAmounts(quantity, unit_price, total)


def format_money(value: float) -> str:
    return f"${value:.2f}"


def format_quantity(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)
