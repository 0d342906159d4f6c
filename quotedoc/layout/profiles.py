from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .. import config
from ..errors import ConfigurationError
from .columns import ColumnSpec


PT_TO_MM = 25.4 / 72.0
TODAY = "<today>"


class AssemblyState(str, Enum):
    BODY = "BODY"
    TABLE = "TABLE"
    TOTALS = "TOTALS"
    SIGNATURE = "SIGNATURE"
    NOTES = "NOTES"
    DONE = "DONE"


STATE_ORDER = list(AssemblyState)

SECTION_STATES: Dict[str, AssemblyState] = {
    "header": AssemblyState.BODY,
    "addresses": AssemblyState.BODY,
    "reference": AssemblyState.BODY,
    "requester": AssemblyState.BODY,
    "items": AssemblyState.TABLE,
    "eta": AssemblyState.TOTALS,
    "totals": AssemblyState.TOTALS,
    "signature": AssemblyState.SIGNATURE,
    "notes": AssemblyState.NOTES,
    "terms": AssemblyState.NOTES,
    "closing": AssemblyState.NOTES,
}


@dataclass(frozen=True)
class PageGeometry:
    width: float
    height: float
    margin: float
    footer_height: float
    scale: float

    @classmethod
    def from_format(cls, name: str = "a4") -> "PageGeometry":
        try:
            width, height = config.PAGE_FORMATS[name.lower()]
        except KeyError:
            raise ConfigurationError(f"Unknown page format: {name}") from None
        return cls(
            width=width,
            height=height,
            margin=width * 0.05,
            footer_height=height * 0.05,
            scale=width / 210.0,
        )

    @property
    def content_width(self) -> float:
        return round(self.width - 2 * self.margin, 2)

    @property
    def base_font_size(self) -> float:
        return 10.0 * self.scale

    def mm(self, value: float) -> float:
        """A length given for A4, scaled to this page."""
        return value * self.scale


@dataclass(frozen=True)
class DetailField:
    label: str
    keys: Tuple[str, ...]
    default: str = "N/A"
    bold: bool = False


@dataclass(frozen=True)
class TotalLine:
    kind: str
    label: str = ""
    bold: bool = False


@dataclass(frozen=True)
class DocumentProfile:
    kind: str
    title: str
    id_field: str
    default_id: str
    file_prefix: str
    header_fields: Tuple[DetailField, ...]
    reference_fields: Tuple[DetailField, ...]
    columns: Tuple[ColumnSpec, ...]
    total_lines: Tuple[TotalLine, ...]
    sections: Tuple[str, ...]
    company_name: str = config.COMPANY_NAME
    company_lines: Tuple[str, ...] = field(default_factory=lambda: tuple(config.COMPANY_LINES))
    customer_label: str = "To:"
    default_eta: str = "4 weeks"
    default_notes: Optional[str] = None
    default_terms: Optional[str] = None
    closing_message: Optional[str] = None
    bank_details: str = config.DEFAULT_BANK_DETAILS

    def __post_init__(self) -> None:
        if not self.columns:
            raise ConfigurationError(f"Profile '{self.kind}' has no table columns")
        if self.sections.count("items") != 1:
            raise ConfigurationError(f"Profile '{self.kind}' must lay out the item table exactly once")
        previous = AssemblyState.BODY
        for name in self.sections:
            state = SECTION_STATES.get(name)
            if state is None:
                raise ConfigurationError(f"Profile '{self.kind}' has unknown section '{name}'")
            if STATE_ORDER.index(state) < STATE_ORDER.index(previous):
                raise ConfigurationError(
                    f"Profile '{self.kind}': section '{name}' ({state.value}) cannot follow {previous.value}"
                )
            previous = state


QUOTATION = DocumentProfile(
    kind="quotation",
    title="QUOTATION",
    id_field="quotationId",
    default_id="quotation",
    file_prefix="",
    header_fields=(
        DetailField("Quotation #", ("quotationId",)),
        DetailField("Date", (), default=TODAY),
        DetailField("This Quotation is Valid until", ("validUntil",), bold=True),
    ),
    reference_fields=(
        DetailField("Reference", ("reference",)),
        DetailField("Attention", ("attention",)),
    ),
    columns=(
        ColumnSpec("No.", "center", 0.04, "index"),
        ColumnSpec("Product Name", "left", 0.20, "name"),
        ColumnSpec("Description", "left", 0.30, "description"),
        ColumnSpec("Part No.", "left", 0.10, "part_number"),
        ColumnSpec("Manufacturer", "center", 0.10, "manufacturer"),
        ColumnSpec("Qty", "right", 0.04, "quantity"),
        ColumnSpec("Unit Price", "right", 0.09, "unit_price"),
        ColumnSpec("Total", "right", 0.13, "total"),
    ),
    total_lines=(
        TotalLine("subtotal", "Subtotal:"),
        TotalLine("discount"),
        TotalLine("tax"),
        TotalLine("quantity", "Total Quantity:"),
        TotalLine("total", "Total:", bold=True),
    ),
    sections=("header", "addresses", "reference", "items", "eta", "totals", "signature", "notes", "terms"),
)


INVOICE = DocumentProfile(
    kind="invoice",
    title="INVOICE",
    id_field="invoiceId",
    default_id="DRAFT",
    file_prefix="Invoice_",
    header_fields=(
        DetailField("Date", ("issueDate",), default=TODAY),
        DetailField("PO", ("poNumber",)),
        DetailField("QRN", ("qrn",)),
        DetailField("IN-Number", ("invoiceId",), default="DRAFT"),
    ),
    reference_fields=(
        DetailField("Requester", ("requester",), default="Not specified"),
    ),
    columns=(
        ColumnSpec("#", "center", 0.08, "index"),
        ColumnSpec("Description", "left", 0.47, "name_description"),
        ColumnSpec("Qty", "center", 0.11, "quantity"),
        ColumnSpec("Unit Price", "right", 0.16, "unit_price"),
        ColumnSpec("Total", "right", 0.18, "total"),
    ),
    total_lines=(
        TotalLine("subtotal", "Subtotal:"),
        TotalLine("discount"),
        TotalLine("tax"),
        TotalLine("total", "Total Due:", bold=True),
    ),
    sections=("header", "addresses", "requester", "items", "totals", "signature", "notes", "terms", "closing"),
    customer_label="Customer:",
    default_notes="No additional notes provided.",
    default_terms=config.INVOICE_TERMS,
    closing_message="Thank you for trusting us with your business. We look forward to serving you again!",
    bank_details=config.INVOICE_BANK_DETAILS,
)


PROFILES: Dict[str, DocumentProfile] = {
    QUOTATION.kind: QUOTATION,
    INVOICE.kind: INVOICE,
}


def get_profile(kind: str) -> DocumentProfile:
    try:
        return PROFILES[kind.lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown document kind: {kind}") from None
