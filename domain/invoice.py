"""
Domain: electronic invoices (pure).

Prices are IGV-inclusive. Per line:
- value_unit = price / (1 + rate)
- subtotal = value_unit * quantity
- igv = subtotal * rate
- total = subtotal + igv
Line amounts are rounded half-up to cents; document totals are the sums.

Every emitted document is unique on (series, number). The number comes from
the series counter of its document type.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .customer import Customer, IdentityDocumentType, InvoiceCustomer
from .errors import ValidationError
from .loyalty import to_cents
from .sale import DocumentType
from .sequence import SeriesDocumentType, format_series_number, validate_series

IGV_RATE = Decimal("0.18")
CURRENCY = "PEN"
OPERATION_TYPE = "0101"  # domestic sale
SERVICE_UNIT = "ZZ"
IGV_AFFECTATION = "10"  # taxed

# Default series per requested document type.
DEFAULT_SERIES: Dict[DocumentType, Tuple[SeriesDocumentType, str]] = {
    DocumentType.FACTURA: (SeriesDocumentType.FACTURA, "FT74"),
    DocumentType.BOLETA: (SeriesDocumentType.BOLETA, "BT74"),
    DocumentType.VERIFICACION: (SeriesDocumentType.SALES_NOTE, "NV01"),
}


class InvoiceRecordStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    ERROR = "ERROR"
    VOIDED = "VOIDED"


def series_for(document_type: DocumentType) -> Tuple[SeriesDocumentType, str]:
    return DEFAULT_SERIES[DocumentType(document_type)]


def check_series_prefix(document_type: SeriesDocumentType, series: str) -> None:
    """Factura series start with F, boleta series with B."""

    validate_series(series)
    expected = {SeriesDocumentType.FACTURA: "F", SeriesDocumentType.BOLETA: "B"}.get(document_type)
    if expected and not series.startswith(expected):
        raise ValidationError(
            f"Series {series} is not valid for document type {document_type.value}",
            fields={"series": f"must start with {expected}"},
        )


@dataclass(frozen=True, slots=True)
class InvoiceParty:
    """Customer as printed on the document."""

    document_type: str  # "1" DNI, "6" RUC
    document_number: str
    name: str
    address: str = ""

    @classmethod
    def resolve(
        cls,
        document_type: DocumentType,
        buyer: Customer,
        invoice_customer: Optional[InvoiceCustomer],
    ) -> "InvoiceParty":
        if document_type == DocumentType.FACTURA:
            if invoice_customer is None:
                raise ValidationError(
                    "A FACTURA requires the business RUC and name",
                    fields={"invoice_customer": "required for FACTURA"},
                )
            return cls(
                document_type=IdentityDocumentType.RUC.value,
                document_number=invoice_customer.ruc,
                name=invoice_customer.business_name,
                address=invoice_customer.address or "",
            )
        return cls(
            document_type=buyer.document_type.value,
            document_number=buyer.national_id,
            name=buyer.full_name,
        )


@dataclass(frozen=True, slots=True)
class InvoiceLine:
    code: str
    description: str
    quantity: Decimal
    unit_price: Decimal  # IGV included
    value_unit: Decimal
    subtotal: Decimal
    igv: Decimal
    total: Decimal


def build_line(code: str, description: str, unit_price: Decimal, quantity: Decimal = Decimal("1")) -> InvoiceLine:
    """
    Example:
        >>> line = build_line("TKT", "Ticket", Decimal("95.00"))
        >>> (line.subtotal, line.igv, line.total)
        (Decimal('80.51'), Decimal('14.49'), Decimal('95.00'))
    """

    if unit_price < 0 or quantity <= 0:
        raise ValidationError("Invalid invoice line amounts", fields={"unit_price": "must be >= 0"})
    value_unit = unit_price / (1 + IGV_RATE)
    subtotal = value_unit * quantity
    igv = subtotal * IGV_RATE
    return InvoiceLine(
        code=code,
        description=description,
        quantity=quantity,
        unit_price=to_cents(unit_price),
        value_unit=value_unit.quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP),
        subtotal=to_cents(subtotal),
        igv=to_cents(igv),
        total=to_cents(subtotal + igv),
    )


@dataclass(frozen=True, slots=True)
class InvoiceTotals:
    subtotal: Decimal
    igv: Decimal
    total: Decimal


def compute_totals(lines: Sequence[InvoiceLine]) -> InvoiceTotals:
    return InvoiceTotals(
        subtotal=to_cents(sum((line.subtotal for line in lines), Decimal("0"))),
        igv=to_cents(sum((line.igv for line in lines), Decimal("0"))),
        total=to_cents(sum((line.total for line in lines), Decimal("0"))),
    )


@dataclass(frozen=True, slots=True)
class InvoiceDocument:
    """A numbered document ready to be submitted to the gateway."""

    document_type: SeriesDocumentType
    series: str
    number: int
    issue_date: date
    customer: InvoiceParty
    lines: Tuple[InvoiceLine, ...]

    def __post_init__(self) -> None:
        check_series_prefix(self.document_type, self.series)
        if not self.lines:
            raise ValueError("an invoice needs at least one line")

    @property
    def full_number(self) -> str:
        return format_series_number(self.series, self.number)

    @property
    def totals(self) -> InvoiceTotals:
        return compute_totals(self.lines)

    def to_gateway_payload(self) -> Dict[str, Any]:
        """Flat payload of the e-invoicing provider (it recomputes totals from the lines)."""

        return {
            "tipo": self.document_type.value,
            "serie": self.series,
            "numero": self.number,
            "fecha_emision": self.issue_date.isoformat(),
            "tipo_operacion": OPERATION_TYPE,
            "cliente_tipo": self.customer.document_type,
            "cliente_documento": self.customer.document_number,
            "cliente_nombre": self.customer.name,
            "cliente_direccion": self.customer.address,
            "moneda": CURRENCY,
            "items": [
                {
                    "codigo": line.code,
                    "descripcion": line.description,
                    "unidad_medida": SERVICE_UNIT,
                    "cantidad": float(line.quantity),
                    "precio_unitario": float(line.unit_price),
                    "tipo_igv": IGV_AFFECTATION,
                }
                for line in self.lines
            ],
        }


__all__ = [
    "IGV_RATE",
    "CURRENCY",
    "DEFAULT_SERIES",
    "InvoiceRecordStatus",
    "series_for",
    "check_series_prefix",
    "InvoiceParty",
    "InvoiceLine",
    "build_line",
    "InvoiceTotals",
    "compute_totals",
    "InvoiceDocument",
]
