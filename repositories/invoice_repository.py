"""
Invoice repository (persistence).

Invoices are written after the sale commits. A row is inserted as PENDING
before the gateway is called; the unique (series, number) constraint makes a
resubmission of the same document land on the same row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from domain.invoice import InvoiceDocument, InvoiceLine, InvoiceParty, InvoiceRecordStatus
from domain.sale import DocumentKind
from domain.sequence import SeriesDocumentType
from repositories.client import get_client
from repositories.rpc import all_rows, first_row

_INVOICES_TABLE: str = "invoices"


@dataclass(frozen=True, slots=True)
class InvoiceRecord:
    invoice_id: str
    document_kind: DocumentKind
    document_id: str
    document: InvoiceDocument
    status: InvoiceRecordStatus
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0

    @property
    def full_number(self) -> str:
        return self.document.full_number


def _line_to_json(line: InvoiceLine) -> Dict[str, Any]:
    return {
        "code": line.code,
        "description": line.description,
        "quantity": str(line.quantity),
        "unit_price": str(line.unit_price),
        "value_unit": str(line.value_unit),
        "subtotal": str(line.subtotal),
        "igv": str(line.igv),
        "total": str(line.total),
    }


def _line_from_json(value: Mapping[str, Any]) -> InvoiceLine:
    return InvoiceLine(
        code=str(value["code"]),
        description=str(value["description"]),
        quantity=Decimal(str(value["quantity"])),
        unit_price=Decimal(str(value["unit_price"])),
        value_unit=Decimal(str(value["value_unit"])),
        subtotal=Decimal(str(value["subtotal"])),
        igv=Decimal(str(value["igv"])),
        total=Decimal(str(value["total"])),
    )


def _row_to_invoice(row: Mapping[str, Any]) -> InvoiceRecord:
    """Convert a Supabase row into an InvoiceRecord."""

    customer = row.get("customer") or {}
    document = InvoiceDocument(
        document_type=SeriesDocumentType(row["document_type"]),
        series=str(row["series"]),
        number=int(row["number"]),
        issue_date=date.fromisoformat(str(row["issue_date"])),
        customer=InvoiceParty(
            document_type=str(customer.get("document_type", "")),
            document_number=str(customer.get("document_number", "")),
            name=str(customer.get("name", "")),
            address=str(customer.get("address") or ""),
        ),
        lines=tuple(_line_from_json(line) for line in row.get("lines") or []),
    )
    return InvoiceRecord(
        invoice_id=str(row["id"]),
        document_kind=DocumentKind(row["document_kind"]),
        document_id=str(row["document_id"]),
        document=document,
        status=InvoiceRecordStatus(row["status"]),
        external_id=row.get("external_id"),
        error_message=row.get("error_message"),
        attempts=int(row.get("attempts") or 0),
    )


def insert_pending(kind: DocumentKind, document_id: str, document: InvoiceDocument) -> InvoiceRecord:
    """Persist a numbered document as PENDING before it is sent anywhere."""

    totals = document.totals
    payload: dict[str, Any] = {
        "document_kind": kind.value,
        "document_id": document_id,
        "document_type": document.document_type.value,
        "series": document.series,
        "number": document.number,
        "full_number": document.full_number,
        "issue_date": document.issue_date.isoformat(),
        "customer": {
            "document_type": document.customer.document_type,
            "document_number": document.customer.document_number,
            "name": document.customer.name,
            "address": document.customer.address,
        },
        "lines": [_line_to_json(line) for line in document.lines],
        "subtotal": str(totals.subtotal),
        "igv": str(totals.igv),
        "total": str(totals.total),
        "status": InvoiceRecordStatus.PENDING.value,
    }

    response = get_client().table(_INVOICES_TABLE).insert(payload).execute()
    row = first_row(response, "record invoice")
    if not row:
        raise RuntimeError("Failed to record invoice: no row returned")
    return _row_to_invoice(row)


def _update(invoice_id: str, values: dict[str, Any], action: str) -> None:
    response = get_client().table(_INVOICES_TABLE).update(values).eq("id", invoice_id).execute()
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")


def mark_submitted(
    record: InvoiceRecord,
    status: InvoiceRecordStatus,
    external_id: Optional[str] = None,
    error_message: Optional[str] = None,
    gateway_response: Optional[Mapping[str, Any]] = None,
) -> None:
    """Record the outcome of one submission attempt."""

    values: dict[str, Any] = {
        "status": status.value,
        "error_message": error_message,
        "gateway_response": dict(gateway_response) if gateway_response is not None else None,
        "attempts": record.attempts + 1,
    }
    # an external id, once known, is kept across later attempts
    if external_id is not None:
        values["external_id"] = external_id
    _update(record.invoice_id, values, "update invoice status")


def mark_voided(invoice_id: str, reason: str) -> None:
    _update(
        invoice_id,
        {"status": InvoiceRecordStatus.VOIDED.value, "void_reason": reason},
        "void invoice",
    )


def get_invoice_for_document(kind: DocumentKind, document_id: str) -> Optional[InvoiceRecord]:
    """Latest non-voided invoice of a sale document, if any."""

    response = (
        get_client()
        .table(_INVOICES_TABLE)
        .select("*")
        .eq("document_kind", kind.value)
        .eq("document_id", document_id)
        .neq("status", InvoiceRecordStatus.VOIDED.value)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    row = first_row(response, "get invoice")
    return _row_to_invoice(row) if row else None


def list_retryable(limit: int = 50) -> List[InvoiceRecord]:
    """Invoices left in PENDING or ERROR by a failed post-commit dispatch."""

    response = (
        get_client()
        .table(_INVOICES_TABLE)
        .select("*")
        .in_("status", [InvoiceRecordStatus.PENDING.value, InvoiceRecordStatus.ERROR.value])
        .neq("document_type", SeriesDocumentType.SALES_NOTE.value)
        .order("created_at")
        .limit(limit)
        .execute()
    )
    return [_row_to_invoice(row) for row in all_rows(response, "list retryable invoices")]


__all__ = [
    "InvoiceRecord",
    "insert_pending",
    "mark_submitted",
    "mark_voided",
    "get_invoice_for_document",
    "list_retryable",
]
