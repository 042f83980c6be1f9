"""
Invoice service: best-effort electronic invoicing after commit.

Handles:
- Numbering through the series counter of the document type
- Persisting the document as PENDING before the gateway is called
- A single submission attempt; the outcome is recorded on the invoice row and
  on the sale document (ISSUED or ERROR)
- Local-first voiding: the local cancellation stands whatever the gateway says

Nothing in this module raises to the caller. Failures come back as warnings
attached to an otherwise successful response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, List, Optional

from domain.customer import Customer, InvoiceCustomer
from domain.errors import ConfigurationError, TransitCoreError, UpstreamGatewayError
from domain.invoice import InvoiceDocument, InvoiceParty, InvoiceRecordStatus, build_line, series_for
from domain.sale import DocumentKind, DocumentType, InvoiceStatus
from domain.sequence import SeriesDocumentType
from invoicing import get_gateway
from invoicing.port import InvoiceGateway
from repositories import invoice_repository, sale_repository
from repositories.invoice_repository import InvoiceRecord
from services.sequence_allocator import SequenceAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InvoiceRequest:
    """What to invoice for one committed sale document."""

    kind: DocumentKind
    document_id: str
    document_code: str
    document_type: DocumentType
    buyer: Customer
    invoice_customer: Optional[InvoiceCustomer]
    description: str
    amount: Decimal
    issue_date: date


@dataclass(frozen=True)
class InvoiceOutcome:
    """
    invoice_status: value now recorded on the sale document
    invoice: the persisted invoice/sales note, when numbering succeeded
    warnings: non-fatal problems to surface to the caller
    """

    invoice_status: InvoiceStatus
    invoice: Optional[InvoiceRecord] = None
    warnings: List[str] = field(default_factory=list)


class InvoiceService:
    def __init__(
        self,
        allocator: Optional[SequenceAllocator] = None,
        gateway_provider: Callable[[], InvoiceGateway] = get_gateway,
    ) -> None:
        self.allocator = allocator or SequenceAllocator()
        self._gateway_provider = gateway_provider

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_for_sale(self, request: InvoiceRequest) -> InvoiceOutcome:
        """
        Number, persist and (for BOLETA/FACTURA) submit the document.

        VERIFICACION sales notes are numbered and stored but never sent; the
        sale keeps invoice_status NOT_REQUESTED.
        """

        try:
            record = self._create_pending(request)
        except TransitCoreError as exc:
            return self._fail(request.kind, request.document_id, f"Invoice not issued: {exc.message}", exc)
        except Exception as exc:
            logger.exception("Unexpected failure numbering invoice for %s", request.document_code)
            return self._fail(request.kind, request.document_id, "Invoice not issued: internal error", exc)

        if record.document.document_type == SeriesDocumentType.SALES_NOTE:
            warnings: List[str] = []
            self._mark(record, InvoiceRecordStatus.ACCEPTED, warnings)
            return InvoiceOutcome(invoice_status=InvoiceStatus.NOT_REQUESTED, invoice=record, warnings=warnings)

        return self.dispatch(record)

    def _create_pending(self, request: InvoiceRequest) -> InvoiceRecord:
        document_type, series = series_for(request.document_type)
        number, full_number = self.allocator.next_series_number(document_type, series)
        document = InvoiceDocument(
            document_type=document_type,
            series=series,
            number=number,
            issue_date=request.issue_date,
            customer=InvoiceParty.resolve(request.document_type, request.buyer, request.invoice_customer),
            lines=(build_line(request.document_code, request.description, request.amount),),
        )
        record = invoice_repository.insert_pending(request.kind, request.document_id, document)
        if document_type != SeriesDocumentType.SALES_NOTE:
            sale_repository.update_invoice_status(request.kind, request.document_id, InvoiceStatus.PENDING)
        logger.info("Invoice %s created for %s", full_number, request.document_code)
        return record

    def dispatch(self, record: InvoiceRecord) -> InvoiceOutcome:
        """
        One submission attempt for a persisted invoice. Also used by the
        retry script for invoices left in PENDING/ERROR.
        """

        warnings: List[str] = []
        try:
            result = self._gateway_provider().submit(record.document.to_gateway_payload())
        except (UpstreamGatewayError, ConfigurationError) as exc:
            logger.warning("Invoice %s not delivered: %s", record.full_number, exc.message)
            self._mark(record, InvoiceRecordStatus.ERROR, warnings, error_message=exc.message)
            warnings.append(f"Invoice {record.full_number} pending: {exc.message}")
            status = InvoiceStatus.ERROR
        else:
            if result.success:
                self._mark(
                    record,
                    InvoiceRecordStatus.ACCEPTED,
                    warnings,
                    external_id=result.external_id,
                    gateway_response=result.raw,
                )
                status = InvoiceStatus.ISSUED
            else:
                logger.warning("Invoice %s rejected: %s", record.full_number, result.failure_reason)
                self._mark(
                    record,
                    InvoiceRecordStatus.REJECTED,
                    warnings,
                    error_message=result.failure_reason,
                    gateway_response=result.raw,
                )
                warnings.append(f"Invoice {record.full_number} rejected: {result.failure_reason}")
                status = InvoiceStatus.ERROR

        self._record_sale_status(record.document_kind, record.document_id, status, warnings)
        return InvoiceOutcome(invoice_status=status, invoice=record, warnings=warnings)

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    def retry(self, record: InvoiceRecord) -> InvoiceOutcome:
        """
        Retry an invoice left in PENDING/ERROR.

        When an earlier attempt got as far as an external id, the gateway is
        asked for the document's status first. The document is resubmitted
        only when the gateway does not know it.
        """

        if not record.external_id:
            return self.dispatch(record)

        warnings: List[str] = []
        try:
            result = self._gateway_provider().query(record.external_id)
        except (UpstreamGatewayError, ConfigurationError) as exc:
            logger.warning("Status query for invoice %s failed: %s", record.full_number, exc.message)
            self._mark(record, InvoiceRecordStatus.ERROR, warnings, error_message=exc.message)
            warnings.append(f"Invoice {record.full_number} pending: {exc.message}")
            self._record_sale_status(record.document_kind, record.document_id, InvoiceStatus.ERROR, warnings)
            return InvoiceOutcome(invoice_status=InvoiceStatus.ERROR, invoice=record, warnings=warnings)

        if not result.success:
            logger.info("Invoice %s unknown to the gateway; resubmitting", record.full_number)
            return self.dispatch(record)

        if result.accepted:
            logger.info("Invoice %s already accepted by the gateway", record.full_number)
            self._mark(record, InvoiceRecordStatus.ACCEPTED, warnings, gateway_response=result.raw)
            status = InvoiceStatus.ISSUED
        elif result.rejected:
            logger.warning("Invoice %s was rejected by the gateway", record.full_number)
            self._mark(
                record,
                InvoiceRecordStatus.REJECTED,
                warnings,
                error_message=f"Gateway status {result.status}",
                gateway_response=result.raw,
            )
            warnings.append(f"Invoice {record.full_number} rejected by the gateway")
            status = InvoiceStatus.ERROR
        else:
            # still being processed upstream; left for the next run
            warnings.append(f"Invoice {record.full_number} still in process at the gateway ({result.status})")
            return InvoiceOutcome(invoice_status=InvoiceStatus.PENDING, invoice=record, warnings=warnings)

        self._record_sale_status(record.document_kind, record.document_id, status, warnings)
        return InvoiceOutcome(invoice_status=status, invoice=record, warnings=warnings)

    # ------------------------------------------------------------------
    # Void
    # ------------------------------------------------------------------

    def void_for_sale(self, kind: DocumentKind, document_id: str, reason: str) -> List[str]:
        """
        Cancel the invoice of a sale document locally, then ask the gateway.

        Returns:
            warnings (empty when there was nothing to void or everything worked)
        """

        warnings: List[str] = []
        try:
            record = invoice_repository.get_invoice_for_document(kind, document_id)
            if record is None:
                return warnings
            invoice_repository.mark_voided(record.invoice_id, reason)
            self._record_sale_status(kind, document_id, InvoiceStatus.VOIDED, warnings)
        except Exception:
            logger.exception("Failed to void invoice locally for %s %s", kind.value, document_id)
            warnings.append("Invoice could not be voided locally; void it manually")
            return warnings

        if not record.external_id:
            return warnings

        try:
            result = self._gateway_provider().void(record.external_id, reason)
        except (UpstreamGatewayError, ConfigurationError) as exc:
            logger.warning("Gateway void of %s failed: %s", record.full_number, exc.message)
            warnings.append(f"Invoice {record.full_number} voided locally; gateway void failed: {exc.message}")
            return warnings

        if not result.success:
            logger.warning("Gateway refused void of %s: %s", record.full_number, result.failure_reason)
            warnings.append(
                f"Invoice {record.full_number} voided locally; gateway refused: {result.failure_reason}"
            )
        return warnings

    # ------------------------------------------------------------------

    def _mark(
        self,
        record: InvoiceRecord,
        status: InvoiceRecordStatus,
        warnings: List[str],
        **values: Any,
    ) -> None:
        try:
            invoice_repository.mark_submitted(record, status, **values)
        except Exception:
            logger.exception("Failed to record status %s on invoice %s", status.value, record.full_number)
            warnings.append(f"Invoice {record.full_number} outcome could not be recorded")

    def _record_sale_status(
        self, kind: DocumentKind, document_id: str, status: InvoiceStatus, warnings: List[str]
    ) -> None:
        try:
            sale_repository.update_invoice_status(kind, document_id, status)
        except Exception:
            logger.exception("Failed to record invoice status %s on %s %s", status.value, kind.value, document_id)
            warnings.append("Invoice status could not be recorded on the sale")

    def _fail(self, kind: DocumentKind, document_id: str, message: str, exc: Exception) -> InvoiceOutcome:
        logger.warning("%s (%s %s): %s", message, kind.value, document_id, exc)
        warnings = [message]
        self._record_sale_status(kind, document_id, InvoiceStatus.ERROR, warnings)
        return InvoiceOutcome(invoice_status=InvoiceStatus.ERROR, warnings=warnings)


__all__ = ["InvoiceRequest", "InvoiceOutcome", "InvoiceService"]
