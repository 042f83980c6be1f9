"""
Tests for `services/invoice_service.py` and the invoice retry script.

Invoicing runs after the sale commits and never raises: every failure ends up
as a warning plus an ERROR status that the retry script can pick up later.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from domain.customer import Customer, IdentityDocumentType, InvoiceCustomer
from domain.errors import ConfigurationError
from domain.loyalty import LoyaltyConfig
from domain.sale import DocumentKind, DocumentType, InvoiceStatus, PaymentMethod
from invoicing.port import InvoiceGateway
from repositories import invoice_repository
from scripts.retry_failed_invoices import retry_failed_invoices
from services import ticket_service
from services.invoice_service import InvoiceRequest, InvoiceService
from services.sequence_allocator import SequenceAllocator
from services.ticket_service import TicketSaleRequest
from services.transaction_coordinator import TransactionCoordinator
from tests.conftest import ROUTE_ID

NOW = datetime(2026, 3, 14, 15, 0, tzinfo=timezone.utc)

BUYER = Customer(
    national_id="12345678",
    document_type=IdentityDocumentType.DNI,
    full_name="Ana Quispe",
)


def invoice_request(document_id: str, document_type: DocumentType = DocumentType.BOLETA, **overrides) -> InvoiceRequest:
    values = dict(
        kind=DocumentKind.TICKET,
        document_id=document_id,
        document_code="TKT-20260314-00001",
        document_type=document_type,
        buyer=BUYER,
        invoice_customer=None,
        description="Passenger ticket",
        amount=Decimal("118.00"),
        issue_date=date(2026, 3, 14),
    )
    values.update(overrides)
    return InvoiceRequest(**values)


@pytest.fixture
def ticket_row(db) -> dict:
    return db.insert_row("tickets", {"code": "TKT-20260314-00001", "invoice_status": "NOT_REQUESTED"})


def test_boleta_is_numbered_and_accepted(db, gateway, ticket_row) -> None:
    outcome = InvoiceService().issue_for_sale(invoice_request(ticket_row["id"]))

    assert outcome.invoice_status == InvoiceStatus.ISSUED
    assert outcome.warnings == []
    assert outcome.invoice.full_number == "BT74-00000001"

    row = db.find("invoices", id=outcome.invoice.invoice_id)
    assert row["status"] == "ACCEPTED"
    assert row["external_id"].startswith("fake_inv_")
    assert row["attempts"] == 1
    assert (row["subtotal"], row["igv"], row["total"]) == ("100.00", "18.00", "118.00")
    assert ticket_row["invoice_status"] == "ISSUED"

    payload = gateway.calls[0]["payload"]
    assert (payload["tipo"], payload["serie"], payload["numero"]) == ("03", "BT74", 1)


def test_factura_is_issued_to_the_company(db, gateway, ticket_row) -> None:
    outcome = InvoiceService().issue_for_sale(
        invoice_request(
            ticket_row["id"],
            DocumentType.FACTURA,
            invoice_customer=InvoiceCustomer("20123456789", "ACME SAC", "Jr. Lima 123"),
        )
    )

    assert outcome.invoice.full_number == "FT74-00000001"
    payload = gateway.calls[0]["payload"]
    assert (payload["cliente_tipo"], payload["cliente_documento"]) == ("6", "20123456789")


def test_sales_note_is_stored_but_not_sent(db, gateway, ticket_row) -> None:
    outcome = InvoiceService().issue_for_sale(invoice_request(ticket_row["id"], DocumentType.VERIFICACION))

    assert outcome.invoice_status == InvoiceStatus.NOT_REQUESTED
    assert outcome.invoice.full_number == "NV01-00000001"
    assert gateway.calls == []
    assert db.find("invoices", id=outcome.invoice.invoice_id)["status"] == "ACCEPTED"


def test_rejection_is_recorded(db, gateway, ticket_row) -> None:
    gateway.configure(should_succeed=False, failure_reason="RUC not found")

    outcome = InvoiceService().issue_for_sale(invoice_request(ticket_row["id"]))

    assert outcome.invoice_status == InvoiceStatus.ERROR
    assert "RUC not found" in outcome.warnings[0]
    row = db.find("invoices", id=outcome.invoice.invoice_id)
    assert (row["status"], row["error_message"]) == ("REJECTED", "RUC not found")
    assert ticket_row["invoice_status"] == "ERROR"


def test_unreachable_gateway_leaves_retryable_invoice(db, gateway, ticket_row) -> None:
    gateway.configure(unreachable=True)

    outcome = InvoiceService().issue_for_sale(invoice_request(ticket_row["id"]))

    assert outcome.invoice_status == InvoiceStatus.ERROR
    assert [r.invoice_id for r in invoice_repository.list_retryable()] == [outcome.invoice.invoice_id]


def test_unconfigured_gateway_is_a_warning(db, ticket_row) -> None:
    class Unconfigured(InvoiceGateway):
        def submit(self, payload):
            raise ConfigurationError("KEYFACIL_TOKEN is not set")

        def query(self, external_id):
            raise NotImplementedError

        def void(self, external_id, reason):
            raise NotImplementedError

        def submit_dispatch_guide(self, payload):
            raise NotImplementedError

        def void_dispatch_guide(self, external_id, reason):
            raise NotImplementedError

    outcome = InvoiceService(gateway_provider=Unconfigured).issue_for_sale(invoice_request(ticket_row["id"]))

    assert outcome.invoice_status == InvoiceStatus.ERROR
    assert "KEYFACIL_TOKEN" in outcome.warnings[0]


def test_numbering_failure_never_raises(db, gateway, ticket_row) -> None:
    def no_counter(scope):
        raise ConfigurationError(f"No sequence counter configured for {scope.scope_key}")

    service = InvoiceService(allocator=SequenceAllocator(next_value=no_counter))

    outcome = service.issue_for_sale(invoice_request(ticket_row["id"]))

    assert outcome.invoice_status == InvoiceStatus.ERROR
    assert outcome.invoice is None
    assert ticket_row["invoice_status"] == "ERROR"
    assert db.rows("invoices") == []


def test_void_without_invoice_is_noop(db, gateway, ticket_row) -> None:
    assert InvoiceService().void_for_sale(DocumentKind.TICKET, ticket_row["id"], "Cancelled") == []
    assert gateway.calls == []


def test_void_refused_by_gateway_stays_voided_locally(db, gateway, ticket_row) -> None:
    service = InvoiceService()
    issued = service.issue_for_sale(invoice_request(ticket_row["id"]))
    gateway.configure(should_succeed=False, failure_reason="Outside void window")

    warnings = service.void_for_sale(DocumentKind.TICKET, ticket_row["id"], "Cancelled")

    assert "Outside void window" in warnings[0]
    row = db.find("invoices", id=issued.invoice.invoice_id)
    assert (row["status"], row["void_reason"]) == ("VOIDED", "Cancelled")
    assert ticket_row["invoice_status"] == "VOIDED"


def test_retry_script_issues_pending_invoices(db, gateway, origin_actor) -> None:
    coordinator = TransactionCoordinator(LoyaltyConfig(), invoices=InvoiceService())
    gateway.configure(unreachable=True)
    sold = ticket_service.sell_ticket(
        TicketSaleRequest(
            route_id=ROUTE_ID,
            passenger_name="Ana Quispe",
            passenger_document_number="12345678",
            payment_method=PaymentMethod.CASH,
            document_type=DocumentType.BOLETA,
        ),
        origin_actor,
        coordinator,
        now_utc=NOW,
    ).document
    gateway.configure()

    stats = retry_failed_invoices(limit=10)

    assert stats == {"attempted": 1, "issued": 1, "failed": 0}
    assert db.find("tickets", id=sold.ticket_id)["invoice_status"] == "ISSUED"
    assert invoice_repository.list_retryable() == []
    assert db.find("invoices", document_id=sold.ticket_id)["attempts"] == 2


def test_retry_script_counts_failures(db, gateway, ticket_row) -> None:
    gateway.configure(unreachable=True)
    InvoiceService().issue_for_sale(invoice_request(ticket_row["id"]))

    stats = retry_failed_invoices(limit=10)

    assert stats == {"attempted": 1, "issued": 0, "failed": 1}


def _stranded_invoice(db, ticket_row, external_id: str | None = "fake_inv_known") -> str:
    """A BOLETA left in ERROR after an attempt that got an external id."""
    outcome = InvoiceService().issue_for_sale(invoice_request(ticket_row["id"]))
    db.find("invoices", id=outcome.invoice.invoice_id).update(
        {"status": "ERROR", "external_id": external_id, "error_message": "timeout"}
    )
    ticket_row["invoice_status"] = "ERROR"
    return outcome.invoice.invoice_id


def test_retry_of_known_invoice_is_reconciled_not_resubmitted(db, gateway, ticket_row) -> None:
    invoice_id = _stranded_invoice(db, ticket_row)
    gateway.calls.clear()
    gateway.query_status = "ACEPTADO"

    stats = retry_failed_invoices(limit=10)

    assert stats == {"attempted": 1, "issued": 1, "failed": 0}
    assert [c["method"] for c in gateway.calls] == ["query"]
    assert gateway.calls[0]["external_id"] == "fake_inv_known"
    row = db.find("invoices", id=invoice_id)
    assert (row["status"], row["external_id"]) == ("ACCEPTED", "fake_inv_known")
    assert ticket_row["invoice_status"] == "ISSUED"


def test_retry_of_invoice_unknown_to_gateway_resubmits(db, gateway, ticket_row) -> None:
    invoice_id = _stranded_invoice(db, ticket_row)
    gateway.calls.clear()
    gateway.query_status = None

    stats = retry_failed_invoices(limit=10)

    assert stats == {"attempted": 1, "issued": 1, "failed": 0}
    assert [c["method"] for c in gateway.calls] == ["query", "submit"]
    assert db.find("invoices", id=invoice_id)["status"] == "ACCEPTED"
    assert ticket_row["invoice_status"] == "ISSUED"


def test_retry_of_invoice_rejected_upstream_is_not_resubmitted(db, gateway, ticket_row) -> None:
    invoice_id = _stranded_invoice(db, ticket_row)
    gateway.calls.clear()
    gateway.query_status = "RECHAZADO"

    stats = retry_failed_invoices(limit=10)

    assert stats == {"attempted": 1, "issued": 0, "failed": 1}
    assert [c["method"] for c in gateway.calls] == ["query"]
    assert db.find("invoices", id=invoice_id)["status"] == "REJECTED"
    assert invoice_repository.list_retryable() == []


def test_retry_leaves_invoice_still_processing_upstream(db, gateway, ticket_row) -> None:
    invoice_id = _stranded_invoice(db, ticket_row)
    gateway.calls.clear()
    gateway.query_status = "PENDIENTE"

    record = invoice_repository.list_retryable()[0]
    outcome = InvoiceService().retry(record)

    assert outcome.invoice_status == InvoiceStatus.PENDING
    assert "PENDIENTE" in outcome.warnings[0]
    assert db.find("invoices", id=invoice_id)["status"] == "ERROR"


def test_retry_without_external_id_submits_directly(db, gateway, ticket_row) -> None:
    _stranded_invoice(db, ticket_row, external_id=None)
    gateway.calls.clear()

    outcome = InvoiceService().retry(invoice_repository.list_retryable()[0])

    assert outcome.invoice_status == InvoiceStatus.ISSUED
    assert [c["method"] for c in gateway.calls] == ["submit"]
