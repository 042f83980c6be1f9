"""
Transaction coordinator for ticket sales and shipment registrations.

Handles:
- One atomic database call per sale (seat, loyalty lock and settlement,
  code allocation, document insert, first lifecycle event, balance update)
- Best-effort invoicing strictly after commit; gateway trouble turns into a
  warning and an ERROR invoice status, never a rollback
- Threading the loyalty configuration explicitly into the atomic call
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, List, Optional, TypeVar, Union

from domain.errors import ConflictError, TransactionAbortError, TransitCoreError
from domain.loyalty import LoyaltyAccount, LoyaltyConfig
from domain.sale import DocumentKind, DocumentType, InvoiceStatus
from domain.shipment import Shipment
from domain.ticket import Ticket
from domain.time import DEFAULT_BUSINESS_TIMEZONE, business_date
from repositories import shipment_repository, ticket_repository
from repositories.invoice_repository import InvoiceRecord
from repositories.shipment_repository import ShipmentRegistrationParams
from repositories.ticket_repository import TicketSaleParams
from services.invoice_service import InvoiceOutcome, InvoiceRequest, InvoiceService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SaleOutcome:
    """
    Result of a committed sale or registration.

    document: the Ticket or Shipment as committed (invoice_status updated)
    account: the customer's loyalty balance after the sale
    invoice: invoice or sales note created after commit, if any
    warnings: non-fatal post-commit problems (e.g. gateway unreachable)
    """

    document: Union[Ticket, Shipment]
    account: LoyaltyAccount
    invoice_status: InvoiceStatus
    invoice: Optional[InvoiceRecord] = None
    warnings: List[str] = field(default_factory=list)


class TransactionCoordinator:
    """
    Args:
        config: loyalty economics for this request
        invoices: post-commit invoicing (defaults to the configured gateway)
        tz_name: business timezone used for invoice issue dates
    """

    def __init__(
        self,
        config: LoyaltyConfig,
        invoices: Optional[InvoiceService] = None,
        tz_name: str = DEFAULT_BUSINESS_TIMEZONE,
    ) -> None:
        self.config = config
        self.invoices = invoices or InvoiceService()
        self.tz_name = tz_name

    def _run_atomic(self, label: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except ConflictError as exc:
            logger.warning("%s rejected: %s", label, exc.message, extra={"details": exc.details})
            raise
        except TransitCoreError:
            raise
        except Exception as exc:
            logger.exception("%s aborted", label)
            raise TransactionAbortError(
                "The operation could not be completed and was rolled back",
                {"operation": label},
            ) from exc

    def sell_ticket(self, params: TicketSaleParams, now_utc: datetime) -> SaleOutcome:
        record = self._run_atomic("Ticket sale", lambda: ticket_repository.sell_ticket(params, self.config))
        ticket = record.ticket
        logger.info(
            "Ticket %s sold",
            ticket.code,
            extra={
                "ticket_id": ticket.ticket_id,
                "customer_id": ticket.customer_id,
                "final_price": str(ticket.pricing.final_price),
                "points_earned": ticket.pricing.points_earned,
                "points_redeemed": ticket.pricing.points_redeemed,
            },
        )

        outcome = self.invoices.issue_for_sale(
            InvoiceRequest(
                kind=DocumentKind.TICKET,
                document_id=ticket.ticket_id,
                document_code=ticket.code,
                document_type=ticket.document_type,
                buyer=ticket.passenger,
                invoice_customer=ticket.invoice_customer,
                description=f"Passenger ticket {ticket.code} ({ticket.travel_date.isoformat()})",
                amount=ticket.pricing.final_price,
                issue_date=business_date(now_utc, self.tz_name),
            )
        )
        return self._outcome(ticket, record.account, outcome)

    def register_shipment(self, params: ShipmentRegistrationParams, now_utc: datetime) -> SaleOutcome:
        """
        Pay-on-pickup shipments only get an internal sales note now; the real
        invoice is issued after collection.
        """

        record = self._run_atomic(
            "Shipment registration",
            lambda: shipment_repository.register_shipment(params, self.config),
        )
        shipment = record.shipment
        logger.info(
            "Shipment %s registered",
            shipment.code,
            extra={
                "shipment_id": shipment.shipment_id,
                "customer_id": shipment.customer_id,
                "origin_location_id": shipment.origin_location_id,
                "destination_location_id": shipment.destination_location_id,
                "final_price": str(shipment.pricing.final_price),
            },
        )

        document_type = DocumentType.VERIFICACION if shipment.pay_on_pickup else shipment.document_type
        outcome = self.invoices.issue_for_sale(
            shipment_invoice_request(shipment, document_type, business_date(now_utc, self.tz_name))
        )
        return self._outcome(shipment, record.account, outcome)

    @staticmethod
    def _outcome(document: Any, account: LoyaltyAccount, outcome: InvoiceOutcome) -> SaleOutcome:
        return SaleOutcome(
            document=replace(document, invoice_status=outcome.invoice_status),
            account=account,
            invoice_status=outcome.invoice_status,
            invoice=outcome.invoice,
            warnings=list(outcome.warnings),
        )


def shipment_invoice_request(shipment: Shipment, document_type: DocumentType, issue_date: date) -> InvoiceRequest:
    return InvoiceRequest(
        kind=DocumentKind.SHIPMENT,
        document_id=shipment.shipment_id,
        document_code=shipment.code,
        document_type=document_type,
        buyer=shipment.sender,
        invoice_customer=shipment.invoice_customer,
        description=f"Parcel shipment {shipment.code} ({shipment.package.kind})",
        amount=shipment.pricing.final_price,
        issue_date=issue_date,
    )


__all__ = ["SaleOutcome", "TransactionCoordinator", "shipment_invoice_request"]
