"""
Ticket API Endpoints.

Endpoints for selling, reading and voiding passenger tickets.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_actor, get_coordinator, get_invoice_service
from api.models import (
    InvoiceResponse,
    LoyaltyBalanceResponse,
    TicketListResponse,
    TicketResponse,
    TicketSaleRequest as APITicketSaleRequest,
    TicketSaleResponse,
    TicketVoidRequest,
    TicketVoidResponse,
)
from domain.actor import Actor
from domain.errors import ValidationError
from services import ticket_service
from services.invoice_service import InvoiceService
from services.ticket_service import TicketSaleRequest
from services.transaction_coordinator import SaleOutcome, TransactionCoordinator

router = APIRouter()


def _to_service_request(request: APITicketSaleRequest) -> TicketSaleRequest:
    invoice_customer = request.invoice_customer
    return TicketSaleRequest(
        route_id=request.route_id,
        schedule_id=request.schedule_id,
        travel_date=request.travel_date,
        passenger_name=request.passenger.full_name,
        passenger_document_number=request.passenger.document_number,
        passenger_document_type=request.passenger.document_type,
        passenger_phone=request.passenger.phone,
        payment_method=request.payment_method,
        document_type=request.document_type,
        invoice_ruc=invoice_customer.ruc if invoice_customer else None,
        invoice_business_name=invoice_customer.business_name if invoice_customer else None,
        invoice_address=invoice_customer.address if invoice_customer else None,
        points_to_redeem=request.points_to_redeem,
        manual_price=request.manual_price,
    )


def _sale_response(outcome: SaleOutcome) -> TicketSaleResponse:
    return TicketSaleResponse(
        ticket=TicketResponse.from_domain(outcome.document),
        loyalty=LoyaltyBalanceResponse.from_domain(outcome.account),
        invoice=InvoiceResponse.from_domain(outcome.invoice),
        warnings=outcome.warnings,
    )


@router.post(
    "/tickets",
    response_model=TicketSaleResponse,
    status_code=201,
    summary="Sell Ticket",
    description="Sell a ticket for a scheduled departure, redeeming and earning loyalty points."
)
def sell_scheduled_ticket(
    request: APITicketSaleRequest,
    actor: Actor = Depends(get_actor),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Sell a passenger ticket for a route, schedule and travel date.

    **Process (one database transaction):**
    1. Locks the trip (created on first sale) and checks a seat is free
    2. Locks the passenger's loyalty account (opened on first purchase)
    3. Clamps the redemption to the available points, computes discount and final price
    4. Allocates the next `TKT-YYYYMMDD-NNNNN` code
    5. Inserts the ticket and its ISSUED event, updates the balance

    **After commit (best-effort):** a BOLETA/FACTURA is numbered and sent to
    the invoice gateway. If the gateway fails the ticket stands, with
    `invoiceStatus = ERROR` and a warning.

    **Errors:** 400 invalid input, 403 manual price without permission,
    404 unknown route/schedule, 409 trip full or closed, 503 transient
    database condition (retry after `Retry-After` seconds).
    """
    if request.schedule_id is None or request.travel_date is None:
        raise ValidationError(
            "scheduleId and travelDate are required; use /tickets/instant for schedule-less sales",
            fields={"scheduleId": "required", "travelDate": "required"},
        )
    outcome = ticket_service.sell_ticket(_to_service_request(request), actor, coordinator,
                                         tz_name=coordinator.tz_name)
    return _sale_response(outcome)


@router.post(
    "/tickets/instant",
    response_model=TicketSaleResponse,
    status_code=201,
    summary="Sell Instant Ticket",
    description="Sell a same-day ticket without a schedule."
)
def sell_instant_ticket(
    request: APITicketSaleRequest,
    actor: Actor = Depends(get_actor),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Same-day sale on the route's schedule-less trip. `scheduleId` must be
    omitted; `travelDate`, when given, must be today.
    """
    if request.schedule_id is not None:
        raise ValidationError("Instant sales have no schedule", fields={"scheduleId": "must be empty"})
    outcome = ticket_service.sell_ticket(_to_service_request(request), actor, coordinator,
                                         tz_name=coordinator.tz_name)
    return _sale_response(outcome)


@router.get(
    "/tickets",
    response_model=TicketListResponse,
    summary="List Tickets",
)
def list_tickets(
    status: Optional[str] = Query(None, description="ISSUED or VOIDED"),
    route_id: Optional[str] = Query(None, alias="routeId"),
    travel_date: Optional[date] = Query(None, alias="travelDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=ticket_service.MAX_PAGE_SIZE),
    actor: Actor = Depends(get_actor),
):
    """Paged list, newest first."""
    items, total = ticket_service.list_tickets(status, route_id, travel_date, page, limit)
    return TicketListResponse(
        items=[TicketResponse.from_domain(t) for t in items],
        total_count=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/tickets/by-code/{code}",
    response_model=TicketResponse,
    summary="Get Ticket By Code",
)
def get_ticket_by_code(code: str, actor: Actor = Depends(get_actor)):
    """Lookup by `TKT-YYYYMMDD-NNNNN` code, with event history."""
    return TicketResponse.from_domain(ticket_service.get_ticket_by_code(code))


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    summary="Get Ticket",
)
def get_ticket(ticket_id: UUID, actor: Actor = Depends(get_actor)):
    return TicketResponse.from_domain(ticket_service.get_ticket(str(ticket_id)))


@router.post(
    "/tickets/{ticket_id}/void",
    response_model=TicketVoidResponse,
    summary="Void Ticket",
    description="Void an issued ticket and release its seat."
)
def void_ticket(
    ticket_id: UUID,
    request: TicketVoidRequest,
    actor: Actor = Depends(get_actor),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    """
    Void an ISSUED ticket.

    The seat is released in the same transaction. Loyalty points are not
    reversed. The invoice is voided at the gateway afterwards; a gateway
    failure is returned as a warning and the local void stands.

    **Errors:** 400 already voided or missing reason, 404 unknown ticket,
    409 voided concurrently.
    """
    outcome = ticket_service.void_ticket(str(ticket_id), request.reason, actor, invoices=invoices)
    return TicketVoidResponse(ticket=TicketResponse.from_domain(outcome.ticket), warnings=outcome.warnings)
