"""
Ticket service: passenger ticket sales and voids.

Handles:
- Input validation (passenger document, FACTURA data, payment method)
- Route/schedule resolution and the travel-date rules
- Scheduled sales (route + schedule + date) and instant sales (today, no schedule)
- Price override authorization
- Voids (seat released, points kept, invoice voided best-effort)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from domain.customer import Customer, InvoiceCustomer
from domain.errors import AuthorizationError, NotFoundError, ValidationError
from domain.sale import DocumentKind, DocumentType, PaymentMethod
from domain.actor import Actor
from domain.ticket import INSTANT_TRIP_CAPACITY, Ticket, TicketStatus, assert_voidable, validate_travel_date
from domain.time import DEFAULT_BUSINESS_TIMEZONE, business_date_key, business_now
from repositories import master_data_repository, ticket_repository
from repositories.ticket_repository import TicketListFilters, TicketSaleParams
from services.invoice_service import InvoiceService
from services.transaction_coordinator import SaleOutcome, TransactionCoordinator

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class TicketSaleRequest:
    """
    Service-level sale request.

    schedule_id/travel_date: both set for a scheduled sale, both None for an
    instant sale (today, schedule-less trip).
    """

    route_id: str
    passenger_name: str
    passenger_document_number: str
    payment_method: PaymentMethod
    document_type: DocumentType
    schedule_id: Optional[str] = None
    travel_date: Optional[date] = None
    passenger_document_type: Optional[str] = None
    passenger_phone: Optional[str] = None
    invoice_ruc: Optional[str] = None
    invoice_business_name: Optional[str] = None
    invoice_address: Optional[str] = None
    points_to_redeem: int = 0
    manual_price: Optional[Decimal] = None


@dataclass(frozen=True)
class TicketVoidOutcome:
    ticket: Ticket
    warnings: List[str] = field(default_factory=list)


def resolve_invoice_customer(
    document_type: DocumentType,
    ruc: Optional[str],
    business_name: Optional[str],
    address: Optional[str],
) -> Optional[InvoiceCustomer]:
    if document_type == DocumentType.FACTURA:
        return InvoiceCustomer.create(ruc, business_name, address)
    return None


def check_manual_price(actor: Actor, manual_price: Optional[Decimal]) -> Optional[Decimal]:
    if manual_price is None:
        return None
    if not actor.can_override_price:
        raise AuthorizationError(
            "You are not allowed to override prices",
            {"actor_user_id": actor.user_id},
        )
    if manual_price < 0:
        raise ValidationError("Manual price cannot be negative", fields={"manual_price": "must be >= 0"})
    return manual_price


def sell_ticket(
    request: TicketSaleRequest,
    actor: Actor,
    coordinator: TransactionCoordinator,
    now_utc: Optional[datetime] = None,
    tz_name: str = DEFAULT_BUSINESS_TIMEZONE,
) -> SaleOutcome:
    """
    Sell one passenger ticket.

    Args:
        request: Sale request
        actor: Seller (location-bound or administrative)
        coordinator: Transaction coordinator carrying the loyalty config
        now_utc: Explicit current time (defaults to the system clock)

    Returns:
        SaleOutcome with the committed Ticket, new balance, invoice outcome

    Raises:
        ValidationError, NotFoundError, AuthorizationError before anything is written;
        ConflictError (trip full/closed), RetryableError, TransactionAbortError
        from the atomic call.
    """

    now_utc = now_utc or datetime.now(timezone.utc)
    now_local = business_now(now_utc, tz_name)

    passenger = Customer.create(
        request.passenger_name,
        request.passenger_document_number,
        request.passenger_phone,
        request.passenger_document_type,
        prefix="passenger.",
    )
    invoice_customer = resolve_invoice_customer(
        request.document_type, request.invoice_ruc, request.invoice_business_name, request.invoice_address
    )
    manual_price = check_manual_price(actor, request.manual_price)

    route = master_data_repository.get_route(request.route_id)
    if route is None:
        raise NotFoundError("Route not found", {"route_id": request.route_id})
    if not route.active:
        raise ValidationError("Route is not active", fields={"route_id": "inactive"})

    if request.schedule_id is None:
        if request.travel_date is not None and request.travel_date != now_local.date():
            raise ValidationError(
                "Instant sales are for today only",
                fields={"travel_date": "must be empty or today for an instant sale"},
            )
        travel_date = now_local.date()
        capacity = INSTANT_TRIP_CAPACITY
    else:
        if request.travel_date is None:
            raise ValidationError("Travel date is required", fields={"travel_date": "required"})
        schedule = master_data_repository.get_schedule(request.schedule_id)
        if schedule is None or schedule.route_id != route.route_id:
            raise NotFoundError(
                "Schedule not found for this route",
                {"route_id": request.route_id, "schedule_id": request.schedule_id},
            )
        if not schedule.enabled:
            raise ValidationError("Schedule is disabled", fields={"schedule_id": "disabled"})
        validate_travel_date(request.travel_date, schedule.departure_time, now_local)
        travel_date = request.travel_date
        capacity = schedule.capacity

    params = TicketSaleParams(
        route_id=route.route_id,
        schedule_id=request.schedule_id,
        travel_date=travel_date,
        trip_capacity=capacity,
        original_price=route.price,
        date_key=business_date_key(now_utc, tz_name),
        passenger=passenger,
        payment_method=request.payment_method,
        document_type=request.document_type,
        invoice_customer=invoice_customer,
        points_requested=max(0, request.points_to_redeem),
        manual_price=manual_price,
        actor_user_id=actor.user_id,
        location_id=actor.location_id or route.origin_location_id,
    )
    return coordinator.sell_ticket(params, now_utc)


def get_ticket(ticket_id: str) -> Ticket:
    ticket = ticket_repository.get_ticket_by_id(ticket_id)
    if ticket is None:
        raise NotFoundError("Ticket not found", {"ticket_id": ticket_id})
    return ticket


def get_ticket_by_code(code: str) -> Ticket:
    ticket = ticket_repository.get_ticket_by_code(code.strip().upper())
    if ticket is None:
        raise NotFoundError("Ticket not found", {"code": code})
    return ticket


def list_tickets(
    status: Optional[str] = None,
    route_id: Optional[str] = None,
    travel_date: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Ticket], int]:
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(
            "Invalid pagination",
            fields={"page": ">= 1", "limit": f"between 1 and {MAX_PAGE_SIZE}"},
        )
    try:
        parsed_status = TicketStatus(status.strip().upper()) if status else None
    except ValueError:
        raise ValidationError(f"Unknown ticket status: {status!r}", fields={"status": "ISSUED or VOIDED"}) from None
    filters = TicketListFilters(
        status=parsed_status,
        route_id=route_id or None,
        travel_date=travel_date,
        page=page,
        limit=limit,
    )
    return ticket_repository.list_tickets(filters)


def void_ticket(
    ticket_id: str,
    reason: str,
    actor: Actor,
    invoices: Optional[InvoiceService] = None,
) -> TicketVoidOutcome:
    """
    Void an ISSUED ticket. The seat is released in the same transaction;
    loyalty points are not reversed. The invoice is voided afterwards,
    best-effort.
    """

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A void reason is required", fields={"reason": "required"})

    ticket = get_ticket(ticket_id)
    assert_voidable(ticket.status)

    route = master_data_repository.get_route(ticket.route_id)
    location_id = actor.location_id or (route.origin_location_id if route else None)

    voided = ticket_repository.void_ticket(
        ticket_id=ticket.ticket_id,
        expected_status=TicketStatus.ISSUED,
        actor_user_id=actor.user_id,
        location_id=location_id,
        reason=reason,
    )
    logger.info("Ticket %s voided", voided.code, extra={"ticket_id": voided.ticket_id, "actor": actor.user_id})

    warnings = (invoices or InvoiceService()).void_for_sale(DocumentKind.TICKET, voided.ticket_id, reason)
    refreshed = ticket_repository.get_ticket_by_id(voided.ticket_id) or voided
    return TicketVoidOutcome(ticket=refreshed, warnings=warnings)


__all__ = [
    "TicketSaleRequest",
    "TicketVoidOutcome",
    "resolve_invoice_customer",
    "check_manual_price",
    "sell_ticket",
    "get_ticket",
    "get_ticket_by_code",
    "list_tickets",
    "void_ticket",
]
