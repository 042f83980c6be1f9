"""
Ticket repository (persistence).

Writes go through the `sell_ticket_atomic` and `void_ticket_atomic` database
functions; this module only shapes their parameters and maps rows back into
domain objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from domain.customer import Customer, IdentityDocumentType, InvoiceCustomer
from domain.loyalty import LoyaltyAccount, LoyaltyConfig
from domain.sale import DocumentKind, DocumentType, InvoiceStatus, LifecycleEvent, PaymentMethod
from domain.ticket import Ticket, TicketStatus
from domain.time import parse_utc_datetime
from repositories.client import get_client
from repositories.loyalty_repository import row_to_account
from repositories.rpc import all_rows, call_atomic, first_row
from repositories.sale_repository import history_after_commit, list_events, row_to_event, row_to_pricing

_TICKETS_TABLE: str = "tickets"


@dataclass(frozen=True, slots=True)
class TicketSaleParams:
    """Everything the atomic sale needs, already validated and priced."""

    route_id: str
    schedule_id: Optional[str]
    travel_date: date
    trip_capacity: int
    original_price: Decimal
    date_key: str
    passenger: Customer
    payment_method: PaymentMethod
    document_type: DocumentType
    invoice_customer: Optional[InvoiceCustomer]
    points_requested: int
    manual_price: Optional[Decimal]
    actor_user_id: str
    location_id: str


@dataclass(frozen=True, slots=True)
class TicketSaleRecord:
    ticket: Ticket
    account: LoyaltyAccount


def invoice_customer_to_json(value: Optional[InvoiceCustomer]) -> Optional[dict[str, Any]]:
    if value is None:
        return None
    return {"ruc": value.ruc, "business_name": value.business_name, "address": value.address}


def invoice_customer_from_json(value: Any) -> Optional[InvoiceCustomer]:
    if not value:
        return None
    return InvoiceCustomer(
        ruc=str(value["ruc"]),
        business_name=str(value["business_name"]),
        address=value.get("address"),
    )


def _row_to_ticket(row: Mapping[str, Any], events: Iterable[LifecycleEvent] = ()) -> Ticket:
    """Convert a Supabase row into a Ticket."""

    return Ticket(
        ticket_id=str(row["id"]),
        code=str(row["code"]),
        trip_id=str(row["trip_id"]),
        route_id=str(row["route_id"]),
        schedule_id=str(row["schedule_id"]) if row.get("schedule_id") else None,
        travel_date=date.fromisoformat(str(row["travel_date"])),
        passenger=Customer(
            national_id=str(row["customer_id"]),
            document_type=IdentityDocumentType(str(row["passenger_document_type"])),
            full_name=str(row["passenger_name"]),
            phone=row.get("passenger_phone"),
        ),
        payment_method=PaymentMethod(row["payment_method"]),
        document_type=DocumentType(row["document_type"]),
        invoice_customer=invoice_customer_from_json(row.get("invoice_customer")),
        pricing=row_to_pricing(row),
        status=TicketStatus(row["status"]),
        invoice_status=InvoiceStatus(row.get("invoice_status") or InvoiceStatus.NOT_REQUESTED.value),
        created_at=parse_utc_datetime(row["created_at"]),
        events=tuple(events),
    )


def sell_ticket(params: TicketSaleParams, config: LoyaltyConfig) -> TicketSaleRecord:
    """
    Run the whole sale in one transaction: trip seat, loyalty lock and
    settlement, code allocation, ticket insert, first event, balance update.
    """

    result = call_atomic(
        "sell_ticket_atomic",
        {
            "p_route_id": params.route_id,
            "p_schedule_id": params.schedule_id,
            "p_travel_date": params.travel_date.isoformat(),
            "p_trip_capacity": params.trip_capacity,
            "p_original_price": str(params.original_price),
            "p_date_key": params.date_key,
            "p_customer_id": params.passenger.national_id,
            "p_customer_document_type": params.passenger.document_type.value,
            "p_customer_name": params.passenger.full_name,
            "p_customer_phone": params.passenger.phone,
            "p_payment_method": params.payment_method.value,
            "p_document_type": params.document_type.value,
            "p_invoice_customer": invoice_customer_to_json(params.invoice_customer),
            "p_points_requested": params.points_requested,
            "p_manual_price": str(params.manual_price) if params.manual_price is not None else None,
            "p_soles_per_point": str(config.soles_per_point),
            "p_points_per_sol_discount": str(config.points_per_sol_discount),
            "p_earn_on": config.earn_on.value,
            "p_actor_user_id": params.actor_user_id,
            "p_location_id": params.location_id,
        },
    )
    events = [row_to_event(row) for row in result.get("events") or []]
    return TicketSaleRecord(
        ticket=_row_to_ticket(result["ticket"], events),
        account=row_to_account(result["account"]),
    )


def void_ticket(
    ticket_id: str,
    expected_status: TicketStatus,
    actor_user_id: str,
    location_id: Optional[str],
    reason: str,
) -> Ticket:
    result = call_atomic(
        "void_ticket_atomic",
        {
            "p_ticket_id": ticket_id,
            "p_expected_status": expected_status.value,
            "p_actor_user_id": actor_user_id,
            "p_location_id": location_id,
            "p_reason": reason,
        },
    )
    return _row_to_ticket(
        result["ticket"], history_after_commit(DocumentKind.TICKET, ticket_id, result["event"])
    )


def _get_one(column: str, value: str, with_events: bool) -> Optional[Ticket]:
    response = (
        get_client()
        .table(_TICKETS_TABLE)
        .select("*")
        .eq(column, value)
        .limit(1)
        .execute()
    )
    row = first_row(response, "get ticket")
    if not row:
        return None
    events = list_events(DocumentKind.TICKET, row["id"]) if with_events else ()
    return _row_to_ticket(row, events)


def get_ticket_by_id(ticket_id: str, with_events: bool = True) -> Optional[Ticket]:
    """
    Retrieve a single ticket by its ID.

    Returns:
        Ticket or None if not found
    """

    return _get_one("id", ticket_id, with_events)


def get_ticket_by_code(code: str, with_events: bool = True) -> Optional[Ticket]:
    return _get_one("code", code, with_events)


@dataclass(frozen=True, slots=True)
class TicketListFilters:
    status: Optional[TicketStatus] = None
    route_id: Optional[str] = None
    travel_date: Optional[date] = None
    page: int = 1
    limit: int = 20


def list_tickets(filters: TicketListFilters) -> Tuple[List[Ticket], int]:
    """
    Paged listing, newest first.

    Returns:
        (tickets without events, total matching count)
    """

    query = get_client().table(_TICKETS_TABLE).select("*", count="exact")
    if filters.status is not None:
        query = query.eq("status", filters.status.value)
    if filters.route_id is not None:
        query = query.eq("route_id", filters.route_id)
    if filters.travel_date is not None:
        query = query.eq("travel_date", filters.travel_date.isoformat())
    start = (filters.page - 1) * filters.limit
    response = query.order("created_at", desc=True).range(start, start + filters.limit - 1).execute()
    rows = all_rows(response, "list tickets")
    total = getattr(response, "count", None)
    return [_row_to_ticket(row) for row in rows], int(total if total is not None else len(rows))


__all__ = [
    "TicketSaleParams",
    "TicketSaleRecord",
    "invoice_customer_to_json",
    "invoice_customer_from_json",
    "sell_ticket",
    "void_ticket",
    "get_ticket_by_id",
    "get_ticket_by_code",
    "TicketListFilters",
    "list_tickets",
]
