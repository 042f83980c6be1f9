"""
Domain: passenger tickets (pure).

Tickets share the loyalty and sequence rules of shipments. Their own lifecycle
is ISSUED -> VOIDED; voiding releases the seat but never reverses points.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, Tuple

from .customer import Customer, InvoiceCustomer
from .errors import InvalidTransition, ValidationError
from .sale import DocumentType, InvoiceStatus, LifecycleEvent, PaymentMethod, SalePricing
from .time import require_utc_timestamp

# Capacity of the schedule-less trip that collects instant sales.
INSTANT_TRIP_CAPACITY = 9999


class TicketStatus(str, Enum):
    ISSUED = "ISSUED"
    VOIDED = "VOIDED"


class TripStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def assert_voidable(current: TicketStatus) -> None:
    if TicketStatus(current) != TicketStatus.ISSUED:
        raise InvalidTransition(TicketStatus(current).value, TicketStatus.VOIDED.value)


def validate_travel_date(travel_date: date, departure_time: time, now_local: datetime) -> None:
    """
    Reject past travel dates and, for today, departures that already left.

    now_local must be expressed in the business timezone.
    """

    today = now_local.date()
    if travel_date < today:
        raise ValidationError("Travel date is in the past", fields={"travel_date": "cannot be in the past"})
    if travel_date == today and departure_time <= now_local.time().replace(tzinfo=None):
        raise ValidationError(
            "This departure has already left",
            fields={"schedule_id": "departure time has passed"},
        )


@dataclass(frozen=True, slots=True)
class Ticket:
    ticket_id: str
    code: str
    trip_id: str
    route_id: str
    travel_date: date
    passenger: Customer
    payment_method: PaymentMethod
    document_type: DocumentType
    pricing: SalePricing
    status: TicketStatus
    invoice_status: InvoiceStatus
    created_at: datetime
    schedule_id: Optional[str] = None
    invoice_customer: Optional[InvoiceCustomer] = None
    events: Tuple[LifecycleEvent, ...] = ()

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)

    @property
    def customer_id(self) -> str:
        return self.passenger.national_id

    @property
    def is_instant(self) -> bool:
        return self.schedule_id is None


__all__ = [
    "INSTANT_TRIP_CAPACITY",
    "TicketStatus",
    "TripStatus",
    "assert_voidable",
    "validate_travel_date",
    "Ticket",
]
