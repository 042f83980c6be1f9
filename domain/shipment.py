"""
Domain: shipment lifecycle (pure).

Contract excerpts relevant here:
- REGISTERED -> IN_WAREHOUSE -> IN_TRANSIT -> ARRIVED -> COLLECTED.
  Strictly forward, exactly one successor per state, COLLECTED is terminal.
- An actor bound to a location may act only on shipments whose origin OR
  destination is that location. An actor bound to no location may act on any.
- Collection is further restricted to the destination location and requires a
  proof-of-delivery photo and, when the shipment carries one, the exact
  4-digit security code.
- Every successful transition appends exactly one lifecycle event.

Authorization is a single policy function (`can_act`) consumed uniformly by the
service layer.
"""

from __future__ import annotations

import hmac
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from .actor import Actor
from .customer import Customer, InvoiceCustomer
from .errors import (
    AuthorizationError,
    InvalidSecurityCode,
    InvalidTransition,
    SecurityCodeRequired,
    ValidationError,
)
from .pricing import PackageSpec
from .sale import DocumentType, InvoiceStatus, LifecycleEvent, SalePricing
from .time import require_utc_timestamp


class ShipmentStatus(str, Enum):
    REGISTERED = "REGISTERED"
    IN_WAREHOUSE = "IN_WAREHOUSE"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED = "ARRIVED"
    COLLECTED = "COLLECTED"


_TRANSITIONS: Mapping[ShipmentStatus, Optional[ShipmentStatus]] = MappingProxyType(
    {
        ShipmentStatus.REGISTERED: ShipmentStatus.IN_WAREHOUSE,
        ShipmentStatus.IN_WAREHOUSE: ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.IN_TRANSIT: ShipmentStatus.ARRIVED,
        ShipmentStatus.ARRIVED: ShipmentStatus.COLLECTED,
        ShipmentStatus.COLLECTED: None,
    }
)

_SECURITY_CODE_RE = re.compile(r"^\d{4}$")


def next_status(current: ShipmentStatus) -> Optional[ShipmentStatus]:
    return _TRANSITIONS[ShipmentStatus(current)]


def is_terminal(status: ShipmentStatus) -> bool:
    return next_status(status) is None


def can_transition(current: ShipmentStatus, target: ShipmentStatus) -> bool:
    return next_status(current) == ShipmentStatus(target)


def assert_transition(current: ShipmentStatus, target: ShipmentStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(ShipmentStatus(current).value, ShipmentStatus(target).value)


def parse_status(value: str) -> ShipmentStatus:
    try:
        return ShipmentStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown shipment status: {value}",
            fields={"target_status": f"must be one of {[s.value for s in ShipmentStatus]}"},
        )


class ShipmentAction(str, Enum):
    VIEW = "VIEW"
    TRANSITION = "TRANSITION"
    COLLECT = "COLLECT"


def validate_security_code(code: Optional[str]) -> Optional[str]:
    """Accept None/empty (no protection) or exactly four digits."""

    if code is None or code == "":
        return None
    if not _SECURITY_CODE_RE.fullmatch(code):
        raise ValidationError(
            "Security code must be exactly 4 digits",
            fields={"security_code": "must match \\d{4}"},
        )
    return code


def check_security_code(expected: Optional[str], submitted: Optional[str]) -> None:
    """
    Raises:
        SecurityCodeRequired: the shipment has a code and none was submitted
        InvalidSecurityCode: the submitted code does not match
    """

    if not expected:
        return
    if not submitted:
        raise SecurityCodeRequired()
    if not hmac.compare_digest(expected.encode(), submitted.encode()):
        raise InvalidSecurityCode()


@dataclass(frozen=True, slots=True)
class Recipient:
    full_name: str
    phone: str
    document_number: Optional[str] = None

    @classmethod
    def create(
        cls, full_name: Optional[str], phone: Optional[str], document_number: Optional[str] = None
    ) -> "Recipient":
        fields: dict[str, str] = {}
        if not (full_name or "").strip():
            fields["recipient.full_name"] = "required"
        if not (phone or "").strip():
            fields["recipient.phone"] = "required"
        if fields:
            raise ValidationError("Invalid recipient data", fields=fields)
        return cls(
            full_name=(full_name or "").strip(),
            phone=(phone or "").strip(),
            document_number=(document_number or "").strip() or None,
        )


@dataclass(frozen=True, slots=True)
class Shipment:
    """
    A parcel. Status changes only through the transition table.

    security_code is kept out of repr and never serialized by read endpoints.
    """

    shipment_id: str
    code: str
    origin_location_id: str
    destination_location_id: str
    status: ShipmentStatus
    sender: Customer
    recipient: Recipient
    package: PackageSpec
    pricing: SalePricing
    document_type: DocumentType
    invoice_status: InvoiceStatus
    created_at: datetime
    pay_on_pickup: bool = False
    invoice_customer: Optional[InvoiceCustomer] = None
    security_code: Optional[str] = field(default=None, repr=False)
    note: Optional[str] = None
    events: Tuple[LifecycleEvent, ...] = ()

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)

    @property
    def customer_id(self) -> str:
        return self.sender.national_id

    @property
    def has_security_code(self) -> bool:
        return bool(self.security_code)


def can_act(actor: Actor, shipment: Shipment, action: ShipmentAction) -> bool:
    """
    Location-based authorization policy.

    - administrative actors (no location) may do anything
    - COLLECT: only the destination location
    - VIEW / TRANSITION: origin or destination location
    """

    if actor.is_administrative:
        return True
    if action == ShipmentAction.COLLECT:
        return actor.location_id == shipment.destination_location_id
    return actor.location_id in (shipment.origin_location_id, shipment.destination_location_id)


def require_can_act(actor: Actor, shipment: Shipment, action: ShipmentAction) -> None:
    if not can_act(actor, shipment, action):
        if action == ShipmentAction.COLLECT:
            message = "Only the destination location can hand over this shipment"
        else:
            message = "Your location is neither the origin nor the destination of this shipment"
        raise AuthorizationError(
            message,
            {"shipment_id": shipment.shipment_id, "actor_location_id": actor.location_id, "action": action.value},
        )


def resolve_event_location(actor: Actor, shipment: Shipment, target: ShipmentStatus) -> str:
    """
    Location recorded on the event.

    Bound actors record their own location. For administrative actors the
    warehouse step happens at the origin and everything afterwards at the
    destination. Collection always happens at the destination.
    """

    if target == ShipmentStatus.COLLECTED:
        return shipment.destination_location_id
    if actor.location_id is not None:
        return actor.location_id
    if target in (ShipmentStatus.REGISTERED, ShipmentStatus.IN_WAREHOUSE):
        return shipment.origin_location_id
    return shipment.destination_location_id


def validate_event_history(statuses: Iterable[str]) -> None:
    """
    Check a recorded event sequence is a forward walk of the transition table
    starting at REGISTERED.
    """

    previous: Optional[ShipmentStatus] = None
    for raw in statuses:
        status = ShipmentStatus(raw)
        if previous is None:
            if status != ShipmentStatus.REGISTERED:
                raise ValueError(f"history must start at REGISTERED, got {status.value}")
        elif not can_transition(previous, status):
            raise ValueError(f"illegal step in history: {previous.value} -> {status.value}")
        previous = status


__all__ = [
    "ShipmentStatus",
    "next_status",
    "is_terminal",
    "can_transition",
    "assert_transition",
    "parse_status",
    "ShipmentAction",
    "validate_security_code",
    "check_security_code",
    "Recipient",
    "Shipment",
    "can_act",
    "require_can_act",
    "resolve_event_location",
    "validate_event_history",
]
