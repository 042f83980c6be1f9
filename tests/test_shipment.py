"""
Tests for `domain/shipment.py`.

Covers contract rules:
- Transitions follow REGISTERED → IN_WAREHOUSE → IN_TRANSIT → ARRIVED → COLLECTED
  only; no skipping, no going back, COLLECTED is terminal.
- Location policy: origin/destination may view and transition, only the
  destination collects, administrative actors may do anything.
- Security code: none or exactly 4 digits; constant-time comparison.
- Event location resolution for bound and administrative actors.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from domain.actor import Actor
from domain.customer import Customer, IdentityDocumentType
from domain.errors import (
    AuthorizationError,
    InvalidSecurityCode,
    InvalidTransition,
    SecurityCodeRequired,
    ValidationError,
)
from domain.pricing import PackageSpec
from domain.sale import DocumentType, InvoiceStatus, SalePricing
from domain.shipment import (
    Recipient,
    Shipment,
    ShipmentAction,
    ShipmentStatus,
    assert_transition,
    can_act,
    can_transition,
    check_security_code,
    is_terminal,
    next_status,
    parse_status,
    require_can_act,
    resolve_event_location,
    validate_event_history,
    validate_security_code,
)

ORIGIN = "loc-origin"
DESTINATION = "loc-destination"


def make_shipment(status: ShipmentStatus = ShipmentStatus.REGISTERED, security_code: Optional[str] = None) -> Shipment:
    return Shipment(
        shipment_id="s-1",
        code="ENC-20260314-00001",
        origin_location_id=ORIGIN,
        destination_location_id=DESTINATION,
        status=status,
        sender=Customer("12345678", IdentityDocumentType.DNI, "Luis Mamani", "912345678"),
        recipient=Recipient("Rosa Mamani", "998877665"),
        package=PackageSpec("BOX", Decimal("1"), Decimal("10"), Decimal("10"), Decimal("10")),
        pricing=SalePricing(Decimal("20.00"), Decimal("20.00"), Decimal("0.00"), 2, 0),
        document_type=DocumentType.BOLETA,
        invoice_status=InvoiceStatus.NOT_REQUESTED,
        created_at=datetime(2026, 3, 14, 15, 0, tzinfo=timezone.utc),
        security_code=security_code,
    )


def test_forward_chain() -> None:
    assert next_status(ShipmentStatus.REGISTERED) == ShipmentStatus.IN_WAREHOUSE
    assert next_status(ShipmentStatus.IN_WAREHOUSE) == ShipmentStatus.IN_TRANSIT
    assert next_status(ShipmentStatus.IN_TRANSIT) == ShipmentStatus.ARRIVED
    assert next_status(ShipmentStatus.ARRIVED) == ShipmentStatus.COLLECTED
    assert next_status(ShipmentStatus.COLLECTED) is None
    assert is_terminal(ShipmentStatus.COLLECTED)


@pytest.mark.parametrize(
    "current,target",
    [
        (ShipmentStatus.REGISTERED, ShipmentStatus.IN_TRANSIT),
        (ShipmentStatus.REGISTERED, ShipmentStatus.COLLECTED),
        (ShipmentStatus.ARRIVED, ShipmentStatus.IN_TRANSIT),
        (ShipmentStatus.COLLECTED, ShipmentStatus.REGISTERED),
        (ShipmentStatus.IN_WAREHOUSE, ShipmentStatus.IN_WAREHOUSE),
    ],
)
def test_illegal_transitions_raise(current: ShipmentStatus, target: ShipmentStatus) -> None:
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransition) as excinfo:
        assert_transition(current, target)
    assert excinfo.value.details == {"current_status": current.value, "target_status": target.value}


def test_invalid_transition_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        assert_transition(ShipmentStatus.REGISTERED, ShipmentStatus.ARRIVED)


def test_parse_status_rejects_unknown_values() -> None:
    assert parse_status("ARRIVED") == ShipmentStatus.ARRIVED
    with pytest.raises(ValidationError):
        parse_status("LOST")


def test_location_policy() -> None:
    shipment = make_shipment()
    at_origin = Actor("u1", ORIGIN)
    at_destination = Actor("u2", DESTINATION)
    elsewhere = Actor("u3", "loc-other")
    admin = Actor("root")

    assert can_act(at_origin, shipment, ShipmentAction.TRANSITION)
    assert can_act(at_destination, shipment, ShipmentAction.VIEW)
    assert not can_act(elsewhere, shipment, ShipmentAction.VIEW)
    assert not can_act(at_origin, shipment, ShipmentAction.COLLECT)
    assert can_act(at_destination, shipment, ShipmentAction.COLLECT)
    assert can_act(admin, shipment, ShipmentAction.COLLECT)


def test_require_can_act_raises_authorization_error() -> None:
    with pytest.raises(AuthorizationError) as excinfo:
        require_can_act(Actor("u3", "loc-other"), make_shipment(), ShipmentAction.TRANSITION)
    assert excinfo.value.details["action"] == "TRANSITION"


def test_security_code_format() -> None:
    assert validate_security_code(None) is None
    assert validate_security_code("") is None
    assert validate_security_code("4821") == "4821"
    for bad in ("482", "48210", "48a1", " 482"):
        with pytest.raises(ValidationError):
            validate_security_code(bad)


def test_security_code_check() -> None:
    check_security_code(None, None)
    check_security_code(None, "1234")
    check_security_code("4821", "4821")

    with pytest.raises(SecurityCodeRequired):
        check_security_code("4821", None)
    with pytest.raises(InvalidSecurityCode):
        check_security_code("4821", "0000")


def test_security_code_is_hidden_from_repr() -> None:
    shipment = make_shipment(security_code="4821")

    assert "4821" not in repr(shipment)
    assert shipment.has_security_code
    assert not make_shipment().has_security_code


def test_event_location_for_bound_actor_is_own_location() -> None:
    shipment = make_shipment(ShipmentStatus.IN_TRANSIT)
    assert resolve_event_location(Actor("u", DESTINATION), shipment, ShipmentStatus.ARRIVED) == DESTINATION


def test_event_location_for_administrative_actor() -> None:
    admin = Actor("root")
    assert resolve_event_location(admin, make_shipment(), ShipmentStatus.IN_WAREHOUSE) == ORIGIN
    assert resolve_event_location(admin, make_shipment(), ShipmentStatus.IN_TRANSIT) == DESTINATION
    assert resolve_event_location(Actor("u", ORIGIN), make_shipment(), ShipmentStatus.COLLECTED) == DESTINATION


def test_event_history_must_walk_forward() -> None:
    validate_event_history(["REGISTERED", "IN_WAREHOUSE", "IN_TRANSIT", "ARRIVED", "COLLECTED"])
    validate_event_history([])

    with pytest.raises(ValueError):
        validate_event_history(["IN_WAREHOUSE"])
    with pytest.raises(ValueError):
        validate_event_history(["REGISTERED", "IN_TRANSIT"])


def test_recipient_requires_name_and_phone() -> None:
    with pytest.raises(ValidationError) as excinfo:
        Recipient.create("", None)
    assert set(excinfo.value.fields) == {"recipient.full_name", "recipient.phone"}


def test_shipment_is_immutable() -> None:
    shipment = make_shipment()
    with pytest.raises(FrozenInstanceError):
        shipment.status = ShipmentStatus.ARRIVED  # type: ignore[misc]
