"""
Shipment service: registration, lifecycle transitions, collection and reads.

Every state change goes through the same steps:
1. validate the request
2. load the shipment (404)
3. location policy `can_act` (403)
4. transition table (400)
5. atomic write with the observed status as the expected status (409 when
   another request got there first)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from domain.actor import Actor
from domain.customer import Customer
from domain.errors import AuthorizationError, NotFoundError, ValidationError
from domain.pricing import PackageSpec, quote_parcel_price
from domain.sale import DocumentType, InvoiceStatus
from domain.shipment import (
    Recipient,
    Shipment,
    ShipmentAction,
    ShipmentStatus,
    assert_transition,
    check_security_code,
    parse_status,
    require_can_act,
    resolve_event_location,
    validate_security_code,
)
from domain.time import DEFAULT_BUSINESS_TIMEZONE, business_date, business_date_key
from repositories import master_data_repository, shipment_repository
from repositories.invoice_repository import InvoiceRecord
from repositories.shipment_repository import ShipmentListFilters, ShipmentRegistrationParams
from services.invoice_service import InvoiceService
from services.proof_storage import ProofStore, get_proof_store
from services.ticket_service import check_manual_price, resolve_invoice_customer
from services.transaction_coordinator import SaleOutcome, TransactionCoordinator, shipment_invoice_request

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class ShipmentRegistrationRequest:
    origin_location_id: str
    destination_location_id: str
    sender_name: str
    sender_document_number: str
    sender_phone: str
    recipient_name: str
    recipient_phone: str
    package_kind: str
    weight_kg: Decimal
    height_cm: Decimal
    width_cm: Decimal
    length_cm: Decimal
    base_price_id: str
    document_type: DocumentType
    sender_document_type: Optional[str] = None
    recipient_document_number: Optional[str] = None
    package_description: Optional[str] = None
    invoice_ruc: Optional[str] = None
    invoice_business_name: Optional[str] = None
    invoice_address: Optional[str] = None
    points_to_redeem: int = 0
    pay_on_pickup: bool = False
    security_code: Optional[str] = None
    note: Optional[str] = None
    manual_price: Optional[Decimal] = None


@dataclass(frozen=True)
class CollectionOutcome:
    shipment: Shipment
    invoice_status: InvoiceStatus
    invoice: Optional[InvoiceRecord] = None
    warnings: List[str] = field(default_factory=list)


def register_shipment(
    request: ShipmentRegistrationRequest,
    actor: Actor,
    coordinator: TransactionCoordinator,
    now_utc: Optional[datetime] = None,
    tz_name: str = DEFAULT_BUSINESS_TIMEZONE,
) -> SaleOutcome:
    """
    Register a parcel: validate, price, then hand over to the coordinator.

    Returns:
        SaleOutcome with the committed Shipment (status REGISTERED)
    """

    now_utc = now_utc or datetime.now(timezone.utc)

    if not request.origin_location_id or not request.destination_location_id:
        raise ValidationError(
            "Origin and destination are required",
            fields={"origin_location_id": "required", "destination_location_id": "required"},
        )
    if request.origin_location_id == request.destination_location_id:
        raise ValidationError(
            "Origin and destination must differ",
            fields={"destination_location_id": "must differ from origin"},
        )

    sender = Customer.create(
        request.sender_name,
        request.sender_document_number,
        request.sender_phone,
        request.sender_document_type,
        phone_required=True,
        prefix="sender.",
    )
    recipient = Recipient.create(request.recipient_name, request.recipient_phone, request.recipient_document_number)
    package = PackageSpec.create(
        request.package_kind,
        request.weight_kg,
        request.height_cm,
        request.width_cm,
        request.length_cm,
        request.package_description,
    )
    if not request.base_price_id:
        raise ValidationError("A base price must be selected", fields={"base_price_id": "required"})
    security_code = validate_security_code(request.security_code)
    invoice_customer = resolve_invoice_customer(
        request.document_type, request.invoice_ruc, request.invoice_business_name, request.invoice_address
    )
    manual_price = check_manual_price(actor, request.manual_price)

    for field_name in ("origin_location_id", "destination_location_id"):
        location_id = getattr(request, field_name)
        if master_data_repository.get_location(location_id) is None:
            raise NotFoundError("Location not found", {field_name: location_id})

    tariff = master_data_repository.get_parcel_tariff(request.base_price_id)
    if tariff is None:
        raise NotFoundError("No active tariff for this base price", {"base_price_id": request.base_price_id})

    params = ShipmentRegistrationParams(
        origin_location_id=request.origin_location_id,
        destination_location_id=request.destination_location_id,
        date_key=business_date_key(now_utc, tz_name),
        sender=sender,
        recipient=recipient,
        package=package,
        base_price_id=request.base_price_id,
        original_price=quote_parcel_price(tariff, package),
        security_code=security_code,
        pay_on_pickup=request.pay_on_pickup,
        document_type=request.document_type,
        invoice_customer=invoice_customer,
        points_requested=max(0, request.points_to_redeem),
        manual_price=manual_price,
        actor_user_id=actor.user_id,
        note=request.note,
    )
    return coordinator.register_shipment(params, now_utc)


def get_shipment(shipment_id: str, actor: Actor) -> Shipment:
    shipment = shipment_repository.get_shipment_by_id(shipment_id)
    if shipment is None:
        raise NotFoundError("Shipment not found", {"shipment_id": shipment_id})
    require_can_act(actor, shipment, ShipmentAction.VIEW)
    return shipment


def get_shipment_by_code(code: str, actor: Actor) -> Shipment:
    shipment = shipment_repository.get_shipment_by_code(code.strip().upper())
    if shipment is None:
        raise NotFoundError("Shipment not found", {"code": code})
    require_can_act(actor, shipment, ShipmentAction.VIEW)
    return shipment


def track(code: str) -> Shipment:
    """Public lookup by code (callers must strip private fields)."""

    shipment = shipment_repository.get_shipment_by_code(code.strip().upper())
    if shipment is None:
        raise NotFoundError("Shipment not found", {"code": code})
    return shipment


def list_shipments(
    actor: Actor,
    status: Optional[str] = None,
    location_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Shipment], int]:
    """A location-bound actor only sees shipments from or to their own location."""

    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(
            "Invalid pagination",
            fields={"page": ">= 1", "limit": f"between 1 and {MAX_PAGE_SIZE}"},
        )
    filters = ShipmentListFilters(
        status=parse_status(status) if status else None,
        location_id=actor.location_id if actor.location_id is not None else location_id,
        page=page,
        limit=limit,
    )
    return shipment_repository.list_shipments(filters)


def transition(shipment_id: str, target_status: str, actor: Actor, note: Optional[str] = None) -> Shipment:
    """
    Move a shipment one step forward (every step except collection).

    Raises:
        ValidationError/InvalidTransition (400), AuthorizationError (403),
        NotFoundError (404), ConcurrentModification (409)
    """

    target = parse_status(target_status)
    shipment = shipment_repository.get_shipment_by_id(shipment_id, with_events=False)
    if shipment is None:
        raise NotFoundError("Shipment not found", {"shipment_id": shipment_id})

    try:
        require_can_act(actor, shipment, ShipmentAction.TRANSITION)
    except AuthorizationError:
        logger.warning(
            "Unauthorized transition attempt on %s by %s", shipment.code, actor.user_id,
            extra={"actor_location_id": actor.location_id, "target_status": target.value},
        )
        raise

    assert_transition(shipment.status, target)
    if target == ShipmentStatus.COLLECTED:
        raise ValidationError(
            "Use the collect endpoint to hand over a shipment",
            fields={"target_status": "COLLECTED requires proof of delivery"},
        )

    updated = shipment_repository.transition_shipment(
        shipment_id=shipment.shipment_id,
        expected_status=shipment.status,
        target_status=target,
        actor_user_id=actor.user_id,
        location_id=resolve_event_location(actor, shipment, target),
        note=note,
    )
    logger.info(
        "Shipment %s: %s -> %s",
        updated.code,
        shipment.status.value,
        target.value,
        extra={"shipment_id": updated.shipment_id, "actor": actor.user_id},
    )
    return updated


def collect(
    shipment_id: str,
    collector_doc_id: str,
    proof_photo_base64: str,
    actor: Actor,
    security_code: Optional[str] = None,
    invoices: Optional[InvoiceService] = None,
    proof_store: Optional[ProofStore] = None,
    now_utc: Optional[datetime] = None,
    tz_name: str = DEFAULT_BUSINESS_TIMEZONE,
) -> CollectionOutcome:
    """
    Hand a shipment over at its destination (ARRIVED -> COLLECTED).

    Requires the collector's document, a proof photo and, when the shipment
    carries one, the exact security code. Pay-on-pickup shipments get their
    invoice after the collection commits.
    """

    now_utc = now_utc or datetime.now(timezone.utc)
    store = proof_store or get_proof_store()

    collector_doc_id = (collector_doc_id or "").strip()
    if not collector_doc_id:
        raise ValidationError("Collector document is required", fields={"collector_doc_id": "required"})
    store.validate(proof_photo_base64)

    shipment = shipment_repository.get_shipment_by_id(shipment_id, with_events=False)
    if shipment is None:
        raise NotFoundError("Shipment not found", {"shipment_id": shipment_id})

    require_can_act(actor, shipment, ShipmentAction.COLLECT)
    assert_transition(shipment.status, ShipmentStatus.COLLECTED)
    try:
        check_security_code(shipment.security_code, security_code)
    except ValidationError:
        logger.warning("Security code check failed for %s", shipment.code, extra={"actor": actor.user_id})
        raise

    proof_path = store.save(shipment.shipment_id, proof_photo_base64)

    updated = shipment_repository.transition_shipment(
        shipment_id=shipment.shipment_id,
        expected_status=shipment.status,
        target_status=ShipmentStatus.COLLECTED,
        actor_user_id=actor.user_id,
        location_id=resolve_event_location(actor, shipment, ShipmentStatus.COLLECTED),
        note=f"Collected by {collector_doc_id}",
        proof_path=proof_path,
        collector_doc_id=collector_doc_id,
    )
    logger.info("Shipment %s collected", updated.code, extra={"shipment_id": updated.shipment_id})

    if updated.pay_on_pickup and updated.document_type != DocumentType.VERIFICACION:
        outcome = (invoices or InvoiceService()).issue_for_sale(
            shipment_invoice_request(updated, updated.document_type, business_date(now_utc, tz_name))
        )
        return CollectionOutcome(
            shipment=replace(updated, invoice_status=outcome.invoice_status),
            invoice_status=outcome.invoice_status,
            invoice=outcome.invoice,
            warnings=list(outcome.warnings),
        )

    return CollectionOutcome(shipment=updated, invoice_status=updated.invoice_status)


__all__ = [
    "MAX_PAGE_SIZE",
    "ShipmentRegistrationRequest",
    "CollectionOutcome",
    "register_shipment",
    "get_shipment",
    "get_shipment_by_code",
    "track",
    "list_shipments",
    "transition",
    "collect",
]
