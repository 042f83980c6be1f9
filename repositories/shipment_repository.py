"""
Shipment repository (persistence).

Registration and every status change go through the atomic database functions
(`register_shipment_atomic`, `transition_shipment_atomic`). Reads use plain
table queries.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from domain.customer import Customer, IdentityDocumentType, InvoiceCustomer
from domain.loyalty import LoyaltyAccount, LoyaltyConfig
from domain.pricing import PackageSpec
from domain.sale import DocumentKind, DocumentType, InvoiceStatus, LifecycleEvent
from domain.shipment import Recipient, Shipment, ShipmentStatus
from domain.time import parse_utc_datetime
from repositories.client import get_client
from repositories.loyalty_repository import row_to_account
from repositories.rpc import all_rows, call_atomic, first_row
from repositories.sale_repository import history_after_commit, list_events, row_to_event, row_to_pricing
from repositories.ticket_repository import invoice_customer_from_json, invoice_customer_to_json

_SHIPMENTS_TABLE: str = "shipments"

REGISTERED_NOTE = "Shipment registered"


@dataclass(frozen=True, slots=True)
class ShipmentRegistrationParams:
    origin_location_id: str
    destination_location_id: str
    date_key: str
    sender: Customer
    recipient: Recipient
    package: PackageSpec
    base_price_id: str
    original_price: Decimal
    security_code: Optional[str]
    pay_on_pickup: bool
    document_type: DocumentType
    invoice_customer: Optional[InvoiceCustomer]
    points_requested: int
    manual_price: Optional[Decimal]
    actor_user_id: str
    note: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ShipmentRegistrationRecord:
    shipment: Shipment
    account: LoyaltyAccount


@dataclass(frozen=True, slots=True)
class ShipmentListFilters:
    status: Optional[ShipmentStatus] = None
    location_id: Optional[str] = None  # origin OR destination
    page: int = 1
    limit: int = 20


def _row_to_shipment(row: Mapping[str, Any], events: Iterable[LifecycleEvent] = ()) -> Shipment:
    """Convert a Supabase row into a Shipment."""

    return Shipment(
        shipment_id=str(row["id"]),
        code=str(row["code"]),
        origin_location_id=str(row["origin_location_id"]),
        destination_location_id=str(row["destination_location_id"]),
        status=ShipmentStatus(row["status"]),
        sender=Customer(
            national_id=str(row["customer_id"]),
            document_type=IdentityDocumentType(str(row["sender_document_type"])),
            full_name=str(row["sender_name"]),
            phone=row.get("sender_phone"),
        ),
        recipient=Recipient(
            full_name=str(row["recipient_name"]),
            phone=str(row["recipient_phone"]),
            document_number=row.get("recipient_document"),
        ),
        package=PackageSpec(
            kind=str(row["package_kind"]),
            weight_kg=Decimal(str(row["weight_kg"])),
            height_cm=Decimal(str(row["height_cm"])),
            width_cm=Decimal(str(row["width_cm"])),
            length_cm=Decimal(str(row["length_cm"])),
            description=row.get("description"),
        ),
        pricing=row_to_pricing(row),
        document_type=DocumentType(row["document_type"]),
        invoice_customer=invoice_customer_from_json(row.get("invoice_customer")),
        invoice_status=InvoiceStatus(row.get("invoice_status") or InvoiceStatus.NOT_REQUESTED.value),
        created_at=parse_utc_datetime(row["created_at"]),
        pay_on_pickup=bool(row.get("pay_on_pickup")),
        security_code=row.get("security_code"),
        note=row.get("note"),
        events=tuple(events),
    )


def register_shipment(params: ShipmentRegistrationParams, config: LoyaltyConfig) -> ShipmentRegistrationRecord:
    """
    Run the whole registration in one transaction: loyalty lock and
    settlement, code allocation, shipment insert, REGISTERED event at the
    origin, balance update.
    """

    package = params.package
    result = call_atomic(
        "register_shipment_atomic",
        {
            "p_origin_location_id": params.origin_location_id,
            "p_destination_location_id": params.destination_location_id,
            "p_date_key": params.date_key,
            "p_customer_id": params.sender.national_id,
            "p_customer_document_type": params.sender.document_type.value,
            "p_customer_name": params.sender.full_name,
            "p_customer_phone": params.sender.phone,
            "p_recipient_name": params.recipient.full_name,
            "p_recipient_phone": params.recipient.phone,
            "p_recipient_document": params.recipient.document_number,
            "p_package_kind": package.kind,
            "p_weight_kg": str(package.weight_kg),
            "p_height_cm": str(package.height_cm),
            "p_width_cm": str(package.width_cm),
            "p_length_cm": str(package.length_cm),
            "p_description": package.description,
            "p_base_price_id": params.base_price_id,
            "p_original_price": str(params.original_price),
            "p_security_code": params.security_code,
            "p_pay_on_pickup": params.pay_on_pickup,
            "p_document_type": params.document_type.value,
            "p_invoice_customer": invoice_customer_to_json(params.invoice_customer),
            "p_points_requested": params.points_requested,
            "p_manual_price": str(params.manual_price) if params.manual_price is not None else None,
            "p_soles_per_point": str(config.soles_per_point),
            "p_points_per_sol_discount": str(config.points_per_sol_discount),
            "p_earn_on": config.earn_on.value,
            "p_actor_user_id": params.actor_user_id,
            "p_note": params.note,
            "p_event_note": REGISTERED_NOTE,
        },
    )
    events = [row_to_event(row) for row in result.get("events") or []]
    return ShipmentRegistrationRecord(
        shipment=_row_to_shipment(result["shipment"], events),
        account=row_to_account(result["account"]),
    )


def transition_shipment(
    shipment_id: str,
    expected_status: ShipmentStatus,
    target_status: ShipmentStatus,
    actor_user_id: str,
    location_id: str,
    note: Optional[str] = None,
    proof_path: Optional[str] = None,
    collector_doc_id: Optional[str] = None,
) -> Shipment:
    """
    Apply one transition. The database re-reads the status under a row lock
    and raises CONCURRENT_MODIFICATION when it no longer equals expected_status.
    """

    result = call_atomic(
        "transition_shipment_atomic",
        {
            "p_shipment_id": shipment_id,
            "p_expected_status": expected_status.value,
            "p_target_status": target_status.value,
            "p_actor_user_id": actor_user_id,
            "p_location_id": location_id,
            "p_note": note,
            "p_proof_path": proof_path,
            "p_collector_doc_id": collector_doc_id,
        },
    )
    return _row_to_shipment(
        result["shipment"], history_after_commit(DocumentKind.SHIPMENT, shipment_id, result["event"])
    )


def _find_one(query: Any, with_events: bool) -> Optional[Shipment]:
    row = first_row(query.limit(1).execute(), "get shipment")
    if not row:
        return None
    events = list_events(DocumentKind.SHIPMENT, row["id"]) if with_events else ()
    return _row_to_shipment(row, events)


def get_shipment_by_id(shipment_id: str, with_events: bool = True) -> Optional[Shipment]:
    """
    Retrieve a single shipment by its ID, with its event history.

    Returns:
        Shipment or None if not found
    """

    query = get_client().table(_SHIPMENTS_TABLE).select("*").eq("id", shipment_id)
    return _find_one(query, with_events)


def get_shipment_by_code(code: str, with_events: bool = True) -> Optional[Shipment]:
    """
    Exact match on the stored code. Codes are stored uppercase; callers
    normalize user input before the lookup. No pattern operators are used, so
    wildcard characters in `code` match nothing.
    """

    query = get_client().table(_SHIPMENTS_TABLE).select("*").eq("code", code)
    return _find_one(query, with_events)


def list_shipments(filters: ShipmentListFilters) -> Tuple[List[Shipment], int]:
    """
    Paged listing, newest first.

    Returns:
        (shipments without events, total matching count)
    """

    query = get_client().table(_SHIPMENTS_TABLE).select("*", count="exact")
    if filters.status is not None:
        query = query.eq("status", filters.status.value)
    if filters.location_id is not None:
        query = query.or_(
            f"origin_location_id.eq.{filters.location_id},"
            f"destination_location_id.eq.{filters.location_id}"
        )
    start = (filters.page - 1) * filters.limit
    response = query.order("created_at", desc=True).range(start, start + filters.limit - 1).execute()
    rows = all_rows(response, "list shipments")
    total = getattr(response, "count", None)
    return [_row_to_shipment(row) for row in rows], int(total if total is not None else len(rows))


__all__ = [
    "REGISTERED_NOTE",
    "ShipmentRegistrationParams",
    "ShipmentRegistrationRecord",
    "ShipmentListFilters",
    "register_shipment",
    "transition_shipment",
    "get_shipment_by_id",
    "get_shipment_by_code",
    "list_shipments",
]
