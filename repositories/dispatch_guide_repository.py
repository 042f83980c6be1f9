"""
Dispatch guide repository (persistence).

Guides are written outside the sale transactions, the same way invoices are:
inserted as PENDING, then updated with the gateway outcome. The partial
unique index `dispatch_guides_active_uq` keeps one active guide per shipment
even when two emissions race.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from postgrest.exceptions import APIError

from domain.dispatch_guide import ACTIVE_STATUSES, DispatchGuide, GuideItem, GuidePlace, TransportDetails
from domain.errors import ConflictError
from domain.invoice import InvoiceParty, InvoiceRecordStatus
from repositories.client import get_client
from repositories.rpc import all_rows, first_row

_GUIDES_TABLE: str = "dispatch_guides"

UNIQUE_VIOLATION = "23505"


@dataclass(frozen=True, slots=True)
class DispatchGuideRecord:
    guide_id: str
    shipment_id: str
    guide: DispatchGuide
    status: InvoiceRecordStatus
    issued_by: str
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0
    void_reason: Optional[str] = None

    @property
    def full_number(self) -> str:
        return self.guide.full_number


def _place_to_json(place: GuidePlace) -> Dict[str, str]:
    return {"ubigeo": place.ubigeo, "address": place.address}


def _row_to_guide(row: Mapping[str, Any]) -> DispatchGuideRecord:
    recipient = row["recipient"]
    guide = DispatchGuide(
        series=str(row["series"]),
        number=int(row["number"]),
        issue_date=date.fromisoformat(str(row["issue_date"])),
        recipient=InvoiceParty(
            document_type=str(recipient["document_type"]),
            document_number=str(recipient["document_number"]),
            name=str(recipient["name"]),
        ),
        origin=GuidePlace(**row["origin"]),
        destination=GuidePlace(**row["destination"]),
        transport=TransportDetails.from_json(row["transport"]),
        weight_kg=Decimal(str(row["weight_kg"])),
        items=tuple(
            GuideItem(code=str(i["code"]), description=str(i["description"]), quantity=Decimal(str(i["quantity"])))
            for i in row["items"]
        ),
        packages=int(row.get("packages") or 1),
        note=row.get("note"),
    )
    return DispatchGuideRecord(
        guide_id=str(row["id"]),
        shipment_id=str(row["shipment_id"]),
        guide=guide,
        status=InvoiceRecordStatus(row["status"]),
        issued_by=str(row["issued_by"]),
        external_id=row.get("external_id"),
        error_message=row.get("error_message"),
        attempts=int(row.get("attempts") or 0),
        void_reason=row.get("void_reason"),
    )


def insert_pending(shipment_id: str, guide: DispatchGuide, issued_by: str) -> DispatchGuideRecord:
    """
    Persist a numbered guide as PENDING.

    Raises:
        ConflictError: the shipment already has an active guide
    """

    payload: dict[str, Any] = {
        "shipment_id": shipment_id,
        "series": guide.series,
        "number": guide.number,
        "full_number": guide.full_number,
        "issue_date": guide.issue_date.isoformat(),
        "recipient": {
            "document_type": guide.recipient.document_type,
            "document_number": guide.recipient.document_number,
            "name": guide.recipient.name,
        },
        "origin": _place_to_json(guide.origin),
        "destination": _place_to_json(guide.destination),
        "transport": guide.transport.to_json(),
        "weight_kg": str(guide.weight_kg),
        "packages": guide.packages,
        "items": [
            {"code": item.code, "description": item.description, "quantity": str(item.quantity)}
            for item in guide.items
        ],
        "note": guide.note,
        "status": InvoiceRecordStatus.PENDING.value,
        "issued_by": issued_by,
    }

    try:
        response = get_client().table(_GUIDES_TABLE).insert(payload).execute()
    except APIError as exc:
        if getattr(exc, "code", None) == UNIQUE_VIOLATION:
            raise ConflictError(
                "This shipment already has an active dispatch guide",
                {"shipment_id": shipment_id},
            ) from exc
        raise
    row = first_row(response, "record dispatch guide")
    if not row:
        raise RuntimeError("Failed to record dispatch guide: no row returned")
    return _row_to_guide(row)


def _update(guide_id: str, values: dict[str, Any], action: str) -> None:
    response = get_client().table(_GUIDES_TABLE).update(values).eq("id", guide_id).execute()
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")


def mark_submitted(
    record: DispatchGuideRecord,
    status: InvoiceRecordStatus,
    external_id: Optional[str] = None,
    error_message: Optional[str] = None,
    gateway_response: Optional[Mapping[str, Any]] = None,
) -> None:
    values: dict[str, Any] = {
        "status": status.value,
        "error_message": error_message,
        "gateway_response": dict(gateway_response) if gateway_response is not None else None,
        "attempts": record.attempts + 1,
    }
    if external_id is not None:
        values["external_id"] = external_id
    _update(record.guide_id, values, "update dispatch guide status")


def mark_voided(guide_id: str, reason: str) -> None:
    _update(
        guide_id,
        {"status": InvoiceRecordStatus.VOIDED.value, "void_reason": reason},
        "void dispatch guide",
    )


def get_active_guide(shipment_id: str) -> Optional[DispatchGuideRecord]:
    """The shipment's guide that is neither VOIDED nor REJECTED, if any."""

    response = (
        get_client()
        .table(_GUIDES_TABLE)
        .select("*")
        .eq("shipment_id", shipment_id)
        .in_("status", sorted(s.value for s in ACTIVE_STATUSES))
        .limit(1)
        .execute()
    )
    row = first_row(response, "get dispatch guide")
    return _row_to_guide(row) if row else None


def list_retryable(limit: int = 50) -> List[DispatchGuideRecord]:
    response = (
        get_client()
        .table(_GUIDES_TABLE)
        .select("*")
        .in_("status", [InvoiceRecordStatus.PENDING.value, InvoiceRecordStatus.ERROR.value])
        .order("created_at")
        .limit(limit)
        .execute()
    )
    return [_row_to_guide(row) for row in all_rows(response, "list retryable dispatch guides")]


__all__ = [
    "DispatchGuideRecord",
    "insert_pending",
    "mark_submitted",
    "mark_voided",
    "get_active_guide",
    "list_retryable",
]
