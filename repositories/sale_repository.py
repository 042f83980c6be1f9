"""
Sale document repository (persistence).

Shared persistence for both sale document kinds (tickets and shipments):
row mappers for pricing and lifecycle events, event history reads, and the
post-commit invoice status update. It does not enforce business rules.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Mapping
from uuid import UUID

from domain.sale import DocumentKind, InvoiceStatus, LifecycleEvent, SalePricing
from domain.time import parse_utc_datetime
from repositories.client import get_client
from repositories.rpc import all_rows

logger = logging.getLogger(__name__)

# Supabase table names.
# Keep these aligned with supabase/migrations.
_EVENTS_TABLE: str = "lifecycle_events"
_DOCUMENT_TABLES: dict[DocumentKind, str] = {
    DocumentKind.TICKET: "tickets",
    DocumentKind.SHIPMENT: "shipments",
}


def row_to_pricing(row: Mapping[str, Any]) -> SalePricing:
    """Convert the price/points columns of a sale row into SalePricing."""

    return SalePricing(
        original_price=Decimal(str(row["original_price"])),
        final_price=Decimal(str(row["final_price"])),
        discount=Decimal(str(row.get("discount") or 0)),
        points_earned=int(row.get("points_earned") or 0),
        points_redeemed=int(row.get("points_redeemed") or 0),
        price_overridden=bool(row.get("price_overridden")),
    )


def row_to_event(row: Mapping[str, Any]) -> LifecycleEvent:
    """Convert a Supabase row into a LifecycleEvent."""

    return LifecycleEvent(
        event_id=str(row["id"]),
        document_kind=DocumentKind(row["document_kind"]),
        document_id=str(row["document_id"]),
        target_status=str(row["target_status"]),
        actor_user_id=row.get("actor_user_id"),
        location_id=str(row["location_id"]) if row.get("location_id") else None,
        created_at=parse_utc_datetime(row["created_at"]),
        note=row.get("note"),
        proof_path=row.get("proof_path"),
        collector_doc_id=row.get("collector_doc_id"),
    )


def list_events(kind: DocumentKind, document_id: str | UUID) -> List[LifecycleEvent]:
    """
    Event history of one document, oldest first.

    Returns:
        List[LifecycleEvent] (possibly empty)
    """

    response = (
        get_client()
        .table(_EVENTS_TABLE)
        .select("*")
        .eq("document_kind", kind.value)
        .eq("document_id", str(document_id))
        .order("created_at")
        .execute()
    )
    return [row_to_event(row) for row in all_rows(response, "list lifecycle events")]


def history_after_commit(
    kind: DocumentKind, document_id: str | UUID, new_event: Mapping[str, Any]
) -> List[LifecycleEvent]:
    """
    Event history to return after a committed write.

    The write already succeeded, so a failed history read must not turn it
    into an error: the response then carries only the event just written.
    """

    try:
        return list_events(kind, document_id)
    except Exception:
        logger.warning(
            "Event history of %s %s unavailable after commit", kind.value, document_id, exc_info=True
        )
        return [row_to_event(new_event)]


def update_invoice_status(kind: DocumentKind, document_id: str | UUID, status: InvoiceStatus) -> None:
    """Record the post-commit invoicing outcome on the sale document."""

    response = (
        get_client()
        .table(_DOCUMENT_TABLES[kind])
        .update({"invoice_status": status.value})
        .eq("id", str(document_id))
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to update invoice status: {error}")


__all__ = [
    "row_to_pricing",
    "row_to_event",
    "list_events",
    "history_after_commit",
    "update_invoice_status",
]
