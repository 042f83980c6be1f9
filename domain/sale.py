"""
Domain: sale documents (shared by tickets and shipments).

Contract excerpts relevant here:
- A sale document holds immutable business facts plus a mutable status,
  originalPrice, finalPrice, pointsEarned, pointsRedeemed, discount and the
  owning customer.
- 0 <= finalPrice <= originalPrice unless a manual override was authorized.
- Lifecycle events are append-only, one per transition, ordered by creation.
- Documents are never physically deleted (soft states only).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .loyalty import PointsSettlement
from .time import require_utc_timestamp


class DocumentKind(str, Enum):
    TICKET = "TICKET"
    SHIPMENT = "SHIPMENT"


class DocumentType(str, Enum):
    """Tax document requested for the sale."""

    BOLETA = "BOLETA"
    FACTURA = "FACTURA"
    VERIFICACION = "VERIFICACION"  # internal sales note, never sent to the gateway


class PaymentMethod(str, Enum):
    CASH = "CASH"
    YAPE = "YAPE"
    CARD = "CARD"


class InvoiceStatus(str, Enum):
    """Post-commit invoicing outcome recorded on the sale document."""

    NOT_REQUESTED = "NOT_REQUESTED"
    PENDING = "PENDING"
    ISSUED = "ISSUED"
    ERROR = "ERROR"
    VOIDED = "VOIDED"


@dataclass(frozen=True, slots=True)
class SalePricing:
    """
    Money and points facts of one sale.

    Invariants:
    - amounts are non-negative
    - final_price <= original_price unless price_overridden
    """

    original_price: Decimal
    final_price: Decimal
    discount: Decimal
    points_earned: int
    points_redeemed: int
    price_overridden: bool = False

    def __post_init__(self) -> None:
        if self.original_price < 0 or self.final_price < 0 or self.discount < 0:
            raise ValueError("prices cannot be negative")
        if self.points_earned < 0 or self.points_redeemed < 0:
            raise ValueError("points cannot be negative")
        if not self.price_overridden and self.final_price > self.original_price:
            raise ValueError("final_price cannot exceed original_price without an override")

    @classmethod
    def from_settlement(cls, settlement: PointsSettlement) -> "SalePricing":
        return cls(
            original_price=settlement.original_price,
            final_price=settlement.final_price,
            discount=settlement.discount,
            points_earned=settlement.points_earned,
            points_redeemed=settlement.points_redeemed,
            price_overridden=settlement.price_overridden,
        )


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """
    Immutable record of one status transition of a sale document.

    proof_path and collector_doc_id are only set on collection events.
    """

    event_id: str
    document_kind: DocumentKind
    document_id: str
    target_status: str
    actor_user_id: Optional[str]
    location_id: Optional[str]
    created_at: datetime
    note: Optional[str] = None
    proof_path: Optional[str] = None
    collector_doc_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)


__all__ = [
    "DocumentKind",
    "DocumentType",
    "PaymentMethod",
    "InvoiceStatus",
    "SalePricing",
    "LifecycleEvent",
]
