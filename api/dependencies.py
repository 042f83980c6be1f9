"""
Request-scoped dependencies.

The actor is taken from headers set by the authenticating gateway in front of
this service:
- X-Actor-Id: user id (required)
- X-Actor-Location-Id: the actor's location; absent for administrative users
- X-Actor-Can-Override-Price: "true" when the user may set a manual price
"""

from __future__ import annotations

import os
from typing import Optional

from fastapi import Depends, Header

from domain.actor import Actor
from domain.errors import AuthorizationError
from domain.loyalty import LoyaltyConfig
from domain.time import DEFAULT_BUSINESS_TIMEZONE
from repositories.loyalty_repository import load_loyalty_config
from services.dispatch_guide_service import DispatchGuideService
from services.invoice_service import InvoiceService
from services.transaction_coordinator import TransactionCoordinator


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_location_id: Optional[str] = Header(None),
    x_actor_can_override_price: Optional[str] = Header(None),
) -> Actor:
    if not x_actor_id or not x_actor_id.strip():
        raise AuthorizationError("Missing actor identity", {"header": "X-Actor-Id"})
    return Actor(
        user_id=x_actor_id.strip(),
        location_id=(x_actor_location_id or "").strip() or None,
        can_override_price=(x_actor_can_override_price or "").strip().lower() in ("1", "true", "yes"),
    )


def get_business_timezone() -> str:
    return os.getenv("BUSINESS_TIMEZONE") or DEFAULT_BUSINESS_TIMEZONE


def get_loyalty_config() -> LoyaltyConfig:
    """Read once per request and passed down explicitly."""
    return load_loyalty_config()


def get_invoice_service() -> InvoiceService:
    return InvoiceService()


def get_coordinator(
    config: LoyaltyConfig = Depends(get_loyalty_config),
    invoices: InvoiceService = Depends(get_invoice_service),
    tz_name: str = Depends(get_business_timezone),
) -> TransactionCoordinator:
    return TransactionCoordinator(config, invoices=invoices, tz_name=tz_name)


def get_dispatch_guide_service() -> DispatchGuideService:
    return DispatchGuideService()
