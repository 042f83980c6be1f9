"""
Master data repository (persistence).

Read-only lookups of the plain-CRUD entities the transactional core consumes:
locations, routes, schedules and parcel tariffs. Their management lives
outside this service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from decimal import Decimal
from typing import Any, Mapping, Optional

from domain.pricing import ParcelTariff
from repositories.client import get_client
from repositories.rpc import first_row


@dataclass(frozen=True, slots=True)
class Route:
    route_id: str
    origin_location_id: str
    destination_location_id: str
    price: Decimal
    active: bool


@dataclass(frozen=True, slots=True)
class Schedule:
    schedule_id: str
    route_id: str
    departure_time: time
    capacity: int
    enabled: bool


def _row_to_route(row: Mapping[str, Any]) -> Route:
    return Route(
        route_id=str(row["id"]),
        origin_location_id=str(row["origin_location_id"]),
        destination_location_id=str(row["destination_location_id"]),
        price=Decimal(str(row["price"])),
        active=bool(row.get("active", True)),
    )


def _row_to_schedule(row: Mapping[str, Any]) -> Schedule:
    return Schedule(
        schedule_id=str(row["id"]),
        route_id=str(row["route_id"]),
        departure_time=time.fromisoformat(str(row["departure_time"])),
        capacity=int(row["capacity"]),
        enabled=bool(row.get("enabled", True)),
    )


def _get_by_id(table: str, row_id: str, action: str) -> Optional[dict[str, Any]]:
    response = get_client().table(table).select("*").eq("id", row_id).limit(1).execute()
    return first_row(response, action)


def get_route(route_id: str) -> Optional[Route]:
    row = _get_by_id("routes", route_id, "get route")
    return _row_to_route(row) if row else None


def get_schedule(schedule_id: str) -> Optional[Schedule]:
    row = _get_by_id("schedules", schedule_id, "get schedule")
    return _row_to_schedule(row) if row else None


def get_location(location_id: str) -> Optional[dict[str, Any]]:
    return _get_by_id("locations", location_id, "get location")


def get_parcel_tariff(base_price_id: str) -> Optional[ParcelTariff]:
    """
    Combine the selected base price with the active per-kg/per-cm3 rates.

    Returns:
        ParcelTariff, or None when the base price does not exist, is inactive,
        or no tariff is active.
    """

    base = _get_by_id("parcel_base_prices", base_price_id, "get parcel base price")
    if not base or not base.get("active", True):
        return None

    response = (
        get_client()
        .table("parcel_tariffs")
        .select("*")
        .eq("active", True)
        .limit(1)
        .execute()
    )
    rates = first_row(response, "get parcel tariff")
    if not rates:
        return None

    return ParcelTariff(
        base_fee=Decimal(str(base["amount"])),
        price_per_kg=Decimal(str(rates["price_per_kg"])),
        price_per_cm3=Decimal(str(rates["price_per_cm3"])),
    )


__all__ = [
    "Route",
    "Schedule",
    "get_route",
    "get_schedule",
    "get_location",
    "get_parcel_tariff",
]
