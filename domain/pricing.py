"""
Domain: parcel pricing (pure).

price = base_fee + weight_kg * price_per_kg + (height * width * length) * price_per_cm3,
rounded half-up to cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from .errors import ValidationError
from .loyalty import to_cents


@dataclass(frozen=True, slots=True)
class PackageSpec:
    kind: str
    weight_kg: Decimal
    height_cm: Decimal
    width_cm: Decimal
    length_cm: Decimal
    description: Optional[str] = None

    @classmethod
    def create(
        cls,
        kind: Optional[str],
        weight_kg: object,
        height_cm: object,
        width_cm: object,
        length_cm: object,
        description: Optional[str] = None,
    ) -> "PackageSpec":
        fields: dict[str, str] = {}
        if not (kind or "").strip():
            fields["package.kind"] = "required"
        values: dict[str, Decimal] = {}
        for name, raw in (
            ("weight_kg", weight_kg),
            ("height_cm", height_cm),
            ("width_cm", width_cm),
            ("length_cm", length_cm),
        ):
            try:
                value = Decimal(str(raw))
            except InvalidOperation:
                fields[f"package.{name}"] = "must be a number"
                continue
            if not value.is_finite() or value <= 0:
                fields[f"package.{name}"] = "must be greater than zero"
            values[name] = value
        if fields:
            raise ValidationError("Invalid package data", fields=fields)
        return cls(kind=(kind or "").strip(), description=description, **values)

    @property
    def volume_cm3(self) -> Decimal:
        return self.height_cm * self.width_cm * self.length_cm


@dataclass(frozen=True, slots=True)
class ParcelTariff:
    """Active per-kg and per-cm3 rates plus the selected base fee."""

    base_fee: Decimal
    price_per_kg: Decimal
    price_per_cm3: Decimal

    def __post_init__(self) -> None:
        if self.base_fee < 0 or self.price_per_kg < 0 or self.price_per_cm3 < 0:
            raise ValueError("tariff rates cannot be negative")


def quote_parcel_price(tariff: ParcelTariff, package: PackageSpec) -> Decimal:
    """
    Example:
        >>> t = ParcelTariff(Decimal("10"), Decimal("2.50"), Decimal("0.001"))
        >>> p = PackageSpec("BOX", Decimal("4"), Decimal("20"), Decimal("30"), Decimal("40"))
        >>> quote_parcel_price(t, p)
        Decimal('44.00')
    """

    return to_cents(
        tariff.base_fee
        + package.weight_kg * tariff.price_per_kg
        + package.volume_cm3 * tariff.price_per_cm3
    )


__all__ = ["PackageSpec", "ParcelTariff", "quote_parcel_price"]
