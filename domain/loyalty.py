"""
Domain: loyalty points ledger (pure).

Contract excerpts relevant here:
- pointsRedeemed = min(pointsRequested, pointsAvailable), read under the same
  transaction (and row lock) that writes the new balance.
- discount = min(pointsRedeemed / pointsPerSolDiscount, originalPrice),
  rounded half-up to cents.
- finalPrice = max(0, originalPrice - discount), unless an authorized manual
  override replaces it. Overrides never change points bookkeeping.
- Balance update: available += earned - redeemed; historic += earned.
- Invariant: 0 <= available <= historic.

The atomic database functions apply the exact same arithmetic while holding the
account row lock. This module is the reference for quotes, for validating the
balances returned by the database, and for tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import ConfigurationError, ValidationError

CENT = Decimal("0.01")
DEFAULT_SOLES_PER_POINT = Decimal("10")
DEFAULT_POINTS_PER_SOL_DISCOUNT = Decimal("10")


def to_cents(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""

    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class EarnBasis(str, Enum):
    """Which price earns points."""

    CHARGED = "charged"  # discount-adjusted price (before any manual override)
    ORIGINAL = "original"


@dataclass(frozen=True, slots=True)
class LoyaltyConfig:
    """
    Loyalty economics, read once per request and passed explicitly.

    soles_per_point: soles that must be spent to earn one point
    points_per_sol_discount: points that offset one sol of price
    """

    soles_per_point: Decimal = DEFAULT_SOLES_PER_POINT
    points_per_sol_discount: Decimal = DEFAULT_POINTS_PER_SOL_DISCOUNT
    earn_on: EarnBasis = EarnBasis.CHARGED

    def __post_init__(self) -> None:
        for name in ("soles_per_point", "points_per_sol_discount"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                raise ConfigurationError(f"{name} must be a Decimal")
            if value <= 0:
                raise ConfigurationError(f"{name} must be greater than zero, got {value}")

    @classmethod
    def from_settings(cls, row: Optional[Mapping[str, Any]]) -> "LoyaltyConfig":
        """
        Build a config from a `system_settings` row.

        Missing, null, unparseable or non-positive ratios fall back to 10.
        """

        row = row or {}
        return cls(
            soles_per_point=_positive_or_default(row.get("soles_per_point"), DEFAULT_SOLES_PER_POINT),
            points_per_sol_discount=_positive_or_default(
                row.get("points_per_sol_discount"), DEFAULT_POINTS_PER_SOL_DISCOUNT
            ),
            earn_on=EarnBasis(row.get("loyalty_earn_on") or EarnBasis.CHARGED.value),
        )


def _positive_or_default(value: Any, default: Decimal) -> Decimal:
    if value is None:
        return default
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return default
    if not parsed.is_finite() or parsed <= 0:
        return default
    return parsed


@dataclass(frozen=True, slots=True)
class PointsSettlement:
    """Outcome of pricing one sale against one account balance."""

    original_price: Decimal
    points_requested: int
    points_redeemed: int
    discount: Decimal
    computed_final_price: Decimal
    final_price: Decimal
    points_earned: int
    price_overridden: bool = False


def settle_points(
    original_price: Decimal,
    points_requested: int,
    points_available: int,
    config: LoyaltyConfig,
    manual_price: Optional[Decimal] = None,
) -> PointsSettlement:
    """
    Compute redemption, discount, final price and earned points for one sale.

    Args:
        original_price: Price before discount (soles)
        points_requested: Points the customer asked to redeem (negative means 0)
        points_available: Current available balance (0 for a new customer)
        config: Loyalty economics
        manual_price: Authorized override of the final price, if any

    Returns:
        PointsSettlement

    Example:
        >>> s = settle_points(Decimal("100"), 50, 50, LoyaltyConfig())
        >>> (s.discount, s.final_price, s.points_earned)
        (Decimal('5.00'), Decimal('95.00'), 9)
    """

    if original_price is None or Decimal(original_price) < 0:
        raise ValidationError("Price cannot be negative", fields={"original_price": "must be >= 0"})
    if points_available < 0:
        raise ValueError("points_available cannot be negative")

    original = to_cents(Decimal(original_price))
    requested = max(0, int(points_requested or 0))
    redeemed = min(requested, points_available)

    discount = to_cents(min(Decimal(redeemed) / config.points_per_sol_discount, original))
    computed_final = max(Decimal("0.00"), original - discount)

    basis = computed_final if config.earn_on == EarnBasis.CHARGED else original
    earned = int((basis / config.soles_per_point).to_integral_value(rounding=ROUND_FLOOR))

    final = computed_final
    overridden = False
    if manual_price is not None:
        final = max(Decimal("0.00"), to_cents(Decimal(manual_price)))
        overridden = True

    return PointsSettlement(
        original_price=original,
        points_requested=requested,
        points_redeemed=redeemed,
        discount=discount,
        computed_final_price=computed_final,
        final_price=final,
        points_earned=earned,
        price_overridden=overridden,
    )


@dataclass(frozen=True, slots=True)
class LoyaltyAccount:
    """
    One account per customer, keyed by national ID.

    Invariants:
    - points_available and points_historic are non-negative integers
    - points_available <= points_historic
    """

    national_id: str
    points_available: int
    points_historic: int

    def __post_init__(self) -> None:
        if not self.national_id:
            raise ValueError("national_id is required")
        for name in ("points_available", "points_historic"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.points_available > self.points_historic:
            raise ValueError("points_available cannot exceed points_historic")

    @classmethod
    def open(cls, national_id: str, settlement: PointsSettlement) -> "LoyaltyAccount":
        """First purchase creates the account with available = historic = earned."""

        if settlement.points_redeemed:
            raise ValueError("a new account cannot redeem points")
        return cls(
            national_id=national_id,
            points_available=settlement.points_earned,
            points_historic=settlement.points_earned,
        )

    def apply(self, settlement: PointsSettlement) -> "LoyaltyAccount":
        if settlement.points_redeemed > self.points_available:
            raise ValueError("settlement redeems more points than available")
        return LoyaltyAccount(
            national_id=self.national_id,
            points_available=self.points_available + settlement.points_earned - settlement.points_redeemed,
            points_historic=self.points_historic + settlement.points_earned,
        )


__all__ = [
    "CENT",
    "to_cents",
    "EarnBasis",
    "LoyaltyConfig",
    "PointsSettlement",
    "settle_points",
    "LoyaltyAccount",
]
