"""
Loyalty service.

Read-side helpers for the loyalty ledger: current balances and a non-binding
quote of what a sale would do to them. The binding settlement always happens
inside the sale transaction, under the account row lock, so a quote can
differ from the final result when another sale lands in between.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.errors import NotFoundError
from domain.loyalty import LoyaltyAccount, LoyaltyConfig, PointsSettlement, settle_points
from repositories import loyalty_repository


@dataclass(frozen=True, slots=True)
class LoyaltyQuote:
    national_id: str
    settlement: PointsSettlement
    balance_before: LoyaltyAccount
    balance_after: LoyaltyAccount
    is_new_customer: bool


def get_account(national_id: str) -> LoyaltyAccount:
    account = loyalty_repository.get_account(national_id)
    if account is None:
        raise NotFoundError(f"No loyalty account for {national_id}", {"national_id": national_id})
    return account


def quote(
    national_id: str,
    original_price: Decimal,
    points_requested: int,
    config: LoyaltyConfig,
    manual_price: Optional[Decimal] = None,
) -> LoyaltyQuote:
    """
    Preview redemption, discount, final price and resulting balances.

    Example:
        >>> q = quote("12345678", Decimal("100"), 50, LoyaltyConfig())
        >>> q.settlement.final_price  # with 50 points available
        Decimal('95.00')
    """

    account = loyalty_repository.get_account(national_id)
    is_new = account is None
    available = account.points_available if account else 0
    settlement = settle_points(original_price, points_requested, available, config, manual_price)

    if account is None:
        before = LoyaltyAccount(national_id=national_id, points_available=0, points_historic=0)
        after = LoyaltyAccount.open(national_id, settlement)
    else:
        before = account
        after = account.apply(settlement)

    return LoyaltyQuote(
        national_id=national_id,
        settlement=settlement,
        balance_before=before,
        balance_after=after,
        is_new_customer=is_new,
    )


__all__ = ["LoyaltyQuote", "get_account", "quote"]
