"""
Loyalty repository (persistence).

Read-only access to loyalty accounts and the loyalty economics settings.
Balances are only ever written by the atomic sale/registration functions,
under the account row lock.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.loyalty import LoyaltyAccount, LoyaltyConfig
from repositories.client import get_client
from repositories.rpc import first_row

_ACCOUNTS_TABLE: str = "loyalty_accounts"
_SETTINGS_TABLE: str = "system_settings"


def row_to_account(row: Mapping[str, Any]) -> LoyaltyAccount:
    """Convert a Supabase row into a LoyaltyAccount (validates the balance invariant)."""

    return LoyaltyAccount(
        national_id=str(row["national_id"]),
        points_available=int(row.get("points_available") or 0),
        points_historic=int(row.get("points_historic") or 0),
    )


def get_account(national_id: str) -> Optional[LoyaltyAccount]:
    """
    Retrieve a customer's loyalty account.

    Returns:
        LoyaltyAccount or None if the customer never bought anything
    """

    response = (
        get_client()
        .table(_ACCOUNTS_TABLE)
        .select("national_id, points_available, points_historic")
        .eq("national_id", national_id)
        .limit(1)
        .execute()
    )
    row = first_row(response, "get loyalty account")
    return row_to_account(row) if row else None


def load_loyalty_config() -> LoyaltyConfig:
    """
    Read the active loyalty economics.

    Missing row, null or non-positive ratios fall back to the defaults (10 / 10).
    """

    response = (
        get_client()
        .table(_SETTINGS_TABLE)
        .select("soles_per_point, points_per_sol_discount, loyalty_earn_on")
        .eq("active", True)
        .limit(1)
        .execute()
    )
    return LoyaltyConfig.from_settings(first_row(response, "load loyalty settings"))


__all__ = ["row_to_account", "get_account", "load_loyalty_config"]
