"""
Tests for `domain/loyalty.py`.

Covers contract rules:
- Redemption is clamped to the available balance.
- discount = redeemed / pointsPerSolDiscount, capped at the price.
- Points are earned on the charged price (floor), or on the original price
  when configured.
- A manual price replaces the final price but never changes earning.
- pointsAvailable <= pointsHistoric after every operation.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.errors import ConfigurationError, ValidationError
from domain.loyalty import EarnBasis, LoyaltyAccount, LoyaltyConfig, settle_points


def test_redeem_fifty_points_on_hundred_sol_ticket() -> None:
    """50 available, 100.00 price, 50 requested: 5.00 off, 95.00 charged, 9 earned."""

    account = LoyaltyAccount(national_id="12345678", points_available=50, points_historic=50)
    settlement = settle_points(Decimal("100"), 50, account.points_available, LoyaltyConfig())

    assert settlement.points_redeemed == 50
    assert settlement.discount == Decimal("5.00")
    assert settlement.final_price == Decimal("95.00")
    assert settlement.points_earned == 9

    after = account.apply(settlement)
    assert after.points_available == 9
    assert after.points_historic == 59


def test_redemption_is_clamped_to_available_balance() -> None:
    settlement = settle_points(Decimal("100"), 500, 40, LoyaltyConfig())

    assert settlement.points_requested == 500
    assert settlement.points_redeemed == 40
    assert settlement.discount == Decimal("4.00")


def test_negative_request_redeems_nothing() -> None:
    settlement = settle_points(Decimal("30"), -5, 100, LoyaltyConfig())

    assert settlement.points_redeemed == 0
    assert settlement.final_price == Decimal("30.00")
    assert settlement.points_earned == 3


def test_discount_never_exceeds_price() -> None:
    settlement = settle_points(Decimal("2.00"), 1000, 1000, LoyaltyConfig())

    assert settlement.discount == Decimal("2.00")
    assert settlement.final_price == Decimal("0.00")
    assert settlement.points_earned == 0


def test_earn_on_original_price() -> None:
    config = LoyaltyConfig(earn_on=EarnBasis.ORIGINAL)
    settlement = settle_points(Decimal("100"), 50, 50, config)

    assert settlement.final_price == Decimal("95.00")
    assert settlement.points_earned == 10


def test_manual_price_overrides_final_price_but_not_earning() -> None:
    settlement = settle_points(Decimal("100"), 0, 0, LoyaltyConfig(), manual_price=Decimal("60"))

    assert settlement.price_overridden is True
    assert settlement.computed_final_price == Decimal("100.00")
    assert settlement.final_price == Decimal("60.00")
    assert settlement.points_earned == 10


def test_negative_price_is_rejected() -> None:
    with pytest.raises(ValidationError):
        settle_points(Decimal("-1"), 0, 0, LoyaltyConfig())


def test_config_requires_positive_ratios() -> None:
    with pytest.raises(ConfigurationError):
        LoyaltyConfig(soles_per_point=Decimal("0"))


def test_config_from_settings_falls_back_to_defaults() -> None:
    assert LoyaltyConfig.from_settings(None) == LoyaltyConfig()

    config = LoyaltyConfig.from_settings({"soles_per_point": "-3", "points_per_sol_discount": None})
    assert config.soles_per_point == Decimal("10")
    assert config.points_per_sol_discount == Decimal("10")

    custom = LoyaltyConfig.from_settings({"soles_per_point": "5", "points_per_sol_discount": "20"})
    assert custom.soles_per_point == Decimal("5")
    assert custom.points_per_sol_discount == Decimal("20")


def test_new_account_starts_with_earned_points() -> None:
    settlement = settle_points(Decimal("45"), 10, 0, LoyaltyConfig())
    account = LoyaltyAccount.open("87654321", settlement)

    assert settlement.points_redeemed == 0
    assert (account.points_available, account.points_historic) == (4, 4)


def test_account_invariant_available_not_above_historic() -> None:
    with pytest.raises(ValueError):
        LoyaltyAccount(national_id="12345678", points_available=10, points_historic=5)
    with pytest.raises(ValueError):
        LoyaltyAccount(national_id="12345678", points_available=-1, points_historic=5)


def test_two_sequential_redemptions_never_go_negative() -> None:
    """Second request sees the decremented balance and is clamped."""

    account = LoyaltyAccount(national_id="12345678", points_available=50, points_historic=50)
    config = LoyaltyConfig()

    first = settle_points(Decimal("10"), 40, account.points_available, config)
    account = account.apply(first)
    second = settle_points(Decimal("10"), 40, account.points_available, config)
    account = account.apply(second)

    assert first.points_redeemed == 40
    assert second.points_redeemed == 10
    assert account.points_available >= 0
    assert account.points_available <= account.points_historic
