"""
Loyalty API Endpoints.

Balances and non-binding redemption quotes.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_actor, get_loyalty_config
from api.models import LoyaltyBalanceResponse, LoyaltyQuoteRequest, LoyaltyQuoteResponse
from domain.actor import Actor
from domain.loyalty import LoyaltyConfig
from services import loyalty_service

router = APIRouter()


@router.get(
    "/loyalty/accounts/{national_id}",
    response_model=LoyaltyBalanceResponse,
    summary="Get Loyalty Balance",
)
def get_loyalty_account(national_id: str, actor: Actor = Depends(get_actor)):
    """Current balance for a customer document number (404 when the customer never bought)."""
    return LoyaltyBalanceResponse.from_domain(loyalty_service.get_account(national_id.strip()))


@router.post(
    "/loyalty/quote",
    response_model=LoyaltyQuoteResponse,
    summary="Quote Redemption",
    description="Preview discount, final price and points for a sale without writing anything."
)
def quote_redemption(
    request: LoyaltyQuoteRequest,
    actor: Actor = Depends(get_actor),
    config: LoyaltyConfig = Depends(get_loyalty_config),
):
    """
    Non-binding preview against the current balance.

    The sale itself settles under a row lock, so the final numbers can
    differ when another sale for the same customer lands first.

    **Example:** 50 points available, 100.00 price, 50 points requested
    → discount 5.00, final price 95.00, 9 points earned.
    """
    quote = loyalty_service.quote(
        request.national_id.strip(), request.original_price, request.points_to_redeem, config
    )
    settlement = quote.settlement
    return LoyaltyQuoteResponse(
        national_id=quote.national_id,
        is_new_customer=quote.is_new_customer,
        points_requested=settlement.points_requested,
        points_redeemed=settlement.points_redeemed,
        discount=settlement.discount,
        original_price=settlement.original_price,
        final_price=settlement.final_price,
        points_earned=settlement.points_earned,
        balance_before=LoyaltyBalanceResponse.from_domain(quote.balance_before),
        balance_after=LoyaltyBalanceResponse.from_domain(quote.balance_after),
    )
