"""Discount code routes (buyer side of checkout)"""

from fastapi import APIRouter
from pydantic import Field

from nego_engine.api.dependencies import CurrentUserId, Redemptions
from nego_engine.api.schemas import CamelModel, DiscountCodeResponse, code_to_response

router = APIRouter()


class RedeemRequest(CamelModel):
    code: str = Field(min_length=1, max_length=64)
    project_id: str = Field(min_length=1, max_length=64)
    order_id: str = Field(min_length=1, max_length=64)


class RedeemResponse(CamelModel):
    code: str
    project_id: str
    order_id: str
    final_price: float
    redeemed_at: str


class MyCodesResponse(CamelModel):
    codes: list[DiscountCodeResponse]
    total: int
    active: int
    used: int
    expired: int


@router.get("/my", response_model=MyCodesResponse)
async def my_discount_codes(user_id: CurrentUserId, guard: Redemptions):
    """The current user's negotiation codes with usage counts."""
    listing = await guard.list_for_buyer(user_id)
    return MyCodesResponse(
        codes=[code_to_response(c) for c in listing["codes"]],
        total=listing["total"],
        active=listing["active"],
        used=listing["used"],
        expired=listing["expired"],
    )


@router.post("/redeem", response_model=RedeemResponse)
async def redeem_code(data: RedeemRequest, user_id: CurrentUserId, guard: Redemptions):
    """Spend a code on an order. Succeeds at most once per code."""
    redemption = await guard.redeem(
        data.code,
        data.project_id,
        data.order_id,
        buyer_id=user_id,
    )
    return RedeemResponse(
        code=redemption.code,
        project_id=redemption.project_id,
        order_id=redemption.order_id,
        final_price=float(redemption.final_price),
        redeemed_at=redemption.redeemed_at.isoformat(),
    )
