"""Negotiation routes"""

from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Query
from pydantic import Field

from nego_engine.api.dependencies import (
    CurrentUserId,
    DBSession,
    Negotiations,
    Redemptions,
)
from nego_engine.api.schemas import (
    CamelModel,
    DiscountCodeResponse,
    NegotiationResponse,
    OfferResponse,
    code_to_response,
    negotiation_to_response,
    offer_to_response,
)
from nego_engine.db.models.negotiation import NegotiationStatus, Party
from nego_engine.negotiation.registry import NegotiationRegistry

router = APIRouter()


# ─── Schemas ─────────────────────────────────────────

class OpenNegotiationRequest(CamelModel):
    project_id: str = Field(min_length=1, max_length=64)
    offer_amount: Decimal = Field(max_digits=12, decimal_places=2)
    message: str | None = Field(default=None, max_length=500)


class CounterRequest(CamelModel):
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    note: str | None = Field(default=None, max_length=500)
    expected_sequence: int | None = None


class AcceptRequest(CamelModel):
    expected_sequence: int | None = None


class CloseRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=500)
    expected_sequence: int | None = None


class ReportRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=500)


class ValidateCodeRequest(CamelModel):
    code: str = Field(min_length=1, max_length=64)
    project_id: str = Field(min_length=1, max_length=64)


class AcceptResponse(CamelModel):
    negotiation: NegotiationResponse
    discount_code: DiscountCodeResponse


class ValidateCodeResponse(CamelModel):
    valid: bool
    code: str
    final_price: float
    list_price: float
    discount_amount: float
    discount_percentage: int
    expires_at: str


class ReportResponse(CamelModel):
    success: bool
    message: str


# ─── Collection routes (declared before /{negotiation_id}) ─

@router.post("", response_model=NegotiationResponse)
async def open_negotiation(
    data: OpenNegotiationRequest,
    user_id: CurrentUserId,
    service: Negotiations,
):
    """Start negotiating on a project with an initial offer."""
    negotiation = await service.open_negotiation(
        buyer_id=user_id,
        project_id=data.project_id,
        initial_amount=data.offer_amount,
        note=data.message,
    )
    return negotiation_to_response(negotiation)


@router.get("/my", response_model=list[NegotiationResponse])
async def my_negotiations(
    user_id: CurrentUserId,
    service: Negotiations,
    role: Literal["buyer", "seller"] | None = Query(default=None),
    status: NegotiationStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    """Negotiations the current user takes part in, most recent first."""
    negotiations = await service.list_for_user(
        user_id,
        role=role,
        status=status.value if status else None,
        page=page,
        limit=limit,
    )
    return [negotiation_to_response(n) for n in negotiations]


@router.get("/stats")
async def negotiation_stats(user_id: CurrentUserId, db: DBSession):
    """Dashboard counts, recomputed from the tables on every call."""
    stats = await NegotiationRegistry(db).stats_for_user(user_id)
    return {
        "asBuyer": stats["as_buyer"],
        "asSeller": stats["as_seller"],
        "discountCodes": stats["discount_codes"],
        "totalSaved": stats["total_saved"],
    }


@router.post("/validate-code", response_model=ValidateCodeResponse)
async def validate_code(
    data: ValidateCodeRequest,
    user_id: CurrentUserId,
    guard: Redemptions,
):
    """Preview the price a discount code unlocks without spending it."""
    check = await guard.validate_and_hold(data.code, data.project_id, buyer_id=user_id)
    return ValidateCodeResponse(
        valid=check.valid,
        code=check.code,
        final_price=float(check.final_price),
        list_price=float(check.list_price),
        discount_amount=float(check.discount_amount),
        discount_percentage=check.discount_percentage,
        expires_at=check.expires_at.isoformat(),
    )


# ─── Single negotiation ──────────────────────────────

@router.get("/{negotiation_id}", response_model=NegotiationResponse)
async def get_negotiation(
    negotiation_id: str,
    user_id: CurrentUserId,
    service: Negotiations,
):
    """Get a negotiation with its ledger. The buyer also sees the code."""
    negotiation = await service.get(negotiation_id, user_id)
    discount_code = None
    if negotiation.party_of(user_id) is Party.BUYER:
        discount_code = await service.get_discount_code(negotiation)
    return negotiation_to_response(negotiation, discount_code)


@router.get("/{negotiation_id}/offers", response_model=list[OfferResponse])
async def list_offers(
    negotiation_id: str,
    user_id: CurrentUserId,
    service: Negotiations,
):
    negotiation = await service.get(negotiation_id, user_id)
    return [offer_to_response(o) for o in negotiation.offers]


@router.post("/{negotiation_id}/counter", response_model=NegotiationResponse)
async def counter_offer(
    negotiation_id: str,
    data: CounterRequest,
    user_id: CurrentUserId,
    service: Negotiations,
):
    """Answer the standing offer with a new amount."""
    negotiation = await service.counter(
        negotiation_id,
        user_id,
        data.amount,
        note=data.note,
        expected_sequence=data.expected_sequence,
    )
    return negotiation_to_response(negotiation)


@router.post("/{negotiation_id}/accept", response_model=AcceptResponse)
async def accept_offer(
    negotiation_id: str,
    user_id: CurrentUserId,
    service: Negotiations,
    data: AcceptRequest | None = None,
):
    """Accept the standing offer; the buyer's discount code comes back with it."""
    negotiation, discount_code = await service.accept(
        negotiation_id,
        user_id,
        expected_sequence=data.expected_sequence if data else None,
    )
    return AcceptResponse(
        negotiation=negotiation_to_response(negotiation, discount_code),
        discount_code=code_to_response(discount_code),
    )


@router.post("/{negotiation_id}/reject", response_model=NegotiationResponse)
async def reject_offer(
    negotiation_id: str,
    user_id: CurrentUserId,
    service: Negotiations,
    data: CloseRequest | None = None,
):
    negotiation = await service.reject(
        negotiation_id,
        user_id,
        reason=data.reason if data else None,
        expected_sequence=data.expected_sequence if data else None,
    )
    return negotiation_to_response(negotiation)


@router.post("/{negotiation_id}/cancel", response_model=NegotiationResponse)
async def cancel_negotiation(
    negotiation_id: str,
    user_id: CurrentUserId,
    service: Negotiations,
    data: CloseRequest | None = None,
):
    negotiation = await service.cancel(
        negotiation_id,
        user_id,
        reason=data.reason if data else None,
        expected_sequence=data.expected_sequence if data else None,
    )
    return negotiation_to_response(negotiation)


@router.post("/{negotiation_id}/report", response_model=ReportResponse)
async def report_negotiation(
    negotiation_id: str,
    data: ReportRequest,
    user_id: CurrentUserId,
    service: Negotiations,
):
    """Flag a negotiation for moderation."""
    await service.report(negotiation_id, user_id, data.reason)
    return ReportResponse(success=True, message="Negotiation reported")
