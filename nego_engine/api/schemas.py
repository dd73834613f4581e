"""Response models shared by the negotiation and discount-code routes"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from nego_engine.db.models.discount_code import DiscountCode
from nego_engine.db.models.negotiation import Negotiation
from nego_engine.db.models.offer import Offer


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class OfferResponse(CamelModel):
    sequence: int
    kind: str
    proposed_by: str
    amount: float | None
    note: str | None
    created_at: str


class DiscountCodeResponse(CamelModel):
    code: str
    negotiation_id: str
    project_id: str
    list_price: float
    final_price: float
    discount_amount: float
    discount_percentage: int
    status: str
    issued_at: str
    expires_at: str
    redeemed_at: str | None
    order_id: str | None


class NegotiationResponse(CamelModel):
    id: str
    project_id: str
    project_title: str | None
    buyer_id: str
    seller_id: str
    status: str
    list_price: float
    floor_price: float
    current_offer: float | None
    current_proposer: str | None
    final_price: float | None
    last_sequence: int
    offers: list[OfferResponse]
    created_at: str
    last_activity_at: str
    expires_at: str
    closed_at: str | None
    closed_by: str | None
    discount_code: DiscountCodeResponse | None = None


def _to_float(val: Decimal | None) -> float | None:
    return float(val) if val is not None else None


def _iso(val: datetime | None) -> str | None:
    return val.isoformat() if val else None


def offer_to_response(o: Offer) -> OfferResponse:
    return OfferResponse(
        sequence=o.sequence,
        kind=o.kind,
        proposed_by=o.proposed_by,
        amount=_to_float(o.amount),
        note=o.note,
        created_at=o.created_at.isoformat(),
    )


def code_to_response(c: DiscountCode) -> DiscountCodeResponse:
    return DiscountCodeResponse(
        code=c.code,
        negotiation_id=str(c.negotiation_id),
        project_id=c.project_id,
        list_price=float(c.list_price),
        final_price=float(c.final_price),
        discount_amount=float(c.discount_amount),
        discount_percentage=c.discount_percentage,
        status=c.status,
        issued_at=c.issued_at.isoformat(),
        expires_at=c.expires_at.isoformat(),
        redeemed_at=_iso(c.redeemed_at),
        order_id=c.order_id,
    )


def negotiation_to_response(
    n: Negotiation,
    discount_code: DiscountCode | None = None,
) -> NegotiationResponse:
    """Convert a Negotiation ORM instance (offers loaded) to its response."""
    current = n.current_offer
    return NegotiationResponse(
        id=str(n.id),
        project_id=n.project_id,
        project_title=n.project_title,
        buyer_id=n.buyer_id,
        seller_id=n.seller_id,
        status=n.status,
        list_price=float(n.list_price),
        floor_price=float(n.floor_price),
        current_offer=_to_float(current.amount) if current else None,
        current_proposer=current.proposed_by if current else None,
        final_price=_to_float(n.final_price),
        last_sequence=n.last_sequence,
        offers=[offer_to_response(o) for o in n.offers],
        created_at=n.created_at.isoformat(),
        last_activity_at=n.last_activity_at.isoformat(),
        expires_at=n.expires_at.isoformat(),
        closed_at=_iso(n.closed_at),
        closed_by=n.closed_by,
        discount_code=code_to_response(discount_code) if discount_code else None,
    )
