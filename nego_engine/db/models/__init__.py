"""Database models"""

from nego_engine.db.models.project import Project
from nego_engine.db.models.negotiation import Negotiation, NegotiationStatus, Party
from nego_engine.db.models.offer import Offer, OfferKind
from nego_engine.db.models.active_negotiation import ActiveNegotiation
from nego_engine.db.models.discount_code import DiscountCode, DiscountCodeStatus
from nego_engine.db.models.report import NegotiationReport

__all__ = [
    "Project",
    "Negotiation",
    "NegotiationStatus",
    "Party",
    "Offer",
    "OfferKind",
    "ActiveNegotiation",
    "DiscountCode",
    "DiscountCodeStatus",
    "NegotiationReport",
]
