"""Negotiation model"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
import uuid

from sqlalchemy import String, Integer, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from nego_engine.db.base import Base
from nego_engine.db.types import UTCDateTime

if TYPE_CHECKING:
    from nego_engine.db.models.offer import Offer


class NegotiationStatus(str, enum.Enum):
    """Negotiation lifecycle status."""
    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Party(str, enum.Enum):
    """Side of the table an actor sits on."""
    BUYER = "buyer"
    SELLER = "seller"

    @property
    def counterpart(self) -> "Party":
        return Party.SELLER if self is Party.BUYER else Party.BUYER


class Negotiation(Base):
    """Price negotiation between one buyer and one seller over one project."""

    __tablename__ = "negotiations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # External references (immutable)
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    buyer_id: Mapped[str] = mapped_column(String(64), index=True)
    seller_id: Mapped[str] = mapped_column(String(64), index=True)
    project_title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Price snapshot taken at open time
    list_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    floor_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    final_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=NegotiationStatus.ACTIVE.value, index=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime)
    last_activity_at: Mapped[datetime] = mapped_column(UTCDateTime)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Ledger, always loaded with the negotiation
    offers: Mapped[list["Offer"]] = relationship(
        "Offer",
        back_populates="negotiation",
        order_by="Offer.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == NegotiationStatus.ACTIVE.value

    @property
    def current_offer(self) -> "Offer | None":
        """Last amount-bearing ledger entry."""
        for offer in reversed(self.offers):
            if offer.amount is not None:
                return offer
        return None

    @property
    def last_sequence(self) -> int:
        return self.offers[-1].sequence if self.offers else 0

    def party_of(self, user_id: str) -> Party | None:
        if user_id == self.buyer_id:
            return Party.BUYER
        if user_id == self.seller_id:
            return Party.SELLER
        return None

    def has_lapsed(self, now: datetime) -> bool:
        return self.is_active and self.expires_at <= now

    def __repr__(self) -> str:
        return f"<Negotiation {self.id} project={self.project_id} ({self.status})>"
