"""Offer ledger entry model"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
import uuid

from sqlalchemy import String, Integer, Numeric, ForeignKey, UniqueConstraint, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from nego_engine.db.base import Base
from nego_engine.db.types import UTCDateTime

if TYPE_CHECKING:
    from nego_engine.db.models.negotiation import Negotiation


class OfferKind(str, enum.Enum):
    """Ledger entry kind."""
    INITIAL = "initial"
    COUNTER = "counter"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"

    @property
    def is_proposal(self) -> bool:
        return self in (OfferKind.INITIAL, OfferKind.COUNTER)

    @property
    def is_terminal(self) -> bool:
        return self in (OfferKind.ACCEPT, OfferKind.REJECT, OfferKind.CANCEL)


class Offer(Base):
    """One immutable entry in a negotiation's offer ledger."""

    __tablename__ = "negotiation_offers"
    __table_args__ = (
        UniqueConstraint("negotiation_id", "sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("negotiations.id"),
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer)

    kind: Mapped[str] = mapped_column(String(10))
    proposed_by: Mapped[str] = mapped_column(String(10))
    actor_id: Mapped[str] = mapped_column(String(64))
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)

    # Relationships
    negotiation: Mapped["Negotiation"] = relationship(
        "Negotiation", back_populates="offers"
    )

    def __repr__(self) -> str:
        return f"<Offer {self.negotiation_id} #{self.sequence} {self.kind}>"


@event.listens_for(Offer, "before_update")
def _offer_before_update(_mapper, _connection, target: Offer):
    raise ValueError(
        f"Ledger entry #{target.sequence} of negotiation {target.negotiation_id} is immutable"
    )


@event.listens_for(Offer, "before_delete")
def _offer_before_delete(_mapper, _connection, target: Offer):
    raise ValueError(
        f"Ledger entry #{target.sequence} of negotiation {target.negotiation_id} cannot be removed"
    )
