"""Negotiation abuse report model"""

from datetime import datetime
import uuid

from sqlalchemy import String, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from nego_engine.db.base import Base
from nego_engine.db.types import UTCDateTime


class NegotiationReport(Base):
    """A participant flagging a negotiation for moderation."""

    __tablename__ = "negotiation_reports"
    __table_args__ = (
        UniqueConstraint("negotiation_id", "reporter_id"),
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
    reporter_id: Mapped[str] = mapped_column(String(64))
    reason: Mapped[str] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)

    def __repr__(self) -> str:
        return f"<NegotiationReport {self.negotiation_id} by {self.reporter_id}>"
