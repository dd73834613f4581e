"""Project catalog mirror model"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Boolean, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from nego_engine.db.base import Base
from nego_engine.db.types import UTCDateTime


class Project(Base):
    """Read-only copy of the catalog fields a negotiation needs.

    Owned by the catalog; this service only reads it.
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    seller_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    minimum_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Project {self.id} ({self.title})>"
