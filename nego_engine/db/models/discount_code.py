"""Discount code model"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
import uuid

from sqlalchemy import String, Numeric, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column
import enum

from nego_engine.db.base import Base
from nego_engine.db.types import UTCDateTime


class DiscountCodeStatus(str, enum.Enum):
    """Discount code status."""
    ISSUED = "issued"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    VOIDED = "voided"


class DiscountCode(Base):
    """Single-use code binding a buyer and project to a negotiated price."""

    __tablename__ = "discount_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("negotiations.id"),
        unique=True,
    )
    project_id: Mapped[str] = mapped_column(String(64))
    buyer_id: Mapped[str] = mapped_column(String(64), index=True)
    seller_id: Mapped[str] = mapped_column(String(64))

    list_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    final_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    status: Mapped[str] = mapped_column(
        String(20), default=DiscountCodeStatus.ISSUED.value, index=True
    )

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    redeemed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def discount_amount(self) -> Decimal:
        return self.list_price - self.final_price

    @property
    def discount_percentage(self) -> int:
        if not self.list_price:
            return 0
        ratio = self.discount_amount * 100 / self.list_price
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def is_usable(self, now: datetime) -> bool:
        return self.status == DiscountCodeStatus.ISSUED.value and now < self.expires_at

    def __repr__(self) -> str:
        return f"<DiscountCode {self.code} ({self.status})>"
