"""Redemption guard: checkout-time validation and single-use consumption.

``redeem`` is one conditional UPDATE keyed by the code. Whichever
transaction flips ``issued -> redeemed`` first wins; every other attempt
matches zero rows and is told why by re-reading the row.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.exceptions import (
    CodeAlreadyRedeemed,
    CodeExpired,
    CodeNotFound,
    CodeVoided,
    ConcurrentModification,
    ProjectMismatch,
)
from nego_engine.core.logging import log
from nego_engine.db.models.discount_code import DiscountCode, DiscountCodeStatus
from nego_engine.negotiation.code_issuer import normalize_code


@dataclass(frozen=True)
class CodeCheck:
    valid: bool
    code: str
    final_price: Decimal
    list_price: Decimal
    discount_amount: Decimal
    discount_percentage: int
    expires_at: datetime


@dataclass(frozen=True)
class Redemption:
    code: str
    project_id: str
    order_id: str
    final_price: Decimal
    redeemed_at: datetime


class RedemptionGuard:
    """Validates and consumes negotiation discount codes."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def _load(self, code: str) -> DiscountCode | None:
        result = await self.db.execute(
            select(DiscountCode)
            .where(DiscountCode.code == code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _raise_unusable(
        self,
        record: DiscountCode | None,
        code: str,
        project_id: str,
        buyer_id: str | None,
        now: datetime,
    ) -> None:
        """Raise the error that explains why ``record`` cannot be used."""
        # Someone else's code is reported as unknown rather than disclosed
        if record is None or (buyer_id is not None and record.buyer_id != buyer_id):
            raise CodeNotFound()
        if record.project_id != project_id:
            raise ProjectMismatch(code)
        if record.status == DiscountCodeStatus.REDEEMED.value:
            raise CodeAlreadyRedeemed(code)
        if record.status == DiscountCodeStatus.VOIDED.value:
            raise CodeVoided(code)
        if record.status == DiscountCodeStatus.EXPIRED.value or record.expires_at <= now:
            raise CodeExpired(code)

    async def validate_and_hold(
        self,
        code: str,
        project_id: str,
        buyer_id: str | None = None,
    ) -> CodeCheck:
        """Preview the price a code authorizes, without consuming it."""
        code = normalize_code(code)
        now = self.clock()
        record = await self._load(code)
        self._raise_unusable(record, code, project_id, buyer_id, now)

        return CodeCheck(
            valid=True,
            code=record.code,
            final_price=record.final_price,
            list_price=record.list_price,
            discount_amount=record.discount_amount,
            discount_percentage=record.discount_percentage,
            expires_at=record.expires_at,
        )

    async def redeem(
        self,
        code: str,
        project_id: str,
        order_id: str,
        buyer_id: str | None = None,
    ) -> Redemption:
        """Atomically consume a code for an order."""
        code = normalize_code(code)
        now = self.clock()

        conditions = [
            DiscountCode.code == code,
            DiscountCode.status == DiscountCodeStatus.ISSUED.value,
            DiscountCode.expires_at > now,
            DiscountCode.project_id == project_id,
        ]
        if buyer_id is not None:
            conditions.append(DiscountCode.buyer_id == buyer_id)

        result = await self.db.execute(
            update(DiscountCode)
            .where(*conditions)
            .values(
                status=DiscountCodeStatus.REDEEMED.value,
                redeemed_at=now,
                order_id=order_id,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            await self.db.rollback()
            record = await self._load(code)
            self._raise_unusable(record, code, project_id, buyer_id, now)
            # Every condition holds again on re-read: the row moved under us
            raise ConcurrentModification("DiscountCode", code)

        await self.db.commit()
        record = await self._load(code)

        log.info(
            f"Redeemed discount code for order {order_id}",
            project_id=project_id,
            final_price=str(record.final_price),
        )
        return Redemption(
            code=record.code,
            project_id=record.project_id,
            order_id=order_id,
            final_price=record.final_price,
            redeemed_at=record.redeemed_at,
        )

    async def void(self, code: str, reason: str | None = None) -> DiscountCode:
        """Retire a code for refund/dispute flows. Never reopens it."""
        code = normalize_code(code)
        now = self.clock()
        result = await self.db.execute(
            update(DiscountCode)
            .where(
                DiscountCode.code == code,
                DiscountCode.status != DiscountCodeStatus.VOIDED.value,
            )
            .values(
                status=DiscountCodeStatus.VOIDED.value,
                voided_at=now,
                void_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        record = await self._load(code)
        if record is None:
            raise CodeNotFound()
        if result.rowcount == 1:
            log.info(f"Voided discount code {record.id}", reason=reason)
        return record

    async def list_for_buyer(self, buyer_id: str) -> dict[str, Any]:
        """Buyer's codes with usable/used/expired counts."""
        now = self.clock()
        result = await self.db.execute(
            select(DiscountCode)
            .where(DiscountCode.buyer_id == buyer_id)
            .order_by(desc(DiscountCode.issued_at))
        )
        codes = list(result.scalars().all())
        return {
            "codes": codes,
            "total": len(codes),
            "active": sum(1 for c in codes if c.is_usable(now)),
            "used": sum(1 for c in codes if c.status == DiscountCodeStatus.REDEEMED.value),
            "expired": sum(
                1
                for c in codes
                if c.status == DiscountCodeStatus.EXPIRED.value
                or (c.status == DiscountCodeStatus.ISSUED.value and not c.is_usable(now))
            ),
        }
