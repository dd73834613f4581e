"""Negotiation registry: the active-pair index plus dashboard listings."""

from datetime import datetime
from typing import Any
import uuid

from sqlalchemy import select, delete, func, or_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.db.models.active_negotiation import ActiveNegotiation
from nego_engine.db.models.discount_code import DiscountCode, DiscountCodeStatus
from nego_engine.db.models.negotiation import Negotiation, NegotiationStatus


class NegotiationRegistry:
    """Index over (buyer, project) -> active negotiation.

    ``claim`` and ``release`` only stage changes on the session so they land
    in the same transaction as the state transition that caused them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def active_for(self, buyer_id: str, project_id: str) -> uuid.UUID | None:
        """Id of the negotiation indexed as active for the pair, if any."""
        result = await self.db.execute(
            select(ActiveNegotiation.negotiation_id).where(
                ActiveNegotiation.buyer_id == buyer_id,
                ActiveNegotiation.project_id == project_id,
            )
        )
        return result.scalar_one_or_none()

    def claim(self, negotiation: Negotiation, now: datetime) -> ActiveNegotiation:
        row = ActiveNegotiation(
            buyer_id=negotiation.buyer_id,
            project_id=negotiation.project_id,
            negotiation_id=negotiation.id,
            created_at=now,
        )
        self.db.add(row)
        return row

    async def release(self, negotiation: Negotiation) -> None:
        await self.db.execute(
            delete(ActiveNegotiation)
            .where(ActiveNegotiation.negotiation_id == negotiation.id)
            .execution_options(synchronize_session="fetch")
        )

    async def list_for_buyer(
        self,
        buyer_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> list[Negotiation]:
        return await self._list(Negotiation.buyer_id == buyer_id, status, page, limit)

    async def list_for_seller(
        self,
        seller_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> list[Negotiation]:
        return await self._list(Negotiation.seller_id == seller_id, status, page, limit)

    async def list_for_user(
        self,
        user_id: str,
        role: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> list[Negotiation]:
        """Negotiations where the user is buyer, seller, or either."""
        return await self._list(self._participant(user_id, role), status, page, limit)

    async def lapsed_for_user(
        self,
        user_id: str,
        now: datetime,
        role: str | None = None,
    ) -> list[uuid.UUID]:
        """Ids still marked active whose TTL has run out."""
        result = await self.db.execute(
            select(Negotiation.id).where(
                self._participant(user_id, role),
                Negotiation.status == NegotiationStatus.ACTIVE.value,
                Negotiation.expires_at <= now,
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def _participant(user_id: str, role: str | None):
        if role == "buyer":
            return Negotiation.buyer_id == user_id
        if role == "seller":
            return Negotiation.seller_id == user_id
        return or_(Negotiation.buyer_id == user_id, Negotiation.seller_id == user_id)

    async def _list(self, condition, status: str | None, page: int, limit: int) -> list[Negotiation]:
        query = select(Negotiation).where(condition)
        if status:
            query = query.where(Negotiation.status == NegotiationStatus(status).value)
        query = (
            query.order_by(desc(Negotiation.last_activity_at))
            .limit(limit)
            .offset((max(page, 1) - 1) * limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats_for_user(self, user_id: str) -> dict[str, Any]:
        """Dashboard aggregates, always recounted from the tables."""
        stats: dict[str, Any] = {}
        for role, column in (("as_buyer", Negotiation.buyer_id), ("as_seller", Negotiation.seller_id)):
            result = await self.db.execute(
                select(Negotiation.status, func.count(Negotiation.id))
                .where(column == user_id)
                .group_by(Negotiation.status)
            )
            counts = {s.value: 0 for s in NegotiationStatus}
            counts.update({status: count for status, count in result.all()})
            counts["total"] = sum(counts.values())
            stats[role] = counts

        result = await self.db.execute(
            select(DiscountCode.status, func.count(DiscountCode.id))
            .where(DiscountCode.buyer_id == user_id)
            .group_by(DiscountCode.status)
        )
        codes = {s.value: 0 for s in DiscountCodeStatus}
        codes.update({status: count for status, count in result.all()})
        stats["discount_codes"] = codes

        result = await self.db.execute(
            select(func.coalesce(func.sum(DiscountCode.list_price - DiscountCode.final_price), 0))
            .where(
                DiscountCode.buyer_id == user_id,
                DiscountCode.status == DiscountCodeStatus.REDEEMED.value,
            )
        )
        stats["total_saved"] = float(result.scalar() or 0)
        return stats

    async def index_rows(self) -> list[ActiveNegotiation]:
        result = await self.db.execute(select(ActiveNegotiation))
        return list(result.scalars().all())

    async def negotiation_ids_active(self) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(Negotiation.id).where(Negotiation.status == NegotiationStatus.ACTIVE.value)
        )
        return set(result.scalars().all())
