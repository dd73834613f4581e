"""Code issuer: mints the single-use code for an accepted negotiation."""

import base64
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.exceptions import NegotiationNotAccepted
from nego_engine.core.logging import log
from nego_engine.db.models.discount_code import DiscountCode, DiscountCodeStatus
from nego_engine.db.models.negotiation import Negotiation, NegotiationStatus
from nego_engine.negotiation.policy import NegotiationPolicy

MAX_CODE_ATTEMPTS = 5


def normalize_code(code: str) -> str:
    return code.strip().upper()


class CodeIssuer:
    """Issues at most one discount code per accepted negotiation.

    The code row is added to the caller's session; it becomes durable with
    the same commit that makes the negotiation ``accepted``.
    """

    def __init__(self, db: AsyncSession, policy: NegotiationPolicy, clock: Clock = utcnow):
        self.db = db
        self.policy = policy
        self.clock = clock

    def generate_code(self) -> str:
        token = secrets.token_bytes(self.policy.code_entropy_bytes)
        return self.policy.code_prefix + base64.b32encode(token).decode("ascii").rstrip("=")

    async def get_for_negotiation(self, negotiation: Negotiation) -> DiscountCode | None:
        result = await self.db.execute(
            select(DiscountCode).where(DiscountCode.negotiation_id == negotiation.id)
        )
        return result.scalar_one_or_none()

    async def issue(self, negotiation: Negotiation) -> DiscountCode:
        """Return the negotiation's code, minting it on first call."""
        if negotiation.status != NegotiationStatus.ACCEPTED.value:
            raise NegotiationNotAccepted(str(negotiation.id), negotiation.status)

        existing = await self.get_for_negotiation(negotiation)
        if existing:
            log.debug(f"Code already issued for negotiation {negotiation.id}")
            return existing

        code = await self._unique_code()
        now = self.clock()
        discount_code = DiscountCode(
            code=code,
            negotiation_id=negotiation.id,
            project_id=negotiation.project_id,
            buyer_id=negotiation.buyer_id,
            seller_id=negotiation.seller_id,
            list_price=negotiation.list_price,
            final_price=negotiation.final_price,
            status=DiscountCodeStatus.ISSUED.value,
            issued_at=now,
            expires_at=now + self.policy.code_ttl,
        )
        self.db.add(discount_code)
        await self.db.flush()

        log.info(
            f"Issued discount code for negotiation {negotiation.id}",
            project_id=negotiation.project_id,
            final_price=str(negotiation.final_price),
        )
        return discount_code

    async def _unique_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            candidate = self.generate_code()
            result = await self.db.execute(
                select(DiscountCode.id).where(DiscountCode.code == candidate)
            )
            if result.scalar_one_or_none() is None:
                return candidate
        raise RuntimeError("Could not generate a unique discount code")
