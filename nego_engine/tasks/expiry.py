"""Periodic expiry sweep.

Expiry is evaluated lazily on every read and write, so the sweep only
keeps dashboards and the registry index fresh. Started from the app
lifespan with ``asyncio.create_task()`` and cancelled on shutdown.
"""

import asyncio

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.exceptions import ConcurrentModification
from nego_engine.core.logging import log
from nego_engine.db.models.discount_code import DiscountCode, DiscountCodeStatus
from nego_engine.db.models.negotiation import Negotiation, NegotiationStatus
from nego_engine.negotiation.policy import NegotiationPolicy
from nego_engine.negotiation.service import NegotiationService


async def sweep_expired(
    db: AsyncSession,
    policy: NegotiationPolicy | None = None,
    clock: Clock = utcnow,
) -> dict[str, int]:
    """Expire lapsed negotiations and codes. Returns what changed."""
    now = clock()
    service = NegotiationService(db, policy=policy, clock=clock)

    result = await db.execute(
        select(Negotiation.id).where(
            Negotiation.status == NegotiationStatus.ACTIVE.value,
            Negotiation.expires_at <= now,
        )
    )
    expired = 0
    for negotiation_id in result.scalars().all():
        try:
            negotiation = await service.refresh(negotiation_id)
        except ConcurrentModification:
            # Someone else touched it; the next read or sweep picks it up
            continue
        if negotiation.status == NegotiationStatus.EXPIRED.value:
            expired += 1

    result = await db.execute(
        update(DiscountCode)
        .where(
            DiscountCode.status == DiscountCodeStatus.ISSUED.value,
            DiscountCode.expires_at <= now,
        )
        .values(status=DiscountCodeStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    codes_expired = result.rowcount or 0
    await db.commit()

    if expired or codes_expired:
        log.info(
            "Expiry sweep finished",
            negotiations_expired=expired,
            codes_expired=codes_expired,
        )
    return {"negotiations_expired": expired, "codes_expired": codes_expired}


async def run_expiry_sweeper(interval_seconds: float) -> None:
    """Sweep forever until cancelled."""
    from nego_engine.db.session import async_session_factory

    log.info(f"Expiry sweeper started, interval {interval_seconds}s")
    while True:
        try:
            async with async_session_factory() as db:
                await sweep_expired(db)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"Expiry sweep failed: {e}")
        await asyncio.sleep(interval_seconds)
