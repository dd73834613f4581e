"""
Tests for the background jobs.

Verifies that:
- The expiry sweep closes lapsed negotiations and lapsed codes
- The sweeper loop survives until cancelled
- Reconciliation rebuilds the active index and missing discount codes
"""

import asyncio
from decimal import Decimal

from sqlalchemy import delete, select

from nego_engine.db.models.active_negotiation import ActiveNegotiation
from nego_engine.db.models.discount_code import DiscountCode
from nego_engine.db.models.negotiation import NegotiationStatus
from nego_engine.negotiation.reconciliation import reconcile
from nego_engine.tasks import expiry
from nego_engine.tasks.expiry import sweep_expired

from tests.conftest import BUYER, PROJECT, SELLER


class TestExpirySweep:
    """Tests for sweep_expired()."""

    async def test_sweep_expires_negotiations_and_codes(self, db, service, policy, clock):
        lingering = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))
        accepted = await service.open_negotiation(BUYER, "proj-2", Decimal("2000"))
        _, discount_code = await service.accept(accepted.id, "seller-2")

        clock.advance(hours=169)
        summary = await sweep_expired(db, policy, clock)

        assert summary == {"negotiations_expired": 1, "codes_expired": 1}
        assert (await service._load(lingering.id)).status == NegotiationStatus.EXPIRED.value
        assert await service.registry.active_for(BUYER, PROJECT) is None

        result = await db.execute(
            select(DiscountCode.status).where(DiscountCode.code == discount_code.code)
        )
        assert result.scalar_one() == "expired"

    async def test_sweep_before_deadline_changes_nothing(self, db, service, policy, clock):
        negotiation = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))

        clock.advance(hours=167)
        summary = await sweep_expired(db, policy, clock)

        assert summary == {"negotiations_expired": 0, "codes_expired": 0}
        assert (await service._load(negotiation.id)).is_active

    async def test_sweep_leaves_redeemed_codes_alone(self, db, service, policy, clock):
        negotiation = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))
        _, discount_code = await service.accept(negotiation.id, SELLER)
        discount_code.status = "redeemed"
        await db.commit()

        clock.advance(hours=200)
        summary = await sweep_expired(db, policy, clock)
        assert summary["codes_expired"] == 0

    async def test_sweeper_loop_runs_until_cancelled(self, monkeypatch, session_factory):
        calls = []

        async def fake_sweep(db):
            calls.append(db)
            return {"negotiations_expired": 0, "codes_expired": 0}

        monkeypatch.setattr("nego_engine.db.session.async_session_factory", session_factory)
        monkeypatch.setattr(expiry, "sweep_expired", fake_sweep)

        task = asyncio.create_task(expiry.run_expiry_sweeper(0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert len(calls) >= 2

    async def test_sweeper_loop_survives_errors(self, monkeypatch, session_factory):
        calls = []

        async def failing_sweep(db):
            calls.append(db)
            raise RuntimeError("database unavailable")

        monkeypatch.setattr("nego_engine.db.session.async_session_factory", session_factory)
        monkeypatch.setattr(expiry, "sweep_expired", failing_sweep)

        task = asyncio.create_task(expiry.run_expiry_sweeper(0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert len(calls) >= 2


class TestReconcile:
    """Tests for reconcile()."""

    async def test_clean_state_is_untouched(self, db, service, policy, clock):
        await service.open_negotiation(BUYER, PROJECT, Decimal("800"))

        report = await reconcile(db, policy, clock)

        assert not report.changed
        assert report.conflicts == []

    async def test_orphaned_index_row_removed(self, db, service, policy, clock):
        negotiation = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))
        await service.cancel(negotiation.id, BUYER)
        db.add(
            ActiveNegotiation(
                buyer_id=BUYER,
                project_id=PROJECT,
                negotiation_id=negotiation.id,
                created_at=clock(),
            )
        )
        await db.commit()

        report = await reconcile(db, policy, clock)

        assert report.orphans_removed == 1
        assert await service.registry.active_for(BUYER, PROJECT) is None

    async def test_missing_index_row_restored(self, db, service, policy, clock):
        negotiation = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))
        await db.execute(delete(ActiveNegotiation))
        await db.commit()

        report = await reconcile(db, policy, clock)

        assert report.index_restored == 1
        assert await service.registry.active_for(BUYER, PROJECT) == negotiation.id

    async def test_duplicate_active_pair_reported(self, db, service, policy, clock):
        first = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))
        await db.execute(delete(ActiveNegotiation))
        await db.commit()
        clock.advance(minutes=1)
        second = await service.open_negotiation(BUYER, PROJECT, Decimal("810"))
        await db.execute(delete(ActiveNegotiation))
        await db.commit()

        report = await reconcile(db, policy, clock)

        assert report.index_restored == 1
        assert report.conflicts == [str(second.id)]
        assert await service.registry.active_for(BUYER, PROJECT) == first.id

    async def test_missing_code_reissued(self, db, service, policy, clock):
        negotiation = await service.open_negotiation(BUYER, PROJECT, Decimal("800"))
        _, lost = await service.accept(negotiation.id, SELLER)
        await db.execute(delete(DiscountCode))
        await db.commit()

        report = await reconcile(db, policy, clock)

        assert report.codes_issued == 1
        reissued = await service.get_discount_code(negotiation)
        assert reissued.final_price == Decimal("800")
        assert reissued.code != lost.code

        again = await reconcile(db, policy, clock)
        assert again.codes_issued == 0
