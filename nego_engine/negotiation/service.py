"""Negotiation state machine.

Every mutation runs under the negotiation's keyed lock and commits before
returning: ledger entry, negotiation row, registry index row and (on
accept) the discount code are one transaction.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.exceptions import (
    AlreadyReported,
    ConcurrentModification,
    DuplicateActiveNegotiation,
    NegotiationExpired,
    NegotiationNotActive,
    NegotiationNotFound,
    NotAParticipant,
    ProjectNotNegotiable,
    SelfNegotiation,
)
from nego_engine.core.locks import negotiation_locks, open_locks
from nego_engine.core.logging import log
from nego_engine.db.models.discount_code import DiscountCode
from nego_engine.db.models.negotiation import Negotiation, NegotiationStatus, Party
from nego_engine.db.models.offer import OfferKind
from nego_engine.db.models.report import NegotiationReport
from nego_engine.negotiation.code_issuer import CodeIssuer
from nego_engine.negotiation.ledger import LedgerEntry, OfferLedger
from nego_engine.negotiation.policy import NegotiationPolicy
from nego_engine.negotiation.projects import ProjectLookup
from nego_engine.negotiation.registry import NegotiationRegistry


def parse_negotiation_id(value) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NegotiationNotFound(str(value))


def _lock_key(negotiation_id) -> str:
    return str(parse_negotiation_id(negotiation_id))


class NegotiationService:
    """Opens negotiations and drives them through their lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        projects: ProjectLookup | None = None,
        policy: NegotiationPolicy | None = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.projects = projects
        self.policy = policy or NegotiationPolicy.from_settings()
        self.clock = clock
        self.ledger = OfferLedger(self.policy, clock)
        self.registry = NegotiationRegistry(db)
        self.issuer = CodeIssuer(db, self.policy, clock)

    # ─── Opening ─────────────────────────────────────

    async def open_negotiation(
        self,
        buyer_id: str,
        project_id: str,
        initial_amount: Decimal,
        note: str | None = None,
    ) -> Negotiation:
        """Start a negotiation with the buyer's initial offer."""
        project = await self.projects.get_project(project_id)
        if not project.seller_id:
            raise ProjectNotNegotiable(project_id, "project has no seller")
        if project.list_price <= 0:
            raise ProjectNotNegotiable(project_id, "project has no list price")
        if project.seller_id == buyer_id:
            raise SelfNegotiation()

        async with open_locks.hold(f"{buyer_id}:{project.project_id}"):
            existing_id = await self.registry.active_for(buyer_id, project.project_id)
            if existing_id is not None:
                await self._clear_stale_index(existing_id)

            now = self.clock()
            negotiation = Negotiation(
                id=uuid.uuid4(),
                project_id=project.project_id,
                buyer_id=buyer_id,
                seller_id=project.seller_id,
                project_title=project.title,
                list_price=project.list_price,
                floor_price=self.policy.floor_for(project.list_price, project.minimum_price),
                status=NegotiationStatus.ACTIVE.value,
                created_at=now,
                last_activity_at=now,
                expires_at=now + self.policy.negotiation_ttl,
                offers=[],
            )
            self.ledger.append(
                negotiation,
                LedgerEntry(
                    kind=OfferKind.INITIAL,
                    party=Party.BUYER,
                    actor_id=buyer_id,
                    amount=initial_amount,
                    note=note,
                ),
            )

            try:
                self.db.add(negotiation)
                await self.db.flush()
                self.registry.claim(negotiation, now)
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                log.warning(
                    f"Lost open race for project {project.project_id}",
                    buyer_id=buyer_id,
                )
                raise DuplicateActiveNegotiation()

        log.info(
            f"Negotiation {negotiation.id} opened",
            project_id=project.project_id,
            buyer_id=buyer_id,
            amount=str(negotiation.current_offer.amount),
        )
        return negotiation

    async def _clear_stale_index(self, negotiation_id: uuid.UUID) -> None:
        """Refuse the open unless the indexed negotiation is no longer live."""
        async with negotiation_locks.hold(_lock_key(negotiation_id)):
            existing = await self._load(negotiation_id)
            if existing.is_active and not existing.has_lapsed(self.clock()):
                raise DuplicateActiveNegotiation(str(existing.id))
            if existing.is_active:
                await self._expire(existing)
            else:
                # Terminal negotiation still indexed; drop the orphan row
                async with self._transaction(existing):
                    await self.registry.release(existing)

    # ─── Moves ───────────────────────────────────────

    async def counter(
        self,
        negotiation_id,
        actor_id: str,
        amount: Decimal,
        note: str | None = None,
        expected_sequence: int | None = None,
    ) -> Negotiation:
        async with negotiation_locks.hold(_lock_key(negotiation_id)):
            negotiation = await self._load_active(negotiation_id, actor_id)
            party = negotiation.party_of(actor_id)
            async with self._transaction(negotiation):
                self.ledger.append(
                    negotiation,
                    LedgerEntry(
                        kind=OfferKind.COUNTER,
                        party=party,
                        actor_id=actor_id,
                        amount=amount,
                        note=note,
                    ),
                    expected_sequence=expected_sequence,
                )

        log.info(
            f"Counter offer on negotiation {negotiation.id}",
            party=party.value,
            amount=str(negotiation.current_offer.amount),
        )
        return negotiation

    async def accept(
        self,
        negotiation_id,
        actor_id: str,
        expected_sequence: int | None = None,
    ) -> tuple[Negotiation, DiscountCode]:
        """Accept the standing offer and issue its discount code."""
        async with negotiation_locks.hold(_lock_key(negotiation_id)):
            negotiation = await self._load_active(negotiation_id, actor_id)
            party = negotiation.party_of(actor_id)
            async with self._transaction(negotiation):
                standing = negotiation.current_offer
                self.ledger.append(
                    negotiation,
                    LedgerEntry(kind=OfferKind.ACCEPT, party=party, actor_id=actor_id),
                    expected_sequence=expected_sequence,
                )
                negotiation.final_price = standing.amount
                self._close(negotiation, NegotiationStatus.ACCEPTED, actor_id)
                await self.registry.release(negotiation)
                discount_code = await self.issuer.issue(negotiation)

        log.info(
            f"Negotiation {negotiation.id} accepted",
            party=party.value,
            final_price=str(negotiation.final_price),
        )
        return negotiation, discount_code

    async def reject(
        self,
        negotiation_id,
        actor_id: str,
        reason: str | None = None,
        expected_sequence: int | None = None,
    ) -> Negotiation:
        return await self._finish(
            negotiation_id,
            actor_id,
            OfferKind.REJECT,
            NegotiationStatus.REJECTED,
            reason,
            expected_sequence,
        )

    async def cancel(
        self,
        negotiation_id,
        actor_id: str,
        reason: str | None = None,
        expected_sequence: int | None = None,
    ) -> Negotiation:
        return await self._finish(
            negotiation_id,
            actor_id,
            OfferKind.CANCEL,
            NegotiationStatus.CANCELLED,
            reason,
            expected_sequence,
        )

    async def _finish(
        self,
        negotiation_id,
        actor_id: str,
        kind: OfferKind,
        status: NegotiationStatus,
        reason: str | None,
        expected_sequence: int | None,
    ) -> Negotiation:
        async with negotiation_locks.hold(_lock_key(negotiation_id)):
            negotiation = await self._load_active(negotiation_id, actor_id)
            party = negotiation.party_of(actor_id)
            async with self._transaction(negotiation):
                self.ledger.append(
                    negotiation,
                    LedgerEntry(kind=kind, party=party, actor_id=actor_id, note=reason),
                    expected_sequence=expected_sequence,
                )
                self._close(negotiation, status, actor_id)
                await self.registry.release(negotiation)

        log.info(f"Negotiation {negotiation.id} {status.value}", party=party.value)
        return negotiation

    # ─── Reads ───────────────────────────────────────

    async def get(self, negotiation_id, actor_id: str) -> Negotiation:
        """Load a negotiation for one of its parties, expiring it if due."""
        negotiation = await self._load(negotiation_id)
        if negotiation.party_of(actor_id) is None:
            raise NotAParticipant()
        return await self.refresh(negotiation.id)

    async def refresh(self, negotiation_id) -> Negotiation:
        """Apply lazy expiry and return the current state."""
        async with negotiation_locks.hold(_lock_key(negotiation_id)):
            negotiation = await self._load(negotiation_id)
            if negotiation.has_lapsed(self.clock()):
                await self._expire(negotiation)
        return negotiation

    async def list_for_user(
        self,
        user_id: str,
        role: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> list[Negotiation]:
        """Dashboard listing with lapsed negotiations already expired.

        Lapsed rows are expired before the paged query so status filters and
        page sizes see their final state.
        """
        for negotiation_id in await self.registry.lapsed_for_user(user_id, self.clock(), role):
            try:
                await self.refresh(negotiation_id)
            except ConcurrentModification:
                # Another writer closed it first; the query below sees its state
                continue
        return await self.registry.list_for_user(user_id, role, status, page, limit)

    async def get_discount_code(self, negotiation: Negotiation) -> DiscountCode | None:
        return await self.issuer.get_for_negotiation(negotiation)

    async def report(self, negotiation_id, actor_id: str, reason: str) -> NegotiationReport:
        """Flag a negotiation for moderation. Once per participant."""
        negotiation = await self._load(negotiation_id)
        if negotiation.party_of(actor_id) is None:
            raise NotAParticipant()

        result = await self.db.execute(
            select(NegotiationReport.id).where(
                NegotiationReport.negotiation_id == negotiation.id,
                NegotiationReport.reporter_id == actor_id,
            )
        )
        if result.scalar_one_or_none() is not None:
            raise AlreadyReported()

        report = NegotiationReport(
            negotiation_id=negotiation.id,
            reporter_id=actor_id,
            reason=reason,
            created_at=self.clock(),
        )
        self.db.add(report)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyReported()

        log.warning(f"Negotiation {negotiation.id} reported", reporter_id=actor_id)
        return report

    # ─── Internals ───────────────────────────────────

    async def _load(self, negotiation_id) -> Negotiation:
        key = parse_negotiation_id(negotiation_id)
        result = await self.db.execute(
            select(Negotiation)
            .where(Negotiation.id == key)
            .execution_options(populate_existing=True)
        )
        negotiation = result.scalar_one_or_none()
        if not negotiation:
            raise NegotiationNotFound(str(negotiation_id))
        return negotiation

    async def _load_active(self, negotiation_id, actor_id: str) -> Negotiation:
        """Load for a mutation: participant, expiry and status checks."""
        negotiation = await self._load(negotiation_id)
        if negotiation.party_of(actor_id) is None:
            raise NotAParticipant()
        if negotiation.has_lapsed(self.clock()):
            await self._expire(negotiation)
            raise NegotiationExpired(str(negotiation.id))
        if negotiation.status == NegotiationStatus.EXPIRED.value:
            raise NegotiationExpired(str(negotiation.id))
        if not negotiation.is_active:
            raise NegotiationNotActive(str(negotiation.id), negotiation.status)
        return negotiation

    async def _expire(self, negotiation: Negotiation) -> None:
        async with self._transaction(negotiation):
            self._close(negotiation, NegotiationStatus.EXPIRED, None)
            await self.registry.release(negotiation)
        log.info(f"Negotiation {negotiation.id} expired")

    def _close(self, negotiation: Negotiation, status: NegotiationStatus, actor_id: str | None) -> None:
        negotiation.status = status.value
        negotiation.closed_at = self.clock()
        negotiation.closed_by = actor_id

    @asynccontextmanager
    async def _transaction(self, negotiation: Negotiation):
        """Commit the block's changes; version conflicts become 409s."""
        # Rollback expires the instance, so keep the id readable
        negotiation_id = str(negotiation.id)
        try:
            yield
            await self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            await self.db.rollback()
            log.warning(f"Concurrent write on negotiation {negotiation_id}: {type(e).__name__}")
            raise ConcurrentModification("Negotiation", negotiation_id)
        except SQLAlchemyError:
            await self.db.rollback()
            raise
