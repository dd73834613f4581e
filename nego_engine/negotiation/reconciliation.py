"""Repair job: rebuild derived state from negotiation rows and their ledgers.

Negotiation status and the ledger are authoritative. The registry index and
the discount codes are derived from them and can be regenerated.
"""

from dataclasses import dataclass, field
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.logging import log
from nego_engine.db.models.discount_code import DiscountCode
from nego_engine.db.models.negotiation import Negotiation, NegotiationStatus
from nego_engine.negotiation.code_issuer import CodeIssuer
from nego_engine.negotiation.policy import NegotiationPolicy
from nego_engine.negotiation.registry import NegotiationRegistry


@dataclass
class ReconciliationReport:
    orphans_removed: int = 0
    index_restored: int = 0
    codes_issued: int = 0
    conflicts: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.orphans_removed or self.index_restored or self.codes_issued)


async def reconcile(
    db: AsyncSession,
    policy: NegotiationPolicy | None = None,
    clock: Clock = utcnow,
) -> ReconciliationReport:
    """Bring the index and codes back in line with negotiation state."""
    report = ReconciliationReport()
    registry = NegotiationRegistry(db)
    issuer = CodeIssuer(db, policy or NegotiationPolicy.from_settings(), clock)

    # Index rows pointing at anything but an active negotiation
    active_ids = await registry.negotiation_ids_active()
    indexed: dict[tuple[str, str], uuid.UUID] = {}
    for row in await registry.index_rows():
        if row.negotiation_id not in active_ids:
            log.warning(f"Removing orphaned index row for negotiation {row.negotiation_id}")
            await db.delete(row)
            report.orphans_removed += 1
        else:
            indexed[(row.buyer_id, row.project_id)] = row.negotiation_id
    await db.flush()

    # Active negotiations missing from the index
    indexed_ids = set(indexed.values())
    result = await db.execute(
        select(Negotiation)
        .where(Negotiation.status == NegotiationStatus.ACTIVE.value)
        .order_by(Negotiation.created_at)
    )
    now = clock()
    for negotiation in result.scalars().all():
        if negotiation.id in indexed_ids:
            continue
        pair = (negotiation.buyer_id, negotiation.project_id)
        if pair in indexed:
            # Two active negotiations for one pair; needs a human decision
            log.error(
                f"Negotiation {negotiation.id} duplicates active negotiation {indexed[pair]}",
                buyer_id=negotiation.buyer_id,
                project_id=negotiation.project_id,
            )
            report.conflicts.append(str(negotiation.id))
            continue
        registry.claim(negotiation, now)
        indexed[pair] = negotiation.id
        report.index_restored += 1

    # Accepted negotiations that never got their code
    result = await db.execute(
        select(Negotiation)
        .outerjoin(DiscountCode, DiscountCode.negotiation_id == Negotiation.id)
        .where(
            Negotiation.status == NegotiationStatus.ACCEPTED.value,
            DiscountCode.id.is_(None),
        )
    )
    for negotiation in result.scalars().all():
        if negotiation.final_price is None:
            negotiation.final_price = negotiation.current_offer.amount
        await issuer.issue(negotiation)
        report.codes_issued += 1

    await db.commit()

    log.info(
        "Reconciliation finished",
        orphans_removed=report.orphans_removed,
        index_restored=report.index_restored,
        codes_issued=report.codes_issued,
        conflicts=len(report.conflicts),
    )
    return report
