"""Admin routes: expiry sweep, reconciliation and code voiding"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import Field

from nego_engine.api.dependencies import CurrentClock, DBSession, Policy, Redemptions
from nego_engine.api.schemas import CamelModel, DiscountCodeResponse, code_to_response
from nego_engine.core.logging import log
from nego_engine.core.security import get_require_admin
from nego_engine.negotiation.reconciliation import reconcile
from nego_engine.tasks.expiry import sweep_expired

router = APIRouter()

# Admin dependency
RequireAdmin = Annotated[str, Depends(get_require_admin())]


# ─── Schemas ─────────────────────────────────────────

class SweepResponse(CamelModel):
    negotiations_expired: int
    codes_expired: int


class ReconcileResponse(CamelModel):
    orphans_removed: int
    index_restored: int
    codes_issued: int
    conflicts: list[str]


class VoidRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=255)


# ─── Maintenance ─────────────────────────────────────

@router.post("/negotiations/sweep", response_model=SweepResponse)
async def run_sweep(admin_id: RequireAdmin, db: DBSession, policy: Policy, clock: CurrentClock):
    """Expire lapsed negotiations and codes now instead of waiting for the sweeper."""
    log.info(f"Manual expiry sweep requested by {admin_id}")
    result = await sweep_expired(db, policy=policy, clock=clock)
    return SweepResponse(**result)


@router.post("/negotiations/reconcile", response_model=ReconcileResponse)
async def run_reconcile(admin_id: RequireAdmin, db: DBSession, policy: Policy, clock: CurrentClock):
    """Rebuild the active index and missing codes from negotiation state."""
    log.info(f"Reconciliation requested by {admin_id}")
    report = await reconcile(db, policy=policy, clock=clock)
    return ReconcileResponse(
        orphans_removed=report.orphans_removed,
        index_restored=report.index_restored,
        codes_issued=report.codes_issued,
        conflicts=report.conflicts,
    )


# ─── Discount codes ──────────────────────────────────

@router.post("/discount-codes/{code}/void", response_model=DiscountCodeResponse)
async def void_code(
    code: str,
    admin_id: RequireAdmin,
    guard: Redemptions,
    data: VoidRequest | None = None,
):
    """Refund/dispute hook: retire a code permanently."""
    discount_code = await guard.void(code, reason=data.reason if data else None)
    log.info(f"Discount code voided by {admin_id}", status=discount_code.status)
    return code_to_response(discount_code)
