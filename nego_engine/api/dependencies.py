"""FastAPI dependencies"""

from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.config import settings
from nego_engine.db.session import get_db
from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.security import decode_access_token
from nego_engine.core.exceptions import AuthenticationError
from nego_engine.negotiation.policy import NegotiationPolicy
from nego_engine.negotiation.projects import HttpProjectLookup, ProjectLookup, SqlProjectLookup
from nego_engine.negotiation.redemption import RedemptionGuard
from nego_engine.negotiation.service import NegotiationService


async def get_token_claims(
    authorization: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Decode the bearer token into its claims."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    try:
        payload = decode_access_token(parts[1])
        if not payload.get("sub"):
            raise AuthenticationError("Invalid token payload")
        return payload
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


async def get_current_user_id(
    claims: Annotated[dict[str, Any], Depends(get_token_claims)],
) -> str:
    """Get current user ID from JWT token."""
    return str(claims["sub"])


def get_clock() -> Clock:
    return utcnow


@lru_cache
def get_policy() -> NegotiationPolicy:
    return NegotiationPolicy.from_settings()


def get_project_lookup(db: Annotated[AsyncSession, Depends(get_db)]) -> ProjectLookup:
    """Catalog service when configured, else the local mirror table."""
    if settings.get("PROJECT_SERVICE_URL"):
        return HttpProjectLookup(
            settings.PROJECT_SERVICE_URL,
            timeout=settings.get("PROJECT_SERVICE_TIMEOUT", 10),
        )
    return SqlProjectLookup(db)


def get_negotiation_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    projects: Annotated[ProjectLookup, Depends(get_project_lookup)],
    policy: Annotated[NegotiationPolicy, Depends(get_policy)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> NegotiationService:
    return NegotiationService(db, projects, policy=policy, clock=clock)


def get_redemption_guard(
    db: Annotated[AsyncSession, Depends(get_db)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> RedemptionGuard:
    return RedemptionGuard(db, clock=clock)


# Type aliases for dependencies
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
Negotiations = Annotated[NegotiationService, Depends(get_negotiation_service)]
Redemptions = Annotated[RedemptionGuard, Depends(get_redemption_guard)]
CurrentClock = Annotated[Clock, Depends(get_clock)]
Policy = Annotated[NegotiationPolicy, Depends(get_policy)]
