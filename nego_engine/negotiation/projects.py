"""Project lookup adapters.

The catalog owns projects; negotiations only need the list price and the
seller, read once when a negotiation opens.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nego_engine.core.exceptions import ExternalServiceError, ProjectNotFound
from nego_engine.core.logging import log
from nego_engine.db.models.project import Project
from nego_engine.negotiation.policy import to_money


@dataclass(frozen=True)
class ProjectSnapshot:
    project_id: str
    list_price: Decimal
    seller_id: str | None
    title: str | None = None
    minimum_price: Decimal | None = None


class ProjectLookup(ABC):
    """Read-only access to the catalog."""

    @abstractmethod
    async def get_project(self, project_id: str) -> ProjectSnapshot:
        """Return the project or raise ProjectNotFound."""


class SqlProjectLookup(ProjectLookup):
    """Reads the local catalog mirror table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_project(self, project_id: str) -> ProjectSnapshot:
        result = await self.db.execute(
            select(Project).where(Project.id == project_id, Project.is_active.is_(True))
        )
        project = result.scalar_one_or_none()
        if not project:
            raise ProjectNotFound(project_id)

        return ProjectSnapshot(
            project_id=project.id,
            list_price=to_money(project.price),
            seller_id=project.seller_id,
            title=project.title,
            minimum_price=(
                to_money(project.minimum_price) if project.minimum_price is not None else None
            ),
        )


class HttpProjectLookup(ProjectLookup):
    """Calls the catalog service: GET {base_url}/projects/{id}."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url)

    async def get_project(self, project_id: str) -> ProjectSnapshot:
        url = f"{self.base_url}/projects/{project_id}"
        try:
            resp = await self._get(url)
        except httpx.HTTPError as e:
            log.error(f"Catalog request failed for project {project_id}: {e}")
            raise ExternalServiceError("catalog", str(e))

        if resp.status_code == 404:
            raise ProjectNotFound(project_id)
        if resp.status_code >= 400:
            raise ExternalServiceError("catalog", f"HTTP {resp.status_code}")

        data = resp.json()
        # The catalog nests the payload under "project" on some versions
        data = data.get("project", data)
        seller = data.get("sellerId") or data.get("seller")
        if isinstance(seller, dict):
            seller = seller.get("id") or seller.get("_id")
        minimum = data.get("minimumPrice")

        try:
            list_price = to_money(str(data["price"]))
        except (KeyError, ArithmeticError) as e:
            raise ExternalServiceError("catalog", f"malformed project payload: {e}")

        return ProjectSnapshot(
            project_id=str(data.get("id") or data.get("_id") or project_id),
            list_price=list_price,
            seller_id=str(seller) if seller else None,
            title=data.get("title"),
            minimum_price=to_money(str(minimum)) if minimum is not None else None,
        )
