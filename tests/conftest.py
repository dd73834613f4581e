# tests/conftest.py

import os

os.environ["APP_ENV"] = "testing"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from nego_engine.core.exceptions import ProjectNotFound
from nego_engine.db import models  # noqa: F401
from nego_engine.db.base import Base
from nego_engine.db.models.negotiation import Negotiation
from nego_engine.negotiation.policy import NegotiationPolicy
from nego_engine.negotiation.projects import ProjectLookup, ProjectSnapshot
from nego_engine.negotiation.registry import NegotiationRegistry
from nego_engine.negotiation.service import NegotiationService

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

BUYER = "buyer-1"
SELLER = "seller-1"
STRANGER = "user-99"
PROJECT = "proj-1"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProjectLookup(ProjectLookup):
    """In-memory catalog."""

    def __init__(self):
        self.projects: dict[str, ProjectSnapshot] = {}

    def add(self, project_id, list_price, seller_id, minimum_price=None, title=None):
        self.projects[project_id] = ProjectSnapshot(
            project_id=project_id,
            list_price=Decimal(list_price),
            seller_id=seller_id,
            title=title or project_id,
            minimum_price=Decimal(minimum_price) if minimum_price is not None else None,
        )

    async def get_project(self, project_id: str) -> ProjectSnapshot:
        if project_id not in self.projects:
            raise ProjectNotFound(project_id)
        return self.projects[project_id]


# --- Database Setup (one SQLite file per test) ---

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'nego_engine.db'}",
        poolclass=NullPool,
        # Writers from concurrent sessions wait on the file lock instead of failing
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# --- Domain Fixtures ---

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    return NegotiationPolicy()


@pytest.fixture
def projects():
    lookup = FakeProjectLookup()
    lookup.add(PROJECT, "1000", SELLER, title="Portfolio site")
    lookup.add("proj-2", "2500", "seller-2")
    lookup.add("proj-min", "1000", SELLER, minimum_price="850")
    lookup.add("proj-unlisted", "500", None)
    return lookup


@pytest.fixture
def make_service(projects, policy, clock):
    """Build a NegotiationService bound to the given session."""

    def _make(session, **overrides):
        return NegotiationService(
            session,
            overrides.get("projects", projects),
            policy=overrides.get("policy", policy),
            clock=overrides.get("clock", clock),
        )

    return _make


@pytest.fixture
def service(db, make_service):
    return make_service(db)


@pytest.fixture
def second_worker_bumps_version(monkeypatch, session_factory):
    """Make another worker commit a write between a service's load and commit.

    The bump lands when the service releases the registry row, after its
    keyed lock is held and the row is loaded, so only the version column can
    catch the conflict.
    """
    original = NegotiationRegistry.release

    async def release(self, negotiation):
        negotiations = Negotiation.__table__
        async with session_factory() as other:
            await other.execute(
                update(negotiations)
                .where(negotiations.c.id == negotiation.id)
                .values(version=negotiations.c.version + 1)
            )
            await other.commit()
        await original(self, negotiation)

    monkeypatch.setattr(NegotiationRegistry, "release", release)
