"""Pytest configuration and fixtures for onboard tests.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool)
with the schema created from the models and the reference data seeded.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from onboard.auth.jwt import create_access_token
from onboard.database import Base, get_db
from onboard.main import app
from onboard.models import *  # noqa: F401,F403
from onboard.models.billing import Plan
from onboard.models.community import Community
from onboard.models.step_type import StepType
from onboard.models.wizard import Step, Wizard
from onboard.seed import seed_reference_data

COMMUNITY_ID = "community-1"
OTHER_COMMUNITY_ID = "community-2"
USER_ID = "user-1"
ADMIN_ID = "admin-1"


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session with reference data and two communities (no plan assigned)."""
    session_factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        await seed_reference_data(session)
        session.add(Community(id=COMMUNITY_ID, title="Test Community"))
        session.add(Community(id=OTHER_COMMUNITY_ID, title="Other Community"))
        await session.flush()

        yield session

        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Test client with get_db overridden to the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def step_types(db_session: AsyncSession) -> dict[str, StepType]:
    """Seeded step-type catalog keyed by name."""
    result = await db_session.execute(select(StepType))
    return {st.name: st for st in result.scalars().all()}


@pytest_asyncio.fixture
async def plans(db_session: AsyncSession) -> dict[str, Plan]:
    result = await db_session.execute(select(Plan))
    return {p.code: p for p in result.scalars().all()}


@pytest.fixture
def make_wizard(db_session: AsyncSession, step_types):
    """Factory: make_wizard([("content", True, "role-a"), ...]) → (wizard, steps).

    Each tuple is (step type name, is_mandatory, target_role_id).
    """

    async def _make(
        specs,
        community_id: str = COMMUNITY_ID,
        name: str = "Welcome",
        is_active: bool = True,
    ):
        wizard = Wizard(community_id=community_id, name=name, is_active=is_active)
        db_session.add(wizard)
        await db_session.flush()

        steps = []
        for order, (type_name, mandatory, role) in enumerate(specs):
            step = Step(
                wizard_id=wizard.id,
                step_type_id=step_types[type_name].id,
                step_order=order,
                config={},
                target_role_id=role,
                is_mandatory=mandatory,
            )
            db_session.add(step)
            steps.append(step)
        await db_session.flush()
        return wizard, steps

    return _make


# ── Auth Fixtures ────────────────────────────────────────────────

@pytest.fixture
def user_headers() -> dict:
    token = create_access_token(user_id=USER_ID, community_id=COMMUNITY_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token(
        user_id=ADMIN_ID, community_id=COMMUNITY_ID, is_admin=True
    )
    return {"Authorization": f"Bearer {token}"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
