"""
Shared test fixtures — in-memory SQLite async database + FastAPI TestClient.

Strategy:
1. Set DATABASE_URL to SQLite before anything loads
2. One StaticPool engine so every session sees the same in-memory database
3. Routers get our test session through a dependency override
"""
import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ── 1. Environment ──
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DEBUG"] = "false"
os.environ["AI_PROVIDER"] = "none"

# ── 2. Test engine (SQLite in-memory) ──
TEST_ENGINE = create_async_engine(
    "sqlite+aiosqlite://",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSession = async_sessionmaker(
    TEST_ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
)

# ── 3. Now import the app ──
from crossmap.database import get_session  # noqa: E402
from crossmap.main import app as fastapi_app  # noqa: E402
from crossmap.models import Base  # noqa: E402
from crossmap.services.catalog import seed_requirements  # noqa: E402
from crossmap.services.engine import MappingEngine  # noqa: E402
from crossmap.services.resolution_cache import ResolutionCache  # noqa: E402


async def _test_get_session() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        yield session


fastapi_app.dependency_overrides[get_session] = _test_get_session

TENANT = "tenant-a"


# ── Fixtures ──

@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create all tables before each test, drop after."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    fastapi_app.state.resolution_cache.invalidate_all()
    yield
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-Tenant-Id": TENANT}) as ac:
        yield ac


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        yield session


@pytest.fixture
def cache() -> ResolutionCache:
    return ResolutionCache(32)


@pytest_asyncio.fixture
async def engine(db: AsyncSession, cache: ResolutionCache) -> MappingEngine:
    return MappingEngine(db, cache=cache)


# ── Seed data helpers ──

async def add_framework(db: AsyncSession, fw_id: str, controls: list[tuple], name: str | None = None):
    """controls: (ref_id, title[, description[, category]])"""
    from crossmap.models.catalog import Control, Framework

    db.add(Framework(id=fw_id, name=name or fw_id))
    await db.flush()
    for row in controls:
        ref_id, title = row[0], row[1]
        description = row[2] if len(row) > 2 else None
        category = row[3] if len(row) > 3 else None
        db.add(Control(
            id=f"{fw_id}-{ref_id}", framework_id=fw_id, ref_id=ref_id,
            title=title, description=description, category=category,
        ))
    await db.flush()


@pytest_asyncio.fixture
async def seed_catalog(db: AsyncSession):
    """Three small frameworks with distinct vocabularies and the seven requirements."""
    await seed_requirements(db)
    await add_framework(db, "ISO27001", [
        ("A.5.1", "Policies for information security", "Security policy approved by management", "organizational"),
        ("A.5.15", "Access control", "Rules to control logical access", "organizational"),
        ("A.8.15", "Logging", "Event logs shall be produced and kept", "technological"),
    ], name="ISO/IEC 27001")
    await add_framework(db, "SOC2", [
        ("CC1.1", "Control environment integrity", "Commitment to integrity and ethical values", "organizational"),
        ("CC6.1", "Logical access security", "Logical access security software and infrastructure", "technological"),
    ], name="SOC 2")
    await add_framework(db, "GDPR", [
        ("ART5", "Principles relating to processing of personal data", "Lawfulness fairness transparency", "privacy"),
        ("ART32", "Security of processing", "Appropriate technical and organisational measures", "technological"),
    ], name="GDPR")
    await db.commit()
    return ["ISO27001", "SOC2", "GDPR"]


async def enable(engine: MappingEngine, *framework_ids: str, tenant_id: str = TENANT):
    for fw in framework_ids:
        await engine.set_framework_enabled(tenant_id, fw, True)
