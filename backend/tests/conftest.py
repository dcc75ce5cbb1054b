"""Pytest configuration and fixtures for AgriTrace tests.

Every test gets its own SQLite file (aiosqlite) so sessions opened by
the app, by fixtures and by concurrency tests all see the same committed
state and the real conditional UPDATEs run against a real database.
"""

import os

os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("DEBUG", "false")

from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import agritrace.models  # noqa: F401
from agritrace.auth.jwt import create_access_token
from agritrace.database import Base, get_db
from agritrace.main import app
from agritrace.models.identity import Identity, IdentityRole
from agritrace.services import registry


# ── Test Database Setup ──────────────────────────────────────────

async def _make_engine(url: str, immediate: bool = False):
    engine = create_async_engine(url, echo=False)

    if immediate:
        # Take the write lock at BEGIN so concurrent sessions queue up
        # instead of tripping SQLite's read-to-write upgrade deadlock.
        @event.listens_for(engine.sync_engine, "connect")
        def _no_implicit_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Per-test SQLite database file."""
    engine = await _make_engine(f"sqlite+aiosqlite:///{tmp_path / 'agritrace.db'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def immediate_engine(tmp_path):
    """Like test_engine, but every transaction starts with BEGIN IMMEDIATE."""
    engine = await _make_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'agritrace-concurrent.db'}", immediate=True,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests and fixture data."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client; each request gets its own session that commits like get_db."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

async def make_identity(
    db: AsyncSession,
    role: IdentityRole,
    name: str,
    rating: float = 0.0,
) -> Identity:
    identity = Identity(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        role=role,
        rating=rating,
        rating_count=1 if rating else 0,
        is_active=True,
        is_approved=True,
    )
    db.add(identity)
    await db.flush()
    return identity


@pytest_asyncio.fixture
async def farmer(db_session: AsyncSession) -> Identity:
    identity = await make_identity(db_session, IdentityRole.FARMER, "Ramesh Patel")
    await db_session.commit()
    return identity


@pytest_asyncio.fixture
async def distributor(db_session: AsyncSession) -> Identity:
    identity = await make_identity(db_session, IdentityRole.DISTRIBUTOR, "Mandi Traders")
    await db_session.commit()
    return identity


@pytest_asyncio.fixture
async def retailer(db_session: AsyncSession) -> Identity:
    identity = await make_identity(db_session, IdentityRole.RETAILER, "Fresh Mart")
    await db_session.commit()
    return identity


@pytest_asyncio.fixture
async def consumer(db_session: AsyncSession) -> Identity:
    identity = await make_identity(db_session, IdentityRole.CONSUMER, "Asha Rao")
    await db_session.commit()
    return identity


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Identity:
    identity = await make_identity(db_session, IdentityRole.ADMIN, "Ledger Admin")
    await db_session.commit()
    return identity


async def make_batch(db: AsyncSession, farmer: Identity, quantity: float = 1000, **kwargs):
    fields = {
        "farmer_id": farmer.id,
        "crop": "wheat",
        "variety": "Sharbati",
        "quantity": quantity,
        "unit": "kg",
        "expected_price": 25.0,
        "harvest_date": date(2024, 3, 1),
        "origin_coordinates": [77.2090, 28.6139],
        "origin_address": {"city": "Sehore", "state": "Madhya Pradesh"},
    }
    fields.update(kwargs)
    return await registry.create_batch(db, **fields)


@pytest_asyncio.fixture
async def batch(db_session: AsyncSession, farmer: Identity):
    """1000 kg of grade-A wheat owned by ``farmer``."""
    created = await make_batch(db_session, farmer)
    await db_session.commit()
    return created


def token_for(identity: Identity) -> str:
    return create_access_token(identity.id, identity.role.value)


def headers_for(identity: Identity) -> dict:
    return {"Authorization": f"Bearer {token_for(identity)}"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
