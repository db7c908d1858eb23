"""
Test Configuration and Fixtures
================================

Shared pytest fixtures for price engine tests.

Database-backed tests run against an in-memory SQLite database (aiosqlite)
created fresh for every test. Partial unique indexes and check constraints
are created there as well, so invariant tests exercise the real schema.
"""

import os
from dataclasses import dataclass, field
from uuid import UUID, uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")

from price_engine.config.settings import Settings  # noqa: E402
from price_engine.db.models import Base, Product, Tenant  # noqa: E402
from price_engine.schemas.domain import PriceChangeEvent  # noqa: E402
from price_engine.services.price_mutator import PriceMutator  # noqa: E402


class RecordingChangeNotifier:
    """ChangeNotifier that keeps published events in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.events: list[PriceChangeEvent] = []
        self.fail = fail

    async def publish(self, event: PriceChangeEvent) -> None:
        if self.fail:
            raise ConnectionError("transport unavailable")
        self.events.append(event)


@dataclass
class Catalog:
    """Seeded tenants and products."""

    supplier_id: UUID
    other_supplier_id: UUID
    company_a_id: UUID
    company_b_id: UUID
    inactive_company_id: UUID
    product_id: UUID
    other_product_id: UUID
    inactive_product_id: UUID
    user_id: UUID = field(default_factory=uuid4)


@pytest.fixture
def settings():
    """Settings for tests, independent of any local .env file."""
    return Settings(
        _env_file=None,
        notifications_enabled=False,
        default_currency="USD",
        mutation_timeout_seconds=5.0,
    )


@pytest.fixture
async def engine():
    """Fresh in-memory database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory configured like the application's."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def catalog(session_factory) -> Catalog:
    """Two suppliers, three companies and three products."""
    supplier = Tenant(id=uuid4(), name="Cable Supply Co", type="supplier")
    other_supplier = Tenant(id=uuid4(), name="Other Supplier", type="supplier")
    company_a = Tenant(id=uuid4(), name="Acme Builders", type="company")
    company_b = Tenant(id=uuid4(), name="Beta Construction", type="company")
    inactive_company = Tenant(
        id=uuid4(), name="Closed Ltd", type="company", status="suspended", is_active=False
    )
    product = Product(id=uuid4(), supplier_id=supplier.id, name="Copper cable 3x2.5", sku="CC-325")
    other_product = Product(id=uuid4(), supplier_id=other_supplier.id, name="Steel pipe")
    inactive_product = Product(
        id=uuid4(), supplier_id=supplier.id, name="Discontinued cable", is_active=False
    )

    async with session_factory() as session:
        async with session.begin():
            session.add_all([supplier, other_supplier, company_a, company_b, inactive_company])
            await session.flush()
            session.add_all([product, other_product, inactive_product])

    return Catalog(
        supplier_id=supplier.id,
        other_supplier_id=other_supplier.id,
        company_a_id=company_a.id,
        company_b_id=company_b.id,
        inactive_company_id=inactive_company.id,
        product_id=product.id,
        other_product_id=other_product.id,
        inactive_product_id=inactive_product.id,
    )


@pytest.fixture
def notifier():
    return RecordingChangeNotifier()


@pytest.fixture
def mutator(session_factory, notifier, settings):
    """PriceMutator wired to the test database and a recording notifier."""
    return PriceMutator(session_factory, notifier, settings)
