"""Shared test infrastructure for the Rental Platform test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- make_tenant: factory for User + Unit + Tenancy
- make_admin: factory for ADMIN users
- make_invoice: factory for Invoice rows on a tenant's active tenancy
- make_intake_log: factory for PaymentIntakeLog rows in any status
- fake_notifier: AsyncMock standing in for the payment-received notifier
- build_client: HTTPX AsyncClient wired to a test FastAPI app
"""

import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from rental_platform.infra.database import Base

import rental_platform.domain.models  # noqa: F401

from rental_platform.domain.enums import IntakeStatus, InvoiceStatus, UserRole, UserStatus
from rental_platform.domain.models import Invoice, PaymentIntakeLog, Tenancy, Unit, User


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Tenant / admin factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_tenant(db_session):
    """Factory that creates a TENANT User with a Unit and an active Tenancy.

    Usage:
        tenant = await make_tenant(name="John Smith", unit_label="101")
    """
    async def _factory(
        name: str = "John Smith",
        email: str | None = None,
        building_name: str = "Maple Court",
        unit_label: str = "101",
        status: str = UserStatus.ACTIVE.value,
        tenancy_active: bool = True,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email or f"{uuid.uuid4().hex[:8]}@tenant.test",
            role=UserRole.TENANT.value,
            status=status,
        )
        db_session.add(user)

        unit = Unit(
            id=str(uuid.uuid4()),
            building_name=building_name,
            unit_label=unit_label,
        )
        db_session.add(unit)

        tenancy = Tenancy(
            id=str(uuid.uuid4()),
            user_id=user.id,
            unit_id=unit.id,
            start_date=date(2025, 9, 1),
            is_active=tenancy_active,
        )
        db_session.add(tenancy)

        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_admin(db_session):
    """Factory that creates an ADMIN User."""
    async def _factory(name: str = "Alex Admin", email: str = "admin@platform.test") -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email,
            role=UserRole.ADMIN.value,
            status=UserStatus.ACTIVE.value,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


# ---------------------------------------------------------------------------
# Invoice factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_invoice(db_session):
    """Factory that creates an Invoice on the tenant's first tenancy.

    Usage:
        invoice = await make_invoice(tenant, amount_cents=95000, period_month="2026-10")
    """
    async def _factory(
        tenant: User,
        amount_cents: int = 95000,
        period_month: str = "2026-10",
        due_date: date | None = None,
        status: str = InvoiceStatus.OPEN.value,
    ) -> Invoice:
        result = await db_session.execute(
            select(Tenancy).where(Tenancy.user_id == tenant.id).order_by(Tenancy.id).limit(1)
        )
        tenancy = result.scalar_one()
        year, month = (int(part) for part in period_month.split("-"))

        invoice = Invoice(
            id=str(uuid.uuid4()),
            unit_id=tenancy.unit_id,
            tenancy_id=tenancy.id,
            period_month=period_month,
            due_date=due_date or date(year, month, 1),
            amount_cents=amount_cents,
            status=status,
        )
        db_session.add(invoice)
        await db_session.flush()
        return invoice

    return _factory


# ---------------------------------------------------------------------------
# Intake log factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_intake_log(db_session):
    """Factory that creates a PaymentIntakeLog in the given status.

    Usage:
        log = await make_intake_log(status=IntakeStatus.MANUAL_REVIEW, amount_cents=90000)
    """
    async def _factory(
        status: IntakeStatus = IntakeStatus.MANUAL_REVIEW,
        sender_name: str | None = "John Smith",
        amount_cents: int | None = 95000,
        reference_number: str | None = None,
        raw_body: str = "John Smith sent you $950.00 by Interac e-Transfer. Reference: INT123456",
        **fields,
    ) -> PaymentIntakeLog:
        record = PaymentIntakeLog(
            id=str(uuid.uuid4()),
            received_at=datetime.now(timezone.utc),
            raw_subject="INTERAC e-Transfer",
            raw_body=raw_body,
            raw_from="notify@payments.interac.ca",
            raw_headers={},
            webhook_source="127.0.0.1",
            is_verified=False,
            sender_name=sender_name,
            amount_cents=amount_cents,
            reference_number=reference_number,
            status=status.value,
            reconciliation_note="seeded",
            **fields,
        )
        db_session.add(record)
        await db_session.flush()
        return record

    return _factory


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_notifier():
    """AsyncMock payment-received notifier; inspect ``await_args`` for the notice."""
    return AsyncMock(return_value=None)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def build_client(db_session):
    """Factory for an HTTPX AsyncClient on a fresh FastAPI app.

    Only the given routers are mounted, and ``get_db`` is bound to the test
    session. ``overrides`` maps further dependencies to replacements.

    Usage:
        async with build_client(router, overrides={get_field_extractor: lambda: extractor}) as client:
            resp = await client.post(...)
    """
    from fastapi import FastAPI
    from httpx import ASGITransport, AsyncClient

    from rental_platform.infra.database import get_db

    def _factory(*routers, overrides: dict | None = None) -> AsyncClient:
        test_app = FastAPI()
        for router in routers:
            test_app.include_router(router)

        async def _override_get_db():
            yield db_session

        test_app.dependency_overrides[get_db] = _override_get_db
        for dependency, replacement in (overrides or {}).items():
            test_app.dependency_overrides[dependency] = replacement

        return AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://testserver",
        )

    return _factory
