"""Pytest fixtures for payroll core tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from payroll_core.api.app import create_app
from payroll_core.calculators.rate_tables import InMemoryRateTableProvider
from payroll_core.calculators.types import DeductionKind, RateBracket, RateTable, RateTableSet
from payroll_core.collaborators import (
    Capability,
    CompensationRecord,
    PayFrequency,
    StaticAuthorizationChecker,
    StaticCompensationLookup,
    StaticHolidayCalendar,
    StaticLateDeductionPolicyLookup,
    StaticTimesheetLookup,
)
from payroll_core.config import Settings
from payroll_core.container import ServiceContainer, build_container
from payroll_core.database import create_schema, create_session_factory

# In-memory SQLite shared across sessions through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MARCH_START = date(2026, 3, 1)
APRIL_START = date(2026, 4, 1)


def build_rate_tables() -> RateTableSet:
    """System default statutory tables used across the tests.

    Gross 45,000: social 2,025.00, health 1,125.00, housing 100.00 (capped),
    taxable 41,750.00, tax 3,558.40, total 6,808.40.
    """
    return RateTableSet(
        social_insurance=RateTable(
            kind=DeductionKind.SOCIAL_INSURANCE,
            brackets=(RateBracket(Decimal("0"), None, Decimal("0.045")),),
        ),
        health_insurance=RateTable(
            kind=DeductionKind.HEALTH_INSURANCE,
            brackets=(RateBracket(Decimal("0"), None, Decimal("0.025")),),
        ),
        housing_fund=RateTable(
            kind=DeductionKind.HOUSING_FUND,
            brackets=(RateBracket(Decimal("0"), None, Decimal("0.02")),),
            max_contribution=Decimal("100"),
        ),
        income_tax=RateTable(
            kind=DeductionKind.INCOME_TAX,
            brackets=(
                RateBracket(Decimal("0"), Decimal("20833"), Decimal("0")),
                RateBracket(Decimal("20833"), Decimal("33333"), Decimal("0.15")),
                RateBracket(
                    Decimal("33333"), Decimal("66667"), Decimal("0.20"), Decimal("1875")
                ),
                RateBracket(Decimal("66667"), None, Decimal("0.25"), Decimal("8541.80")),
            ),
        ),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        operation_timeout_seconds=10.0,
        standard_monthly_hours=Decimal("160"),
        overtime_rate=Decimal("1.25"),
        bulk_max_concurrency=1,
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def org_id() -> UUID:
    return uuid4()


@pytest.fixture
def employee_id() -> UUID:
    return uuid4()


@pytest.fixture
def admin_id() -> UUID:
    """User holding every capability."""
    return uuid4()


@pytest.fixture
def clerk_id() -> UUID:
    """User holding no capability."""
    return uuid4()


@pytest.fixture
def rate_table_set() -> RateTableSet:
    return build_rate_tables()


@pytest.fixture
def rate_tables(rate_table_set: RateTableSet) -> InMemoryRateTableProvider:
    tables = rate_table_set
    return InMemoryRateTableProvider(
        [
            tables.social_insurance,
            tables.health_insurance,
            tables.housing_fund,
            tables.income_tax,
        ]
    )


@pytest.fixture
def compensation(employee_id: UUID) -> StaticCompensationLookup:
    lookup = StaticCompensationLookup()
    lookup.set(
        CompensationRecord(
            employee_id=employee_id,
            base_salary=Decimal("45000"),
            pay_frequency=PayFrequency.MONTHLY,
        )
    )
    return lookup


@pytest.fixture
def authorization(admin_id: UUID) -> StaticAuthorizationChecker:
    checker = StaticAuthorizationChecker()
    checker.grant(admin_id, list(Capability))
    return checker


@pytest.fixture
def holidays() -> StaticHolidayCalendar:
    return StaticHolidayCalendar()


@pytest.fixture
def timesheets() -> StaticTimesheetLookup:
    return StaticTimesheetLookup()



@pytest.fixture
def late_policies() -> StaticLateDeductionPolicyLookup:
    return StaticLateDeductionPolicyLookup()


@pytest.fixture
def container(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    compensation: StaticCompensationLookup,
    authorization: StaticAuthorizationChecker,
    holidays: StaticHolidayCalendar,
    timesheets: StaticTimesheetLookup,
    rate_tables: InMemoryRateTableProvider,
    late_policies: StaticLateDeductionPolicyLookup,
) -> ServiceContainer:
    return build_container(
        settings,
        session_factory,
        compensation=compensation,
        authorization=authorization,
        holidays=holidays,
        timesheets=timesheets,
        rate_tables=rate_tables,
        late_policies=late_policies,
    )


class HookedCompensationLookup:
    """Delegates to another lookup, running a one-shot callback before the next read.

    Compensation is read first while a payroll is computed, outside any
    transaction, so the callback lands between a run's reads and its write.
    """

    def __init__(self, inner: StaticCompensationLookup):
        self.inner = inner
        self.before_next_read: Callable[[], Awaitable[object]] | None = None

    async def get_compensation(self, employee_id: UUID, as_of_date: date):
        hook, self.before_next_read = self.before_next_read, None
        if hook is not None:
            await hook()
        return await self.inner.get_compensation(employee_id, as_of_date)


@pytest.fixture
def hooked_compensation(compensation: StaticCompensationLookup) -> HookedCompensationLookup:
    return HookedCompensationLookup(compensation)


@pytest.fixture
def hooked_container(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    hooked_compensation: HookedCompensationLookup,
    authorization: StaticAuthorizationChecker,
    rate_tables: InMemoryRateTableProvider,
) -> ServiceContainer:
    """A container over the same database whose compensation reads can be hooked."""
    return build_container(
        settings,
        session_factory,
        compensation=hooked_compensation,
        authorization=authorization,
        rate_tables=rate_tables,
    )


@pytest_asyncio.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app using the test container."""
    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def process_march(container: ServiceContainer, employee_id: UUID, org_id: UUID, admin_id: UUID):
    """Process a March payroll for the default employee."""

    async def _process(**kwargs):
        return await container.payrolls.process_payroll(
            employee_id=kwargs.pop("employee_id", employee_id),
            organization_id=org_id,
            period_start=kwargs.pop("period_start", MARCH_START),
            period_end=kwargs.pop("period_end", APRIL_START),
            actor_user_id=kwargs.pop("actor_user_id", admin_id),
            **kwargs,
        )

    return _process
