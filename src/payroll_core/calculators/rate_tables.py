"""Statutory rate table resolution with organization and system-default fallback."""

from __future__ import annotations

from datetime import date
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.calculators.types import DeductionKind, RateBracket, RateTable
from payroll_core.errors import ConfigurationError
from payroll_core.models import StatutoryRateTable


class RateTableNotFoundError(ConfigurationError):
    """Raised when neither the organization nor the system default has a table."""

    def __init__(self, organization_id: UUID, kind: DeductionKind, as_of_date: date):
        self.organization_id = organization_id
        self.kind = kind
        self.as_of_date = as_of_date
        super().__init__(
            f"No {kind.value} rate table for organization {organization_id} "
            f"or system default effective {as_of_date}",
            organization_id=organization_id,
            kind=kind.value,
            as_of_date=as_of_date,
        )


class RateTableProvider(Protocol):
    async def get_rate_table(
        self, organization_id: UUID, kind: DeductionKind, as_of_date: date
    ) -> RateTable: ...


def _latest_effective(tables: list[RateTable], as_of_date: date) -> RateTable | None:
    candidates = [t for t in tables if t.is_effective_on(as_of_date)]
    if not candidates:
        return None
    return max(candidates, key=lambda t: t.effective_start or date.min)


class InMemoryRateTableProvider:
    """Rate tables held in memory.

    Resolution order:
    1. Organization table effective on the date (latest effective_start wins)
    2. System default table (organization_id None) effective on the date
    """

    def __init__(self, tables: list[RateTable] | None = None):
        self._tables: list[RateTable] = list(tables or [])

    def add(self, table: RateTable) -> None:
        self._tables.append(table)

    async def get_rate_table(
        self, organization_id: UUID, kind: DeductionKind, as_of_date: date
    ) -> RateTable:
        of_kind = [t for t in self._tables if t.kind == kind]

        table = _latest_effective(
            [t for t in of_kind if t.organization_id == organization_id], as_of_date
        )
        if table is None:
            table = _latest_effective(
                [t for t in of_kind if t.organization_id is None], as_of_date
            )
        if table is None:
            raise RateTableNotFoundError(organization_id, kind, as_of_date)
        return table


class SqlRateTableProvider:
    """Reads rate tables from the statutory_rate_table table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_rate_table(
        self, organization_id: UUID, kind: DeductionKind, as_of_date: date
    ) -> RateTable:
        async with self.session_factory() as session:
            row = await self._find(session, organization_id, kind, as_of_date)
            if row is None:
                row = await self._find(session, None, kind, as_of_date)

        if row is None:
            raise RateTableNotFoundError(organization_id, kind, as_of_date)

        return self._to_rate_table(row)

    async def _find(
        self,
        session: AsyncSession,
        organization_id: UUID | None,
        kind: DeductionKind,
        as_of_date: date,
    ) -> StatutoryRateTable | None:
        owner = (
            StatutoryRateTable.organization_id.is_(None)
            if organization_id is None
            else StatutoryRateTable.organization_id == organization_id
        )
        result = await session.execute(
            select(StatutoryRateTable)
            .where(
                owner,
                StatutoryRateTable.kind == kind.value,
                StatutoryRateTable.effective_start <= as_of_date,
                (
                    StatutoryRateTable.effective_end.is_(None)
                    | (StatutoryRateTable.effective_end >= as_of_date)
                ),
            )
            .order_by(StatutoryRateTable.effective_start.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_rate_table(row: StatutoryRateTable) -> RateTable:
        return RateTable(
            kind=DeductionKind(row.kind),
            brackets=tuple(RateBracket.from_payload(b) for b in row.brackets_json),
            organization_id=row.organization_id,
            effective_start=row.effective_start,
            effective_end=row.effective_end,
            salary_cap=row.salary_cap,
            max_contribution=row.max_contribution,
        )
