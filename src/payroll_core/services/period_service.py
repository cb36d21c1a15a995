"""Payroll period management: creation, closing and cancellation."""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.collaborators import AuthorizationChecker, Capability
from payroll_core.config import Settings
from payroll_core.database import run_in_transaction
from payroll_core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from payroll_core.models import PayrollPeriod, PayrollRun
from payroll_core.models.base import utcnow
from payroll_core.services.records import PayrollPeriodRecord
from payroll_core.services.state_machine import PayrollStatus

logger = logging.getLogger(__name__)


class PeriodStatus(str, Enum):
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Preference when several periods share a range (a cancelled one may be recreated)
_STATUS_PREFERENCE = {
    PeriodStatus.OPEN.value: 0,
    PeriodStatus.COMPLETED.value: 1,
    PeriodStatus.CANCELLED.value: 2,
}

FINAL_RUN_STATUSES = (PayrollStatus.RELEASED.value, PayrollStatus.VOIDED.value)


def _preferred(periods: list[PayrollPeriod]) -> PayrollPeriod | None:
    if not periods:
        return None
    return min(periods, key=lambda p: (_STATUS_PREFERENCE.get(p.status, 9), p.created_at))


def overlapping_periods_for_update(organization_id: UUID, start_date: date, end_date: date):
    """Lock every period of the organization that overlaps [start_date, end_date)."""
    return (
        select(PayrollPeriod)
        .where(
            PayrollPeriod.organization_id == organization_id,
            PayrollPeriod.start_date < end_date,
            PayrollPeriod.end_date > start_date,
        )
        .order_by(PayrollPeriod.start_date)
        .with_for_update()
    )


class PayrollPeriodService:
    """Organization-wide pay periods.

    Closing a period never transitions runs; it is accepted only once every
    run inside the range is RELEASED or VOIDED.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationChecker,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.authorization = authorization
        self.settings = settings

    async def create_period(
        self,
        organization_id: UUID,
        start_date: date,
        end_date: date,
        pay_date: date,
    ) -> PayrollPeriodRecord:
        """Create an OPEN period; [start_date, end_date) must not overlap another."""
        if start_date >= end_date:
            raise ValidationError(
                f"Period start {start_date} must be before end {end_date}",
                start_date=start_date,
                end_date=end_date,
            )
        if pay_date < end_date:
            raise ValidationError(
                f"Pay date {pay_date} must not precede period end {end_date}",
                pay_date=pay_date,
            )

        async def operation(session: AsyncSession) -> PayrollPeriodRecord:
            overlapping = await session.scalar(
                select(func.count())
                .select_from(PayrollPeriod)
                .where(
                    PayrollPeriod.organization_id == organization_id,
                    PayrollPeriod.status != PeriodStatus.CANCELLED.value,
                    PayrollPeriod.start_date < end_date,
                    PayrollPeriod.end_date > start_date,
                )
            )
            if overlapping:
                raise ConflictError(
                    f"Period {start_date}..{end_date} overlaps an existing period",
                    organization_id=organization_id,
                )

            period = PayrollPeriod(
                organization_id=organization_id,
                start_date=start_date,
                end_date=end_date,
                pay_date=pay_date,
                status=PeriodStatus.OPEN.value,
            )
            session.add(period)
            await session.flush()
            return PayrollPeriodRecord.from_model(period)

        record = await self._run(operation)
        logger.info(
            "Created payroll period %s for organization %s (%s..%s)",
            record.period_id,
            organization_id,
            start_date,
            end_date,
        )
        return record

    async def close_period(
        self,
        organization_id: UUID,
        start_date: date,
        end_date: date,
        actor_user_id: UUID,
    ) -> PayrollPeriodRecord:
        """Mark a period COMPLETED once all of its runs are final."""
        if not await self.authorization.has_capability(actor_user_id, Capability.CLOSE_PERIOD):
            raise AuthorizationError(actor_user_id, Capability.CLOSE_PERIOD.value)

        async def operation(session: AsyncSession) -> PayrollPeriodRecord:
            period = await self._load_by_range(session, organization_id, start_date, end_date)
            if period is None:
                raise NotFoundError(
                    "PayrollPeriod", f"{organization_id}:{start_date}..{end_date}"
                )
            self._require_open(period, "close")

            open_runs = await session.scalar(
                select(func.count())
                .select_from(PayrollRun)
                .where(
                    PayrollRun.organization_id == organization_id,
                    or_(
                        PayrollRun.period_id == period.period_id,
                        (PayrollRun.period_start >= period.start_date)
                        & (PayrollRun.period_end <= period.end_date),
                    ),
                    PayrollRun.status.not_in(FINAL_RUN_STATUSES),
                )
            )
            if open_runs:
                raise ConflictError(
                    f"{open_runs} payroll run(s) in the period are not released or voided",
                    period_id=period.period_id,
                    open_runs=open_runs,
                )

            return await self._transition(
                session, period, PeriodStatus.COMPLETED, actor_user_id
            )

        record = await self._run(operation)
        logger.info("Closed payroll period %s by %s", record.period_id, actor_user_id)
        return record

    async def cancel_period(self, period_id: UUID, actor_user_id: UUID) -> PayrollPeriodRecord:
        """Cancel an OPEN period."""
        if not await self.authorization.has_capability(actor_user_id, Capability.CLOSE_PERIOD):
            raise AuthorizationError(actor_user_id, Capability.CLOSE_PERIOD.value)

        async def operation(session: AsyncSession) -> PayrollPeriodRecord:
            period = await session.get(PayrollPeriod, period_id, with_for_update=True)
            if period is None:
                raise NotFoundError("PayrollPeriod", period_id)
            self._require_open(period, "cancel")
            return await self._transition(
                session, period, PeriodStatus.CANCELLED, actor_user_id
            )

        record = await self._run(operation)
        logger.info("Cancelled payroll period %s by %s", period_id, actor_user_id)
        return record

    async def get_period(self, period_id: UUID) -> PayrollPeriodRecord:
        async with self.session_factory() as session:
            period = await session.get(PayrollPeriod, period_id)
            if period is None:
                raise NotFoundError("PayrollPeriod", period_id)
            return PayrollPeriodRecord.from_model(period)

    async def find_period_covering(
        self, organization_id: UUID, start_date: date, end_date: date
    ) -> PayrollPeriodRecord | None:
        async with self.session_factory() as session:
            period = await self.period_for_range(session, organization_id, start_date, end_date)
            return PayrollPeriodRecord.from_model(period) if period else None

    async def period_for_range(
        self,
        session: AsyncSession,
        organization_id: UUID,
        start_date: date,
        end_date: date,
    ) -> PayrollPeriod | None:
        """Find the period containing [start_date, end_date), preferring OPEN ones."""
        result = await session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.organization_id == organization_id,
                PayrollPeriod.start_date <= start_date,
                PayrollPeriod.end_date >= end_date,
            )
        )
        return _preferred(list(result.scalars().all()))

    async def ensure_accepts_runs(
        self,
        session: AsyncSession,
        organization_id: UUID,
        start_date: date,
        end_date: date,
    ) -> PayrollPeriod | None:
        """Return the OPEN period covering a run's range, if any.

        The overlapping periods stay locked until the caller's transaction
        ends, so a concurrent close_period waits for the new run to commit
        and then counts it. Raises ConflictError when the range touches a
        completed period or is covered only by a cancelled one.
        """
        result = await session.execute(
            overlapping_periods_for_update(organization_id, start_date, end_date)
        )
        overlapping = list(result.scalars().all())
        if any(p.status == PeriodStatus.COMPLETED.value for p in overlapping):
            raise ConflictError(
                f"Range {start_date}..{end_date} falls in a completed payroll period",
                organization_id=organization_id,
            )

        period = _preferred(
            [p for p in overlapping if p.start_date <= start_date and p.end_date >= end_date]
        )
        if period is not None and period.status == PeriodStatus.CANCELLED.value:
            raise ConflictError(
                f"Payroll period {period.period_id} is cancelled",
                period_id=period.period_id,
            )
        return period

    # ----- internals -----

    async def _run(self, operation):
        return await run_in_transaction(
            self.session_factory, operation, self.settings.operation_timeout_seconds
        )

    @staticmethod
    async def _load_by_range(
        session: AsyncSession, organization_id: UUID, start_date: date, end_date: date
    ) -> PayrollPeriod | None:
        result = await session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.organization_id == organization_id,
                PayrollPeriod.start_date == start_date,
                PayrollPeriod.end_date == end_date,
            )
            .with_for_update()
        )
        return _preferred(list(result.scalars().all()))

    @staticmethod
    def _require_open(period: PayrollPeriod, verb: str) -> None:
        if period.status == PeriodStatus.COMPLETED.value:
            raise ConflictError(
                f"Cannot {verb} payroll period {period.period_id}: already completed",
                period_id=period.period_id,
                status=period.status,
            )
        if period.status == PeriodStatus.CANCELLED.value:
            raise ConflictError(
                f"Cannot {verb} payroll period {period.period_id}: it is cancelled",
                period_id=period.period_id,
                status=period.status,
            )

    @staticmethod
    async def _transition(
        session: AsyncSession,
        period: PayrollPeriod,
        status: PeriodStatus,
        actor_user_id: UUID,
    ) -> PayrollPeriodRecord:
        result = await session.execute(
            update(PayrollPeriod)
            .where(
                PayrollPeriod.period_id == period.period_id,
                PayrollPeriod.status == PeriodStatus.OPEN.value,
            )
            .values(status=status.value, closed_at=utcnow(), closed_by=actor_user_id)
        )
        if result.rowcount == 0:
            raise ConflictError(
                f"Payroll period {period.period_id} was modified concurrently",
                period_id=period.period_id,
            )
        await session.refresh(period)
        return PayrollPeriodRecord.from_model(period)
