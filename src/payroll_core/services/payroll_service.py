"""Payroll run lifecycle: processing, recalculation and status transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from payroll_core.calculators.attendance import compute_attendance_deductions
from payroll_core.calculators.deduction_calculator import DeductionCalculator
from payroll_core.calculators.earnings import EarningsAggregator
from payroll_core.calculators.types import (
    ADJUSTABLE_DEDUCTION_KINDS,
    ADJUSTABLE_EARNING_KINDS,
    ZERO,
    Adjustment,
    AdjustmentCategory,
    DeductionKind,
    DeductionLine,
    EarningKind,
    EarningLine,
    round_to_cents,
    to_decimal,
)
from payroll_core.collaborators import (
    AuthorizationChecker,
    CompensationLookup,
    HolidayCalendar,
    LateDeductionPolicyLookup,
    TimesheetLookup,
)
from payroll_core.config import Settings
from payroll_core.database import run_in_transaction, with_timeout
from payroll_core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from payroll_core.models import PayrollAdjustment, PayrollDeduction, PayrollEarning, PayrollRun
from payroll_core.models.base import utcnow
from payroll_core.services.audit_service import PayrollAuditTrail
from payroll_core.services.overtime_service import OvertimeResolver
from payroll_core.services.period_service import PayrollPeriodService
from payroll_core.services.records import PayrollRunRecord, PayrollSummary
from payroll_core.services.state_machine import (
    PayrollAction,
    PayrollStateMachine,
    PayrollStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayrollComputation:
    """Computed lines and totals for one run, before persistence."""

    earnings: list[EarningLine]
    deductions: list[DeductionLine]
    gross_pay: Decimal
    taxable_income: Decimal
    total_deductions: Decimal
    net_pay: Decimal


class PayrollLifecycleService:
    """Creates payroll runs and governs every later change to them.

    Each action is one transaction: lock the run, validate the transition,
    update it conditionally on its version (0 rows means a concurrent
    change), and append exactly one log entry. Failures leave the run and
    the log untouched.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        deduction_calculator: DeductionCalculator,
        earnings_aggregator: EarningsAggregator,
        overtime: OvertimeResolver,
        periods: PayrollPeriodService,
        audit: PayrollAuditTrail,
        compensation: CompensationLookup,
        holidays: HolidayCalendar,
        timesheets: TimesheetLookup,
        late_policies: LateDeductionPolicyLookup,
        authorization: AuthorizationChecker,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.deduction_calculator = deduction_calculator
        self.earnings_aggregator = earnings_aggregator
        self.overtime = overtime
        self.periods = periods
        self.audit = audit
        self.compensation = compensation
        self.holidays = holidays
        self.timesheets = timesheets
        self.late_policies = late_policies
        self.authorization = authorization

    # ===== Processing =====

    async def process_payroll(
        self,
        employee_id: UUID,
        organization_id: UUID,
        period_start: date,
        period_end: date,
        actor_user_id: UUID,
        department_id: UUID | None = None,
        adjustments: Iterable[Adjustment] = (),
    ) -> PayrollRunRecord:
        """Compute and create a DRAFT payroll run for one employee and period."""
        if period_start >= period_end:
            raise ValidationError(
                f"Period start {period_start} must be before end {period_end}",
                period_start=period_start,
                period_end=period_end,
            )
        adjustments = list(adjustments)
        self._validate_adjustments(adjustments)

        computation = await with_timeout(
            self.compute(employee_id, organization_id, period_start, period_end, adjustments),
            self.settings.operation_timeout_seconds,
        )

        async def operation(session: AsyncSession) -> PayrollRunRecord:
            period = await self.periods.ensure_accepts_runs(
                session, organization_id, period_start, period_end
            )
            await self._ensure_no_overlap(session, employee_id, period_start, period_end)

            run = PayrollRun(
                employee_id=employee_id,
                organization_id=organization_id,
                department_id=department_id,
                period_id=period.period_id if period else None,
                period_start=period_start,
                period_end=period_end,
                status=PayrollStatus.DRAFT.value,
                revision=1,
                version=1,
                updated_by=actor_user_id,
                gross_pay=computation.gross_pay,
                taxable_income=computation.taxable_income,
                total_deductions=computation.total_deductions,
                net_pay=computation.net_pay,
            )
            session.add(run)
            await session.flush()

            self._add_lines(session, run.payroll_id, computation)
            self._add_adjustments(session, run.payroll_id, adjustments)
            await session.flush()

            run = await self._reload(session, run.payroll_id)
            await self.audit.record(
                session, run, PayrollAction.GENERATED, actor_user_id, before_status=None
            )
            return PayrollRunRecord.from_model(run)

        record = await self._run(operation)
        logger.info(
            "Generated payroll %s for employee %s (%s..%s): gross=%s net=%s by %s",
            record.payroll_id,
            employee_id,
            period_start,
            period_end,
            record.gross_pay,
            record.net_pay,
            actor_user_id,
        )
        return record

    async def compute(
        self,
        employee_id: UUID,
        organization_id: UUID,
        period_start: date,
        period_end: date,
        adjustments: list[Adjustment],
    ) -> PayrollComputation:
        """Run the earnings, deductions and net pay pipeline without writing."""
        compensation = await self.compensation.get_compensation(employee_id, period_start)
        if compensation is None:
            raise NotFoundError("Compensation", employee_id)

        overtime_minutes = await self.overtime.get_payable_minutes_by_date(
            employee_id, period_start, period_end
        )
        holidays = await self.holidays.get_holidays(organization_id, period_start, period_end)
        worked_minutes = await self.timesheets.get_worked_minutes(
            employee_id, period_start, period_end
        )
        attendance = await self.timesheets.get_attendance(employee_id, period_start, period_end)
        policies = await self.late_policies.get_policies(organization_id, period_start)

        earnings = self.earnings_aggregator.aggregate(
            compensation,
            period_start,
            period_end,
            overtime_minutes_by_date=overtime_minutes,
            holidays=holidays,
            worked_minutes_by_date=worked_minutes,
            adjustments=adjustments,
        )
        gross_pay = earnings.gross_pay

        breakdown = await self.deduction_calculator.calculate_all_deductions(
            organization_id, gross_pay, period_start
        )
        deductions = breakdown.as_lines()
        deductions.extend(
            compute_attendance_deductions(
                policies,
                attendance,
                self.earnings_aggregator.hourly_rate(compensation),
                period_start,
                period_end,
            )
        )
        for adjustment in adjustments:
            if adjustment.category == AdjustmentCategory.DEDUCTION:
                deductions.append(
                    DeductionLine(
                        kind=DeductionKind(adjustment.kind),
                        amount=round_to_cents(to_decimal(adjustment.amount)),
                        description=adjustment.memo,
                    )
                )

        total_deductions = sum((d.amount for d in deductions), ZERO)
        net_pay = gross_pay - total_deductions
        if net_pay < 0:
            raise ValidationError(
                f"Deductions {total_deductions} exceed gross pay {gross_pay}",
                employee_id=employee_id,
            )

        return PayrollComputation(
            earnings=earnings.lines,
            deductions=deductions,
            gross_pay=gross_pay,
            taxable_income=breakdown.taxable_income,
            total_deductions=total_deductions,
            net_pay=net_pay,
        )

    # ===== Reads =====

    async def get_payroll(self, payroll_id: UUID) -> PayrollRunRecord:
        async with self.session_factory() as session:
            run = await self._reload(session, payroll_id)
            return PayrollRunRecord.from_model(run)

    async def list_payrolls(
        self,
        organization_id: UUID,
        status: PayrollStatus | None = None,
        employee_id: UUID | None = None,
        period_id: UUID | None = None,
    ) -> list[PayrollRunRecord]:
        query = (
            select(PayrollRun)
            .where(PayrollRun.organization_id == organization_id)
            .options(selectinload(PayrollRun.earnings), selectinload(PayrollRun.deductions))
            .order_by(PayrollRun.period_start.desc(), PayrollRun.created_at)
        )
        if status is not None:
            query = query.where(PayrollRun.status == PayrollStatus(status).value)
        if employee_id is not None:
            query = query.where(PayrollRun.employee_id == employee_id)
        if period_id is not None:
            query = query.where(PayrollRun.period_id == period_id)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [PayrollRunRecord.from_model(run) for run in result.scalars().all()]

    async def count_by_status(
        self,
        organization_id: UUID,
        period_start: date | None = None,
        period_end: date | None = None,
        department_id: UUID | None = None,
    ) -> dict[str, int]:
        """Count runs per status; every status is present, zero when unused."""
        query = self._range_filter(
            select(PayrollRun.status, func.count()).group_by(PayrollRun.status),
            organization_id,
            period_start,
            period_end,
            department_id,
        )
        counts = {s.value: 0 for s in PayrollStatus}
        async with self.session_factory() as session:
            for run_status, count in (await session.execute(query)).all():
                counts[run_status] = count
        return counts

    async def summarize_payrolls(
        self,
        organization_id: UUID,
        period_start: date,
        period_end: date,
        department_id: UUID | None = None,
    ) -> PayrollSummary:
        """Aggregate pay and deductions of the runs inside [period_start, period_end)."""
        counts = await self.count_by_status(
            organization_id, period_start, period_end, department_id
        )

        runs_query = self._range_filter(
            select(PayrollRun.gross_pay, PayrollRun.total_deductions, PayrollRun.net_pay).where(
                PayrollRun.status != PayrollStatus.VOIDED.value
            ),
            organization_id,
            period_start,
            period_end,
            department_id,
        )
        lines_query = self._range_filter(
            select(PayrollDeduction.kind, PayrollDeduction.amount)
            .join(PayrollRun, PayrollRun.payroll_id == PayrollDeduction.payroll_id)
            .where(PayrollRun.status != PayrollStatus.VOIDED.value),
            organization_id,
            period_start,
            period_end,
            department_id,
        )

        gross = deductions = net = ZERO
        by_kind: dict[str, Decimal] = {}
        async with self.session_factory() as session:
            for run_gross, run_deductions, run_net in (await session.execute(runs_query)).all():
                gross += run_gross
                deductions += run_deductions
                net += run_net
            for kind, amount in (await session.execute(lines_query)).all():
                by_kind[kind] = by_kind.get(kind, ZERO) + amount

        return PayrollSummary(
            organization_id=organization_id,
            period_start=period_start,
            period_end=period_end,
            department_id=department_id,
            total_payrolls=sum(counts.values()),
            status_counts=counts,
            gross_pay=gross,
            total_deductions=deductions,
            net_pay=net,
            deductions_by_kind=by_kind,
        )

    # ===== Transitions =====

    async def submit(self, payroll_id: UUID, actor_user_id: UUID) -> PayrollRunRecord:
        """Send a DRAFT payroll for approval."""
        return await self._transition(payroll_id, PayrollAction.SUBMITTED, actor_user_id)

    async def approve(
        self, payroll_id: UUID, actor_user_id: UUID, reason: str | None = None
    ) -> PayrollRunRecord:
        return await self._transition(
            payroll_id,
            PayrollAction.APPROVED,
            actor_user_id,
            reason=reason,
            values={"approved_at": utcnow(), "approved_by": actor_user_id},
        )

    async def release(
        self, payroll_id: UUID, actor_user_id: UUID, reason: str | None = None
    ) -> PayrollRunRecord:
        """Release an APPROVED payroll; irreversible."""
        return await self._transition(
            payroll_id,
            PayrollAction.RELEASED,
            actor_user_id,
            reason=reason,
            values={"released_at": utcnow(), "released_by": actor_user_id},
        )

    async def void(self, payroll_id: UUID, actor_user_id: UUID, reason: str) -> PayrollRunRecord:
        """Void a non-final payroll; irreversible and requires a reason."""
        reason = (reason or "").strip()
        return await self._transition(
            payroll_id,
            PayrollAction.VOIDED,
            actor_user_id,
            reason=reason,
            values={"voided_at": utcnow(), "voided_by": actor_user_id, "void_reason": reason},
            require_reason=True,
        )

    async def annotate(self, payroll_id: UUID, actor_user_id: UUID, note: str) -> PayrollRunRecord:
        """Append a note to the payroll log; allowed in every status."""
        note = (note or "").strip()

        async def operation(session: AsyncSession) -> PayrollRunRecord:
            run = await self._lock(session, payroll_id)
            if not note:
                raise ValidationError("An annotation requires a note", payroll_id=payroll_id)
            run = await self._reload(session, payroll_id)
            await self.audit.record(
                session, run, PayrollAction.ANNOTATED, actor_user_id, run.status, note
            )
            return PayrollRunRecord.from_model(run)

        record = await self._run(operation)
        logger.info("Annotated payroll %s by %s", payroll_id, actor_user_id)
        return record

    async def recalculate(
        self,
        payroll_id: UUID,
        actor_user_id: UUID,
        adjustments: Iterable[Adjustment] | None = None,
        reason: str | None = None,
    ) -> PayrollRunRecord:
        """Recompute a DRAFT or PENDING_APPROVAL run as a new DRAFT revision.

        The new lines are computed before anything is written; if the
        computation fails the previous lines stay in place. When adjustments
        is None the run's stored adjustments are reused.
        """
        async with self.session_factory() as session:
            snapshot = await self._reload(session, payroll_id)
            PayrollStateMachine.validate(PayrollAction.RECALCULATED, snapshot.status)
            expected_version = snapshot.version
            employee_id = snapshot.employee_id
            organization_id = snapshot.organization_id
            period_start = snapshot.period_start
            period_end = snapshot.period_end
            if adjustments is None:
                new_adjustments = [
                    Adjustment(
                        category=AdjustmentCategory(a.category),
                        kind=a.kind,
                        amount=a.amount,
                        memo=a.memo,
                    )
                    for a in snapshot.adjustments
                ]
            else:
                new_adjustments = list(adjustments)
        self._validate_adjustments(new_adjustments)

        computation = await with_timeout(
            self.compute(employee_id, organization_id, period_start, period_end, new_adjustments),
            self.settings.operation_timeout_seconds,
        )

        async def operation(session: AsyncSession) -> PayrollRunRecord:
            run = await self._lock(session, payroll_id)
            before_status = run.status
            new_status = PayrollStateMachine.validate(PayrollAction.RECALCULATED, before_status)
            if run.version != expected_version:
                raise self._concurrent_change(payroll_id)

            await self._compare_and_set(
                session,
                payroll_id,
                expected_version,
                status=new_status.value,
                revision=PayrollRun.revision + 1,
                gross_pay=computation.gross_pay,
                taxable_income=computation.taxable_income,
                total_deductions=computation.total_deductions,
                net_pay=computation.net_pay,
                updated_at=utcnow(),
                updated_by=actor_user_id,
            )

            await session.execute(
                delete(PayrollEarning).where(PayrollEarning.payroll_id == payroll_id)
            )
            await session.execute(
                delete(PayrollDeduction).where(PayrollDeduction.payroll_id == payroll_id)
            )
            await session.execute(
                delete(PayrollAdjustment).where(PayrollAdjustment.payroll_id == payroll_id)
            )
            self._add_lines(session, payroll_id, computation)
            self._add_adjustments(session, payroll_id, new_adjustments)
            await session.flush()

            run = await self._reload(session, payroll_id)
            await self.audit.record(
                session, run, PayrollAction.RECALCULATED, actor_user_id, before_status, reason
            )
            return PayrollRunRecord.from_model(run)

        record = await self._run(operation)
        logger.info(
            "Recalculated payroll %s to revision %d: gross=%s net=%s by %s",
            payroll_id,
            record.revision,
            record.gross_pay,
            record.net_pay,
            actor_user_id,
        )
        return record

    # ----- internals -----

    async def _transition(
        self,
        payroll_id: UUID,
        action: PayrollAction,
        actor_user_id: UUID,
        reason: str | None = None,
        values: dict[str, Any] | None = None,
        require_reason: bool = False,
    ) -> PayrollRunRecord:
        capability = PayrollStateMachine.required_capability(action)
        if capability is not None and not await self.authorization.has_capability(
            actor_user_id, capability
        ):
            raise AuthorizationError(actor_user_id, capability.value)

        before: dict[str, str] = {}

        async def operation(session: AsyncSession) -> PayrollRunRecord:
            run = await self._lock(session, payroll_id)
            before_status = before["status"] = run.status
            new_status = PayrollStateMachine.validate(action, before_status)
            if require_reason and not reason:
                raise ValidationError(
                    f"A reason is required to apply '{action.value}'",
                    payroll_id=payroll_id,
                )

            await self._compare_and_set(
                session,
                payroll_id,
                run.version,
                status=new_status.value,
                updated_at=utcnow(),
                updated_by=actor_user_id,
                **(values or {}),
            )
            run = await self._reload(session, payroll_id)
            await self.audit.record(session, run, action, actor_user_id, before_status, reason)
            return PayrollRunRecord.from_model(run)

        record = await self._run(operation)
        logger.info(
            "Payroll %s %s: %s -> %s by %s",
            payroll_id,
            action.value.lower(),
            before["status"],
            record.status,
            actor_user_id,
        )
        return record

    @staticmethod
    def _range_filter(
        query,
        organization_id: UUID,
        period_start: date | None,
        period_end: date | None,
        department_id: UUID | None,
    ):
        if period_start is not None and period_end is not None and period_start >= period_end:
            raise ValidationError(
                f"Period start {period_start} must be before end {period_end}",
                period_start=period_start,
                period_end=period_end,
            )
        query = query.where(PayrollRun.organization_id == organization_id)
        if period_start is not None:
            query = query.where(PayrollRun.period_start >= period_start)
        if period_end is not None:
            query = query.where(PayrollRun.period_end <= period_end)
        if department_id is not None:
            query = query.where(PayrollRun.department_id == department_id)
        return query

    async def _run(self, operation):
        return await run_in_transaction(
            self.session_factory, operation, self.settings.operation_timeout_seconds
        )

    async def _lock(self, session: AsyncSession, payroll_id: UUID) -> PayrollRun:
        result = await session.execute(
            select(PayrollRun).where(PayrollRun.payroll_id == payroll_id).with_for_update()
        )
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFoundError("PayrollRun", payroll_id)
        return run

    async def _reload(self, session: AsyncSession, payroll_id: UUID) -> PayrollRun:
        result = await session.execute(
            select(PayrollRun)
            .where(PayrollRun.payroll_id == payroll_id)
            .options(
                selectinload(PayrollRun.earnings),
                selectinload(PayrollRun.deductions),
                selectinload(PayrollRun.adjustments),
            )
            .execution_options(populate_existing=True)
        )
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFoundError("PayrollRun", payroll_id)
        return run

    async def _compare_and_set(
        self, session: AsyncSession, payroll_id: UUID, expected_version: int, **values: Any
    ) -> None:
        result = await session.execute(
            update(PayrollRun)
            .where(PayrollRun.payroll_id == payroll_id, PayrollRun.version == expected_version)
            .values(version=PayrollRun.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise self._concurrent_change(payroll_id)

    @staticmethod
    def _concurrent_change(payroll_id: UUID) -> ConflictError:
        return ConflictError(
            f"Payroll {payroll_id} was modified concurrently", payroll_id=payroll_id
        )

    async def _ensure_no_overlap(
        self, session: AsyncSession, employee_id: UUID, period_start: date, period_end: date
    ) -> None:
        existing = await session.scalar(
            select(PayrollRun.payroll_id)
            .where(
                PayrollRun.employee_id == employee_id,
                PayrollRun.status != PayrollStatus.VOIDED.value,
                PayrollRun.period_start < period_end,
                PayrollRun.period_end > period_start,
            )
            .limit(1)
        )
        if existing is not None:
            raise ConflictError(
                f"Employee {employee_id} already has payroll {existing} "
                f"overlapping {period_start}..{period_end}",
                employee_id=employee_id,
                payroll_id=existing,
            )

    @staticmethod
    def _validate_adjustments(adjustments: list[Adjustment]) -> None:
        for adjustment in adjustments:
            if round_to_cents(to_decimal(adjustment.amount)) <= 0:
                raise ValidationError(
                    "Adjustment amounts must be at least one cent", kind=adjustment.kind
                )
            if adjustment.category == AdjustmentCategory.DEDUCTION:
                kind_enum, allowed = DeductionKind, ADJUSTABLE_DEDUCTION_KINDS
            else:
                kind_enum, allowed = EarningKind, ADJUSTABLE_EARNING_KINDS
            try:
                kind = kind_enum(adjustment.kind)
            except ValueError:
                raise ValidationError(
                    f"Unknown {AdjustmentCategory(adjustment.category).value.lower()} kind "
                    f"{adjustment.kind}",
                    kind=adjustment.kind,
                ) from None
            if kind not in allowed:
                raise ValidationError(
                    f"{kind.value} is computed and cannot be supplied as an adjustment",
                    kind=kind.value,
                )

    @staticmethod
    def _add_lines(
        session: AsyncSession, payroll_id: UUID, computation: PayrollComputation
    ) -> None:
        for position, line in enumerate(computation.earnings):
            session.add(
                PayrollEarning(
                    payroll_id=payroll_id,
                    position=position,
                    kind=line.kind.value,
                    quantity=line.quantity,
                    rate=line.rate,
                    amount=line.amount,
                    description=line.description,
                )
            )
        for position, line in enumerate(computation.deductions):
            session.add(
                PayrollDeduction(
                    payroll_id=payroll_id,
                    position=position,
                    kind=line.kind.value,
                    amount=line.amount,
                    description=line.description,
                )
            )

    @staticmethod
    def _add_adjustments(
        session: AsyncSession, payroll_id: UUID, adjustments: list[Adjustment]
    ) -> None:
        for position, adjustment in enumerate(adjustments):
            session.add(
                PayrollAdjustment(
                    payroll_id=payroll_id,
                    position=position,
                    category=AdjustmentCategory(adjustment.category).value,
                    kind=adjustment.kind,
                    amount=round_to_cents(to_decimal(adjustment.amount)),
                    memo=adjustment.memo,
                )
            )
