"""Service wiring: every component is built once and passed explicitly."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.calculators.deduction_calculator import DeductionCalculator
from payroll_core.calculators.earnings import EarningsAggregator
from payroll_core.calculators.rate_tables import RateTableProvider, SqlRateTableProvider
from payroll_core.collaborators import (
    AuthorizationChecker,
    CompensationLookup,
    HolidayCalendar,
    LateDeductionPolicyLookup,
    StaticHolidayCalendar,
    StaticLateDeductionPolicyLookup,
    StaticTimesheetLookup,
    TimesheetLookup,
)
from payroll_core.config import Settings
from payroll_core.services.audit_service import PayrollAuditTrail
from payroll_core.services.bulk_service import BulkOperationCoordinator
from payroll_core.services.overtime_service import OvertimeResolver
from payroll_core.services.payroll_service import PayrollLifecycleService
from payroll_core.services.period_service import PayrollPeriodService


@dataclass(frozen=True)
class ServiceContainer:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    deductions: DeductionCalculator
    earnings: EarningsAggregator
    audit: PayrollAuditTrail
    overtime: OvertimeResolver
    periods: PayrollPeriodService
    payrolls: PayrollLifecycleService
    bulk: BulkOperationCoordinator


def build_container(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    compensation: CompensationLookup,
    authorization: AuthorizationChecker,
    holidays: HolidayCalendar | None = None,
    timesheets: TimesheetLookup | None = None,
    rate_tables: RateTableProvider | None = None,
    late_policies: LateDeductionPolicyLookup | None = None,
) -> ServiceContainer:
    """Build all services for one process.

    Rate tables default to the database; holidays, timesheets and late
    deduction policies default to empty in-memory sources.
    """
    deductions = DeductionCalculator(rate_tables or SqlRateTableProvider(session_factory))
    earnings = EarningsAggregator(
        standard_monthly_hours=settings.standard_monthly_hours,
        overtime_rate=settings.overtime_rate,
    )
    audit = PayrollAuditTrail(session_factory)
    overtime = OvertimeResolver(session_factory, authorization, settings)
    periods = PayrollPeriodService(session_factory, authorization, settings)
    payrolls = PayrollLifecycleService(
        session_factory=session_factory,
        settings=settings,
        deduction_calculator=deductions,
        earnings_aggregator=earnings,
        overtime=overtime,
        periods=periods,
        audit=audit,
        compensation=compensation,
        holidays=holidays or StaticHolidayCalendar(),
        timesheets=timesheets or StaticTimesheetLookup(),
        late_policies=late_policies or StaticLateDeductionPolicyLookup(),
        authorization=authorization,
    )
    bulk = BulkOperationCoordinator(payrolls, max_concurrency=settings.bulk_max_concurrency)

    return ServiceContainer(
        settings=settings,
        session_factory=session_factory,
        deductions=deductions,
        earnings=earnings,
        audit=audit,
        overtime=overtime,
        periods=periods,
        payrolls=payrolls,
        bulk=bulk,
    )
