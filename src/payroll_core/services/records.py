"""Immutable records returned by the payroll services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from payroll_core.models import (
    OvertimeRequest,
    PayrollDeduction,
    PayrollEarning,
    PayrollLogEntry,
    PayrollPeriod,
    PayrollRun,
)


@dataclass(frozen=True)
class EarningRecord:
    kind: str
    amount: Decimal
    quantity: Decimal | None = None
    rate: Decimal | None = None
    description: str | None = None

    @classmethod
    def from_model(cls, earning: PayrollEarning) -> EarningRecord:
        return cls(
            kind=earning.kind,
            amount=earning.amount,
            quantity=earning.quantity,
            rate=earning.rate,
            description=earning.description,
        )


@dataclass(frozen=True)
class DeductionRecord:
    kind: str
    amount: Decimal
    description: str | None = None

    @classmethod
    def from_model(cls, deduction: PayrollDeduction) -> DeductionRecord:
        return cls(kind=deduction.kind, amount=deduction.amount, description=deduction.description)


@dataclass(frozen=True)
class PayrollRunRecord:
    """A payroll run with its earning and deduction lines."""

    payroll_id: UUID
    employee_id: UUID
    organization_id: UUID
    department_id: UUID | None
    period_id: UUID | None
    period_start: date
    period_end: date
    gross_pay: Decimal
    taxable_income: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    status: str
    revision: int
    version: int
    earnings: tuple[EarningRecord, ...]
    deductions: tuple[DeductionRecord, ...]
    created_at: datetime
    updated_at: datetime
    updated_by: UUID | None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    released_at: datetime | None = None
    released_by: UUID | None = None
    voided_at: datetime | None = None
    voided_by: UUID | None = None
    void_reason: str | None = None

    @classmethod
    def from_model(cls, run: PayrollRun) -> PayrollRunRecord:
        """Snapshot a run; earnings and deductions must already be loaded."""
        return cls(
            payroll_id=run.payroll_id,
            employee_id=run.employee_id,
            organization_id=run.organization_id,
            department_id=run.department_id,
            period_id=run.period_id,
            period_start=run.period_start,
            period_end=run.period_end,
            gross_pay=run.gross_pay,
            taxable_income=run.taxable_income,
            total_deductions=run.total_deductions,
            net_pay=run.net_pay,
            status=run.status,
            revision=run.revision,
            version=run.version,
            earnings=tuple(EarningRecord.from_model(e) for e in run.earnings),
            deductions=tuple(DeductionRecord.from_model(d) for d in run.deductions),
            created_at=run.created_at,
            updated_at=run.updated_at,
            updated_by=run.updated_by,
            approved_at=run.approved_at,
            approved_by=run.approved_by,
            released_at=run.released_at,
            released_by=run.released_by,
            voided_at=run.voided_at,
            voided_by=run.voided_by,
            void_reason=run.void_reason,
        )

    def deduction_amount(self, kind: str) -> Decimal:
        return sum((d.amount for d in self.deductions if d.kind == kind), Decimal("0"))


@dataclass(frozen=True)
class PayrollLogRecord:
    log_id: int
    payroll_id: UUID
    organization_id: UUID
    actor_user_id: UUID
    action: str
    reason: str | None
    before_status: str | None
    after_status: str
    revision: int
    created_at: datetime

    @classmethod
    def from_model(cls, entry: PayrollLogEntry) -> PayrollLogRecord:
        return cls(
            log_id=entry.log_id,
            payroll_id=entry.payroll_id,
            organization_id=entry.organization_id,
            actor_user_id=entry.actor_user_id,
            action=entry.action,
            reason=entry.reason,
            before_status=entry.before_status,
            after_status=entry.after_status,
            revision=entry.revision,
            created_at=entry.created_at,
        )


@dataclass(frozen=True)
class OvertimeRequestRecord:
    request_id: UUID
    employee_id: UUID
    organization_id: UUID
    work_date: date
    requested_minutes: int
    approved_minutes: int | None
    status: str
    reason: str | None
    approved_by: UUID | None
    decided_by: UUID | None
    decided_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, request: OvertimeRequest) -> OvertimeRequestRecord:
        return cls(
            request_id=request.request_id,
            employee_id=request.employee_id,
            organization_id=request.organization_id,
            work_date=request.work_date,
            requested_minutes=request.requested_minutes,
            approved_minutes=request.approved_minutes,
            status=request.status,
            reason=request.reason,
            approved_by=request.approved_by,
            decided_by=request.decided_by,
            decided_at=request.decided_at,
            created_at=request.created_at,
        )


@dataclass(frozen=True)
class PayrollPeriodRecord:
    period_id: UUID
    organization_id: UUID
    start_date: date
    end_date: date
    pay_date: date
    status: str
    closed_at: datetime | None
    closed_by: UUID | None

    @classmethod
    def from_model(cls, period: PayrollPeriod) -> PayrollPeriodRecord:
        return cls(
            period_id=period.period_id,
            organization_id=period.organization_id,
            start_date=period.start_date,
            end_date=period.end_date,
            pay_date=period.pay_date,
            status=period.status,
            closed_at=period.closed_at,
            closed_by=period.closed_by,
        )


@dataclass(frozen=True)
class PayrollSummary:
    """Totals over an organization's payroll runs inside a date range.

    Money totals leave out VOIDED runs; status_counts includes them.
    """

    organization_id: UUID
    period_start: date
    period_end: date
    department_id: UUID | None
    total_payrolls: int
    status_counts: dict[str, int]
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    deductions_by_kind: dict[str, Decimal]
