"""Payroll period, run, earning, deduction and log models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, TimestampMixin, utcnow

MONEY = Numeric(14, 2)


# ===== Payroll Periods =====


class PayrollPeriod(Base, TimestampMixin):
    """Organization-wide pay period; the date range is half-open."""

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="OPEN")
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'COMPLETED', 'CANCELLED')",
            name="payroll_period_status_check",
        ),
        CheckConstraint("start_date < end_date", name="payroll_period_dates_check"),
    )


# ===== Payroll Runs =====


class PayrollRun(Base, TimestampMixin):
    """One computed payroll for one employee and one pay period."""

    __tablename__ = "payroll_run"

    payroll_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    period_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_period.period_id"),
        nullable=True,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    gross_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    taxable_income: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_by: Mapped[UUID | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by: Mapped[UUID | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING_APPROVAL', 'APPROVED', 'RELEASED', 'VOIDED')",
            name="payroll_run_status_check",
        ),
        CheckConstraint("period_start < period_end", name="payroll_run_dates_check"),
        CheckConstraint("revision >= 1", name="payroll_run_revision_check"),
        Index("ix_payroll_run_employee_period", "employee_id", "period_start", "period_end"),
    )

    # Relationships
    period: Mapped[PayrollPeriod | None] = relationship()
    earnings: Mapped[list[PayrollEarning]] = relationship(
        back_populates="payroll",
        order_by="PayrollEarning.position",
    )
    deductions: Mapped[list[PayrollDeduction]] = relationship(
        back_populates="payroll",
        order_by="PayrollDeduction.position",
    )
    adjustments: Mapped[list[PayrollAdjustment]] = relationship(
        back_populates="payroll",
        order_by="PayrollAdjustment.position",
    )


class PayrollEarning(Base, TimestampMixin):
    """Earning line of a payroll run; recreated on every recalculation."""

    __tablename__ = "payroll_earning"

    earning_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('BASE_SALARY', 'OVERTIME', 'HOLIDAY_PAY', 'ALLOWANCE', 'BONUS', 'OTHER')",
            name="payroll_earning_kind_check",
        ),
        CheckConstraint("amount > 0", name="payroll_earning_amount_positive"),
    )

    payroll: Mapped[PayrollRun] = relationship(back_populates="earnings")


class PayrollDeduction(Base, TimestampMixin):
    """Deduction of a payroll run; never mutated, only recreated."""

    __tablename__ = "payroll_deduction"

    deduction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('INCOME_TAX', 'SOCIAL_INSURANCE', 'HEALTH_INSURANCE', 'HOUSING_FUND', "
            "'LATE', 'UNDERTIME', 'ABSENCE', 'LOAN_REPAYMENT', 'OTHER')",
            name="payroll_deduction_kind_check",
        ),
        CheckConstraint("amount > 0", name="payroll_deduction_amount_positive"),
    )

    payroll: Mapped[PayrollRun] = relationship(back_populates="deductions")


class PayrollAdjustment(Base, TimestampMixin):
    """Caller-supplied earning or deduction input kept with the run."""

    __tablename__ = "payroll_adjustment"

    adjustment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    memo: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "category IN ('EARNING', 'DEDUCTION')",
            name="payroll_adjustment_category_check",
        ),
        CheckConstraint("amount > 0", name="payroll_adjustment_amount_positive"),
    )

    payroll: Mapped[PayrollRun] = relationship(back_populates="adjustments")


# ===== Audit =====


class PayrollLogEntry(Base):
    """Append-only record of a lifecycle action on a payroll run."""

    __tablename__ = "payroll_log"

    log_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    payroll_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_id"),
        nullable=False,
        index=True,
    )
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    actor_user_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    before_status: Mapped[str | None] = mapped_column(String, nullable=True)
    after_status: Mapped[str] = mapped_column(String, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "action IN ('GENERATED', 'SUBMITTED', 'RECALCULATED', 'APPROVED', "
            "'RELEASED', 'VOIDED', 'ANNOTATED')",
            name="payroll_log_action_check",
        ),
        Index("ix_payroll_log_org_created", "organization_id", "created_at"),
    )
