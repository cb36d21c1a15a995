"""Overtime request model."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, TimestampMixin


class OvertimeRequest(Base, TimestampMixin):
    """Employee overtime request; frozen once decided."""

    __tablename__ = "overtime_request"

    request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_by: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED')",
            name="overtime_request_status_check",
        ),
        CheckConstraint("requested_minutes > 0", name="overtime_request_minutes_positive"),
        CheckConstraint(
            "approved_minutes IS NULL OR "
            "(approved_minutes > 0 AND approved_minutes <= requested_minutes)",
            name="overtime_request_approved_bound",
        ),
        Index("ix_overtime_request_employee_date", "employee_id", "work_date"),
    )
