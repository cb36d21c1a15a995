"""Statutory rate configuration model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, TimestampMixin


class StatutoryRateTable(Base, TimestampMixin):
    """Versioned bracket table for one statutory deduction kind.

    A NULL organization_id marks the system default table. brackets_json is a
    list of {"min", "max", "rate", "base", "fixed"} objects.
    """

    __tablename__ = "statutory_rate_table"

    rate_table_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID | None] = mapped_column(nullable=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    effective_start: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    brackets_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    salary_cap: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    max_contribution: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('SOCIAL_INSURANCE', 'HEALTH_INSURANCE', 'HOUSING_FUND', 'INCOME_TAX')",
            name="statutory_rate_table_kind_check",
        ),
        CheckConstraint(
            "effective_end IS NULL OR effective_end >= effective_start",
            name="statutory_rate_table_dates_check",
        ),
        Index("ix_statutory_rate_table_lookup", "organization_id", "kind", "effective_start"),
    )
