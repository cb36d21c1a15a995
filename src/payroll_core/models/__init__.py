"""SQLAlchemy models for the payroll core."""

from payroll_core.models.base import Base, TimestampMixin
from payroll_core.models.overtime import OvertimeRequest
from payroll_core.models.payroll import (
    PayrollAdjustment,
    PayrollDeduction,
    PayrollEarning,
    PayrollLogEntry,
    PayrollPeriod,
    PayrollRun,
)
from payroll_core.models.rates import StatutoryRateTable

__all__ = [
    "Base",
    "TimestampMixin",
    "OvertimeRequest",
    "PayrollAdjustment",
    "PayrollDeduction",
    "PayrollEarning",
    "PayrollLogEntry",
    "PayrollPeriod",
    "PayrollRun",
    "StatutoryRateTable",
]
