"""Payroll calculators."""

from payroll_core.calculators.attendance import compute_attendance_deductions
from payroll_core.calculators.deduction_calculator import (
    BracketMatch,
    DeductionCalculator,
    compute_deductions,
)
from payroll_core.calculators.earnings import EarningsAggregator
from payroll_core.calculators.rate_tables import (
    InMemoryRateTableProvider,
    RateTableNotFoundError,
    RateTableProvider,
    SqlRateTableProvider,
)

__all__ = [
    "BracketMatch",
    "DeductionCalculator",
    "compute_deductions",
    "compute_attendance_deductions",
    "EarningsAggregator",
    "InMemoryRateTableProvider",
    "RateTableNotFoundError",
    "RateTableProvider",
    "SqlRateTableProvider",
]
