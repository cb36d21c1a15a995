"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents), half-up."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Coerce a plain number into a Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class DeductionKind(str, Enum):
    """Deduction kinds."""

    INCOME_TAX = "INCOME_TAX"
    SOCIAL_INSURANCE = "SOCIAL_INSURANCE"
    HEALTH_INSURANCE = "HEALTH_INSURANCE"
    HOUSING_FUND = "HOUSING_FUND"
    LATE = "LATE"
    UNDERTIME = "UNDERTIME"
    ABSENCE = "ABSENCE"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    OTHER = "OTHER"


STATUTORY_KINDS = (
    DeductionKind.SOCIAL_INSURANCE,
    DeductionKind.HEALTH_INSURANCE,
    DeductionKind.HOUSING_FUND,
    DeductionKind.INCOME_TAX,
)

CONTRIBUTION_KINDS = (
    DeductionKind.SOCIAL_INSURANCE,
    DeductionKind.HEALTH_INSURANCE,
    DeductionKind.HOUSING_FUND,
)


class EarningKind(str, Enum):
    """Earning line kinds."""

    BASE_SALARY = "BASE_SALARY"
    OVERTIME = "OVERTIME"
    HOLIDAY_PAY = "HOLIDAY_PAY"
    ALLOWANCE = "ALLOWANCE"
    BONUS = "BONUS"
    OTHER = "OTHER"


ADJUSTABLE_EARNING_KINDS = {EarningKind.ALLOWANCE, EarningKind.BONUS, EarningKind.OTHER}

ADJUSTABLE_DEDUCTION_KINDS = {
    DeductionKind.LATE,
    DeductionKind.UNDERTIME,
    DeductionKind.ABSENCE,
    DeductionKind.LOAN_REPAYMENT,
    DeductionKind.OTHER,
}


class AdjustmentCategory(str, Enum):
    EARNING = "EARNING"
    DEDUCTION = "DEDUCTION"


@dataclass(frozen=True)
class Adjustment:
    """A caller-supplied earning or deduction input for a payroll run."""

    category: AdjustmentCategory
    kind: str
    amount: Decimal
    memo: str | None = None


@dataclass(frozen=True)
class RateBracket:
    """One bracket of a statutory rate table.

    Bounds are lower-inclusive and upper-exclusive; max_amount None is open.
    """

    min_amount: Decimal
    max_amount: Decimal | None
    rate: Decimal
    base_amount: Decimal = ZERO  # Flat amount due at the bracket start (income tax)
    fixed_amount: Decimal = ZERO  # Flat amount added to a contribution

    def contains(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount < self.max_amount

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RateBracket:
        return cls(
            min_amount=to_decimal(payload.get("min", 0)),
            max_amount=to_decimal(payload["max"]) if payload.get("max") is not None else None,
            rate=to_decimal(payload["rate"]),
            base_amount=to_decimal(payload.get("base", 0)),
            fixed_amount=to_decimal(payload.get("fixed", 0)),
        )


@dataclass(frozen=True)
class RateTable:
    """Statutory rate configuration for one deduction kind."""

    kind: DeductionKind
    brackets: tuple[RateBracket, ...]
    organization_id: UUID | None = None  # None = system default
    effective_start: Any = None  # date
    effective_end: Any = None  # date
    salary_cap: Decimal | None = None
    max_contribution: Decimal | None = None

    def find_bracket(self, amount: Decimal) -> RateBracket | None:
        for bracket in sorted(self.brackets, key=lambda b: b.min_amount):
            if bracket.contains(amount):
                return bracket
        return None

    def is_effective_on(self, as_of_date: Any) -> bool:
        if self.effective_start is not None and self.effective_start > as_of_date:
            return False
        if self.effective_end is not None and self.effective_end < as_of_date:
            return False
        return True


@dataclass(frozen=True)
class RateTableSet:
    """The four statutory tables effective for one computation."""

    social_insurance: RateTable
    health_insurance: RateTable
    housing_fund: RateTable
    income_tax: RateTable

    def for_kind(self, kind: DeductionKind) -> RateTable:
        return {
            DeductionKind.SOCIAL_INSURANCE: self.social_insurance,
            DeductionKind.HEALTH_INSURANCE: self.health_insurance,
            DeductionKind.HOUSING_FUND: self.housing_fund,
            DeductionKind.INCOME_TAX: self.income_tax,
        }[kind]


@dataclass(frozen=True)
class DeductionBreakdown:
    """Itemized statutory deductions for one gross amount."""

    social_insurance: Decimal
    health_insurance: Decimal
    housing_fund: Decimal
    tax: Decimal
    total_deductions: Decimal
    taxable_income: Decimal

    def as_lines(self) -> list[DeductionLine]:
        """Return non-zero components as deduction lines, tax last."""
        pairs = [
            (DeductionKind.SOCIAL_INSURANCE, self.social_insurance),
            (DeductionKind.HEALTH_INSURANCE, self.health_insurance),
            (DeductionKind.HOUSING_FUND, self.housing_fund),
            (DeductionKind.INCOME_TAX, self.tax),
        ]
        return [DeductionLine(kind=kind, amount=amount) for kind, amount in pairs if amount > 0]


@dataclass(frozen=True)
class EarningLine:
    """An earning line before persistence."""

    kind: EarningKind
    amount: Decimal
    quantity: Decimal | None = None  # hours
    rate: Decimal | None = None
    description: str | None = None


@dataclass(frozen=True)
class DeductionLine:
    """A deduction line before persistence."""

    kind: DeductionKind
    amount: Decimal
    description: str | None = None


@dataclass
class EarningsResult:
    """Earning lines for a period and their gross total."""

    lines: list[EarningLine] = field(default_factory=list)

    @property
    def gross_pay(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)

    def amount_for(self, kind: EarningKind) -> Decimal:
        return sum((line.amount for line in self.lines if line.kind == kind), ZERO)
