"""Statutory deduction calculation using versioned bracket tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_core.calculators.rate_tables import RateTableNotFoundError, RateTableProvider
from payroll_core.calculators.types import (
    STATUTORY_KINDS,
    ZERO,
    DeductionBreakdown,
    DeductionKind,
    RateBracket,
    RateTable,
    RateTableSet,
    round_to_cents,
    to_decimal,
)
from payroll_core.errors import ConfigurationError, ValidationError


@dataclass(frozen=True)
class BracketMatch:
    """The bracket applied to one statutory kind, for rate breakdowns."""

    kind: DeductionKind
    base: Decimal
    bracket: RateBracket
    amount: Decimal


def _require_bracket(table: RateTable, amount: Decimal) -> RateBracket:
    bracket = table.find_bracket(amount)
    if bracket is None:
        raise ConfigurationError(
            f"No {table.kind.value} bracket covers {amount}",
            kind=table.kind.value,
            amount=amount,
        )
    return bracket


def contribution_base(table: RateTable, gross: Decimal) -> Decimal:
    """Gross pay capped at the table's salary cap, if any."""
    if table.salary_cap is not None and gross > table.salary_cap:
        return table.salary_cap
    return gross


def calculate_contribution(table: RateTable, gross: Decimal) -> Decimal:
    """Compute one social-benefit contribution, rounded once."""
    if gross <= 0:
        return ZERO

    base = contribution_base(table, gross)
    bracket = _require_bracket(table, base)
    amount = base * bracket.rate + bracket.fixed_amount

    if table.max_contribution is not None and amount > table.max_contribution:
        amount = table.max_contribution

    return round_to_cents(amount)


def calculate_income_tax(table: RateTable, taxable_income: Decimal) -> Decimal:
    """Compute income tax on taxable income using the bracket's base plus excess."""
    if taxable_income <= 0:
        return ZERO

    bracket = _require_bracket(table, taxable_income)
    excess = max(ZERO, taxable_income - bracket.min_amount)
    return round_to_cents(bracket.base_amount + excess * bracket.rate)


def compute_deductions(tables: RateTableSet, gross_taxable_pay: Decimal) -> DeductionBreakdown:
    """Compute all statutory deductions for a gross amount.

    Pure: no I/O, and identical inputs give identical output. Contributions
    are computed on gross pay; income tax on gross minus the three
    contributions. Each component is rounded half-up once before summation.
    """
    gross = to_decimal(gross_taxable_pay)
    if gross < 0:
        raise ValidationError(
            f"Gross taxable pay must not be negative (got {gross})",
            gross_taxable_pay=gross,
        )

    social = calculate_contribution(tables.social_insurance, gross)
    health = calculate_contribution(tables.health_insurance, gross)
    housing = calculate_contribution(tables.housing_fund, gross)

    taxable_income = max(ZERO, gross - (social + health + housing))
    tax = calculate_income_tax(tables.income_tax, taxable_income)

    return DeductionBreakdown(
        social_insurance=social,
        health_insurance=health,
        housing_fund=housing,
        tax=tax,
        total_deductions=social + health + housing + tax,
        taxable_income=round_to_cents(taxable_income),
    )


class DeductionCalculator:
    """Resolves the effective rate tables and computes statutory deductions.

    Rate tables come from a RateTableProvider: the organization's table
    effective on the computation date, else the system default.
    """

    def __init__(self, rate_tables: RateTableProvider):
        self.rate_tables = rate_tables

    async def calculate_all_deductions(
        self,
        organization_id: UUID,
        gross_taxable_pay: Decimal | int | str,
        computation_date: date,
    ) -> DeductionBreakdown:
        """Calculate social, health, housing and income tax for one gross amount."""
        gross = to_decimal(gross_taxable_pay)
        if gross < 0:
            raise ValidationError(
                f"Gross taxable pay must not be negative (got {gross})",
                gross_taxable_pay=gross,
            )

        tables = await self.resolve_tables(organization_id, computation_date)
        return compute_deductions(tables, gross)

    async def resolve_tables(self, organization_id: UUID, computation_date: date) -> RateTableSet:
        """Load the four statutory tables effective on a date."""
        return RateTableSet(
            social_insurance=await self.rate_tables.get_rate_table(
                organization_id, DeductionKind.SOCIAL_INSURANCE, computation_date
            ),
            health_insurance=await self.rate_tables.get_rate_table(
                organization_id, DeductionKind.HEALTH_INSURANCE, computation_date
            ),
            housing_fund=await self.rate_tables.get_rate_table(
                organization_id, DeductionKind.HOUSING_FUND, computation_date
            ),
            income_tax=await self.rate_tables.get_rate_table(
                organization_id, DeductionKind.INCOME_TAX, computation_date
            ),
        )

    async def describe_rates(
        self,
        organization_id: UUID,
        gross_taxable_pay: Decimal | int | str,
        computation_date: date,
    ) -> list[BracketMatch]:
        """Return the bracket matched for each statutory kind.

        Kinds whose base is zero owe nothing and match no bracket, so they
        are left out.
        """
        gross = to_decimal(gross_taxable_pay)
        tables = await self.resolve_tables(organization_id, computation_date)
        breakdown = compute_deductions(tables, gross)

        matches: list[BracketMatch] = []
        for kind, amount in (
            (DeductionKind.SOCIAL_INSURANCE, breakdown.social_insurance),
            (DeductionKind.HEALTH_INSURANCE, breakdown.health_insurance),
            (DeductionKind.HOUSING_FUND, breakdown.housing_fund),
        ):
            table = tables.for_kind(kind)
            base = contribution_base(table, gross)
            if base <= 0:
                continue
            matches.append(BracketMatch(kind, base, _require_bracket(table, base), amount))

        if breakdown.taxable_income > 0:
            matches.append(
                BracketMatch(
                    DeductionKind.INCOME_TAX,
                    breakdown.taxable_income,
                    _require_bracket(tables.income_tax, breakdown.taxable_income),
                    breakdown.tax,
                )
            )
        return matches

    async def validate_configuration(
        self, organization_id: UUID, computation_date: date
    ) -> list[DeductionKind]:
        """List the statutory kinds with no table effective on the date."""
        missing: list[DeductionKind] = []
        for kind in STATUTORY_KINDS:
            try:
                await self.rate_tables.get_rate_table(organization_id, kind, computation_date)
            except RateTableNotFoundError:
                missing.append(kind)
        return missing
