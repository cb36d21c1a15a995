"""Earnings aggregation: base pay, overtime, holiday premium and adjustments."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from payroll_core.calculators.types import (
    ADJUSTABLE_EARNING_KINDS,
    ZERO,
    Adjustment,
    AdjustmentCategory,
    EarningKind,
    EarningLine,
    EarningsResult,
    round_to_cents,
    to_decimal,
)
from payroll_core.collaborators import (
    CompensationRecord,
    HolidayRecord,
    HolidayType,
    PayFrequency,
)
from payroll_core.errors import ValidationError

MINUTES_PER_HOUR = Decimal("60")
HOURS_PRECISION = Decimal("0.0001")

# Share of the monthly salary paid per period
FREQUENCY_FACTORS: dict[PayFrequency, Decimal] = {
    PayFrequency.MONTHLY: Decimal("1"),
    PayFrequency.SEMI_MONTHLY: Decimal("1") / Decimal("2"),
    PayFrequency.BI_WEEKLY: Decimal("12") / Decimal("26"),
    PayFrequency.WEEKLY: Decimal("12") / Decimal("52"),
}

# (holiday type, falls on rest day) -> pay multiplier for hours worked
HOLIDAY_MULTIPLIERS: dict[tuple[HolidayType, bool], Decimal] = {
    (HolidayType.REGULAR, False): Decimal("1.3"),
    (HolidayType.REGULAR, True): Decimal("2.0"),
    (HolidayType.SPECIAL, False): Decimal("1.3"),
    (HolidayType.SPECIAL, True): Decimal("1.5"),
    (HolidayType.DOUBLE, False): Decimal("2.0"),
    (HolidayType.DOUBLE, True): Decimal("2.0"),
}


def holiday_multiplier(holiday: HolidayRecord, rest_day: bool) -> Decimal:
    if holiday.multiplier is not None:
        return to_decimal(holiday.multiplier)
    return HOLIDAY_MULTIPLIERS[(holiday.holiday_type, rest_day)]


class EarningsAggregator:
    """Builds the earning lines of a payroll run.

    All inputs are plain records; the aggregator performs no I/O so that
    recalculating from the same inputs yields the same lines.
    """

    def __init__(
        self,
        standard_monthly_hours: Decimal = Decimal("160"),
        overtime_rate: Decimal = Decimal("1.25"),
    ):
        if standard_monthly_hours <= 0:
            raise ValidationError("standard_monthly_hours must be positive")
        self.standard_monthly_hours = standard_monthly_hours
        self.overtime_rate = overtime_rate

    def hourly_rate(self, compensation: CompensationRecord) -> Decimal:
        return to_decimal(compensation.base_salary) / self.standard_monthly_hours

    def aggregate(
        self,
        compensation: CompensationRecord,
        period_start: date,
        period_end: date,
        overtime_minutes_by_date: Mapping[date, int] | None = None,
        holidays: Iterable[HolidayRecord] = (),
        worked_minutes_by_date: Mapping[date, int] | None = None,
        adjustments: Iterable[Adjustment] = (),
    ) -> EarningsResult:
        if period_start >= period_end:
            raise ValidationError(
                f"Period start {period_start} must be before end {period_end}",
                period_start=period_start,
                period_end=period_end,
            )
        if compensation.base_salary < 0:
            raise ValidationError(
                "Base salary must not be negative",
                employee_id=compensation.employee_id,
            )

        result = EarningsResult()
        hourly = self.hourly_rate(compensation)

        base = round_to_cents(
            to_decimal(compensation.base_salary) * FREQUENCY_FACTORS[compensation.pay_frequency]
        )
        if base > 0:
            result.lines.append(
                EarningLine(
                    kind=EarningKind.BASE_SALARY,
                    amount=base,
                    description=f"Base salary ({compensation.pay_frequency.value.lower()})",
                )
            )

        overtime_line = self._overtime_line(
            compensation, hourly, period_start, period_end, overtime_minutes_by_date or {}
        )
        if overtime_line is not None:
            result.lines.append(overtime_line)

        result.lines.extend(
            self._holiday_lines(
                compensation,
                hourly,
                period_start,
                period_end,
                holidays,
                worked_minutes_by_date or {},
            )
        )

        for adjustment in adjustments:
            if adjustment.category != AdjustmentCategory.EARNING:
                continue
            kind = EarningKind(adjustment.kind)
            if kind not in ADJUSTABLE_EARNING_KINDS:
                raise ValidationError(
                    f"Earning kind {kind.value} cannot be supplied as an adjustment",
                    kind=kind.value,
                )
            amount = round_to_cents(to_decimal(adjustment.amount))
            if amount <= 0:
                raise ValidationError("Adjustment amount must be positive", kind=kind.value)
            result.lines.append(EarningLine(kind=kind, amount=amount, description=adjustment.memo))

        return result

    def _overtime_line(
        self,
        compensation: CompensationRecord,
        hourly: Decimal,
        period_start: date,
        period_end: date,
        minutes_by_date: Mapping[date, int],
    ) -> EarningLine | None:
        minutes = sum(
            m for day, m in minutes_by_date.items() if period_start <= day < period_end
        )
        if minutes <= 0:
            return None

        rate = to_decimal(compensation.overtime_rate or self.overtime_rate)
        hours = Decimal(minutes) / MINUTES_PER_HOUR
        amount = round_to_cents(hours * hourly * rate)
        if amount <= 0:
            return None

        return EarningLine(
            kind=EarningKind.OVERTIME,
            amount=amount,
            quantity=hours.quantize(HOURS_PRECISION),
            rate=rate,
            description=f"Overtime ({minutes} min)",
        )

    def _holiday_lines(
        self,
        compensation: CompensationRecord,
        hourly: Decimal,
        period_start: date,
        period_end: date,
        holidays: Iterable[HolidayRecord],
        worked_minutes_by_date: Mapping[date, int],
    ) -> list[EarningLine]:
        lines: list[EarningLine] = []
        for holiday in sorted(holidays, key=lambda h: h.holiday_date):
            if not (period_start <= holiday.holiday_date < period_end):
                continue
            minutes = worked_minutes_by_date.get(holiday.holiday_date, 0)
            if minutes <= 0:
                continue

            rest_day = holiday.holiday_date.weekday() in compensation.rest_days
            multiplier = holiday_multiplier(holiday, rest_day)
            # Base pay already covers the day; only the premium is added.
            premium_rate = multiplier - 1
            if premium_rate <= 0:
                continue

            hours = Decimal(minutes) / MINUTES_PER_HOUR
            amount = round_to_cents(hours * hourly * premium_rate)
            if amount <= ZERO:
                continue

            lines.append(
                EarningLine(
                    kind=EarningKind.HOLIDAY_PAY,
                    amount=amount,
                    quantity=hours.quantize(HOURS_PRECISION),
                    rate=multiplier,
                    description=holiday.name or f"{holiday.holiday_type.value.title()} holiday",
                )
            )
        return lines
