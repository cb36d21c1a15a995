"""Attendance deductions: lateness, undertime and absences priced by policy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from payroll_core.calculators.types import ZERO, DeductionKind, DeductionLine, round_to_cents
from payroll_core.collaborators import (
    AttendanceRecord,
    DeductionMethod,
    LateDeductionPolicy,
    LatePolicyType,
)
from payroll_core.errors import ConfigurationError

MINUTES_PER_HOUR = Decimal("60")
HUNDRED = Decimal("100")
STANDARD_DAILY_HOURS = Decimal("8")

POLICY_DEDUCTION_KINDS: dict[LatePolicyType, DeductionKind] = {
    LatePolicyType.LATE: DeductionKind.LATE,
    LatePolicyType.UNDERTIME: DeductionKind.UNDERTIME,
    LatePolicyType.ABSENCE: DeductionKind.ABSENCE,
}


@dataclass(frozen=True)
class AttendanceTally:
    """Occurrences and minutes that a policy charged for."""

    days: int = 0
    minutes: int = 0


def validate_policy(policy: LateDeductionPolicy) -> None:
    """Reject a policy that lacks the amount its method needs."""
    method = policy.deduction_method
    if method == DeductionMethod.FIXED_AMOUNT:
        value = policy.fixed_amount
    elif method == DeductionMethod.PERCENTAGE:
        value = policy.percentage_rate
        if value is not None and value > HUNDRED:
            raise ConfigurationError(
                f"{policy.policy_type.value} policy percentage exceeds 100",
                policy=policy.name or policy.policy_type.value,
            )
    else:
        value = policy.hourly_rate_multiplier
    if value is None or value <= 0:
        raise ConfigurationError(
            f"{policy.policy_type.value} policy using {method.value} needs a positive amount",
            policy=policy.name or policy.policy_type.value,
        )
    if policy.grace_period_minutes < 0 or policy.minimum_minutes < 0:
        raise ConfigurationError(
            f"{policy.policy_type.value} policy thresholds must not be negative",
            policy=policy.name or policy.policy_type.value,
        )


def charged_minutes(policy: LateDeductionPolicy, record: AttendanceRecord) -> int:
    """Minutes of a day the policy charges for; 0 when under grace or minimum."""
    if record.absent:
        return 0
    if policy.policy_type == LatePolicyType.LATE:
        minutes = record.late_minutes
    else:
        minutes = record.undertime_minutes
    if minutes <= policy.grace_period_minutes or minutes < policy.minimum_minutes:
        return 0
    return minutes


def day_deduction(
    policy: LateDeductionPolicy,
    hours: Decimal,
    hourly_rate: Decimal,
    daily_hours: Decimal = STANDARD_DAILY_HOURS,
) -> Decimal:
    """Price one day's exception, capped at the policy's daily maximum."""
    method = policy.deduction_method
    if method == DeductionMethod.FIXED_AMOUNT:
        amount = policy.fixed_amount
    elif method == DeductionMethod.PERCENTAGE:
        amount = hourly_rate * daily_hours * policy.percentage_rate / HUNDRED
    else:
        amount = hourly_rate * hours * policy.hourly_rate_multiplier

    if policy.max_deduction_per_day is not None and amount > policy.max_deduction_per_day:
        amount = policy.max_deduction_per_day
    return round_to_cents(amount)


def compute_attendance_deductions(
    policies: Iterable[LateDeductionPolicy],
    attendance: Iterable[AttendanceRecord],
    hourly_rate: Decimal,
    period_start: date,
    period_end: date,
    daily_hours: Decimal = STANDARD_DAILY_HOURS,
) -> list[DeductionLine]:
    """Build one LATE, UNDERTIME and ABSENCE line from a period's attendance.

    Pure. The first policy of each type applies; a type without a policy
    deducts nothing. Each day is priced and rounded on its own, then the
    period maximum caps the sum. Absent days are never also charged as
    late or undertime.
    """
    by_type: dict[LatePolicyType, LateDeductionPolicy] = {}
    for policy in policies:
        by_type.setdefault(policy.policy_type, policy)
    for policy in by_type.values():
        validate_policy(policy)

    records = sorted(
        (r for r in attendance if period_start <= r.work_date < period_end),
        key=lambda r: r.work_date,
    )

    lines: list[DeductionLine] = []
    for policy_type in (LatePolicyType.LATE, LatePolicyType.UNDERTIME, LatePolicyType.ABSENCE):
        policy = by_type.get(policy_type)
        if policy is None:
            continue

        total = ZERO
        tally = AttendanceTally()
        for record in records:
            if policy_type == LatePolicyType.ABSENCE:
                if not record.absent:
                    continue
                hours = daily_hours
                minutes = int(daily_hours * MINUTES_PER_HOUR)
            else:
                minutes = charged_minutes(policy, record)
                if minutes == 0:
                    continue
                hours = Decimal(minutes) / MINUTES_PER_HOUR
            total += day_deduction(policy, hours, hourly_rate, daily_hours)
            tally = AttendanceTally(tally.days + 1, tally.minutes + minutes)

        if policy.max_deduction_per_period is not None and total > policy.max_deduction_per_period:
            total = round_to_cents(policy.max_deduction_per_period)
        if total <= 0:
            continue

        if policy_type == LatePolicyType.ABSENCE:
            description = f"Absence ({tally.days} day(s))"
        else:
            description = (
                f"{policy_type.value.title()} ({tally.minutes} min over {tally.days} day(s))"
            )
        lines.append(
            DeductionLine(
                kind=POLICY_DEDUCTION_KINDS[policy_type], amount=total, description=description
            )
        )
    return lines
