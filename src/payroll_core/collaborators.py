"""Interfaces to services outside the payroll core.

Employee compensation, holidays, timesheets, attendance, late deduction
policies and authorization are owned by the surrounding application. The
core only consumes them through the protocols below. The in-memory
implementations back tests and local runs.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Protocol
from uuid import UUID


class Capability(str, Enum):
    """Capabilities checked by the core."""

    APPROVE_PAYROLL = "payroll.approve"
    RELEASE_PAYROLL = "payroll.release"
    VOID_PAYROLL = "payroll.void"
    CLOSE_PERIOD = "payroll.close_period"
    APPROVE_OVERTIME = "overtime.approve"


class PayFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    SEMI_MONTHLY = "SEMI_MONTHLY"
    BI_WEEKLY = "BI_WEEKLY"
    WEEKLY = "WEEKLY"


class HolidayType(str, Enum):
    REGULAR = "REGULAR"
    SPECIAL = "SPECIAL"
    DOUBLE = "DOUBLE"


@dataclass(frozen=True)
class CompensationRecord:
    """Current compensation of an employee; base_salary is monthly."""

    employee_id: UUID
    base_salary: Decimal
    pay_frequency: PayFrequency = PayFrequency.MONTHLY
    overtime_rate: Decimal | None = None
    rest_days: frozenset[int] = frozenset({5, 6})  # date.weekday(): Saturday, Sunday


class LatePolicyType(str, Enum):
    LATE = "LATE"
    UNDERTIME = "UNDERTIME"
    ABSENCE = "ABSENCE"


class DeductionMethod(str, Enum):
    FIXED_AMOUNT = "FIXED_AMOUNT"
    PERCENTAGE = "PERCENTAGE"  # of the daily rate
    HOURLY_RATE = "HOURLY_RATE"


@dataclass(frozen=True)
class HolidayRecord:
    holiday_date: date
    holiday_type: HolidayType
    name: str = ""
    multiplier: Decimal | None = None


@dataclass(frozen=True)
class AttendanceRecord:
    """Attendance exceptions of one employee on one work day."""

    work_date: date
    late_minutes: int = 0
    undertime_minutes: int = 0
    absent: bool = False


@dataclass(frozen=True)
class LateDeductionPolicy:
    """How an organization prices one kind of attendance exception.

    minimum_minutes and grace_period_minutes do not apply to absences.
    percentage_rate is expressed out of 100.
    """

    policy_type: LatePolicyType
    deduction_method: DeductionMethod
    fixed_amount: Decimal | None = None
    percentage_rate: Decimal | None = None
    hourly_rate_multiplier: Decimal | None = None
    grace_period_minutes: int = 0
    minimum_minutes: int = 1
    max_deduction_per_day: Decimal | None = None
    max_deduction_per_period: Decimal | None = None
    effective_start: date | None = None
    effective_end: date | None = None
    name: str = ""

    def is_effective_on(self, as_of_date: date) -> bool:
        if self.effective_start is not None and self.effective_start > as_of_date:
            return False
        if self.effective_end is not None and self.effective_end < as_of_date:
            return False
        return True


class CompensationLookup(Protocol):
    async def get_compensation(
        self, employee_id: UUID, as_of_date: date
    ) -> CompensationRecord | None: ...


class HolidayCalendar(Protocol):
    async def get_holidays(
        self, organization_id: UUID, start: date, end: date
    ) -> list[HolidayRecord]: ...


class TimesheetLookup(Protocol):
    async def get_worked_minutes(
        self, employee_id: UUID, start: date, end: date
    ) -> dict[date, int]: ...

    async def get_attendance(
        self, employee_id: UUID, start: date, end: date
    ) -> list[AttendanceRecord]: ...


class LateDeductionPolicyLookup(Protocol):
    async def get_policies(
        self, organization_id: UUID, as_of_date: date
    ) -> list[LateDeductionPolicy]: ...


class AuthorizationChecker(Protocol):
    async def has_capability(self, user_id: UUID, capability: Capability) -> bool: ...


# ===== In-memory implementations =====


@dataclass
class StaticCompensationLookup:
    records: dict[UUID, CompensationRecord] = field(default_factory=dict)

    def set(self, record: CompensationRecord) -> None:
        self.records[record.employee_id] = record

    async def get_compensation(
        self, employee_id: UUID, as_of_date: date
    ) -> CompensationRecord | None:
        return self.records.get(employee_id)


@dataclass
class StaticHolidayCalendar:
    holidays: dict[UUID, list[HolidayRecord]] = field(default_factory=lambda: defaultdict(list))

    def add(self, organization_id: UUID, holiday: HolidayRecord) -> None:
        self.holidays[organization_id].append(holiday)

    async def get_holidays(
        self, organization_id: UUID, start: date, end: date
    ) -> list[HolidayRecord]:
        return sorted(
            (h for h in self.holidays.get(organization_id, []) if start <= h.holiday_date < end),
            key=lambda h: h.holiday_date,
        )


@dataclass
class StaticTimesheetLookup:
    worked: dict[UUID, dict[date, int]] = field(default_factory=lambda: defaultdict(dict))
    attendance: dict[UUID, dict[date, AttendanceRecord]] = field(
        default_factory=lambda: defaultdict(dict)
    )

    def record(self, employee_id: UUID, work_date: date, minutes: int) -> None:
        self.worked[employee_id][work_date] = minutes

    async def get_worked_minutes(
        self, employee_id: UUID, start: date, end: date
    ) -> dict[date, int]:
        return {
            day: minutes
            for day, minutes in self.worked.get(employee_id, {}).items()
            if start <= day < end
        }

    def record_attendance(self, employee_id: UUID, attendance: AttendanceRecord) -> None:
        self.attendance[employee_id][attendance.work_date] = attendance

    async def get_attendance(
        self, employee_id: UUID, start: date, end: date
    ) -> list[AttendanceRecord]:
        records = self.attendance.get(employee_id, {})
        return [records[day] for day in sorted(records) if start <= day < end]


@dataclass
class StaticLateDeductionPolicyLookup:
    policies: dict[UUID, list[LateDeductionPolicy]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def add(self, organization_id: UUID, policy: LateDeductionPolicy) -> None:
        self.policies[organization_id].append(policy)

    async def get_policies(
        self, organization_id: UUID, as_of_date: date
    ) -> list[LateDeductionPolicy]:
        return [
            p for p in self.policies.get(organization_id, []) if p.is_effective_on(as_of_date)
        ]


@dataclass
class StaticAuthorizationChecker:
    grants: dict[UUID, set[Capability]] = field(default_factory=lambda: defaultdict(set))

    def grant(self, user_id: UUID, capabilities: Iterable[Capability]) -> None:
        self.grants[user_id].update(capabilities)

    async def has_capability(self, user_id: UUID, capability: Capability) -> bool:
        return capability in self.grants.get(user_id, set())
