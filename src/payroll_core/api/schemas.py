"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from payroll_core.calculators.types import Adjustment, AdjustmentCategory


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Error body returned for every core error."""

    code: str
    detail: str


# ============================================================================
# Payroll schemas
# ============================================================================


class AdjustmentInput(BaseModel):
    """Caller-supplied earning or deduction."""

    category: AdjustmentCategory
    kind: str
    amount: Decimal = Field(gt=0)
    memo: str | None = None

    def to_adjustment(self) -> Adjustment:
        return Adjustment(
            category=self.category, kind=self.kind, amount=self.amount, memo=self.memo
        )


class ProcessPayrollRequest(BaseModel):
    employee_id: UUID
    organization_id: UUID
    department_id: UUID | None = None
    period_start: date
    period_end: date
    adjustments: list[AdjustmentInput] = Field(default_factory=list)


class RecalculateRequest(BaseModel):
    """Omit adjustments to reuse the ones stored with the payroll."""

    adjustments: list[AdjustmentInput] | None = None
    reason: str | None = None


class TransitionRequest(BaseModel):
    reason: str | None = None


class VoidRequest(BaseModel):
    reason: str


class AnnotateRequest(BaseModel):
    note: str


class EarningResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    amount: Decimal
    quantity: Decimal | None = None
    rate: Decimal | None = None
    description: str | None = None


class DeductionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    amount: Decimal
    description: str | None = None


class PayrollResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_id: UUID
    employee_id: UUID
    organization_id: UUID
    department_id: UUID | None = None
    period_id: UUID | None = None
    period_start: date
    period_end: date
    gross_pay: Decimal
    taxable_income: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    status: str
    revision: int
    earnings: list[EarningResponse]
    deductions: list[DeductionResponse]
    created_at: datetime
    updated_at: datetime
    updated_by: UUID | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    released_at: datetime | None = None
    released_by: UUID | None = None
    voided_at: datetime | None = None
    voided_by: UUID | None = None
    void_reason: str | None = None


class PayrollListResponse(BaseModel):
    items: list[PayrollResponse]
    total: int



class PayrollSummaryResponse(BaseModel):
    """Pay totals and status counts for an organization's runs in a range."""

    model_config = ConfigDict(from_attributes=True)

    organization_id: UUID
    period_start: date
    period_end: date
    department_id: UUID | None = None
    total_payrolls: int
    status_counts: dict[str, int]
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    deductions_by_kind: dict[str, Decimal]


class BulkRequest(BaseModel):
    action: str
    payroll_ids: list[UUID] = Field(min_length=1)
    reason: str | None = None


class BulkFailureResponse(BaseModel):
    id: UUID
    code: str
    detail: str


class BulkResponse(BaseModel):
    successes: list[PayrollResponse]
    failures: list[BulkFailureResponse]


# ============================================================================
# Audit schemas
# ============================================================================


class PayrollLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    log_id: int
    payroll_id: UUID
    organization_id: UUID
    actor_user_id: UUID
    action: str
    reason: str | None = None
    before_status: str | None = None
    after_status: str
    revision: int
    created_at: datetime


class PayrollLogPageResponse(BaseModel):
    items: list[PayrollLogResponse]
    total: int
    limit: int
    offset: int


# ============================================================================
# Overtime schemas
# ============================================================================


class OvertimeSubmitRequest(BaseModel):
    employee_id: UUID
    organization_id: UUID
    work_date: date
    requested_minutes: int
    reason: str | None = None


class OvertimeApproveRequest(BaseModel):
    approved_minutes: int


class OvertimeRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: UUID
    employee_id: UUID
    organization_id: UUID
    work_date: date
    requested_minutes: int
    approved_minutes: int | None = None
    status: str
    reason: str | None = None
    approved_by: UUID | None = None
    decided_by: UUID | None = None
    decided_at: datetime | None = None
    created_at: datetime


class PayableMinutesResponse(BaseModel):
    employee_id: UUID
    work_date: date
    minutes: int


# ============================================================================
# Period schemas
# ============================================================================


class PeriodCreateRequest(BaseModel):
    organization_id: UUID
    start_date: date
    end_date: date
    pay_date: date


class PeriodCloseRequest(BaseModel):
    start_date: date
    end_date: date


class PeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    organization_id: UUID
    start_date: date
    end_date: date
    pay_date: date
    status: str
    closed_at: datetime | None = None
    closed_by: UUID | None = None


# ============================================================================
# Deduction schemas
# ============================================================================


class DeductionPreviewRequest(BaseModel):
    organization_id: UUID
    gross_taxable_pay: Decimal
    computation_date: date


class BracketResponse(BaseModel):
    kind: str
    base: Decimal
    min_amount: Decimal
    max_amount: Decimal | None = None
    rate: Decimal
    amount: Decimal


class DeductionPreviewResponse(BaseModel):
    social_insurance: Decimal
    health_insurance: Decimal
    housing_fund: Decimal
    tax: Decimal
    total_deductions: Decimal
    taxable_income: Decimal
    brackets: list[BracketResponse]
