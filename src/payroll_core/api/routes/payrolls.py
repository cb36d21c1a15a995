"""Payroll run API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_core.api.dependencies import ActorId, Services
from payroll_core.api.schemas import (
    AnnotateRequest,
    BulkFailureResponse,
    BulkRequest,
    BulkResponse,
    ErrorResponse,
    PayrollListResponse,
    PayrollLogResponse,
    PayrollResponse,
    PayrollSummaryResponse,
    ProcessPayrollRequest,
    RecalculateRequest,
    TransitionRequest,
    VoidRequest,
)
from payroll_core.services.state_machine import PayrollStatus

router = APIRouter(tags=["payrolls"])

ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/payrolls",
    response_model=PayrollResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
)
async def process_payroll(
    services: Services,
    actor_id: ActorId,
    body: ProcessPayrollRequest,
) -> PayrollResponse:
    """Compute and create a DRAFT payroll for one employee and period."""
    record = await services.payrolls.process_payroll(
        employee_id=body.employee_id,
        organization_id=body.organization_id,
        period_start=body.period_start,
        period_end=body.period_end,
        actor_user_id=actor_id,
        department_id=body.department_id,
        adjustments=[a.to_adjustment() for a in body.adjustments],
    )
    return PayrollResponse.model_validate(record)


@router.get(
    "/organizations/{organization_id}/payrolls",
    response_model=PayrollListResponse,
)
async def list_payrolls(
    services: Services,
    organization_id: Annotated[UUID, Path()],
    status_filter: Annotated[PayrollStatus | None, Query(alias="status")] = None,
    employee_id: UUID | None = None,
    period_id: UUID | None = None,
) -> PayrollListResponse:
    """List payrolls for an organization with optional filters."""
    records = await services.payrolls.list_payrolls(
        organization_id, status=status_filter, employee_id=employee_id, period_id=period_id
    )
    return PayrollListResponse(
        items=[PayrollResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get(
    "/organizations/{organization_id}/payrolls/status-counts",
    response_model=dict[str, int],
    responses={400: {"model": ErrorResponse}},
)
async def count_payrolls_by_status(
    services: Services,
    organization_id: Annotated[UUID, Path()],
    period_start: date | None = None,
    period_end: date | None = None,
    department_id: UUID | None = None,
) -> dict[str, int]:
    """Count an organization's payrolls per status."""
    return await services.payrolls.count_by_status(
        organization_id, period_start, period_end, department_id
    )


@router.get(
    "/organizations/{organization_id}/payrolls/summary",
    response_model=PayrollSummaryResponse,
    responses={400: {"model": ErrorResponse}},
)
async def summarize_payrolls(
    services: Services,
    organization_id: Annotated[UUID, Path()],
    period_start: date,
    period_end: date,
    department_id: UUID | None = None,
) -> PayrollSummaryResponse:
    """Summarize pay, deductions and statuses of the payrolls inside a range."""
    summary = await services.payrolls.summarize_payrolls(
        organization_id, period_start, period_end, department_id
    )
    return PayrollSummaryResponse.model_validate(summary)


@router.post(
    "/payrolls/bulk",
    response_model=BulkResponse,
    responses={400: {"model": ErrorResponse}},
)
async def bulk_apply(services: Services, actor_id: ActorId, body: BulkRequest) -> BulkResponse:
    """Apply one action to many payrolls; failures are reported per item."""
    result = await services.bulk.bulk_apply(body.action, body.payroll_ids, actor_id, body.reason)
    return BulkResponse(
        successes=[PayrollResponse.model_validate(r) for r in result.successes],
        failures=[
            BulkFailureResponse(id=f.id, code=f.error.code, detail=f.error.message)
            for f in result.failures
        ],
    )


@router.get(
    "/payrolls/{payroll_id}",
    response_model=PayrollResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll(
    services: Services,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollResponse:
    record = await services.payrolls.get_payroll(payroll_id)
    return PayrollResponse.model_validate(record)


@router.get(
    "/payrolls/{payroll_id}/history",
    response_model=list[PayrollLogResponse],
)
async def get_payroll_history(
    services: Services,
    payroll_id: Annotated[UUID, Path()],
) -> list[PayrollLogResponse]:
    """Get the payroll log of one payroll, oldest first."""
    entries = await services.audit.get_payroll_history(payroll_id)
    return [PayrollLogResponse.model_validate(e) for e in entries]


# ============================================================================
# Payroll State Transitions
# ============================================================================


@router.post("/payrolls/{payroll_id}/submit", response_model=PayrollResponse, responses=ERRORS)
async def submit_payroll(
    services: Services,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollResponse:
    record = await services.payrolls.submit(payroll_id, actor_id)
    return PayrollResponse.model_validate(record)


@router.post(
    "/payrolls/{payroll_id}/recalculate", response_model=PayrollResponse, responses=ERRORS
)
async def recalculate_payroll(
    services: Services,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    body: RecalculateRequest | None = None,
) -> PayrollResponse:
    """Recompute a payroll as a new DRAFT revision."""
    body = body or RecalculateRequest()
    adjustments = (
        [a.to_adjustment() for a in body.adjustments] if body.adjustments is not None else None
    )
    record = await services.payrolls.recalculate(
        payroll_id, actor_id, adjustments=adjustments, reason=body.reason
    )
    return PayrollResponse.model_validate(record)


@router.post("/payrolls/{payroll_id}/approve", response_model=PayrollResponse, responses=ERRORS)
async def approve_payroll(
    services: Services,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    body: TransitionRequest | None = None,
) -> PayrollResponse:
    reason = body.reason if body else None
    record = await services.payrolls.approve(payroll_id, actor_id, reason)
    return PayrollResponse.model_validate(record)


@router.post("/payrolls/{payroll_id}/release", response_model=PayrollResponse, responses=ERRORS)
async def release_payroll(
    services: Services,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    body: TransitionRequest | None = None,
) -> PayrollResponse:
    """Release an approved payroll. Irreversible."""
    reason = body.reason if body else None
    record = await services.payrolls.release(payroll_id, actor_id, reason)
    return PayrollResponse.model_validate(record)


@router.post("/payrolls/{payroll_id}/void", response_model=PayrollResponse, responses=ERRORS)
async def void_payroll(
    services: Services,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    body: VoidRequest,
) -> PayrollResponse:
    """Void a payroll. Irreversible; a reason is required."""
    record = await services.payrolls.void(payroll_id, actor_id, body.reason)
    return PayrollResponse.model_validate(record)


@router.post(
    "/payrolls/{payroll_id}/annotations", response_model=PayrollResponse, responses=ERRORS
)
async def annotate_payroll(
    services: Services,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    body: AnnotateRequest,
) -> PayrollResponse:
    record = await services.payrolls.annotate(payroll_id, actor_id, body.note)
    return PayrollResponse.model_validate(record)
