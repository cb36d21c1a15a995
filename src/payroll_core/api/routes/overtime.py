"""Overtime request endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_core.api.dependencies import ActorId, Services
from payroll_core.api.schemas import (
    ErrorResponse,
    OvertimeApproveRequest,
    OvertimeRequestResponse,
    OvertimeSubmitRequest,
    PayableMinutesResponse,
)

router = APIRouter(tags=["overtime"])

ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/overtime-requests",
    response_model=OvertimeRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def submit_overtime(
    services: Services, body: OvertimeSubmitRequest
) -> OvertimeRequestResponse:
    record = await services.overtime.submit(
        employee_id=body.employee_id,
        organization_id=body.organization_id,
        work_date=body.work_date,
        requested_minutes=body.requested_minutes,
        reason=body.reason,
    )
    return OvertimeRequestResponse.model_validate(record)


@router.get(
    "/organizations/{organization_id}/overtime-requests/pending",
    response_model=list[OvertimeRequestResponse],
)
async def list_pending_overtime(
    services: Services, organization_id: Annotated[UUID, Path()]
) -> list[OvertimeRequestResponse]:
    records = await services.overtime.list_pending(organization_id)
    return [OvertimeRequestResponse.model_validate(r) for r in records]


@router.post(
    "/overtime-requests/{request_id}/approve",
    response_model=OvertimeRequestResponse,
    responses=ERRORS,
)
async def approve_overtime(
    services: Services,
    actor_id: ActorId,
    request_id: Annotated[UUID, Path()],
    body: OvertimeApproveRequest,
) -> OvertimeRequestResponse:
    record = await services.overtime.approve(request_id, body.approved_minutes, actor_id)
    return OvertimeRequestResponse.model_validate(record)


@router.post(
    "/overtime-requests/{request_id}/reject",
    response_model=OvertimeRequestResponse,
    responses=ERRORS,
)
async def reject_overtime(
    services: Services,
    actor_id: ActorId,
    request_id: Annotated[UUID, Path()],
) -> OvertimeRequestResponse:
    record = await services.overtime.reject(request_id, actor_id)
    return OvertimeRequestResponse.model_validate(record)


@router.post(
    "/overtime-requests/{request_id}/cancel",
    response_model=OvertimeRequestResponse,
    responses=ERRORS,
)
async def cancel_overtime(
    services: Services,
    actor_id: ActorId,
    request_id: Annotated[UUID, Path()],
) -> OvertimeRequestResponse:
    record = await services.overtime.cancel(request_id, actor_id)
    return OvertimeRequestResponse.model_validate(record)


@router.get(
    "/employees/{employee_id}/overtime/payable",
    response_model=PayableMinutesResponse,
)
async def get_payable_overtime(
    services: Services,
    employee_id: Annotated[UUID, Path()],
    work_date: Annotated[date, Query()],
) -> PayableMinutesResponse:
    """Approved overtime minutes payable for a work date."""
    minutes = await services.overtime.get_payable_overtime_minutes(employee_id, work_date)
    return PayableMinutesResponse(employee_id=employee_id, work_date=work_date, minutes=minutes)
