"""Payroll period endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from payroll_core.api.dependencies import ActorId, Services
from payroll_core.api.schemas import (
    ErrorResponse,
    PeriodCloseRequest,
    PeriodCreateRequest,
    PeriodResponse,
)

router = APIRouter(tags=["payroll-periods"])

ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/payroll-periods",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_period(services: Services, body: PeriodCreateRequest) -> PeriodResponse:
    record = await services.periods.create_period(
        body.organization_id, body.start_date, body.end_date, body.pay_date
    )
    return PeriodResponse.model_validate(record)


@router.get(
    "/payroll-periods/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    services: Services, period_id: Annotated[UUID, Path()]
) -> PeriodResponse:
    record = await services.periods.get_period(period_id)
    return PeriodResponse.model_validate(record)


@router.post(
    "/organizations/{organization_id}/payroll-periods/close",
    response_model=PeriodResponse,
    responses=ERRORS,
)
async def close_period(
    services: Services,
    actor_id: ActorId,
    organization_id: Annotated[UUID, Path()],
    body: PeriodCloseRequest,
) -> PeriodResponse:
    """Close a period once every payroll in it is released or voided."""
    record = await services.periods.close_period(
        organization_id, body.start_date, body.end_date, actor_id
    )
    return PeriodResponse.model_validate(record)


@router.post(
    "/payroll-periods/{period_id}/cancel",
    response_model=PeriodResponse,
    responses=ERRORS,
)
async def cancel_period(
    services: Services,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
) -> PeriodResponse:
    record = await services.periods.cancel_period(period_id, actor_id)
    return PeriodResponse.model_validate(record)
