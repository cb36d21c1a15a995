"""Organization payroll log endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from payroll_core.api.dependencies import Services
from payroll_core.api.schemas import PayrollLogPageResponse, PayrollLogResponse
from payroll_core.services.audit_service import MAX_PAGE_SIZE, LogFilters
from payroll_core.services.state_machine import PayrollAction

router = APIRouter(tags=["payroll-logs"])


@router.get(
    "/organizations/{organization_id}/payroll-logs",
    response_model=PayrollLogPageResponse,
)
async def list_payroll_logs(
    services: Services,
    organization_id: Annotated[UUID, Path()],
    action: PayrollAction | None = None,
    actor_user_id: UUID | None = None,
    payroll_id: UUID | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> PayrollLogPageResponse:
    """List an organization's payroll log entries, newest first."""
    page = await services.audit.get_organization_payroll_logs(
        organization_id,
        LogFilters(
            action=action,
            actor_user_id=actor_user_id,
            payroll_id=payroll_id,
            start=start,
            end=end,
        ),
        limit=limit,
        offset=offset,
    )
    return PayrollLogPageResponse(
        items=[PayrollLogResponse.model_validate(e) for e in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )
