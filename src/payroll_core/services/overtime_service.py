"""Overtime request decisions and payable minutes."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.collaborators import AuthorizationChecker, Capability
from payroll_core.config import Settings
from payroll_core.database import run_in_transaction
from payroll_core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from payroll_core.models import OvertimeRequest
from payroll_core.models.base import utcnow
from payroll_core.services.records import OvertimeRequestRecord

logger = logging.getLogger(__name__)


class OvertimeStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class OvertimeResolver:
    """Overtime request lifecycle: PENDING → APPROVED | REJECTED | CANCELLED.

    Decisions are conditional on the request still being PENDING, so two
    concurrent decisions on one request cannot both succeed. Only approved
    minutes are payable.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        authorization: AuthorizationChecker,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.authorization = authorization
        self.settings = settings

    async def submit(
        self,
        employee_id: UUID,
        organization_id: UUID,
        work_date: date,
        requested_minutes: int,
        reason: str | None = None,
    ) -> OvertimeRequestRecord:
        """Create a PENDING overtime request."""
        if requested_minutes <= 0:
            raise ValidationError(
                "Requested minutes must be positive", requested_minutes=requested_minutes
            )

        async def operation(session: AsyncSession) -> OvertimeRequestRecord:
            request = OvertimeRequest(
                employee_id=employee_id,
                organization_id=organization_id,
                work_date=work_date,
                requested_minutes=requested_minutes,
                status=OvertimeStatus.PENDING.value,
                reason=reason,
            )
            session.add(request)
            await session.flush()
            return OvertimeRequestRecord.from_model(request)

        record = await self._run(operation)
        logger.info(
            "Overtime request %s submitted for employee %s (%d min on %s)",
            record.request_id,
            employee_id,
            requested_minutes,
            work_date,
        )
        return record

    async def approve(
        self, request_id: UUID, approved_minutes: int, approver_user_id: UUID
    ) -> OvertimeRequestRecord:
        """Approve a PENDING request for at most the requested minutes."""
        await self._require_capability(approver_user_id)

        async def operation(session: AsyncSession) -> OvertimeRequestRecord:
            request = await self._load_pending(session, request_id)
            if approved_minutes <= 0 or approved_minutes > request.requested_minutes:
                raise ValidationError(
                    f"Approved minutes must be between 1 and {request.requested_minutes}",
                    approved_minutes=approved_minutes,
                    requested_minutes=request.requested_minutes,
                )
            return await self._decide(
                session,
                request,
                OvertimeStatus.APPROVED,
                approver_user_id,
                approved_minutes=approved_minutes,
                approved_by=approver_user_id,
            )

        record = await self._run(operation)
        logger.info(
            "Overtime request %s approved for %d min by %s",
            request_id,
            approved_minutes,
            approver_user_id,
        )
        return record

    async def reject(self, request_id: UUID, approver_user_id: UUID) -> OvertimeRequestRecord:
        """Reject a PENDING request."""
        await self._require_capability(approver_user_id)

        async def operation(session: AsyncSession) -> OvertimeRequestRecord:
            request = await self._load_pending(session, request_id)
            return await self._decide(session, request, OvertimeStatus.REJECTED, approver_user_id)

        record = await self._run(operation)
        logger.info("Overtime request %s rejected by %s", request_id, approver_user_id)
        return record

    async def cancel(self, request_id: UUID, actor_user_id: UUID) -> OvertimeRequestRecord:
        """Withdraw a PENDING request."""

        async def operation(session: AsyncSession) -> OvertimeRequestRecord:
            request = await self._load_pending(session, request_id)
            return await self._decide(session, request, OvertimeStatus.CANCELLED, actor_user_id)

        record = await self._run(operation)
        logger.info("Overtime request %s cancelled by %s", request_id, actor_user_id)
        return record

    async def get_request(self, request_id: UUID) -> OvertimeRequestRecord:
        async with self.session_factory() as session:
            request = await session.get(OvertimeRequest, request_id)
            if request is None:
                raise NotFoundError("OvertimeRequest", request_id)
            return OvertimeRequestRecord.from_model(request)

    async def list_pending(self, organization_id: UUID) -> list[OvertimeRequestRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OvertimeRequest)
                .where(
                    OvertimeRequest.organization_id == organization_id,
                    OvertimeRequest.status == OvertimeStatus.PENDING.value,
                )
                .order_by(OvertimeRequest.work_date, OvertimeRequest.created_at)
            )
            return [OvertimeRequestRecord.from_model(r) for r in result.scalars().all()]

    async def get_payable_overtime_minutes(self, employee_id: UUID, work_date: date) -> int:
        """Sum approved minutes of APPROVED requests on a date."""
        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.coalesce(func.sum(OvertimeRequest.approved_minutes), 0)).where(
                    OvertimeRequest.employee_id == employee_id,
                    OvertimeRequest.work_date == work_date,
                    OvertimeRequest.status == OvertimeStatus.APPROVED.value,
                )
            )
        return int(total or 0)

    async def get_payable_minutes_by_date(
        self, employee_id: UUID, start: date, end: date
    ) -> dict[date, int]:
        """Approved minutes per work date in [start, end)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(OvertimeRequest.work_date, OvertimeRequest.approved_minutes).where(
                    OvertimeRequest.employee_id == employee_id,
                    OvertimeRequest.work_date >= start,
                    OvertimeRequest.work_date < end,
                    OvertimeRequest.status == OvertimeStatus.APPROVED.value,
                )
            )
            minutes: dict[date, int] = defaultdict(int)
            for work_date, approved in result.all():
                minutes[work_date] += approved or 0
        return dict(minutes)

    # ----- internals -----

    async def _run(self, operation):
        return await run_in_transaction(
            self.session_factory, operation, self.settings.operation_timeout_seconds
        )

    async def _require_capability(self, user_id: UUID) -> None:
        if not await self.authorization.has_capability(user_id, Capability.APPROVE_OVERTIME):
            raise AuthorizationError(user_id, Capability.APPROVE_OVERTIME.value)

    async def _load_pending(self, session: AsyncSession, request_id: UUID) -> OvertimeRequest:
        result = await session.execute(
            select(OvertimeRequest)
            .where(OvertimeRequest.request_id == request_id)
            .with_for_update()
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError("OvertimeRequest", request_id)
        if request.status != OvertimeStatus.PENDING.value:
            raise ConflictError(
                f"Overtime request {request_id} is {request.status}, not PENDING",
                request_id=request_id,
                status=request.status,
            )
        return request

    async def _decide(
        self,
        session: AsyncSession,
        request: OvertimeRequest,
        status: OvertimeStatus,
        decided_by: UUID,
        approved_minutes: int | None = None,
        approved_by: UUID | None = None,
    ) -> OvertimeRequestRecord:
        result = await session.execute(
            update(OvertimeRequest)
            .where(
                OvertimeRequest.request_id == request.request_id,
                OvertimeRequest.status == OvertimeStatus.PENDING.value,
            )
            .values(
                status=status.value,
                approved_minutes=approved_minutes,
                approved_by=approved_by,
                decided_by=decided_by,
                decided_at=utcnow(),
            )
        )
        if result.rowcount == 0:
            raise ConflictError(
                f"Overtime request {request.request_id} was decided concurrently",
                request_id=request.request_id,
            )

        await session.refresh(request)
        return OvertimeRequestRecord.from_model(request)
