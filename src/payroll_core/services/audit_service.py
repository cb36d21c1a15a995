"""Payroll audit trail: append-only log of lifecycle actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.errors import ValidationError
from payroll_core.models import PayrollLogEntry, PayrollRun
from payroll_core.services.records import PayrollLogRecord
from payroll_core.services.state_machine import PayrollAction

MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class LogFilters:
    """Filters for organization log queries; created_at range is half-open."""

    action: PayrollAction | None = None
    actor_user_id: UUID | None = None
    payroll_id: UUID | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class LogPage:
    items: list[PayrollLogRecord] = field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PayrollAuditTrail:
    """Writes and reads payroll log entries.

    Entries are only written through ``record`` inside the transaction that
    changes the run, so a committed transition always has its log entry.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        session: AsyncSession,
        run: PayrollRun,
        action: PayrollAction,
        actor_user_id: UUID,
        before_status: str | None,
        reason: str | None = None,
    ) -> PayrollLogEntry:
        """Append one entry for run's current state within the caller's session."""
        entry = PayrollLogEntry(
            payroll_id=run.payroll_id,
            organization_id=run.organization_id,
            actor_user_id=actor_user_id,
            action=action.value,
            reason=reason,
            before_status=before_status,
            after_status=run.status,
            revision=run.revision,
        )
        session.add(entry)
        await session.flush()
        return entry

    async def get_payroll_history(self, payroll_id: UUID) -> list[PayrollLogRecord]:
        """Get all entries for a payroll, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayrollLogEntry)
                .where(PayrollLogEntry.payroll_id == payroll_id)
                .order_by(PayrollLogEntry.created_at.asc(), PayrollLogEntry.log_id.asc())
            )
            return [PayrollLogRecord.from_model(e) for e in result.scalars().all()]

    async def get_organization_payroll_logs(
        self,
        organization_id: UUID,
        filters: LogFilters | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> LogPage:
        """Get a page of an organization's entries, newest first."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", limit=limit)
        if offset < 0:
            raise ValidationError("offset must not be negative", offset=offset)

        filters = filters or LogFilters()
        conditions = [PayrollLogEntry.organization_id == organization_id]
        if filters.action is not None:
            conditions.append(PayrollLogEntry.action == PayrollAction(filters.action).value)
        if filters.actor_user_id is not None:
            conditions.append(PayrollLogEntry.actor_user_id == filters.actor_user_id)
        if filters.payroll_id is not None:
            conditions.append(PayrollLogEntry.payroll_id == filters.payroll_id)
        if filters.start is not None:
            conditions.append(PayrollLogEntry.created_at >= _as_utc(filters.start))
        if filters.end is not None:
            conditions.append(PayrollLogEntry.created_at < _as_utc(filters.end))

        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(PayrollLogEntry).where(*conditions)
            )
            result = await session.execute(
                select(PayrollLogEntry)
                .where(*conditions)
                .order_by(PayrollLogEntry.created_at.desc(), PayrollLogEntry.log_id.desc())
                .limit(limit)
                .offset(offset)
            )
            items = [PayrollLogRecord.from_model(e) for e in result.scalars().all()]

        return LogPage(items=items, total=total or 0, limit=limit, offset=offset)
