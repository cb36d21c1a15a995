"""Bulk lifecycle actions with per-item isolation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence
from uuid import UUID

from payroll_core.errors import PayrollError, ValidationError
from payroll_core.services.payroll_service import PayrollLifecycleService
from payroll_core.services.records import PayrollRunRecord

logger = logging.getLogger(__name__)

BULK_ACTIONS = ("submit", "approve", "release", "void", "recalculate")


@dataclass(frozen=True)
class BulkFailure:
    id: UUID
    error: PayrollError

    @property
    def code(self) -> str:
        return self.error.code


@dataclass
class BulkResult:
    successes: list[PayrollRunRecord] = field(default_factory=list)
    failures: list[BulkFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)


class BulkOperationCoordinator:
    """Applies one lifecycle action to many payrolls.

    Every item runs in its own transaction, so a failure never rolls back
    earlier successes. Core errors become failure entries; anything else
    propagates.
    """

    def __init__(self, lifecycle: PayrollLifecycleService, max_concurrency: int = 1):
        self.lifecycle = lifecycle
        self.max_concurrency = max(1, max_concurrency)

    async def bulk_apply(
        self,
        action: str,
        payroll_ids: Sequence[UUID],
        actor_user_id: UUID,
        reason: str | None = None,
    ) -> BulkResult:
        apply = self._resolve(action, actor_user_id, reason)

        if self.max_concurrency == 1:
            outcomes = [await self._apply_one(apply, payroll_id) for payroll_id in payroll_ids]
        else:
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def bounded(payroll_id: UUID) -> PayrollRunRecord | BulkFailure:
                async with semaphore:
                    return await self._apply_one(apply, payroll_id)

            # gather preserves input order
            outcomes = await asyncio.gather(*(bounded(pid) for pid in payroll_ids))

        result = BulkResult()
        for outcome in outcomes:
            if isinstance(outcome, BulkFailure):
                result.failures.append(outcome)
            else:
                result.successes.append(outcome)

        logger.info(
            "Bulk %s by %s: %d succeeded, %d failed",
            action,
            actor_user_id,
            len(result.successes),
            len(result.failures),
        )
        return result

    def _resolve(
        self, action: str, actor_user_id: UUID, reason: str | None
    ) -> Callable[[UUID], Awaitable[PayrollRunRecord]]:
        lifecycle = self.lifecycle
        actions: dict[str, Callable[[UUID], Awaitable[PayrollRunRecord]]] = {
            "submit": lambda pid: lifecycle.submit(pid, actor_user_id),
            "approve": lambda pid: lifecycle.approve(pid, actor_user_id, reason),
            "release": lambda pid: lifecycle.release(pid, actor_user_id, reason),
            "void": lambda pid: lifecycle.void(pid, actor_user_id, reason or ""),
            "recalculate": lambda pid: lifecycle.recalculate(pid, actor_user_id, reason=reason),
        }
        normalized = (action or "").strip().lower()
        if normalized not in actions:
            raise ValidationError(
                f"Unsupported bulk action '{action}'; expected one of {', '.join(BULK_ACTIONS)}",
                action=action,
            )
        return actions[normalized]

    async def _apply_one(
        self, apply: Callable[[UUID], Awaitable[PayrollRunRecord]], payroll_id: UUID
    ) -> PayrollRunRecord | BulkFailure:
        try:
            return await apply(payroll_id)
        except PayrollError as exc:
            logger.warning("Bulk item %s failed: %s (%s)", payroll_id, exc.message, exc.code)
            return BulkFailure(id=payroll_id, error=exc)
