"""Payroll core services."""

from payroll_core.services.audit_service import LogFilters, LogPage, PayrollAuditTrail
from payroll_core.services.bulk_service import BulkFailure, BulkOperationCoordinator, BulkResult
from payroll_core.services.overtime_service import OvertimeResolver, OvertimeStatus
from payroll_core.services.payroll_service import PayrollLifecycleService
from payroll_core.services.period_service import PayrollPeriodService, PeriodStatus
from payroll_core.services.records import (
    DeductionRecord,
    EarningRecord,
    OvertimeRequestRecord,
    PayrollLogRecord,
    PayrollPeriodRecord,
    PayrollRunRecord,
)
from payroll_core.services.state_machine import (
    InvalidTransitionError,
    PayrollAction,
    PayrollStateMachine,
    PayrollStatus,
)

__all__ = [
    "LogFilters",
    "LogPage",
    "PayrollAuditTrail",
    "BulkFailure",
    "BulkOperationCoordinator",
    "BulkResult",
    "OvertimeResolver",
    "OvertimeStatus",
    "PayrollLifecycleService",
    "PayrollPeriodService",
    "PeriodStatus",
    "DeductionRecord",
    "EarningRecord",
    "OvertimeRequestRecord",
    "PayrollLogRecord",
    "PayrollPeriodRecord",
    "PayrollRunRecord",
    "InvalidTransitionError",
    "PayrollAction",
    "PayrollStateMachine",
    "PayrollStatus",
]
