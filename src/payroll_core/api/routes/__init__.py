"""API routes."""

from payroll_core.api.routes.deductions import router as deductions_router
from payroll_core.api.routes.health import router as health_router
from payroll_core.api.routes.logs import router as logs_router
from payroll_core.api.routes.overtime import router as overtime_router
from payroll_core.api.routes.payrolls import router as payrolls_router
from payroll_core.api.routes.periods import router as periods_router

__all__ = [
    "deductions_router",
    "health_router",
    "logs_router",
    "overtime_router",
    "payrolls_router",
    "periods_router",
]
