"""Error kinds raised by the payroll core.

Every error carries a stable ``code`` so the boundary layer can map it to a
response without string matching. Only ``TransientError`` is safe to retry.
"""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base class for all payroll core errors."""

    code = "PAYROLL_ERROR"
    retryable = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message, **self._serializable_details()}

    def _serializable_details(self) -> dict[str, Any]:
        return {key: str(value) for key, value in self.details.items() if value is not None}


class ValidationError(PayrollError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"


class NotFoundError(PayrollError):
    """A referenced run, period or request does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class ConflictError(PayrollError):
    """An action was attempted from a state that forbids it."""

    code = "CONFLICT"


class AuthorizationError(PayrollError):
    """The caller lacks the capability an action requires."""

    code = "FORBIDDEN"

    def __init__(self, user_id: Any, capability: str):
        self.user_id = user_id
        self.capability = capability
        super().__init__(
            f"User {user_id} lacks capability '{capability}'",
            user_id=user_id,
            capability=capability,
        )


class ConfigurationError(PayrollError):
    """No applicable statutory rate configuration."""

    code = "CONFIGURATION_ERROR"


class TransientError(PayrollError):
    """Infrastructure failure or timeout; the operation may be retried."""

    code = "TRANSIENT_ERROR"
    retryable = True
