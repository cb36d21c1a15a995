"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_core.collaborators import Capability
from payroll_core.errors import ConflictError


class PayrollStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"
    VOIDED = "VOIDED"


class PayrollAction(str, Enum):
    """Lifecycle actions; values double as payroll log action names."""

    GENERATED = "GENERATED"
    SUBMITTED = "SUBMITTED"
    RECALCULATED = "RECALCULATED"
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"
    VOIDED = "VOIDED"
    ANNOTATED = "ANNOTATED"


class InvalidTransitionError(ConflictError):
    """Raised when an action is attempted from a status that forbids it."""

    def __init__(self, action: PayrollAction | str, from_status: str, reason: str | None = None):
        self.action = PayrollAction(action)
        self.from_status = from_status
        self.reason = reason
        msg = f"Cannot apply '{self.action.value}' to a payroll in status '{from_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, action=self.action.value, from_status=from_status)


class PayrollStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - DRAFT → PENDING_APPROVAL (submit)
    - DRAFT, PENDING_APPROVAL → DRAFT (recalculate, new revision)
    - DRAFT, PENDING_APPROVAL → APPROVED
    - APPROVED → RELEASED (irreversible)
    - DRAFT, PENDING_APPROVAL, APPROVED → VOIDED (irreversible)
    """

    # {action: ({valid source statuses}, resulting status)}
    TRANSITIONS: dict[PayrollAction, tuple[frozenset[PayrollStatus], PayrollStatus]] = {
        PayrollAction.SUBMITTED: (
            frozenset({PayrollStatus.DRAFT}),
            PayrollStatus.PENDING_APPROVAL,
        ),
        PayrollAction.RECALCULATED: (
            frozenset({PayrollStatus.DRAFT, PayrollStatus.PENDING_APPROVAL}),
            PayrollStatus.DRAFT,
        ),
        PayrollAction.APPROVED: (
            frozenset({PayrollStatus.DRAFT, PayrollStatus.PENDING_APPROVAL}),
            PayrollStatus.APPROVED,
        ),
        PayrollAction.RELEASED: (
            frozenset({PayrollStatus.APPROVED}),
            PayrollStatus.RELEASED,
        ),
        PayrollAction.VOIDED: (
            frozenset(
                {PayrollStatus.DRAFT, PayrollStatus.PENDING_APPROVAL, PayrollStatus.APPROVED}
            ),
            PayrollStatus.VOIDED,
        ),
    }

    # Capability each gated action requires
    REQUIRED_CAPABILITIES: dict[PayrollAction, Capability] = {
        PayrollAction.APPROVED: Capability.APPROVE_PAYROLL,
        PayrollAction.RELEASED: Capability.RELEASE_PAYROLL,
        PayrollAction.VOIDED: Capability.VOID_PAYROLL,
    }

    TERMINAL = frozenset({PayrollStatus.RELEASED, PayrollStatus.VOIDED})

    @classmethod
    def can_apply(cls, action: PayrollAction, from_status: str) -> bool:
        """Check if an action is valid from a status."""
        if action == PayrollAction.ANNOTATED:
            return True
        transition = cls.TRANSITIONS.get(action)
        if transition is None:
            return False
        sources, _ = transition
        return any(from_status == status.value for status in sources)

    @classmethod
    def validate(cls, action: PayrollAction, from_status: str) -> PayrollStatus:
        """Validate an action, returning the resulting status.

        Raises InvalidTransitionError if the action is not allowed.
        """
        if action == PayrollAction.ANNOTATED:
            return PayrollStatus(from_status)
        if not cls.can_apply(action, from_status):
            reason = "payroll is final" if cls.is_terminal(from_status) else None
            raise InvalidTransitionError(action, from_status, reason)
        return cls.TRANSITIONS[action][1]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return any(status == terminal.value for terminal in cls.TERMINAL)

    @classmethod
    def required_capability(cls, action: PayrollAction) -> Capability | None:
        return cls.REQUIRED_CAPABILITIES.get(action)

    @classmethod
    def next_actions(cls, status: str) -> list[PayrollAction]:
        """Get the lifecycle actions valid from a status."""
        return [action for action in cls.TRANSITIONS if cls.can_apply(action, status)]
