"""Tests for PayrollLifecycleService."""

import asyncio
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_core.calculators.types import Adjustment, AdjustmentCategory
from payroll_core.collaborators import CompensationRecord, HolidayRecord, HolidayType
from payroll_core.container import build_container
from payroll_core.database import run_in_transaction
from payroll_core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from payroll_core.services.state_machine import InvalidTransitionError, PayrollStatus

MARCH_START = date(2026, 3, 1)
APRIL_START = date(2026, 4, 1)


def loan(amount: str) -> Adjustment:
    return Adjustment(AdjustmentCategory.DEDUCTION, "LOAN_REPAYMENT", Decimal(amount), "Loan")


def allowance(amount: str) -> Adjustment:
    return Adjustment(AdjustmentCategory.EARNING, "ALLOWANCE", Decimal(amount), "Transport")


class TestProcessPayroll:
    """Test payroll generation."""

    async def test_creates_draft_with_totals(self, process_march, employee_id):
        run = await process_march()

        assert run.status == PayrollStatus.DRAFT.value
        assert run.employee_id == employee_id
        assert run.revision == 1
        assert run.gross_pay == Decimal("45000.00")
        assert run.taxable_income == Decimal("41750.00")
        assert run.total_deductions == Decimal("6808.40")
        assert run.net_pay == Decimal("38191.60")

        assert [e.kind for e in run.earnings] == ["BASE_SALARY"]
        assert [d.kind for d in run.deductions] == [
            "SOCIAL_INSURANCE",
            "HEALTH_INSURANCE",
            "HOUSING_FUND",
            "INCOME_TAX",
        ]
        assert run.deduction_amount("INCOME_TAX") == Decimal("3558.40")

    async def test_net_is_gross_minus_deductions(self, process_march):
        run = await process_march(adjustments=[allowance("1500"), loan("500")])

        assert run.gross_pay == Decimal("46500.00")
        # 2092.50 + 1162.50 + 100.00 + 3837.40 + 500.00
        assert run.total_deductions == Decimal("7692.40")
        assert run.net_pay == Decimal("38807.60")
        assert run.net_pay == run.gross_pay - sum(d.amount for d in run.deductions)

    async def test_generation_is_logged(self, container, process_march, admin_id):
        run = await process_march()

        history = await container.audit.get_payroll_history(run.payroll_id)

        assert len(history) == 1
        assert history[0].action == "GENERATED"
        assert history[0].before_status is None
        assert history[0].after_status == "DRAFT"
        assert history[0].actor_user_id == admin_id

    async def test_overtime_and_holiday_included(
        self, container, process_march, org_id, employee_id, admin_id, holidays, timesheets
    ):
        # 45,000 / 160 h = 281.25 per hour
        request = await container.overtime.submit(employee_id, org_id, MARCH_START, 120)
        await container.overtime.approve(request.request_id, 60, admin_id)
        holiday = MARCH_START.replace(day=2)
        holidays.add(org_id, HolidayRecord(holiday, HolidayType.REGULAR, "Founders Day"))
        timesheets.record(employee_id, holiday, 480)

        run = await process_march()

        kinds = {e.kind: e.amount for e in run.earnings}
        assert kinds["OVERTIME"] == Decimal("351.56")
        assert kinds["HOLIDAY_PAY"] == Decimal("675.00")
        assert run.gross_pay == Decimal("46026.56")

    async def test_overlapping_run_rejected(self, process_march):
        await process_march()

        with pytest.raises(ConflictError):
            await process_march(period_start=MARCH_START.replace(day=15))

    async def test_voided_run_does_not_block(self, container, process_march, admin_id):
        first = await process_march()
        await container.payrolls.void(first.payroll_id, admin_id, "Wrong salary")

        second = await process_march()

        assert second.payroll_id != first.payroll_id

    async def test_invalid_period_rejected(self, process_march):
        with pytest.raises(ValidationError):
            await process_march(period_start=APRIL_START, period_end=MARCH_START)

    async def test_missing_compensation(self, process_march):
        with pytest.raises(NotFoundError):
            await process_march(employee_id=uuid4())

    @pytest.mark.parametrize(
        "adjustment",
        [
            Adjustment(AdjustmentCategory.DEDUCTION, "INCOME_TAX", Decimal("10")),
            Adjustment(AdjustmentCategory.EARNING, "BASE_SALARY", Decimal("10")),
            Adjustment(AdjustmentCategory.DEDUCTION, "PARKING", Decimal("10")),
            Adjustment(AdjustmentCategory.EARNING, "BONUS", Decimal("0")),
            Adjustment(AdjustmentCategory.EARNING, "BONUS", Decimal("0.004")),
            Adjustment(AdjustmentCategory.DEDUCTION, "LOAN_REPAYMENT", Decimal("0.004")),
        ],
    )
    async def test_invalid_adjustment_rejected(self, process_march, container, org_id, adjustment):
        with pytest.raises(ValidationError):
            await process_march(adjustments=[adjustment])

        assert await container.payrolls.list_payrolls(org_id) == []

    async def test_negative_net_pay_rejected(self, process_march, container, org_id):
        with pytest.raises(ValidationError):
            await process_march(adjustments=[loan("100000")])

        assert await container.payrolls.list_payrolls(org_id) == []

    async def test_timeout_is_transient(
        self, settings, session_factory, authorization, rate_tables
    ):
        class SlowCompensation:
            async def get_compensation(self, employee_id, as_of_date):
                await asyncio.sleep(1)

        container = build_container(
            replace(settings, operation_timeout_seconds=0.05),
            session_factory,
            compensation=SlowCompensation(),
            authorization=authorization,
            rate_tables=rate_tables,
        )

        with pytest.raises(TransientError) as exc_info:
            await container.payrolls.process_payroll(
                uuid4(), uuid4(), MARCH_START, APRIL_START, uuid4()
            )

        assert exc_info.value.retryable is True


class TestTransitions:
    """Test lifecycle transitions and their audit entries."""

    async def test_full_lifecycle_audit_chain(self, container, process_march, admin_id):
        run = await process_march()
        payrolls = container.payrolls

        await payrolls.submit(run.payroll_id, admin_id)
        await payrolls.approve(run.payroll_id, admin_id)
        released = await payrolls.release(run.payroll_id, admin_id, "March payout")

        assert released.status == "RELEASED"
        assert released.released_by == admin_id
        assert released.approved_by == admin_id
        assert released.version == 4

        history = await container.audit.get_payroll_history(run.payroll_id)
        assert [h.action for h in history] == ["GENERATED", "SUBMITTED", "APPROVED", "RELEASED"]
        assert history[-1].reason == "March payout"
        # Each entry starts where the previous one ended
        for previous, current in zip(history, history[1:]):
            assert current.before_status == previous.after_status

    async def test_approve_released_run_is_conflict(self, container, process_march, admin_id):
        """Approving a released payroll changes nothing."""
        run = await process_march()
        await container.payrolls.approve(run.payroll_id, admin_id)
        released = await container.payrolls.release(run.payroll_id, admin_id)

        with pytest.raises(ConflictError):
            await container.payrolls.approve(run.payroll_id, admin_id)

        after = await container.payrolls.get_payroll(run.payroll_id)
        assert after.status == "RELEASED"
        assert after.version == released.version
        assert after.deductions == released.deductions
        assert len(await container.audit.get_payroll_history(run.payroll_id)) == 3

    async def test_release_requires_approval(self, container, process_march, admin_id):
        run = await process_march()

        with pytest.raises(InvalidTransitionError):
            await container.payrolls.release(run.payroll_id, admin_id)

    async def test_missing_capability(self, container, process_march, clerk_id):
        run = await process_march()

        with pytest.raises(AuthorizationError):
            await container.payrolls.approve(run.payroll_id, clerk_id)

        after = await container.payrolls.get_payroll(run.payroll_id)
        assert after.status == "DRAFT"

    async def test_submit_needs_no_capability(self, container, process_march, clerk_id):
        run = await process_march()

        submitted = await container.payrolls.submit(run.payroll_id, clerk_id)

        assert submitted.status == "PENDING_APPROVAL"
        assert submitted.updated_by == clerk_id

    async def test_authorization_checked_before_existence(self, container, clerk_id):
        with pytest.raises(AuthorizationError):
            await container.payrolls.approve(uuid4(), clerk_id)

    async def test_unknown_payroll(self, container, admin_id):
        with pytest.raises(NotFoundError):
            await container.payrolls.approve(uuid4(), admin_id)

    async def test_void_requires_reason(self, container, process_march, admin_id):
        run = await process_march()

        with pytest.raises(ValidationError):
            await container.payrolls.void(run.payroll_id, admin_id, "   ")

        voided = await container.payrolls.void(run.payroll_id, admin_id, " Duplicate ")
        assert voided.status == "VOIDED"
        assert voided.void_reason == "Duplicate"
        assert voided.voided_by == admin_id

    async def test_void_state_checked_before_reason(self, container, process_march, admin_id):
        run = await process_march()
        await container.payrolls.void(run.payroll_id, admin_id, "Duplicate")

        with pytest.raises(ConflictError):
            await container.payrolls.void(run.payroll_id, admin_id, "")

    async def test_failed_transition_writes_no_log(self, container, process_march, admin_id):
        run = await process_march()

        with pytest.raises(ConflictError):
            await container.payrolls.release(run.payroll_id, admin_id)
        with pytest.raises(ValidationError):
            await container.payrolls.void(run.payroll_id, admin_id, "")

        history = await container.audit.get_payroll_history(run.payroll_id)
        assert [h.action for h in history] == ["GENERATED"]

    async def test_annotate_final_run(self, container, process_march, admin_id):
        run = await process_march()
        await container.payrolls.void(run.payroll_id, admin_id, "Duplicate")

        annotated = await container.payrolls.annotate(run.payroll_id, admin_id, "Reissued later")

        assert annotated.status == "VOIDED"
        history = await container.audit.get_payroll_history(run.payroll_id)
        assert history[-1].action == "ANNOTATED"
        assert history[-1].before_status == history[-1].after_status == "VOIDED"
        assert history[-1].reason == "Reissued later"

    async def test_annotate_requires_note(self, container, process_march, admin_id):
        run = await process_march()

        with pytest.raises(ValidationError):
            await container.payrolls.annotate(run.payroll_id, admin_id, "")

    async def test_concurrent_change_detected(
        self, container, session_factory, process_march, admin_id
    ):
        run = await process_march()

        async def stale_update(session):
            await container.payrolls._compare_and_set(
                session, run.payroll_id, run.version + 5, status="APPROVED"
            )

        with pytest.raises(ConflictError, match="modified concurrently"):
            await run_in_transaction(session_factory, stale_update)

        after = await container.payrolls.get_payroll(run.payroll_id)
        assert after.status == "DRAFT"
        assert after.version == run.version


class TestRecalculate:
    """Test payroll recalculation."""

    async def test_picks_up_new_salary(
        self, container, process_march, compensation, employee_id, admin_id
    ):
        run = await process_march()
        compensation.set(CompensationRecord(employee_id=employee_id, base_salary=Decimal("50000")))

        updated = await container.payrolls.recalculate(run.payroll_id, admin_id, reason="Raise")

        assert updated.payroll_id == run.payroll_id
        assert updated.revision == 2
        assert updated.status == "DRAFT"
        assert updated.gross_pay == Decimal("50000.00")
        assert updated.total_deductions == Decimal("8088.40")
        assert updated.net_pay == Decimal("41911.60")

        history = await container.audit.get_payroll_history(run.payroll_id)
        assert [h.action for h in history] == ["GENERATED", "RECALCULATED"]
        assert history[-1].revision == 2
        assert history[-1].reason == "Raise"

    async def test_pending_run_returns_to_draft(self, container, process_march, admin_id):
        run = await process_march()
        await container.payrolls.submit(run.payroll_id, admin_id)

        updated = await container.payrolls.recalculate(run.payroll_id, admin_id)

        assert updated.status == "DRAFT"
        history = await container.audit.get_payroll_history(run.payroll_id)
        assert history[-1].before_status == "PENDING_APPROVAL"

    async def test_reuses_stored_adjustments(self, container, process_march, admin_id):
        run = await process_march(adjustments=[allowance("1500"), loan("500")])

        updated = await container.payrolls.recalculate(run.payroll_id, admin_id)

        assert updated.gross_pay == run.gross_pay
        assert updated.net_pay == run.net_pay
        assert updated.deduction_amount("LOAN_REPAYMENT") == Decimal("500.00")

    async def test_replaces_adjustments(self, container, process_march, admin_id):
        run = await process_march(adjustments=[loan("500")])

        updated = await container.payrolls.recalculate(run.payroll_id, admin_id, adjustments=[])

        assert updated.deduction_amount("LOAN_REPAYMENT") == Decimal("0")
        assert updated.net_pay == Decimal("38191.60")

    async def test_failure_leaves_run_untouched(self, container, process_march, admin_id):
        run = await process_march()

        with pytest.raises(ValidationError):
            await container.payrolls.recalculate(
                run.payroll_id, admin_id, adjustments=[loan("100000")]
            )

        after = await container.payrolls.get_payroll(run.payroll_id)
        assert after.revision == 1
        assert after.version == run.version
        assert after.deductions == run.deductions
        assert after.net_pay == run.net_pay
        assert len(await container.audit.get_payroll_history(run.payroll_id)) == 1

    async def test_approved_run_cannot_be_recalculated(self, container, process_march, admin_id):
        run = await process_march()
        await container.payrolls.approve(run.payroll_id, admin_id)

        with pytest.raises(ConflictError):
            await container.payrolls.recalculate(run.payroll_id, admin_id)

    async def test_sub_cent_adjustment_rejected(self, container, process_march, admin_id):
        run = await process_march()

        with pytest.raises(ValidationError):
            await container.payrolls.recalculate(
                run.payroll_id, admin_id, adjustments=[loan("0.004")]
            )

        assert (await container.payrolls.get_payroll(run.payroll_id)).revision == 1

    async def test_change_during_computation_is_conflict(
        self, container, hooked_container, hooked_compensation, process_march, admin_id
    ):
        """A submit landing after the snapshot but before the write wins."""
        run = await process_march()

        async def submit_meanwhile():
            await container.payrolls.submit(run.payroll_id, admin_id)

        hooked_compensation.before_next_read = submit_meanwhile

        with pytest.raises(ConflictError, match="modified concurrently"):
            await hooked_container.payrolls.recalculate(run.payroll_id, admin_id)

        after = await container.payrolls.get_payroll(run.payroll_id)
        assert after.status == "PENDING_APPROVAL"
        assert after.revision == 1
        assert after.version == run.version + 1
        history = await container.audit.get_payroll_history(run.payroll_id)
        assert [h.action for h in history] == ["GENERATED", "SUBMITTED"]


class TestListPayrolls:
    async def test_filters(self, container, process_march, org_id, admin_id, compensation):
        other_employee = uuid4()
        compensation.set(
            CompensationRecord(employee_id=other_employee, base_salary=Decimal("30000"))
        )
        first = await process_march()
        second = await process_march(employee_id=other_employee)
        await container.payrolls.submit(second.payroll_id, admin_id)

        everything = await container.payrolls.list_payrolls(org_id)
        drafts = await container.payrolls.list_payrolls(org_id, status=PayrollStatus.DRAFT)
        by_employee = await container.payrolls.list_payrolls(org_id, employee_id=other_employee)

        assert {r.payroll_id for r in everything} == {first.payroll_id, second.payroll_id}
        assert [r.payroll_id for r in drafts] == [first.payroll_id]
        assert [r.payroll_id for r in by_employee] == [second.payroll_id]
        assert await container.payrolls.list_payrolls(uuid4()) == []


class TestPayrollSummary:
    """Test status counts and summaries over a date range."""

    async def test_count_by_status(self, container, process_march, org_id, admin_id, compensation):
        other_employee = uuid4()
        compensation.set(
            CompensationRecord(employee_id=other_employee, base_salary=Decimal("30000"))
        )
        await process_march()
        second = await process_march(employee_id=other_employee)
        await container.payrolls.void(second.payroll_id, admin_id, "Duplicate")

        counts = await container.payrolls.count_by_status(org_id, MARCH_START, APRIL_START)

        assert counts == {
            "DRAFT": 1,
            "PENDING_APPROVAL": 0,
            "APPROVED": 0,
            "RELEASED": 0,
            "VOIDED": 1,
        }
        assert sum((await container.payrolls.count_by_status(uuid4())).values()) == 0

    async def test_range_limits_counts(self, container, process_march, org_id):
        await process_march()

        april = await container.payrolls.count_by_status(
            org_id, APRIL_START, date(2026, 5, 1)
        )

        assert april["DRAFT"] == 0

    async def test_summary_totals_leave_out_voided_runs(
        self, container, process_march, org_id, admin_id, compensation
    ):
        other_employee = uuid4()
        compensation.set(
            CompensationRecord(employee_id=other_employee, base_salary=Decimal("30000"))
        )
        await process_march(adjustments=[loan("500")])
        voided = await process_march(employee_id=other_employee)
        await container.payrolls.void(voided.payroll_id, admin_id, "Duplicate")

        summary = await container.payrolls.summarize_payrolls(org_id, MARCH_START, APRIL_START)

        assert summary.total_payrolls == 2
        assert summary.status_counts["VOIDED"] == 1
        assert summary.gross_pay == Decimal("45000.00")
        assert summary.total_deductions == Decimal("7308.40")
        assert summary.net_pay == Decimal("37691.60")
        assert summary.deductions_by_kind["INCOME_TAX"] == Decimal("3558.40")
        assert summary.deductions_by_kind["LOAN_REPAYMENT"] == Decimal("500.00")

    async def test_summary_rejects_inverted_range(self, container, org_id):
        with pytest.raises(ValidationError):
            await container.payrolls.summarize_payrolls(org_id, APRIL_START, MARCH_START)
