"""API tests over the ASGI app."""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_core.collaborators import CompensationRecord


@pytest.fixture
def admin_headers(admin_id):
    return {"X-User-ID": str(admin_id)}


@pytest.fixture
def clerk_headers(clerk_id):
    return {"X-User-ID": str(clerk_id)}


@pytest.fixture
def process_body(employee_id, org_id):
    return {
        "employee_id": str(employee_id),
        "organization_id": str(org_id),
        "period_start": "2026-03-01",
        "period_end": "2026-04-01",
    }


@pytest.fixture
async def created_payroll(client, admin_headers, process_body):
    response = await client.post("/api/v1/payrolls", json=process_body, headers=admin_headers)
    assert response.status_code == 201
    return response.json()


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["version"] == "test"

    async def test_ready_and_live(self, client):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestPayrollEndpoints:
    """Test payroll processing and transitions over HTTP."""

    async def test_process_payroll(self, created_payroll, employee_id):
        assert created_payroll["status"] == "DRAFT"
        assert created_payroll["employee_id"] == str(employee_id)
        assert Decimal(created_payroll["gross_pay"]) == Decimal("45000")
        assert Decimal(created_payroll["total_deductions"]) == Decimal("6808.40")
        assert Decimal(created_payroll["net_pay"]) == Decimal("38191.60")
        assert len(created_payroll["deductions"]) == 4

    async def test_process_with_adjustments(self, client, admin_headers, process_body):
        process_body["adjustments"] = [
            {"category": "EARNING", "kind": "ALLOWANCE", "amount": "1500", "memo": "Transport"},
            {"category": "DEDUCTION", "kind": "LOAN_REPAYMENT", "amount": "500"},
        ]

        response = await client.post("/api/v1/payrolls", json=process_body, headers=admin_headers)

        assert response.status_code == 201
        assert Decimal(response.json()["net_pay"]) == Decimal("38807.60")

    async def test_missing_actor_header(self, client, process_body):
        response = await client.post("/api/v1/payrolls", json=process_body)

        assert response.status_code == 400
        assert "X-User-ID" in response.json()["detail"]

    async def test_invalid_actor_header(self, client, process_body):
        response = await client.post(
            "/api/v1/payrolls", json=process_body, headers={"X-User-ID": "not-a-uuid"}
        )

        assert response.status_code == 400

    async def test_invalid_period_is_400(self, client, admin_headers, process_body):
        process_body["period_end"] = "2026-02-01"

        response = await client.post("/api/v1/payrolls", json=process_body, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_duplicate_is_409(self, client, admin_headers, process_body, created_payroll):
        response = await client.post("/api/v1/payrolls", json=process_body, headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    async def test_get_unknown_payroll_is_404(self, client):
        response = await client.get(f"/api/v1/payrolls/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_lifecycle(self, client, admin_headers, created_payroll):
        payroll_id = created_payroll["payroll_id"]

        submitted = await client.post(
            f"/api/v1/payrolls/{payroll_id}/submit", headers=admin_headers
        )
        approved = await client.post(
            f"/api/v1/payrolls/{payroll_id}/approve",
            json={"reason": "Checked"},
            headers=admin_headers,
        )
        released = await client.post(
            f"/api/v1/payrolls/{payroll_id}/release", headers=admin_headers
        )

        assert submitted.json()["status"] == "PENDING_APPROVAL"
        assert approved.json()["status"] == "APPROVED"
        assert released.status_code == 200
        assert released.json()["status"] == "RELEASED"

        history = await client.get(f"/api/v1/payrolls/{payroll_id}/history")
        assert [h["action"] for h in history.json()] == [
            "GENERATED",
            "SUBMITTED",
            "APPROVED",
            "RELEASED",
        ]
        assert history.json()[2]["reason"] == "Checked"

    async def test_approve_without_capability_is_403(
        self, client, clerk_headers, created_payroll
    ):
        payroll_id = created_payroll["payroll_id"]

        response = await client.post(
            f"/api/v1/payrolls/{payroll_id}/approve", headers=clerk_headers
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    async def test_release_draft_is_409(self, client, admin_headers, created_payroll):
        payroll_id = created_payroll["payroll_id"]

        response = await client.post(
            f"/api/v1/payrolls/{payroll_id}/release", headers=admin_headers
        )

        assert response.status_code == 409

    async def test_void_with_blank_reason_is_400(self, client, admin_headers, created_payroll):
        payroll_id = created_payroll["payroll_id"]

        response = await client.post(
            f"/api/v1/payrolls/{payroll_id}/void", json={"reason": " "}, headers=admin_headers
        )

        assert response.status_code == 400

    async def test_void(self, client, admin_headers, created_payroll):
        payroll_id = created_payroll["payroll_id"]

        response = await client.post(
            f"/api/v1/payrolls/{payroll_id}/void",
            json={"reason": "Duplicate"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "VOIDED"
        assert response.json()["void_reason"] == "Duplicate"

    async def test_recalculate(
        self, client, admin_headers, created_payroll, compensation, employee_id
    ):
        compensation.set(CompensationRecord(employee_id=employee_id, base_salary=Decimal("50000")))
        payroll_id = created_payroll["payroll_id"]

        response = await client.post(
            f"/api/v1/payrolls/{payroll_id}/recalculate", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["revision"] == 2
        assert Decimal(response.json()["net_pay"]) == Decimal("41911.60")

    async def test_annotate(self, client, admin_headers, created_payroll):
        payroll_id = created_payroll["payroll_id"]

        response = await client.post(
            f"/api/v1/payrolls/{payroll_id}/annotations",
            json={"note": "Employee asked about tax"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        history = (await client.get(f"/api/v1/payrolls/{payroll_id}/history")).json()
        assert history[-1]["action"] == "ANNOTATED"

    async def test_list_by_status(self, client, org_id, created_payroll):
        drafts = await client.get(f"/api/v1/organizations/{org_id}/payrolls?status=DRAFT")
        approved = await client.get(f"/api/v1/organizations/{org_id}/payrolls?status=APPROVED")

        assert drafts.json()["total"] == 1
        assert drafts.json()["items"][0]["payroll_id"] == created_payroll["payroll_id"]
        assert approved.json()["total"] == 0

    async def test_status_counts(self, client, org_id, created_payroll):
        response = await client.get(
            f"/api/v1/organizations/{org_id}/payrolls/status-counts",
            params={"period_start": "2026-03-01", "period_end": "2026-04-01"},
        )

        assert response.status_code == 200
        assert response.json()["DRAFT"] == 1
        assert response.json()["VOIDED"] == 0

    async def test_summary(self, client, org_id, created_payroll):
        response = await client.get(
            f"/api/v1/organizations/{org_id}/payrolls/summary",
            params={"period_start": "2026-03-01", "period_end": "2026-04-01"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_payrolls"] == 1
        assert Decimal(data["net_pay"]) == Decimal("38191.60")
        assert Decimal(data["deductions_by_kind"]["HOUSING_FUND"]) == Decimal("100.00")

    async def test_summary_inverted_range_is_400(self, client, org_id):
        response = await client.get(
            f"/api/v1/organizations/{org_id}/payrolls/summary",
            params={"period_start": "2026-04-01", "period_end": "2026-03-01"},
        )

        assert response.status_code == 400

    async def test_sub_cent_adjustment_is_400(self, client, admin_headers, process_body):
        process_body["adjustments"] = [
            {"category": "DEDUCTION", "kind": "LOAN_REPAYMENT", "amount": "0.004"},
        ]

        response = await client.post("/api/v1/payrolls", json=process_body, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestBulkEndpoint:
    async def test_bulk_approve(self, client, admin_headers, created_payroll):
        unknown_id = str(uuid4())

        response = await client.post(
            "/api/v1/payrolls/bulk",
            json={
                "action": "approve",
                "payroll_ids": [created_payroll["payroll_id"], unknown_id],
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert [p["status"] for p in data["successes"]] == ["APPROVED"]
        assert data["failures"] == [
            {
                "id": unknown_id,
                "code": "NOT_FOUND",
                "detail": f"PayrollRun {unknown_id} not found",
            }
        ]

    async def test_unknown_action_is_400(self, client, admin_headers):
        response = await client.post(
            "/api/v1/payrolls/bulk",
            json={"action": "delete", "payroll_ids": [str(uuid4())]},
            headers=admin_headers,
        )

        assert response.status_code == 400


class TestLogEndpoint:
    async def test_logs_filtered_and_paged(self, client, admin_headers, org_id, created_payroll):
        payroll_id = created_payroll["payroll_id"]
        await client.post(f"/api/v1/payrolls/{payroll_id}/submit", headers=admin_headers)

        everything = await client.get(f"/api/v1/organizations/{org_id}/payroll-logs")
        submitted = await client.get(
            f"/api/v1/organizations/{org_id}/payroll-logs", params={"action": "SUBMITTED"}
        )
        paged = await client.get(
            f"/api/v1/organizations/{org_id}/payroll-logs", params={"limit": 1, "offset": 1}
        )

        assert everything.json()["total"] == 2
        assert everything.json()["items"][0]["action"] == "SUBMITTED"
        assert [e["action"] for e in submitted.json()["items"]] == ["SUBMITTED"]
        assert [e["action"] for e in paged.json()["items"]] == ["GENERATED"]
        assert paged.json()["limit"] == 1

    async def test_limit_out_of_range(self, client, org_id):
        response = await client.get(
            f"/api/v1/organizations/{org_id}/payroll-logs", params={"limit": 0}
        )

        assert response.status_code == 422


class TestOvertimeEndpoints:
    async def test_overtime_flow(self, client, admin_headers, employee_id, org_id):
        submitted = await client.post(
            "/api/v1/overtime-requests",
            json={
                "employee_id": str(employee_id),
                "organization_id": str(org_id),
                "work_date": "2026-03-10",
                "requested_minutes": 120,
            },
        )
        assert submitted.status_code == 201
        request_id = submitted.json()["request_id"]

        pending = await client.get(f"/api/v1/organizations/{org_id}/overtime-requests/pending")
        assert [r["request_id"] for r in pending.json()] == [request_id]

        approved = await client.post(
            f"/api/v1/overtime-requests/{request_id}/approve",
            json={"approved_minutes": 90},
            headers=admin_headers,
        )
        assert approved.status_code == 200
        assert approved.json()["approved_minutes"] == 90

        payable = await client.get(
            f"/api/v1/employees/{employee_id}/overtime/payable",
            params={"work_date": "2026-03-10"},
        )
        assert payable.json()["minutes"] == 90

    async def test_over_approval_is_400(self, client, admin_headers, employee_id, org_id):
        submitted = await client.post(
            "/api/v1/overtime-requests",
            json={
                "employee_id": str(employee_id),
                "organization_id": str(org_id),
                "work_date": "2026-03-10",
                "requested_minutes": 60,
            },
        )
        request_id = submitted.json()["request_id"]

        response = await client.post(
            f"/api/v1/overtime-requests/{request_id}/approve",
            json={"approved_minutes": 61},
            headers=admin_headers,
        )

        assert response.status_code == 400


class TestPeriodEndpoints:
    async def test_close_period_with_open_run_is_409(
        self, client, admin_headers, org_id, process_body
    ):
        created = await client.post(
            "/api/v1/payroll-periods",
            json={
                "organization_id": str(org_id),
                "start_date": "2026-03-01",
                "end_date": "2026-04-01",
                "pay_date": "2026-04-05",
            },
        )
        assert created.status_code == 201
        await client.post("/api/v1/payrolls", json=process_body, headers=admin_headers)

        response = await client.post(
            f"/api/v1/organizations/{org_id}/payroll-periods/close",
            json={"start_date": "2026-03-01", "end_date": "2026-04-01"},
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert response.json()["open_runs"] == "1"

    async def test_cancel_period(self, client, admin_headers, org_id):
        created = await client.post(
            "/api/v1/payroll-periods",
            json={
                "organization_id": str(org_id),
                "start_date": "2026-03-01",
                "end_date": "2026-04-01",
                "pay_date": "2026-04-05",
            },
        )
        period_id = created.json()["period_id"]

        response = await client.post(
            f"/api/v1/payroll-periods/{period_id}/cancel", headers=admin_headers
        )
        fetched = await client.get(f"/api/v1/payroll-periods/{period_id}")

        assert response.status_code == 200
        assert fetched.json()["status"] == "CANCELLED"


class TestDeductionPreview:
    async def test_preview(self, client, org_id):
        response = await client.post(
            "/api/v1/deductions/preview",
            json={
                "organization_id": str(org_id),
                "gross_taxable_pay": "45000",
                "computation_date": "2026-03-01",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["total_deductions"]) == Decimal("6808.40")
        assert Decimal(data["tax"]) == Decimal("3558.40")
        assert [b["kind"] for b in data["brackets"]][-1] == "INCOME_TAX"

    async def test_negative_gross_is_400(self, client, org_id):
        response = await client.post(
            "/api/v1/deductions/preview",
            json={
                "organization_id": str(org_id),
                "gross_taxable_pay": "-1",
                "computation_date": "2026-03-01",
            },
        )

        assert response.status_code == 400
