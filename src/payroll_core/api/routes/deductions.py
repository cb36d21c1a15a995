"""Statutory deduction preview endpoint."""

from fastapi import APIRouter

from payroll_core.api.dependencies import Services
from payroll_core.api.schemas import (
    BracketResponse,
    DeductionPreviewRequest,
    DeductionPreviewResponse,
    ErrorResponse,
)

router = APIRouter(tags=["deductions"])


@router.post(
    "/deductions/preview",
    response_model=DeductionPreviewResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def preview_deductions(
    services: Services, body: DeductionPreviewRequest
) -> DeductionPreviewResponse:
    """Compute statutory deductions for a gross amount without storing anything."""
    breakdown = await services.deductions.calculate_all_deductions(
        body.organization_id, body.gross_taxable_pay, body.computation_date
    )
    matches = await services.deductions.describe_rates(
        body.organization_id, body.gross_taxable_pay, body.computation_date
    )
    return DeductionPreviewResponse(
        social_insurance=breakdown.social_insurance,
        health_insurance=breakdown.health_insurance,
        housing_fund=breakdown.housing_fund,
        tax=breakdown.tax,
        total_deductions=breakdown.total_deductions,
        taxable_income=breakdown.taxable_income,
        brackets=[
            BracketResponse(
                kind=m.kind.value,
                base=m.base,
                min_amount=m.bracket.min_amount,
                max_amount=m.bracket.max_amount,
                rate=m.bracket.rate,
                amount=m.amount,
            )
            for m in matches
        ],
    )
