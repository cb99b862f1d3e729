from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from lendflow.api import deps
from lendflow.core.permissions import Operation
from lendflow.core.response_envelope import envelope
from lendflow.db.session import get_db
from lendflow.schemas.common import LoanStatus, LoanType
from lendflow.schemas.loan import (
    LoanApplyRequest,
    LoanApplyResponse,
    LoanDecisionRequest,
    LoanDecisionResponse,
    LoanDTO,
    LoanListFilters,
    LoanListItem,
    LoanListResponse,
    MerchantAnalyticsFilters,
    UserSummary,
)
from lendflow.services.authz import Principal
from lendflow.services.loans import LoanLedger

router = APIRouter(prefix="/loan", tags=["loans"])

APPLY_NEXT_STEPS = [
    "Complete KYC verification (if required)",
    "Wait for banker review (1-3 business days)",
    "Check status in your dashboard",
]
APPROVE_NEXT_STEPS = [
    "Funds will be disbursed within 2 business days",
    "Notification sent to applicant",
    "Audit trail updated",
]
REJECT_NEXT_STEPS = [
    "Notification sent to applicant",
    "Audit trail updated",
]


@router.post("/apply", status_code=status.HTTP_201_CREATED)
async def apply_for_loan(
    payload: LoanApplyRequest,
    principal: Principal = Depends(deps.require_operation(Operation.LOAN_APPLY)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    created = await LoanLedger(db).create(
        principal.user_id,
        principal.role,
        payload.type,
        payload.amount,
        merchant_ref=payload.merchant_id,
        purpose=payload.purpose,
    )
    data = LoanApplyResponse(
        loan=LoanDTO.model_validate(created.loan),
        application_type=created.application_type,
        next_steps=APPLY_NEXT_STEPS,
    )
    return envelope(data, "Loan application submitted successfully")


@router.get("/list")
async def list_loans(
    status_filter: LoanStatus | None = Query(default=None, alias="status"),
    type_filter: LoanType | None = Query(default=None, alias="type"),
    min_amount: Decimal | None = Query(default=None, ge=0, alias="minAmount"),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(deps.require_operation(Operation.LOAN_LIST)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    filters = LoanListFilters(status=status_filter, type=type_filter, min_amount=min_amount, limit=limit)
    loans = await LoanLedger(db).list_for_role(principal.user_id, principal.role, filters)
    items = [
        LoanListItem(
            id=loan.id,
            type=loan.type,
            amount=loan.amount,
            status=loan.status,
            created_at=loan.created_at,
            applicant=UserSummary.model_validate(loan.applicant) if loan.applicant else None,
            merchant=UserSummary.model_validate(loan.merchant) if loan.merchant else None,
        )
        for loan in loans
    ]
    data = LoanListResponse(loans=items, filters=filters, total=len(items))
    return envelope(data, f"Found {len(items)} loan(s)")


@router.get("/analytics/merchant")
async def merchant_analytics(
    status_filter: LoanStatus | None = Query(default=None, alias="status"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    principal: Principal = Depends(deps.require_operation(Operation.LOAN_ANALYTICS_MERCHANT)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    filters = MerchantAnalyticsFilters(status=status_filter, start_date=start_date, end_date=end_date)
    analytics = await LoanLedger(db).merchant_analytics(principal.user_id, filters)
    return envelope(analytics, "Merchant analytics retrieved")


@router.get("/{loan_id}/status")
async def read_loan_status(
    loan_id: UUID,
    principal: Principal = Depends(deps.require_operation(Operation.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    detail = await LoanLedger(db).get_by_id(loan_id, principal.user_id, principal.role)
    return envelope(detail, f"Loan status: {detail.loan.status.value}")


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: UUID,
    payload: LoanDecisionRequest | None = None,
    principal: Principal = Depends(deps.require_operation(Operation.LOAN_DECIDE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    notes = (payload.notes if payload else None) or "Loan approved by banker"
    loan = await LoanLedger(db).decide(loan_id, LoanStatus.APPROVED, principal.user_id, notes)
    data = LoanDecisionResponse(loan=LoanDTO.model_validate(loan), next_steps=APPROVE_NEXT_STEPS)
    return envelope(data, "Loan approved successfully")


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: UUID,
    payload: LoanDecisionRequest | None = None,
    principal: Principal = Depends(deps.require_operation(Operation.LOAN_DECIDE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    notes = (payload.notes if payload else None) or "Loan rejected by banker"
    loan = await LoanLedger(db).decide(loan_id, LoanStatus.REJECTED, principal.user_id, notes)
    data = LoanDecisionResponse(loan=LoanDTO.model_validate(loan), next_steps=REJECT_NEXT_STEPS)
    return envelope(data, "Loan rejected")
