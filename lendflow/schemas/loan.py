from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from lendflow.models.loan import MAX_LOAN_AMOUNT, MIN_LOAN_AMOUNT
from lendflow.schemas.audit import AuditLogEntry, RecentActivity
from lendflow.schemas.common import LoanApplicationType, LoanStatus, LoanType, UserRole


class LoanApplyRequest(BaseModel):
    type: LoanType
    amount: Decimal = Field(ge=MIN_LOAN_AMOUNT, le=MAX_LOAN_AMOUNT)
    merchant_id: UUID | None = Field(default=None, alias="merchantId")
    purpose: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(populate_by_name=True)


class LoanDecisionRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class LoanListFilters(BaseModel):
    status: LoanStatus | None = None
    type: LoanType | None = None
    min_amount: Decimal | None = Field(default=None, ge=0)
    limit: int = Field(default=20, ge=1, le=100)


class MerchantAnalyticsFilters(BaseModel):
    status: LoanStatus | None = None
    start_date: date | None = None
    end_date: date | None = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: UserRole | None = None


class LoanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: LoanType
    amount: Decimal
    purpose: str | None = None
    status: LoanStatus
    applicant_id: UUID
    merchant_id: UUID | None = None
    banker_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoanApplyResponse(BaseModel):
    loan: LoanDTO
    application_type: LoanApplicationType
    next_steps: list[str]


class LoanListItem(BaseModel):
    id: UUID
    type: LoanType
    amount: Decimal
    status: LoanStatus
    created_at: datetime | None = None
    applicant: UserSummary | None = None
    merchant: UserSummary | None = None


class LoanListResponse(BaseModel):
    loans: list[LoanListItem]
    filters: LoanListFilters
    total: int


class LoanFullDetails(BaseModel):
    applicant: UserSummary | None = None
    merchant: UserSummary | None = None
    audit_logs: list[AuditLogEntry] = []


class LoanDetailResponse(BaseModel):
    loan: LoanDTO
    applicant: UserSummary | None = None
    merchant: UserSummary | None = None
    recent_activity: list[RecentActivity] = []
    is_proxy_loan: bool | None = None
    full_details: LoanFullDetails | None = None


class LoanDecisionResponse(BaseModel):
    loan: LoanDTO
    next_steps: list[str] = []


class MerchantAnalytics(BaseModel):
    merchant_id: UUID
    period: str
    total_loans: int
    approved_loans: int
    approval_rate: int
    total_approved_amount: Decimal
    average_approval_time_days: int
    generated_at: datetime
