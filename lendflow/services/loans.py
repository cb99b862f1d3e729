import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from lendflow.core.errors import AlreadyDecided, Forbidden, InvalidTransition, NotFound, ValidationFailed
from lendflow.core.settings import settings
from lendflow.models.loan import MAX_LOAN_AMOUNT, MIN_LOAN_AMOUNT, Loan
from lendflow.schemas.audit import AuditLogEntry, RecentActivity
from lendflow.schemas.common import (
    AuditAction,
    LoanApplicationType,
    LoanStatus,
    LoanType,
    UserRole,
    enum_value,
)
from lendflow.schemas.loan import (
    LoanDetailResponse,
    LoanDTO,
    LoanFullDetails,
    LoanListFilters,
    MerchantAnalytics,
    MerchantAnalyticsFilters,
    UserSummary,
)
from lendflow.services.audit import AuditTrail
from lendflow.services.authz import can_view_loan

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "loan"
RECENT_ACTIVITY_LIMIT = 5
DECISIONS = frozenset({LoanStatus.APPROVED.value, LoanStatus.REJECTED.value})


def validate_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationFailed("Amount must be a number") from exc
    if not value.is_finite() or value < MIN_LOAN_AMOUNT or value > MAX_LOAN_AMOUNT:
        raise ValidationFailed(
            f"Amount must be between {MIN_LOAN_AMOUNT} and {MAX_LOAN_AMOUNT}",
            errors=[{"field": "amount", "message": "Out of range"}],
        )
    return value


def resolve_merchant_id(role: UserRole, applicant_id: UUID, merchant_ref: UUID | None) -> UUID | None:
    """Merchant recorded on a new loan.

    A merchant submitting with a reference is the intermediary of a proxy loan, so the
    merchant's own id is stored; the reference itself is not persisted.
    """
    if role == UserRole.MERCHANT and merchant_ref:
        return applicant_id
    return None


def application_type(role: UserRole, merchant_id: UUID | None) -> LoanApplicationType:
    if role != UserRole.MERCHANT:
        return LoanApplicationType.CUSTOMER_DIRECT
    if merchant_id is None:
        return LoanApplicationType.MERCHANT_SELF
    return LoanApplicationType.MERCHANT_PROXY


def describe_period(start_date: date | None, end_date: date | None) -> str:
    if start_date and end_date:
        return f"{start_date.isoformat()} to {end_date.isoformat()}"
    return "All time"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def summarize_merchant_loans(
    merchant_id: UUID,
    loans: Iterable,
    filters: MerchantAnalyticsFilters | None = None,
    *,
    now: datetime | None = None,
) -> MerchantAnalytics:
    """Aggregate a merchant's loans (already scoped by the query) into analytics."""
    filters = filters or MerchantAnalyticsFilters()
    total = 0
    approved = 0
    approved_amount = Decimal("0")
    approval_seconds = 0.0
    for loan in loans:
        total += 1
        if enum_value(loan.status) != LoanStatus.APPROVED.value:
            continue
        approved += 1
        approved_amount += Decimal(str(loan.amount))
        if loan.created_at and loan.updated_at:
            approval_seconds += (_aware(loan.updated_at) - _aware(loan.created_at)).total_seconds()

    if approved:
        mean_days = Decimal(str(approval_seconds / approved / 86400))
        average_days = int(mean_days.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        average_days = 0
    rate = 0
    if total:
        rate = int((Decimal(approved) * 100 / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return MerchantAnalytics(
        merchant_id=merchant_id,
        period=describe_period(filters.start_date, filters.end_date),
        total_loans=total,
        approved_loans=approved,
        approval_rate=rate,
        total_approved_amount=approved_amount,
        average_approval_time_days=average_days,
        generated_at=now or datetime.now(timezone.utc),
    )


def _summary(user, *, with_role: bool = True) -> UserSummary | None:
    if user is None:
        return None
    summary = UserSummary.model_validate(user)
    return summary if with_role else summary.model_copy(update={"role": None})


@dataclass(slots=True)
class LoanCreation:
    loan: Loan
    application_type: LoanApplicationType


class LoanLedger:
    def __init__(self, db: AsyncSession, *, audit: AuditTrail | None = None):
        self.db = db
        self.audit = audit or AuditTrail(db)

    async def _get_with_parties(self, loan_id: UUID) -> Loan | None:
        stmt = (
            select(Loan)
            .options(selectinload(Loan.applicant), selectinload(Loan.merchant))
            .where(Loan.id == loan_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        applicant_id: UUID,
        role,
        loan_type,
        amount,
        merchant_ref: UUID | None = None,
        purpose: str | None = None,
    ) -> LoanCreation:
        amount = validate_amount(amount)
        role = UserRole(enum_value(role))
        if role == UserRole.BANKER:
            raise Forbidden("Bankers cannot apply for loans")
        try:
            loan_type = LoanType(enum_value(loan_type))
        except ValueError as exc:
            raise ValidationFailed("Invalid loan type") from exc

        merchant_id = resolve_merchant_id(role, applicant_id, merchant_ref)
        kind = application_type(role, merchant_id)
        if kind == LoanApplicationType.MERCHANT_PROXY:
            logger.info("Merchant proxy application merchant_id=%s customer_ref=%s", applicant_id, merchant_ref)

        loan = Loan(
            type=loan_type.value,
            amount=amount,
            purpose=purpose,
            status=LoanStatus.PENDING.value,
            applicant_id=applicant_id,
            merchant_id=merchant_id,
            banker_id=None,
        )
        self.db.add(loan)
        await self.db.commit()
        await self.db.refresh(loan)

        logger.info(
            "Loan created loan_id=%s type=%s amount=%s applicant_id=%s application_type=%s",
            loan.id,
            loan.type,
            loan.amount,
            applicant_id,
            kind.value,
        )
        await self.audit.append(
            AuditAction.LOAN_CREATED,
            resource_type=RESOURCE_TYPE,
            resource_id=loan.id,
            loan_id=loan.id,
            actor_id=applicant_id,
            details="Loan application submitted",
        )
        return LoanCreation(loan=loan, application_type=kind)

    async def get_by_id(self, loan_id: UUID, requester_id: UUID, requester_role) -> LoanDetailResponse:
        role = UserRole(enum_value(requester_role))
        loan = await self._get_with_parties(loan_id)
        if loan is None:
            raise NotFound("Loan not found")
        if not can_view_loan(requester_id, role, loan):
            logger.warning("Loan access denied loan_id=%s requester_id=%s", loan_id, requester_id)
            raise Forbidden("Unauthorized access to loan")

        entries = await self.audit.recent_for_loan(loan.id, limit=RECENT_ACTIVITY_LIMIT)
        applicant = _summary(loan.applicant)
        merchant = _summary(loan.merchant, with_role=False)
        detail = LoanDetailResponse(
            loan=LoanDTO.model_validate(loan),
            applicant=applicant,
            merchant=merchant,
            recent_activity=[
                RecentActivity(action=entry.action, timestamp=entry.created_at, actor_id=entry.actor_id)
                for entry in entries
            ],
        )
        if role == UserRole.BANKER:
            detail.full_details = LoanFullDetails(
                applicant=applicant,
                merchant=merchant,
                audit_logs=[AuditLogEntry.model_validate(entry) for entry in entries],
            )
        elif role == UserRole.MERCHANT and loan.merchant_id == requester_id:
            detail.is_proxy_loan = True
        return detail

    async def list_for_role(self, user_id: UUID, role, filters: LoanListFilters | None = None) -> list[Loan]:
        role = UserRole(enum_value(role))
        filters = filters or LoanListFilters()
        stmt = select(Loan).options(selectinload(Loan.applicant), selectinload(Loan.merchant))

        if role == UserRole.BANKER:
            # Review queue: ownership is ignored and other filters narrow the pending set
            stmt = stmt.where(Loan.status == LoanStatus.PENDING.value)
        elif role == UserRole.MERCHANT:
            stmt = stmt.where(or_(Loan.applicant_id == user_id, Loan.merchant_id == user_id))
        else:
            stmt = stmt.where(Loan.applicant_id == user_id)

        if filters.status:
            stmt = stmt.where(Loan.status == enum_value(filters.status))
        if filters.type:
            stmt = stmt.where(Loan.type == enum_value(filters.type))
        if filters.min_amount is not None:
            stmt = stmt.where(Loan.amount >= filters.min_amount)

        stmt = stmt.order_by(Loan.created_at.desc()).limit(filters.limit)
        result = await self.db.execute(stmt)
        loans = list(result.scalars().all())
        logger.info("Loans listed user_id=%s role=%s count=%s", user_id, role.value, len(loans))
        return loans

    async def decide(self, loan_id: UUID, decision, banker_id: UUID, notes: str | None = None) -> Loan:
        decision_value = enum_value(decision)
        if decision_value not in DECISIONS:
            raise InvalidTransition("Invalid status transition")

        loan = await self.db.get(Loan, loan_id)
        if loan is None:
            raise NotFound("Loan not found")
        if settings.enforce_terminal_decisions and loan.status != LoanStatus.PENDING.value:
            raise AlreadyDecided(f"Loan already {loan.status.lower()}")

        loan.status = decision_value
        loan.banker_id = banker_id
        loan.updated_at = datetime.now(timezone.utc)
        self.db.add(loan)
        await self.db.commit()
        await self.db.refresh(loan)

        approved = decision_value == LoanStatus.APPROVED.value
        logger.info("Loan decided loan_id=%s status=%s banker_id=%s", loan.id, decision_value, banker_id)
        await self.audit.append(
            AuditAction.LOAN_APPROVED if approved else AuditAction.LOAN_REJECTED,
            resource_type=RESOURCE_TYPE,
            resource_id=loan.id,
            loan_id=loan.id,
            actor_id=banker_id,
            details=notes,
        )
        return loan

    async def merchant_analytics(
        self, merchant_id: UUID, filters: MerchantAnalyticsFilters | None = None
    ) -> MerchantAnalytics:
        filters = filters or MerchantAnalyticsFilters()
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise ValidationFailed("start_date must not be after end_date")

        stmt = select(Loan.status, Loan.amount, Loan.created_at, Loan.updated_at).where(
            Loan.merchant_id == merchant_id
        )
        if filters.status:
            stmt = stmt.where(Loan.status == enum_value(filters.status))
        if filters.start_date:
            stmt = stmt.where(
                Loan.created_at >= datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc)
            )
        if filters.end_date:
            # Inclusive of the whole end day
            end_exclusive = datetime.combine(filters.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
            stmt = stmt.where(Loan.created_at < end_exclusive)

        result = await self.db.execute(stmt)
        analytics = summarize_merchant_loans(merchant_id, result.all(), filters)
        logger.info(
            "Merchant analytics generated merchant_id=%s total_loans=%s approval_rate=%s",
            merchant_id,
            analytics.total_loans,
            analytics.approval_rate,
        )
        return analytics
