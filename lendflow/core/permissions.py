from enum import Enum
from typing import Iterable, Mapping

from lendflow.schemas.common import UserRole


class Operation(str, Enum):
    # Account
    PROFILE_VIEW = "profile.view"
    PROFILE_UPDATE = "profile.update"

    # KYC
    KYC_UPLOAD = "kyc.upload"
    KYC_CONTENT_VIEW = "kyc.content.view"
    KYC_STATUS_VIEW = "kyc.status.view"
    KYC_REQUIREMENTS_VIEW = "kyc.requirements.view"
    KYC_REVIEW = "kyc.review"
    KYC_VERIFY = "kyc.verify"

    # Loans
    LOAN_APPLY = "loan.apply"
    LOAN_VIEW = "loan.view"
    LOAN_LIST = "loan.list"
    LOAN_DECIDE = "loan.decide"
    LOAN_ANALYTICS_MERCHANT = "loan.analytics.merchant"


ALL_ROLES = frozenset(UserRole)
APPLICANT_ROLES = frozenset({UserRole.CUSTOMER, UserRole.MERCHANT})
BANKER_ONLY = frozenset({UserRole.BANKER})

# Static allow-list per operation. Ownership checks (loan detail) happen in the ledgers.
ROLE_POLICY: Mapping[Operation, frozenset[UserRole]] = {
    Operation.PROFILE_VIEW: ALL_ROLES,
    Operation.PROFILE_UPDATE: ALL_ROLES,
    Operation.KYC_UPLOAD: APPLICANT_ROLES,
    Operation.KYC_CONTENT_VIEW: ALL_ROLES,
    Operation.KYC_STATUS_VIEW: ALL_ROLES,
    Operation.KYC_REQUIREMENTS_VIEW: ALL_ROLES,
    Operation.KYC_REVIEW: BANKER_ONLY,
    Operation.KYC_VERIFY: BANKER_ONLY,
    Operation.LOAN_APPLY: APPLICANT_ROLES,
    Operation.LOAN_VIEW: ALL_ROLES,
    Operation.LOAN_LIST: ALL_ROLES,
    Operation.LOAN_DECIDE: BANKER_ONLY,
    Operation.LOAN_ANALYTICS_MERCHANT: frozenset({UserRole.MERCHANT}),
}


def allowed_roles(operation: Operation) -> frozenset[UserRole]:
    return ROLE_POLICY[operation]


def role_names(roles: Iterable[UserRole]) -> list[str]:
    return sorted(role.value for role in roles)
