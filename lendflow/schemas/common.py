from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    MERCHANT = "MERCHANT"
    BANKER = "BANKER"


class LoanType(str, Enum):
    PERSONAL = "PERSONAL"
    BUSINESS = "BUSINESS"
    VEHICLE = "VEHICLE"
    EQUIPMENT = "EQUIPMENT"


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LoanApplicationType(str, Enum):
    CUSTOMER_DIRECT = "customer_direct"
    MERCHANT_SELF = "merchant_self"
    MERCHANT_PROXY = "merchant_proxy"


class KycDocumentType(str, Enum):
    ID_PROOF = "ID_PROOF"
    ADDRESS_PROOF = "ADDRESS_PROOF"
    PAN_CARD = "PAN_CARD"
    BANK_STATEMENT = "BANK_STATEMENT"


class KycDocumentStatus(str, Enum):
    UPLOADING = "UPLOADING"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class KycCompletionState(str, Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    COMPLETE = "COMPLETE"
    IN_PROGRESS = "IN_PROGRESS"
    INCOMPLETE = "INCOMPLETE"


class AuditAction(str, Enum):
    LOAN_CREATED = "LOAN_CREATED"
    LOAN_APPROVED = "LOAN_APPROVED"
    LOAN_REJECTED = "LOAN_REJECTED"
    KYC_DOCUMENT_UPLOADED = "KYC_DOCUMENT_UPLOADED"
    KYC_VERIFIED = "KYC_VERIFIED"
    KYC_REJECTED = "KYC_REJECTED"


def enum_value(value) -> str | None:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value)
