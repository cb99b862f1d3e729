from lendflow.models.audit_log import AuditLog
from lendflow.models.kyc_document import KycDocument
from lendflow.models.loan import Loan
from lendflow.models.user import User

__all__ = [
    "AuditLog",
    "KycDocument",
    "Loan",
    "User",
]
