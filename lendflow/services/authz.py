from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from lendflow.core.errors import Forbidden
from lendflow.core.permissions import Operation, allowed_roles, role_names
from lendflow.schemas.common import UserRole


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: UUID
    role: UserRole
    email: str | None = None


def authorize(principal: Principal, roles: Iterable[UserRole]) -> None:
    """Raise ``Forbidden`` when ``roles`` is non-empty and excludes the principal's role."""
    roles = frozenset(roles)
    if roles and principal.role not in roles:
        raise Forbidden(
            f"Access denied. Required roles: {', '.join(role_names(roles))}. "
            f"Your role: {principal.role.value}"
        )


def authorize_operation(principal: Principal, operation: Operation) -> None:
    authorize(principal, allowed_roles(operation))


def can_view_loan(user_id: UUID, role: UserRole, loan) -> bool:
    if role == UserRole.BANKER:
        return True
    if loan.applicant_id == user_id:
        return True
    return loan.merchant_id is not None and loan.merchant_id == user_id
