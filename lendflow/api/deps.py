from uuid import UUID

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from lendflow.core.context import set_user_id
from lendflow.core.errors import Unauthenticated
from lendflow.core.permissions import Operation
from lendflow.core.security import decode_token
from lendflow.schemas.common import UserRole
from lendflow.services.authz import Principal, authorize_operation

# auto_error=False so a missing header takes the same path as a bad token
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def authenticate(token: str | None) -> Principal:
    """Turn a bearer credential into a principal; every failure is the same ``Unauthenticated``."""
    if not token:
        raise Unauthenticated()
    try:
        payload = decode_token(token, expected_type="access")
        principal = Principal(
            user_id=UUID(str(payload["sub"])),
            role=UserRole(payload["role"]),
            email=payload.get("email"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthenticated() from exc
    return principal


async def get_current_principal(token: str | None = Depends(oauth2_scheme)) -> Principal:
    principal = authenticate(token)
    set_user_id(str(principal.user_id))
    return principal


def require_operation(operation: Operation):
    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        authorize_operation(principal, operation)
        return principal

    return dependency
