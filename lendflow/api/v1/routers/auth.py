import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from lendflow.api import deps
from lendflow.core.errors import Unauthenticated
from lendflow.core.limiter import limiter
from lendflow.core.permissions import Operation
from lendflow.core.response_envelope import envelope
from lendflow.core.security import create_access_token
from lendflow.core.settings import settings
from lendflow.db.session import get_db
from lendflow.models import User
from lendflow.schemas.auth import (
    LoginRequest,
    ProfileUpdateRequest,
    SignupRequest,
    TokenResponse,
    UserOut,
)
from lendflow.services.authz import Principal
from lendflow.services.users import UserDirectory
from lendflow.utils.login_security import check_lockout, register_login_attempt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_token(user: User) -> TokenResponse:
    token = create_access_token(str(user.id), role=user.role, email=user.email)
    return TokenResponse(user=UserOut.model_validate(user), token=token)


@router.post("/signup", status_code=status.HTTP_201_CREATED)
@limiter.limit(lambda: f"{settings.rate_limit_per_minute}/minute")
async def signup(
    payload: SignupRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await UserDirectory(db).create(payload)
    return envelope(_issue_token(user), "User registered successfully")


@router.post("/login")
@limiter.limit(lambda: f"{settings.rate_limit_per_minute}/minute")
async def login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    email = str(credentials.email)
    await check_lockout(email)
    user = await UserDirectory(db).validate_credential(email, credentials.password)
    if user is None:
        await register_login_attempt(email, success=False)
        logger.warning("Login failed")
        raise Unauthenticated("Invalid email or password")
    await register_login_attempt(email, success=True)
    logger.info("Login succeeded user_id=%s", user.id)
    return envelope(_issue_token(user), "Login successful")


@router.get("/me")
async def read_me(
    principal: Principal = Depends(deps.require_operation(Operation.PROFILE_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await UserDirectory(db).get_profile(principal.user_id)
    return envelope(UserOut.model_validate(user), "Profile retrieved")


@router.patch("/me")
async def update_me(
    payload: ProfileUpdateRequest,
    principal: Principal = Depends(deps.require_operation(Operation.PROFILE_UPDATE)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await UserDirectory(db).update_profile(principal.user_id, payload)
    return envelope(UserOut.model_validate(user), "Profile updated successfully")
