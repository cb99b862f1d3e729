import logging
from functools import lru_cache
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lendflow.core.errors import Conflict, NotFound, ValidationFailed
from lendflow.core.security import get_password_hash, verify_password
from lendflow.models.user import User
from lendflow.schemas.auth import ProfileUpdateRequest, SignupRequest
from lendflow.schemas.common import enum_value

logger = logging.getLogger(__name__)

_DUMMY_PASSWORD = "lendflow-timing-equalizer"

PROFILE_FIELDS = ("name", "phone")


@lru_cache(maxsize=1)
def _fake_hash() -> str:
    return get_password_hash(_DUMMY_PASSWORD)


def constant_time_verify(password_hash: str | None, password: str) -> bool:
    if password_hash:
        return verify_password(password, password_hash)
    # Dummy verification to equalize timing
    verify_password(password, _fake_hash())
    return False


def _conflict_field(exc: IntegrityError) -> str:
    text = str(getattr(exc, "orig", exc)).lower()
    return "phone" if "phone" in text else "email"


class UserDirectory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_phone(self, phone: str) -> User | None:
        result = await self.db.execute(select(User).where(User.phone == phone))
        return result.scalar_one_or_none()

    async def create(self, payload: SignupRequest) -> User:
        email = str(payload.email).strip().lower()
        if await self.find_by_email(email):
            raise Conflict("User with this email already exists", field="email")
        if await self.find_by_phone(payload.phone):
            raise Conflict("User with this phone already exists", field="phone")

        try:
            password_hash = get_password_hash(payload.password)
        except ValueError as exc:
            raise ValidationFailed(str(exc), errors=[{"field": "password", "message": str(exc)}]) from exc

        user = User(
            name=payload.name.strip(),
            email=email,
            phone=payload.phone,
            password_hash=password_hash,
            role=enum_value(payload.role),
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            field = _conflict_field(exc)
            raise Conflict(f"User with this {field} already exists", field=field) from exc
        await self.db.refresh(user)
        logger.info("User created user_id=%s role=%s", user.id, user.role)
        return user

    async def validate_credential(self, email: str, password: str) -> User | None:
        user = await self.find_by_email(email)
        if not constant_time_verify(user.password_hash if user else None, password):
            return None
        return user

    async def get_profile(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def update_profile(self, user_id: UUID, payload: ProfileUpdateRequest) -> User:
        user = await self.get_profile(user_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        changes = {key: value for key, value in changes.items() if key in PROFILE_FIELDS}
        if not changes:
            return user

        new_phone = changes.get("phone")
        if new_phone and new_phone != user.phone:
            existing = await self.find_by_phone(new_phone)
            if existing is not None and existing.id != user.id:
                raise Conflict("User with this phone already exists", field="phone")

        for key, value in changes.items():
            setattr(user, key, value.strip() if key == "name" else value)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict("User with this phone already exists", field="phone") from exc
        await self.db.refresh(user)
        logger.info("Profile updated user_id=%s fields=%s", user.id, sorted(changes))
        return user
