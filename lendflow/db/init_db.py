import asyncio
import logging

from sqlalchemy import select

from lendflow.core.security import get_password_hash
from lendflow.core.settings import settings
from lendflow.db.session import AsyncSessionLocal
from lendflow.models.user import User
from lendflow.schemas.common import UserRole

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """
    Seed the database with a banker account when SEED_BANKER_EMAIL is configured.
    """
    if not (settings.seed_banker_email and settings.seed_banker_password):
        logger.info("No seed banker configured; skipping seed")
        return

    email = settings.seed_banker_email.strip().lower()
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none() is not None:
            logger.info("Seed banker already exists")
            return

        session.add(
            User(
                name=settings.seed_banker_name,
                email=email,
                phone=settings.seed_banker_phone,
                password_hash=get_password_hash(settings.seed_banker_password),
                role=UserRole.BANKER.value,
            )
        )
        await session.commit()
        logger.info("Seed banker created")


if __name__ == "__main__":
    asyncio.run(init_db())
