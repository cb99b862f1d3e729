import logging

from redis.exceptions import RedisError

from lendflow.core.errors import LockedOut
from lendflow.core.settings import settings
from lendflow.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def _ttl(seconds: int) -> int:
    return max(1, seconds)


def _normalize(identifier: str) -> str:
    return identifier.strip().lower()


async def check_lockout(identifier: str) -> None:
    redis = get_redis_client()
    try:
        locked = await redis.get(f"lock:{_normalize(identifier)}")
    except RedisError:
        logger.warning("Lockout check skipped, redis unavailable")
        return
    if locked:
        raise LockedOut("Too many login attempts; try later")


async def register_login_attempt(identifier: str, success: bool) -> None:
    """Count failures per email; lock after ``login_attempt_limit`` consecutive failures."""
    redis = get_redis_client()
    key = _normalize(identifier)
    fail_key = f"fail:{key}"
    lock_key = f"lock:{key}"
    ttl = _ttl(settings.login_lockout_minutes * 60)
    try:
        if success:
            await redis.delete(fail_key, lock_key)
            return
        attempts = await redis.incr(fail_key)
        await redis.expire(fail_key, ttl)
        if attempts >= settings.login_attempt_limit:
            await redis.setex(lock_key, ttl, 1)
            await redis.delete(fail_key)
            logger.warning("Login locked after %s failed attempts", attempts)
    except RedisError:
        logger.warning("Login attempt not recorded, redis unavailable")
