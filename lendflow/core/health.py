from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from lendflow.core.settings import settings
from lendflow.db.session import engine
from lendflow.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"


async def _check_db() -> dict[str, str]:
    try:
        async with engine.begin() as conn:  # type: AsyncConnection
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


async def _check_redis() -> dict[str, str]:
    try:
        redis = get_redis_client()
        await redis.ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


async def _check_storage() -> dict[str, str]:
    provider = settings.storage_provider
    if provider == "cloudinary":
        configured = all(
            (settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret)
        )
        if configured:
            return {"status": "ok", "provider": provider}
        return {"status": "error", "provider": provider, "error": "credentials not configured"}

    # The upload directory is created on first write, so a writable ancestor is enough
    path = Path(settings.local_upload_dir).resolve()
    while not path.exists() and path != path.parent:
        path = path.parent
    if os.access(path, os.W_OK):
        return {"status": "ok", "provider": provider}
    return {"status": "error", "provider": provider, "error": f"{path} is not writable"}


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    # Only the database gates readiness; Redis and storage outages degrade single features
    ready = checks["database"].get("status") == "ok"
    healthy = all(check.get("status") == "ok" for check in checks.values())
    if healthy:
        return "ok", True
    return ("degraded" if ready else "unavailable"), ready


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def health_payload() -> dict[str, Any]:
    checks = {
        "database": await _check_db(),
        "redis": await _check_redis(),
        "storage": await _check_storage(),
    }
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "service": settings.app_name,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
