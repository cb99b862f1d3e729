from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lendflow.core.logging import get_audit_logger
from lendflow.models.audit_log import AuditLog
from lendflow.schemas.common import enum_value

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()

MAX_DETAILS_LENGTH = 1000


def _truncate(details: str | None) -> str | None:
    if details is None:
        return None
    text = str(details)
    return text[:MAX_DETAILS_LENGTH] if len(text) > MAX_DETAILS_LENGTH else text


def _session_factory_for(db: AsyncSession) -> Callable[[], AsyncSession]:
    return async_sessionmaker(bind=db.bind, expire_on_commit=False, autoflush=False)


class AuditTrail:
    """Append-only record of state changes.

    ``append`` runs after the caller has committed its own change and never raises.
    Entries are written through a separate session on the same engine, so a failed
    audit write is rolled back there and the caller's session and objects are untouched.
    """

    def __init__(self, db: AsyncSession, *, session_factory: Callable[[], AsyncSession] | None = None):
        self.db = db
        self._session_factory = session_factory

    def _open_session(self) -> AsyncSession:
        factory = self._session_factory or _session_factory_for(self.db)
        return factory()

    async def append(
        self,
        action: Any,
        *,
        resource_type: str,
        resource_id: Any,
        loan_id: UUID | None = None,
        actor_id: UUID | None = None,
        details: str | None = None,
    ) -> AuditLog | None:
        action_value = enum_value(action)
        entry = AuditLog(
            loan_id=loan_id,
            actor_id=actor_id,
            action=action_value,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=_truncate(details),
        )
        try:
            async with self._open_session() as session:
                session.add(entry)
                await session.commit()
        except Exception:
            logger.exception(
                "Audit write failed action=%s resource_type=%s resource_id=%s",
                action_value,
                resource_type,
                resource_id,
            )
            return None

        audit_logger.info(
            action_value,
            extra={
                "action": action_value,
                "resource_type": resource_type,
                "resource_id": str(resource_id),
                "loan_id": str(loan_id) if loan_id else None,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return entry

    async def recent_for_loan(self, loan_id: UUID, limit: int = 5) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.loan_id == loan_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
