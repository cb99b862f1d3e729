from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_id: UUID | None = None
    actor_id: UUID | None = None
    action: str
    resource_type: str
    resource_id: str
    details: str | None = None
    created_at: datetime | None = None


class RecentActivity(BaseModel):
    action: str
    timestamp: datetime | None = None
    actor_id: UUID | None = None
