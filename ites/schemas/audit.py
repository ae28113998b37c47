"""Audit log schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActorOut(BaseModel):
    """Identity of the user behind an audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None
    role: str


class AuditEntryOut(BaseModel):
    """One audit log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    ite_id: str
    user_id: str
    old_status: str | None = None
    new_status: str | None = None
    comment: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime
    user: ActorOut | None = None


class Pagination(BaseModel):
    limit: int
    offset: int
    count: int


class AuditLogPage(BaseModel):
    """GET /v1/ites/{id}/audit-logs response."""

    logs: list[AuditEntryOut] = Field(default_factory=list)
    pagination: Pagination


class AuditSummary(BaseModel):
    """Derived history of a record."""

    total_actions: int = 0
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    last_modified_by: ActorOut | None = None
    transitions: int = 0


class AuditSummaryResponse(BaseModel):
    summary: AuditSummary
