"""Audit log - append-only history of every mutating action on a record."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.roles import AuditAction, WorkflowStatus
from ites.config import settings
from ites.engine.errors import (
    AuditWriteFailure,
    OperationResult,
    PersistenceFailure,
    ValidationError,
)
from ites.models import AuditLogEntry
from ites.schemas.audit import ActorOut, AuditSummary
from ites.storage.repositories import (
    all_audit_entries_ascending,
    insert_audit_entry,
    list_audit_entries,
    utcnow,
)

logger = logging.getLogger(__name__)

# First occurrence of these actions is reported on the summary
_MILESTONES = {
    AuditAction.SUBMIT.value: "submitted_at",
    AuditAction.MARK_REVIEWED.value: "reviewed_at",
    AuditAction.APPROVE.value: "approved_at",
    AuditAction.REJECT.value: "rejected_at",
}


def _value(v: Any) -> Any:
    return v.value if isinstance(v, (AuditAction, WorkflowStatus)) else v


async def record_audit(
    db: AsyncSession,
    action: AuditAction,
    ite_id: str,
    user_id: str,
    old_status: WorkflowStatus | str | None = None,
    new_status: WorkflowStatus | str | None = None,
    comment: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLogEntry | None:
    """
    Append an audit entry and return it with the actor loaded.

    The insert runs in a SAVEPOINT so a failure leaves the surrounding record
    update intact. Failures are logged and return None, unless
    ``settings.audit_strict`` is set, in which case AuditWriteFailure is raised.
    """
    entry = AuditLogEntry(
        action=_value(action),
        ite_id=ite_id,
        user_id=user_id,
        old_status=_value(old_status),
        new_status=_value(new_status),
        comment=comment,
        metadata_json=metadata,
        created_at=utcnow(),
    )
    try:
        async with db.begin_nested():
            return await insert_audit_entry(db, entry)
    except SQLAlchemyError as exc:
        logger.error(
            "Failed to write audit entry action=%s ite_id=%s user_id=%s: %s",
            entry.action,
            ite_id,
            user_id,
            exc,
        )
        if settings.audit_strict:
            raise AuditWriteFailure("Audit entry could not be written") from exc
        return None


def _page_bounds(limit: int | None, offset: int | None) -> tuple[int, int]:
    if limit is None:
        limit = settings.audit_log_default_limit
    if offset is None:
        offset = 0
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    if offset < 0:
        raise ValidationError("offset must not be negative")
    return min(limit, settings.audit_log_max_limit), offset


async def list_audit_log(
    db: AsyncSession,
    ite_id: str,
    limit: int | None = None,
    offset: int | None = None,
) -> OperationResult[list[AuditLogEntry]]:
    """Entries for a record, newest first, paginated by limit/offset."""
    try:
        limit, offset = _page_bounds(limit, offset)
        entries = await list_audit_entries(db, ite_id, limit=limit, offset=offset)
    except ValidationError as exc:
        return OperationResult.failure(exc)
    except SQLAlchemyError:
        logger.exception("Failed to fetch audit logs for ite_id=%s", ite_id)
        return OperationResult.failure(PersistenceFailure("Failed to fetch audit logs"))
    return OperationResult.success(entries)


def build_summary(entries: list[AuditLogEntry]) -> AuditSummary:
    """Derive the summary from entries in ascending order."""
    summary = AuditSummary(total_actions=len(entries))
    if not entries:
        return summary
    summary.created_at = entries[0].created_at
    for entry in entries:
        field = _MILESTONES.get(entry.action)
        if field and getattr(summary, field) is None:
            setattr(summary, field, entry.created_at)
    last = entries[-1]
    if last.user is not None:
        summary.last_modified_by = ActorOut.model_validate(last.user)
    summary.transitions = sum(1 for entry in entries if entry.new_status is not None)
    return summary


async def summarize_audit_log(db: AsyncSession, ite_id: str) -> OperationResult[AuditSummary]:
    try:
        entries = await all_audit_entries_ascending(db, ite_id)
    except SQLAlchemyError:
        logger.exception("Failed to summarize audit logs for ite_id=%s", ite_id)
        return OperationResult.failure(PersistenceFailure("Failed to summarize audit logs"))
    return OperationResult.success(build_summary(entries))
