"""Create, edit and delete evaluation records, each leaving an audit entry."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.roles import (
    AccessKind,
    AuditAction,
    Role,
    WorkflowStatus,
    can_create,
    can_transition,
    has_role,
    is_admin,
)
from ites.engine.access import authorize, load_record, require_user
from ites.engine.audit import record_audit
from ites.engine.errors import (
    ConflictError,
    Forbidden,
    OperationResult,
    PersistenceFailure,
    WorkflowError,
)
from ites.engine.workflow import fill_if_absent
from ites.models import EvaluationRecord, User
from ites.storage.repositories import create_record, update_record, utcnow

logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = (
    "metadata_json",
    "its_fields",
    "comparison_data",
    "recommendations",
    "accepted_cells",
    "comments",
)


@dataclass
class EditOutcome:
    record: EvaluationRecord
    old_status: WorkflowStatus
    new_status: WorkflowStatus
    changed_fields: list[str]


def _conflict(record: EvaluationRecord, expected: WorkflowStatus) -> ConflictError:
    return ConflictError(
        f"ITE {record.ite_number} changed while saving; reload and retry",
        from_status=expected.value,
    )


async def create_evaluation(
    db: AsyncSession, user: User | None, payload: dict[str, Any]
) -> OperationResult[EvaluationRecord]:
    """Open a new DRAFT record owned by the caller."""
    try:
        user = require_user(user)
        if not can_create(user):
            raise Forbidden("Only creators and administrators can create ITEs", role=user.role)
        fields = {k: v for k, v in payload.items() if k in PAYLOAD_FIELDS}
        record = await create_record(db, creator_id=user.id, **fields)
        await record_audit(
            db,
            action=AuditAction.CREATE,
            ite_id=record.id,
            user_id=user.id,
            metadata={"ite_number": record.ite_number, "status": record.status},
        )
    except WorkflowError as exc:
        return OperationResult.failure(exc)
    except SQLAlchemyError:
        logger.exception("Failed to create ITE")
        return OperationResult.failure(PersistenceFailure("Failed to create ITE"))
    logger.info("ITE %s created by %s", record.ite_number, user.id)
    return OperationResult.success(record)


def start_review_patch(user: User, record: EvaluationRecord) -> dict[str, Any]:
    """Implicit PENDING_REVIEW -> IN_REVIEW when a reviewer or admin starts editing."""
    status = WorkflowStatus(record.status)
    if status is not WorkflowStatus.PENDING_REVIEW:
        return {}
    if not (has_role(user, Role.REVIEWER) or is_admin(user)):
        return {}
    if not can_transition(status, WorkflowStatus.IN_REVIEW, user.role):
        return {}
    patch = {"status": WorkflowStatus.IN_REVIEW.value}
    fill_if_absent(patch, record, "reviewer_id", user.id)
    return patch


async def edit_evaluation(
    db: AsyncSession,
    user: User | None,
    record_id: str,
    changes: dict[str, Any],
    override: bool = False,
) -> OperationResult[EditOutcome]:
    """
    Update payload fields. ``override`` lets an admin edit an APPROVED record,
    which ``can_edit`` otherwise forbids to everyone.
    """
    try:
        user = require_user(user)
        if override and not is_admin(user):
            raise Forbidden("Only administrators can override an approved ITE", role=user.role)
        record = await load_record(db, record_id)
        authorize(user, record, AccessKind.VIEW if override else AccessKind.EDIT)

        old_status = WorkflowStatus(record.status)
        patch = {k: v for k, v in changes.items() if k in PAYLOAD_FIELDS}
        patch.update(start_review_patch(user, record))
        changed = sorted(k for k in patch if k in PAYLOAD_FIELDS)
        new_status = old_status
        if patch:
            if not await update_record(db, record, patch, expected_status=old_status):
                raise _conflict(record, old_status)
            new_status = WorkflowStatus(record.status)
            metadata: dict[str, Any] = {"fields": changed}
            if override:
                metadata["override"] = True
            status_changed = new_status is not old_status
            await record_audit(
                db,
                action=AuditAction.UPDATE,
                ite_id=record.id,
                user_id=user.id,
                old_status=old_status if status_changed else None,
                new_status=new_status if status_changed else None,
                metadata=metadata,
            )
    except WorkflowError as exc:
        return OperationResult.failure(exc)
    except SQLAlchemyError:
        logger.exception("Failed to update ITE %s", record_id)
        return OperationResult.failure(PersistenceFailure("Failed to update ITE"))
    if new_status is not old_status:
        logger.info("ITE %s review started by %s", record.ite_number, user.id)
    return OperationResult.success(
        EditOutcome(record=record, old_status=old_status, new_status=new_status, changed_fields=changed)
    )


async def delete_evaluation(
    db: AsyncSession, user: User | None, record_id: str
) -> OperationResult[EvaluationRecord]:
    """Soft-delete so the audit history stays intact."""
    try:
        user = require_user(user)
        record = await load_record(db, record_id)
        authorize(user, record, AccessKind.DELETE)
        status = WorkflowStatus(record.status)
        if not await update_record(db, record, {"deleted_at": utcnow()}, expected_status=status):
            raise _conflict(record, status)
        await record_audit(
            db,
            action=AuditAction.DELETE,
            ite_id=record.id,
            user_id=user.id,
            metadata={"ite_number": record.ite_number, "status": status.value},
        )
    except WorkflowError as exc:
        return OperationResult.failure(exc)
    except SQLAlchemyError:
        logger.exception("Failed to delete ITE %s", record_id)
        return OperationResult.failure(PersistenceFailure("Failed to delete ITE"))
    logger.info("ITE %s deleted by %s", record.ite_number, user.id)
    return OperationResult.success(record)
