"""Dashboard statistics, shaped by the caller's role."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.roles import REVIEW_STATES, Role, WorkflowStatus
from ites.models import EvaluationRecord, User
from ites.storage.repositories import count_by_status, count_records, count_users_by_role

_REVIEW_VALUES = [s.value for s in REVIEW_STATES]
_PENDING_APPROVAL = WorkflowStatus.PENDING_APPROVAL.value


async def _creator_stats(db: AsyncSession, user: User) -> dict[str, int]:
    mine = await count_by_status(db, EvaluationRecord.creator_id == user.id)
    return {
        "my_ites": sum(mine.values()),
        "my_drafts": mine[WorkflowStatus.DRAFT.value],
        "my_in_review": sum(mine[s] for s in _REVIEW_VALUES),
        "my_in_approval": mine[_PENDING_APPROVAL],
        "my_approved": mine[WorkflowStatus.APPROVED.value],
        "my_rejected": mine[WorkflowStatus.REJECTED.value],
    }


async def _reviewer_stats(db: AsyncSession, user: User) -> dict[str, int]:
    assigned = EvaluationRecord.reviewer_id == user.id
    in_review = EvaluationRecord.status.in_(_REVIEW_VALUES)
    return {
        "assigned_to_me": await count_records(db, assigned),
        "pending_my_review": await count_records(db, assigned, in_review),
        "available_for_review": await count_records(db, in_review),
    }


async def _approver_stats(db: AsyncSession, user: User) -> dict[str, int]:
    assigned = EvaluationRecord.approver_id == user.id
    pending = EvaluationRecord.status == _PENDING_APPROVAL
    return {
        "assigned_to_me": await count_records(db, assigned),
        "pending_my_approval": await count_records(db, assigned, pending),
        "available_for_approval": await count_records(db, pending),
    }


async def _admin_stats(db: AsyncSession, user: User) -> dict[str, Any]:
    return {"users_by_role": await count_users_by_role(db)}


_ROLE_STATS = {
    Role.CREATOR: _creator_stats,
    Role.REVIEWER: _reviewer_stats,
    Role.APPROVER: _approver_stats,
    Role.ADMIN: _admin_stats,
}


async def dashboard_stats(db: AsyncSession, user: User) -> dict[str, Any]:
    by_status = await count_by_status(db)
    role_stats = _ROLE_STATS.get(Role(user.role))
    return {
        "total": sum(by_status.values()),
        "drafts": by_status[WorkflowStatus.DRAFT.value],
        "in_review": sum(by_status[s] for s in _REVIEW_VALUES),
        "in_approval": by_status[_PENDING_APPROVAL],
        "approved": by_status[WorkflowStatus.APPROVED.value],
        "rejected": by_status[WorkflowStatus.REJECTED.value],
        "by_status": by_status,
        "role_specific": await role_stats(db, user) if role_stats else {},
    }
