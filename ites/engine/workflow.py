"""Workflow transition engine.

A transition is planned purely (role check, source-state check, field patch,
transition-table re-check) and then applied as a conditional update keyed on the
status the plan was computed from, followed by one audit entry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.roles import (
    ACTION_RULES,
    Action,
    ActionRule,
    Role,
    WorkflowStatus,
    can_transition,
    is_owner,
)
from ites.engine.access import load_record, require_user
from ites.engine.audit import record_audit
from ites.engine.errors import (
    ConflictError,
    Forbidden,
    OperationResult,
    PersistenceFailure,
    ValidationError,
    WorkflowError,
)
from ites.models import AuditLogEntry, EvaluationRecord, User
from ites.storage.repositories import get_user_by_id, update_record, utcnow

logger = logging.getLogger(__name__)

# Explicit assignee ids each action accepts from the request
ASSIGNABLE_FIELDS: dict[Action, tuple[str, ...]] = {
    Action.SUBMIT: ("reviewer_id",),
    Action.RECALL: (),
    Action.MARK_REVIEWED: ("reviewer_id", "approver_id"),
    Action.APPROVE: ("approver_id",),
    Action.REJECT: ("approver_id",),
}

# Roles an explicitly assigned user must hold
ASSIGNEE_ROLES = {
    "reviewer_id": frozenset({Role.REVIEWER, Role.ADMIN}),
    "approver_id": frozenset({Role.APPROVER, Role.ADMIN}),
}


@dataclass
class TransitionPlan:
    """Computed effect of an action before it is persisted."""

    rule: ActionRule
    old_status: WorkflowStatus
    new_status: WorkflowStatus
    patch: dict[str, Any] = field(default_factory=dict)
    comment: str | None = None
    # Assignee fields supplied by the caller rather than self-assigned
    assigned: tuple[str, ...] = ()


@dataclass
class TransitionOutcome:
    old_status: WorkflowStatus
    new_status: WorkflowStatus
    action: Action
    record: EvaluationRecord
    audit_entry: AuditLogEntry | None = None


def parse_action(action: str | Action | None) -> Action:
    if not action:
        raise ValidationError("Action is required")
    try:
        parsed = Action(action)
    except ValueError:
        raise ValidationError(f"Unknown action: {action}") from None
    if parsed not in ACTION_RULES:
        raise ValidationError(f"Unknown action: {action}")
    return parsed


def fill_if_absent(patch: dict[str, Any], record: Any, field_name: str, value: Any) -> None:
    """Self-assignment: set ``field_name`` only if neither the record nor the patch has it."""
    if patch.get(field_name) is None and getattr(record, field_name) is None:
        patch[field_name] = value


def _check_role(user: User, record: Any, rule: ActionRule) -> None:
    role = Role(user.role)
    if role not in rule.roles:
        allowed = " and ".join(sorted(r.value for r in rule.roles))
        raise Forbidden(
            f"Only {allowed} users can {rule.action.value} ITEs",
            role=role.value,
        )
    if rule.owner_only and role is not Role.ADMIN and not is_owner(user, record):
        raise Forbidden(
            f"You can only {rule.action.value} your own ITEs",
            role=role.value,
        )


def _check_source(record: Any, rule: ActionRule, role: str) -> WorkflowStatus:
    status = WorkflowStatus(record.status)
    if status not in rule.sources:
        expected = ", ".join(s.value for s in WorkflowStatus if s in rule.sources)
        raise ValidationError(
            f"Cannot {rule.action.value} an ITE in {status.value} status (expected {expected})",
            from_status=status.value,
            to_status=rule.target.value,
            role=role,
        )
    return status


def _build_patch(
    user: User,
    record: Any,
    action: Action,
    comment: str | None,
    assignees: dict[str, str | None],
    now: datetime,
) -> dict[str, Any]:
    rule = ACTION_RULES[action]
    patch: dict[str, Any] = {"status": rule.target.value}

    if action is Action.SUBMIT:
        # Each review cycle starts without a reviewer unless one is named
        patch.update(submitted_at=now, reviewer_id=None, rejected_at=None, rejection_reason=None)
    elif action is Action.RECALL:
        patch.update(reviewer_id=None, reviewed_at=None)
    elif action is Action.MARK_REVIEWED:
        patch["reviewed_at"] = now
    elif action is Action.APPROVE:
        patch["approved_at"] = now
    elif action is Action.REJECT:
        patch.update(rejected_at=now, rejection_reason=comment)

    for name in ASSIGNABLE_FIELDS[action]:
        if assignees.get(name):
            patch[name] = assignees[name]

    if action is Action.MARK_REVIEWED:
        fill_if_absent(patch, record, "reviewer_id", user.id)
    elif action in (Action.APPROVE, Action.REJECT):
        fill_if_absent(patch, record, "approver_id", user.id)
    return patch


def plan_transition(
    user: User,
    record: Any,
    action: str | Action | None,
    comment: str | None = None,
    reviewer_id: str | None = None,
    approver_id: str | None = None,
    now: datetime | None = None,
) -> TransitionPlan:
    """Validate an action against role, current status and the transition table.

    Raises Forbidden or ValidationError; never touches the database.
    """
    action = parse_action(action)
    rule = ACTION_RULES[action]
    _check_role(user, record, rule)
    old_status = _check_source(record, rule, user.role)

    comment = comment.strip() if comment else None
    if action is Action.REJECT and not comment:
        raise ValidationError("Rejection reason is required")

    assignees = {"reviewer_id": reviewer_id, "approver_id": approver_id}
    patch = _build_patch(user, record, action, comment, assignees, now or utcnow())
    new_status = WorkflowStatus(patch["status"])
    if not can_transition(old_status, new_status, user.role):
        raise Forbidden(
            f"Cannot transition from {old_status.value} to {new_status.value} with role {user.role}",
            from_status=old_status.value,
            to_status=new_status.value,
            role=user.role,
        )
    return TransitionPlan(
        rule=rule,
        old_status=old_status,
        new_status=new_status,
        patch=patch,
        comment=comment,
        assigned=tuple(n for n in ASSIGNABLE_FIELDS[action] if assignees[n]),
    )


async def validate_assignees(db: AsyncSession, patch: dict[str, Any], names: Iterable[str]) -> None:
    """Explicit assignees must exist and hold a role able to act on the next step."""
    for name in names:
        user_id = patch.get(name)
        if not user_id:
            continue
        assignee = await get_user_by_id(db, user_id)
        if assignee is None:
            raise ValidationError(f"Assigned user {user_id} does not exist")
        if Role(assignee.role) not in ASSIGNEE_ROLES[name]:
            raise ValidationError(
                f"Assigned user {user_id} has role {assignee.role} and cannot be set as {name}"
            )


async def apply_plan(
    db: AsyncSession,
    user: User,
    record: EvaluationRecord,
    plan: TransitionPlan,
) -> TransitionOutcome:
    """Persist the plan as a check-and-set on the old status plus one audit entry."""
    await validate_assignees(db, plan.patch, plan.assigned)

    if not await update_record(db, record, plan.patch, expected_status=plan.old_status):
        raise ConflictError(
            f"ITE is no longer in {plan.old_status.value} status; reload and retry",
            from_status=plan.old_status.value,
            to_status=plan.new_status.value,
            role=user.role,
        )

    entry = await record_audit(
        db,
        action=plan.rule.audit_action,
        ite_id=record.id,
        user_id=user.id,
        old_status=plan.old_status,
        new_status=plan.new_status,
        comment=plan.comment,
        metadata={"reviewer_id": record.reviewer_id, "approver_id": record.approver_id},
    )
    logger.info(
        "ITE %s %s: %s -> %s by %s (%s)",
        record.ite_number,
        plan.rule.action.value,
        plan.old_status.value,
        plan.new_status.value,
        user.id,
        user.role,
    )
    return TransitionOutcome(
        old_status=plan.old_status,
        new_status=plan.new_status,
        action=plan.rule.action,
        record=record,
        audit_entry=entry,
    )


async def perform_transition(
    db: AsyncSession,
    user: User | None,
    record_id: str,
    action: str | Action | None,
    comment: str | None = None,
    reviewer_id: str | None = None,
    approver_id: str | None = None,
) -> OperationResult[TransitionOutcome]:
    """Run a workflow action end to end. Never raises; failures come back typed."""
    try:
        user = require_user(user)
        record = await load_record(db, record_id)
        plan = plan_transition(
            user,
            record,
            action,
            comment=comment,
            reviewer_id=reviewer_id,
            approver_id=approver_id,
        )
        outcome = await apply_plan(db, user, record, plan)
    except WorkflowError as exc:
        logger.info(
            "Workflow action %s on ITE %s rejected: %s (%s)",
            action,
            record_id,
            exc.reason,
            exc.kind.value,
        )
        return OperationResult.failure(exc)
    except SQLAlchemyError:
        logger.exception("Workflow action %s on ITE %s failed", action, record_id)
        return OperationResult.failure(PersistenceFailure("Internal server error"))
    return OperationResult.success(outcome)
