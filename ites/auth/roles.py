"""Roles, workflow statuses and permission predicates.

Everything here is pure: predicates take a user and a record (any object exposing
``id``/``role`` and ``creator_id``/``reviewer_id``/``approver_id``/``status``) and
never touch the database, so the same functions gate both the UI affordances
(``available_actions``) and server-side enforcement.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Closed set of user roles."""

    ADMIN = "ADMIN"
    CREATOR = "CREATOR"
    REVIEWER = "REVIEWER"
    APPROVER = "APPROVER"
    VIEWER = "VIEWER"


class WorkflowStatus(str, Enum):
    """Lifecycle states of an evaluation record."""

    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    IN_REVIEW = "IN_REVIEW"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Action(str, Enum):
    """Action tokens a caller may perform on a record."""

    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    SUBMIT = "submit"
    RECALL = "recall"
    MARK_REVIEWED = "mark_reviewed"
    APPROVE = "approve"
    REJECT = "reject"


class AuditAction(str, Enum):
    """Action recorded on an audit log entry."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SUBMIT = "SUBMIT"
    RECALL = "RECALL"
    MARK_REVIEWED = "MARK_REVIEWED"
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class AccessKind(str, Enum):
    """Operation kinds checked by the access gateway."""

    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"


ROLE_LABELS = {
    Role.ADMIN: "Administrator",
    Role.CREATOR: "ITE Creator",
    Role.REVIEWER: "ITE Reviewer",
    Role.APPROVER: "ITE Approver",
    Role.VIEWER: "ITE Viewer",
}

STATUS_LABELS = {
    WorkflowStatus.DRAFT: "Draft",
    WorkflowStatus.PENDING_REVIEW: "Pending Review",
    WorkflowStatus.IN_REVIEW: "In Review",
    WorkflowStatus.PENDING_APPROVAL: "Pending Approval",
    WorkflowStatus.APPROVED: "Approved",
    WorkflowStatus.REJECTED: "Rejected",
}

REVIEW_STATES = frozenset({WorkflowStatus.PENDING_REVIEW, WorkflowStatus.IN_REVIEW})

# (from, to) -> roles allowed to move a record along that edge
TRANSITIONS: dict[tuple[WorkflowStatus, WorkflowStatus], frozenset[Role]] = {
    (WorkflowStatus.DRAFT, WorkflowStatus.PENDING_REVIEW): frozenset({Role.CREATOR, Role.ADMIN}),
    (WorkflowStatus.PENDING_REVIEW, WorkflowStatus.IN_REVIEW): frozenset({Role.REVIEWER, Role.ADMIN}),
    (WorkflowStatus.PENDING_REVIEW, WorkflowStatus.PENDING_APPROVAL): frozenset({Role.REVIEWER, Role.ADMIN}),
    (WorkflowStatus.PENDING_REVIEW, WorkflowStatus.DRAFT): frozenset({Role.CREATOR, Role.ADMIN}),
    (WorkflowStatus.IN_REVIEW, WorkflowStatus.PENDING_APPROVAL): frozenset({Role.REVIEWER, Role.ADMIN}),
    (WorkflowStatus.IN_REVIEW, WorkflowStatus.DRAFT): frozenset({Role.CREATOR, Role.ADMIN}),
    (WorkflowStatus.PENDING_APPROVAL, WorkflowStatus.APPROVED): frozenset({Role.APPROVER, Role.ADMIN}),
    (WorkflowStatus.PENDING_APPROVAL, WorkflowStatus.REJECTED): frozenset({Role.APPROVER, Role.ADMIN}),
    (WorkflowStatus.REJECTED, WorkflowStatus.DRAFT): frozenset({Role.CREATOR, Role.ADMIN}),
    # Resubmission after rejection goes straight back to review
    (WorkflowStatus.REJECTED, WorkflowStatus.PENDING_REVIEW): frozenset({Role.CREATOR, Role.ADMIN}),
}


@dataclass(frozen=True)
class ActionRule:
    """How a workflow action moves a record."""

    action: Action
    audit_action: AuditAction
    sources: frozenset[WorkflowStatus]
    target: WorkflowStatus
    roles: frozenset[Role]
    # Non-admin callers may only act on records they created
    owner_only: bool = False


ACTION_RULES: dict[Action, ActionRule] = {
    Action.SUBMIT: ActionRule(
        action=Action.SUBMIT,
        audit_action=AuditAction.SUBMIT,
        sources=frozenset({WorkflowStatus.DRAFT, WorkflowStatus.REJECTED}),
        target=WorkflowStatus.PENDING_REVIEW,
        roles=frozenset({Role.CREATOR, Role.ADMIN}),
        owner_only=True,
    ),
    Action.RECALL: ActionRule(
        action=Action.RECALL,
        audit_action=AuditAction.RECALL,
        sources=REVIEW_STATES,
        target=WorkflowStatus.DRAFT,
        roles=frozenset({Role.CREATOR, Role.ADMIN}),
        owner_only=True,
    ),
    Action.MARK_REVIEWED: ActionRule(
        action=Action.MARK_REVIEWED,
        audit_action=AuditAction.MARK_REVIEWED,
        sources=REVIEW_STATES,
        target=WorkflowStatus.PENDING_APPROVAL,
        roles=frozenset({Role.REVIEWER, Role.ADMIN}),
    ),
    Action.APPROVE: ActionRule(
        action=Action.APPROVE,
        audit_action=AuditAction.APPROVE,
        sources=frozenset({WorkflowStatus.PENDING_APPROVAL}),
        target=WorkflowStatus.APPROVED,
        roles=frozenset({Role.APPROVER, Role.ADMIN}),
    ),
    Action.REJECT: ActionRule(
        action=Action.REJECT,
        audit_action=AuditAction.REJECT,
        sources=frozenset({WorkflowStatus.PENDING_APPROVAL}),
        target=WorkflowStatus.REJECTED,
        roles=frozenset({Role.APPROVER, Role.ADMIN}),
    ),
}

WORKFLOW_ACTIONS = tuple(ACTION_RULES)


def _role(user: Any) -> Role | None:
    if user is None:
        return None
    try:
        return Role(user.role)
    except ValueError:
        return None


def _status(record: Any) -> WorkflowStatus:
    return WorkflowStatus(record.status)


def has_role(user: Any, role: Role) -> bool:
    """True iff the user holds exactly this role."""
    return _role(user) is role


def is_admin(user: Any) -> bool:
    return has_role(user, Role.ADMIN)


def is_owner(user: Any, record: Any) -> bool:
    return user is not None and record.creator_id == user.id


def can_create(user: Any) -> bool:
    """Creators and admins may open new evaluations."""
    return has_role(user, Role.CREATOR) or is_admin(user)


def can_view(user: Any, record: Any) -> bool:
    role = _role(user)
    if role is None:
        return False
    status = _status(record)
    if role in (Role.ADMIN, Role.VIEWER):
        return True
    if role is Role.CREATOR:
        return is_owner(user, record)
    if role is Role.REVIEWER:
        return record.reviewer_id == user.id or status in REVIEW_STATES
    if role is Role.APPROVER:
        return record.approver_id == user.id or status is WorkflowStatus.PENDING_APPROVAL
    return False


def can_edit(user: Any, record: Any) -> bool:
    role = _role(user)
    if role is None or role is Role.VIEWER:
        return False
    status = _status(record)
    if role is Role.ADMIN:
        return status is not WorkflowStatus.APPROVED
    if role is Role.CREATOR and is_owner(user, record):
        return status in (WorkflowStatus.DRAFT, WorkflowStatus.REJECTED)
    if role is Role.REVIEWER:
        return status in REVIEW_STATES
    return False


def can_delete(user: Any, record: Any) -> bool:
    role = _role(user)
    if role is None or role is Role.VIEWER:
        return False
    status = _status(record)
    if role is Role.ADMIN:
        # APPROVED deletion is the admin cleanup path
        return status in (WorkflowStatus.DRAFT, WorkflowStatus.APPROVED)
    if role is Role.CREATOR and is_owner(user, record):
        return status is WorkflowStatus.DRAFT
    return False


ACCESS_PREDICATES = {
    AccessKind.VIEW: can_view,
    AccessKind.EDIT: can_edit,
    AccessKind.DELETE: can_delete,
}


def may_perform(user: Any, record: Any, rule: ActionRule) -> bool:
    """Role and ownership check for a workflow action, ignoring current status."""
    role = _role(user)
    if role is None or role not in rule.roles:
        return False
    if rule.owner_only and role is not Role.ADMIN:
        return is_owner(user, record)
    return True


def can_transition(
    old_status: WorkflowStatus | str,
    new_status: WorkflowStatus | str,
    role: Role | str,
) -> bool:
    """Lookup against the transition table."""
    try:
        edge = (WorkflowStatus(old_status), WorkflowStatus(new_status))
        role = Role(role)
    except ValueError:
        return False
    return role in TRANSITIONS.get(edge, frozenset())


def available_actions(user: Any, record: Any) -> list[Action]:
    """Actions valid for this caller on this record right now, in canonical order."""
    if user is None or record is None:
        return []
    if has_role(user, Role.VIEWER):
        return [Action.VIEW]

    allowed = set()
    for kind, predicate in ACCESS_PREDICATES.items():
        if predicate(user, record):
            allowed.add(Action(kind.value))
    status = _status(record)
    for action, rule in ACTION_RULES.items():
        if status in rule.sources and may_perform(user, record, rule):
            if can_transition(status, rule.target, user.role):
                allowed.add(action)
    return [action for action in Action if action in allowed]
