"""Tests for the workflow transition engine against a real database."""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from helpers import make_record
from ites.auth.roles import Action, Role, WorkflowStatus
from ites.config import settings
from ites.engine import audit as audit_module
from ites.engine.audit import list_audit_log, summarize_audit_log
from ites.engine.errors import (
    AuditWriteFailure,
    ConflictError,
    ErrorKind,
    Forbidden,
    NotFound,
    Unauthorized,
    ValidationError,
)
from ites.engine.workflow import apply_plan, perform_transition, plan_transition
from ites.models import AuditLogEntry, EvaluationRecord
from ites.storage.repositories import get_record, list_audit_entries

ROLE_USERS = {
    Role.ADMIN: "admin",
    Role.CREATOR: "creator",
    Role.REVIEWER: "reviewer",
    Role.APPROVER: "approver",
    Role.VIEWER: "viewer",
}

LEGAL = {
    (WorkflowStatus.DRAFT, Action.SUBMIT),
    (WorkflowStatus.REJECTED, Action.SUBMIT),
    (WorkflowStatus.PENDING_REVIEW, Action.RECALL),
    (WorkflowStatus.IN_REVIEW, Action.RECALL),
    (WorkflowStatus.PENDING_REVIEW, Action.MARK_REVIEWED),
    (WorkflowStatus.IN_REVIEW, Action.MARK_REVIEWED),
    (WorkflowStatus.PENDING_APPROVAL, Action.APPROVE),
    (WorkflowStatus.PENDING_APPROVAL, Action.REJECT),
}

ACTION_ROLES = {
    Action.SUBMIT: {Role.CREATOR, Role.ADMIN},
    Action.RECALL: {Role.CREATOR, Role.ADMIN},
    Action.MARK_REVIEWED: {Role.REVIEWER, Role.ADMIN},
    Action.APPROVE: {Role.APPROVER, Role.ADMIN},
    Action.REJECT: {Role.APPROVER, Role.ADMIN},
}


async def audit_count(db, ite_id):
    return len(await list_audit_entries(db, ite_id))


async def test_full_rejection_cycle(db, users):
    """Submit, review, reject and resubmit leave exactly four entries in order."""
    record = await make_record(db, users.creator)

    result = await perform_transition(db, users.creator, record.id, "submit")
    assert result.ok
    assert result.value.new_status is WorkflowStatus.PENDING_REVIEW
    assert record.status == "PENDING_REVIEW"
    assert record.submitted_at is not None

    result = await perform_transition(db, users.reviewer, record.id, "mark_reviewed")
    assert result.ok
    assert record.status == "PENDING_APPROVAL"
    assert record.reviewer_id == users.reviewer.id
    assert record.reviewed_at is not None

    result = await perform_transition(
        db, users.approver, record.id, "reject", comment="missing brand field"
    )
    assert result.ok
    assert record.status == "REJECTED"
    assert record.rejection_reason == "missing brand field"
    assert record.approver_id == users.approver.id

    result = await perform_transition(db, users.creator, record.id, "submit")
    assert result.ok
    assert record.status == "PENDING_REVIEW"
    assert record.rejection_reason is None
    assert record.rejected_at is None

    entries = (await list_audit_log(db, record.id)).value
    history = [(e.action, e.old_status, e.new_status) for e in reversed(entries)]
    assert history == [
        ("SUBMIT", "DRAFT", "PENDING_REVIEW"),
        ("MARK_REVIEWED", "PENDING_REVIEW", "PENDING_APPROVAL"),
        ("REJECT", "PENDING_APPROVAL", "REJECTED"),
        ("SUBMIT", "REJECTED", "PENDING_REVIEW"),
    ]
    assert entries[1].comment == "missing brand field"
    assert entries[0].user.id == users.creator.id


async def test_double_submit_fails_second_time(db, users):
    """The second submit finds the record no longer in DRAFT."""
    record = await make_record(db, users.creator)

    first = await perform_transition(db, users.creator, record.id, "submit")
    second = await perform_transition(db, users.creator, record.id, "submit")

    assert first.ok
    assert isinstance(second.error, ValidationError)
    assert second.error.context["from_status"] == "PENDING_REVIEW"
    assert record.status == "PENDING_REVIEW"
    assert await audit_count(db, record.id) == 1


async def test_viewer_cannot_approve(db, users):
    """A viewer's approve is Forbidden and leaves no trace."""
    record = await make_record(db, users.creator, WorkflowStatus.PENDING_APPROVAL)

    result = await perform_transition(db, users.viewer, record.id, "approve")

    assert isinstance(result.error, Forbidden)
    fresh = await get_record(db, record.id)
    assert fresh.status == "PENDING_APPROVAL"
    assert await audit_count(db, record.id) == 0


async def test_illegal_combinations_never_mutate(db, users):
    """Every status/action/role outside the edge set fails without writing."""
    for status in WorkflowStatus:
        for action, roles in ACTION_ROLES.items():
            for role, name in ROLE_USERS.items():
                if (status, action) in LEGAL and role in roles:
                    continue
                record = await make_record(db, users.creator, status)
                before = record.updated_at

                result = await perform_transition(
                    db, getattr(users, name), record.id, action, comment="reason"
                )

                assert result.error is not None, (status, action, role)
                assert result.error.kind in (ErrorKind.FORBIDDEN, ErrorKind.VALIDATION)
                fresh = await get_record(db, record.id)
                assert fresh.status == status.value
                assert fresh.updated_at == before
                assert await audit_count(db, record.id) == 0


async def test_successful_transitions_are_all_audited(db, users):
    """N successful transitions give N audit entries and N counted transitions."""
    record = await make_record(db, users.creator)
    steps = [
        (users.creator, "submit", None),
        (users.creator, "recall", None),
        (users.creator, "submit", None),
        (users.reviewer, "mark_reviewed", None),
        (users.approver, "approve", None),
    ]
    for user, action, comment in steps:
        assert (await perform_transition(db, user, record.id, action, comment=comment)).ok

    summary = (await summarize_audit_log(db, record.id)).value
    assert await audit_count(db, record.id) >= len(steps)
    assert summary.transitions == len(steps)
    assert summary.approved_at is not None
    assert record.approved_at is not None


async def test_recall_clears_reviewer(db, users):
    """Recalling a record in review drops the reviewer."""
    record = await make_record(
        db, users.creator, WorkflowStatus.IN_REVIEW, reviewer_id=users.reviewer.id
    )

    result = await perform_transition(db, users.creator, record.id, "recall")

    assert result.ok
    assert record.status == "DRAFT"
    assert record.reviewer_id is None


async def test_other_creator_cannot_submit(db, users):
    """Ownership is checked for submit."""
    record = await make_record(db, users.creator)

    result = await perform_transition(db, users.other_creator, record.id, "submit")

    assert isinstance(result.error, Forbidden)
    assert result.error.reason == "You can only submit your own ITEs"


async def test_explicit_reviewer_assignment(db, users):
    """A submit may name the reviewer."""
    record = await make_record(db, users.creator)

    result = await perform_transition(
        db, users.creator, record.id, "submit", reviewer_id=users.other_reviewer.id
    )

    assert result.ok
    assert record.reviewer_id == users.other_reviewer.id

    result = await perform_transition(db, users.reviewer, record.id, "mark_reviewed")
    assert result.ok
    assert record.reviewer_id == users.other_reviewer.id


async def test_resubmission_starts_with_a_fresh_reviewer(db, users):
    """After a rejection the next review is credited to whoever performs it."""
    record = await make_record(db, users.creator)
    await perform_transition(db, users.creator, record.id, "submit")
    await perform_transition(db, users.reviewer, record.id, "mark_reviewed")
    await perform_transition(db, users.approver, record.id, "reject", comment="incomplete")

    result = await perform_transition(db, users.creator, record.id, "submit")
    assert result.ok
    assert record.reviewer_id is None

    result = await perform_transition(db, users.other_reviewer, record.id, "mark_reviewed")
    assert result.ok
    assert record.reviewer_id == users.other_reviewer.id


async def test_assignee_must_exist_and_hold_matching_role(db, users):
    """Unknown users and users in the wrong role cannot be assigned."""
    record = await make_record(db, users.creator)

    missing = await perform_transition(
        db, users.creator, record.id, "submit", reviewer_id=str(uuid4())
    )
    wrong_role = await perform_transition(
        db, users.creator, record.id, "submit", reviewer_id=users.creator.id
    )

    assert isinstance(missing.error, ValidationError)
    assert "does not exist" in missing.error.reason
    assert isinstance(wrong_role.error, ValidationError)
    assert "cannot be set as reviewer_id" in wrong_role.error.reason
    assert record.status == "DRAFT"
    assert await audit_count(db, record.id) == 0


async def test_reject_requires_comment(db, users):
    """Reject without a reason is a validation error."""
    record = await make_record(db, users.creator, WorkflowStatus.PENDING_APPROVAL)

    result = await perform_transition(db, users.approver, record.id, "reject", comment="  ")

    assert isinstance(result.error, ValidationError)
    assert record.status == "PENDING_APPROVAL"


async def test_missing_and_unknown_actions(db, users):
    """Action tokens are validated."""
    record = await make_record(db, users.creator)

    missing = await perform_transition(db, users.creator, record.id, None)
    unknown = await perform_transition(db, users.creator, record.id, "publish")

    assert missing.error.reason == "Action is required"
    assert unknown.error.reason == "Unknown action: publish"


async def test_invalid_and_missing_records(db, users):
    """Malformed ids are validation errors and unknown ids are NotFound."""
    invalid = await perform_transition(db, users.creator, "not-a-uuid", "submit")
    missing = await perform_transition(db, users.creator, str(uuid4()), "submit")

    assert isinstance(invalid.error, ValidationError)
    assert invalid.error.reason == "Invalid ITE ID"
    assert isinstance(missing.error, NotFound)


async def test_transition_requires_user(db, users):
    """No caller means Unauthorized."""
    record = await make_record(db, users.creator)

    result = await perform_transition(db, None, record.id, "submit")

    assert isinstance(result.error, Unauthorized)


async def test_stale_plan_is_a_conflict(session_maker, users):
    """A plan computed on a stale read does not overwrite a newer status."""
    async with session_maker() as db:
        record = await make_record(db, users.creator)
        record_id = record.id
        await db.commit()

    async with session_maker() as stale:
        stale_record = await get_record(stale, record_id)
        await stale.commit()

        async with session_maker() as other:
            assert (await perform_transition(other, users.creator, record_id, "submit")).ok
            await other.commit()

        plan = plan_transition(users.creator, stale_record, "submit")
        with pytest.raises(ConflictError):
            await apply_plan(stale, users.creator, stale_record, plan)
        await stale.rollback()

    async with session_maker() as check:
        assert (await get_record(check, record_id)).status == "PENDING_REVIEW"
        assert await audit_count(check, record_id) == 1


async def test_audit_failure_is_best_effort(db, users, monkeypatch):
    """A failed audit write does not undo the transition."""
    record = await make_record(db, users.creator)

    async def broken_insert(session, entry):
        raise SQLAlchemyError("audit table unavailable")

    monkeypatch.setattr(audit_module, "insert_audit_entry", broken_insert)
    monkeypatch.setattr(settings, "audit_strict", False)

    result = await perform_transition(db, users.creator, record.id, "submit")

    assert result.ok
    assert result.value.audit_entry is None
    assert record.status == "PENDING_REVIEW"
    assert await audit_count(db, record.id) == 0


async def test_audit_failure_in_strict_mode(session_maker, users, monkeypatch):
    """In strict mode a failed audit write fails the whole operation."""
    async with session_maker() as db:
        record = await make_record(db, users.creator)
        record_id = record.id
        await db.commit()

    async def broken_insert(session, entry):
        raise SQLAlchemyError("audit table unavailable")

    monkeypatch.setattr(audit_module, "insert_audit_entry", broken_insert)
    monkeypatch.setattr(settings, "audit_strict", True)

    async with session_maker() as db:
        result = await perform_transition(db, users.creator, record_id, "submit")
        assert isinstance(result.error, AuditWriteFailure)
        assert result.error.kind is ErrorKind.PERSISTENCE
        await db.rollback()

    async with session_maker() as check:
        status = await check.scalar(
            select(EvaluationRecord.status).where(EvaluationRecord.id == record_id)
        )
        entries = await check.scalar(
            select(AuditLogEntry.id).where(AuditLogEntry.ite_id == record_id)
        )
        assert status == "DRAFT"
        assert entries is None
