"""Tests for the access-control gateway."""

from uuid import uuid4

from helpers import make_record
from ites.auth.roles import AccessKind, WorkflowStatus
from ites.engine.access import NOT_FOUND_REASON, check_access
from ites.engine.errors import ErrorKind, Forbidden, NotFound, Unauthorized, ValidationError
from ites.engine.records import delete_evaluation


async def test_hidden_and_missing_records_look_the_same(db, users):
    """A record the caller cannot see is indistinguishable from one that does not exist."""
    record = await make_record(db, users.creator)

    hidden = await check_access(db, users.other_creator, record.id, AccessKind.VIEW)
    missing = await check_access(db, users.other_creator, str(uuid4()), AccessKind.VIEW)

    assert not hidden.allowed and not missing.allowed
    assert hidden.record is None and missing.record is None
    assert type(hidden.error) is type(missing.error) is NotFound
    assert hidden.error.to_dict() == missing.error.to_dict()
    assert hidden.error.reason == NOT_FOUND_REASON


async def test_hidden_record_is_not_found_for_edit_and_delete(db, users):
    """Edit and delete checks hide invisible records too."""
    record = await make_record(db, users.creator)

    for kind in (AccessKind.EDIT, AccessKind.DELETE):
        decision = await check_access(db, users.reviewer, record.id, kind)
        assert isinstance(decision.error, NotFound)


async def test_visible_but_not_editable_is_forbidden(db, users):
    """Callers who can see a record but not change it get Forbidden."""
    record = await make_record(db, users.creator, WorkflowStatus.PENDING_APPROVAL)

    edit = await check_access(db, users.viewer, record.id, AccessKind.EDIT)
    delete = await check_access(db, users.creator, record.id, AccessKind.DELETE)

    assert isinstance(edit.error, Forbidden)
    assert edit.error.reason == "You do not have permission to edit this ITE"
    assert isinstance(delete.error, Forbidden)


async def test_allowed_access_returns_record(db, users):
    """Allowed checks carry the resolved user and record."""
    record = await make_record(db, users.creator)

    decision = await check_access(db, users.creator, record.id, "edit")

    assert decision.allowed
    assert decision.error is None
    assert decision.record.id == record.id
    assert decision.user is users.creator


async def test_viewer_can_view_every_status(db, users):
    """Viewers read records in every lifecycle state."""
    for status in WorkflowStatus:
        record = await make_record(db, users.creator, status)
        decision = await check_access(db, users.viewer, record.id, AccessKind.VIEW)
        assert decision.allowed, status


async def test_missing_user_is_unauthorized(db, users):
    """No caller means Unauthorized, before the record is looked up."""
    decision = await check_access(db, None, str(uuid4()), AccessKind.VIEW)

    assert isinstance(decision.error, Unauthorized)
    assert decision.error.kind is ErrorKind.UNAUTHORIZED


async def test_invalid_id_and_kind(db, users):
    """Malformed ids and unknown operation kinds are validation errors."""
    bad_id = await check_access(db, users.admin, "123", AccessKind.VIEW)
    bad_kind = await check_access(db, users.admin, str(uuid4()), "approve")

    assert isinstance(bad_id.error, ValidationError)
    assert bad_id.error.reason == "Invalid ITE ID"
    assert isinstance(bad_kind.error, ValidationError)


async def test_deleted_records_are_not_found(db, users):
    """Soft-deleted records disappear from the gateway."""
    record = await make_record(db, users.creator)
    assert (await delete_evaluation(db, users.creator, record.id)).ok

    decision = await check_access(db, users.admin, record.id, AccessKind.VIEW)

    assert isinstance(decision.error, NotFound)
