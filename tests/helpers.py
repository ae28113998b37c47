"""Test helpers shared across modules."""

from ites.auth.roles import WorkflowStatus
from ites.storage.repositories import create_record


def api_key(name: str) -> str:
    return f"sk_test_{name}"


def auth(name: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key(name)}"}


async def make_record(db, creator, status=WorkflowStatus.DRAFT, **fields):
    """Create a record directly in ``status``, bypassing the workflow."""
    record = await create_record(db, creator_id=creator.id)
    status = WorkflowStatus(status)
    record.status = status.value
    if status is WorkflowStatus.REJECTED:
        record.rejection_reason = "previously rejected"
    for key, value in fields.items():
        setattr(record, key, value)
    await db.flush()
    return record
