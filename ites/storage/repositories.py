"""Repository functions for users, evaluation records and audit entries."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from ites.auth.roles import REVIEW_STATES, Role, WorkflowStatus
from ites.models import AuditLogEntry, EvaluationRecord, User


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- users -----------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_api_key_hash(db: AsyncSession, api_key_hash: str) -> User | None:
    result = await db.execute(select(User).where(User.api_key_hash == api_key_hash))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return list(result.scalars().all())


async def create_user(
    db: AsyncSession,
    email: str,
    role: Role = Role.VIEWER,
    name: str | None = None,
    api_key_hash: str | None = None,
) -> User:
    now = utcnow()
    user = User(
        id=str(uuid4()),
        email=email,
        name=name,
        role=Role(role).value,
        api_key_hash=api_key_hash,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()
    return user


async def set_user_role(db: AsyncSession, user: User, role: Role) -> User:
    user.role = Role(role).value
    user.updated_at = utcnow()
    await db.flush()
    return user


async def count_users_by_role(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(select(User.role, func.count()).group_by(User.role))
    counts = {role.value: 0 for role in Role}
    counts.update({role: n for role, n in result.all()})
    return counts


# --- evaluation records ----------------------------------------------------


def _live():
    return EvaluationRecord.deleted_at.is_(None)


async def get_record(db: AsyncSession, record_id: str) -> EvaluationRecord | None:
    """Get a live (not deleted) record by id."""
    result = await db.execute(
        select(EvaluationRecord).where(EvaluationRecord.id == record_id, _live())
    )
    return result.scalar_one_or_none()


async def next_running_number(db: AsyncSession, year: int) -> int:
    """Next per-year running number (deleted records keep their number)."""
    result = await db.execute(
        select(func.max(EvaluationRecord.running_number)).where(EvaluationRecord.year == year)
    )
    return (result.scalar_one_or_none() or 0) + 1


async def create_record(
    db: AsyncSession,
    creator_id: str,
    **fields: Any,
) -> EvaluationRecord:
    """Create a DRAFT record with an ``ITE-<year>-<NNN>`` number."""
    now = utcnow()
    year = now.year
    running_number = await next_running_number(db, year)
    record = EvaluationRecord(
        id=str(uuid4()),
        ite_number=f"ITE-{year}-{running_number:03d}",
        year=year,
        running_number=running_number,
        status=WorkflowStatus.DRAFT.value,
        creator_id=creator_id,
        metadata_json=fields.pop("metadata_json", None) or {},
        its_fields=fields.pop("its_fields", None) or [],
        comparison_data=fields.pop("comparison_data", None) or {},
        recommendations=fields.pop("recommendations", None) or [],
        accepted_cells=fields.pop("accepted_cells", None) or {},
        comments=fields.pop("comments", None) or "",
        created_at=now,
        updated_at=now,
        **fields,
    )
    db.add(record)
    await db.flush()
    return record


async def update_record(
    db: AsyncSession,
    record: EvaluationRecord,
    patch: dict[str, Any],
    expected_status: WorkflowStatus | str,
) -> bool:
    """
    Conditional update: applies ``patch`` only while the row still has
    ``expected_status``. Returns False when another writer got there first.
    """
    values = {**patch, "updated_at": utcnow()}
    result = await db.execute(
        update(EvaluationRecord)
        .where(
            EvaluationRecord.id == record.id,
            EvaluationRecord.status == WorkflowStatus(expected_status).value,
            _live(),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(record)
    return True


def visible_records_filter(user: User) -> ColumnElement[bool] | None:
    """SQL counterpart of ``can_view``. None means no restriction."""
    role = Role(user.role)
    if role in (Role.ADMIN, Role.VIEWER):
        return None
    if role is Role.CREATOR:
        return EvaluationRecord.creator_id == user.id
    if role is Role.REVIEWER:
        return or_(
            EvaluationRecord.reviewer_id == user.id,
            EvaluationRecord.status.in_([s.value for s in REVIEW_STATES]),
        )
    if role is Role.APPROVER:
        return or_(
            EvaluationRecord.approver_id == user.id,
            EvaluationRecord.status == WorkflowStatus.PENDING_APPROVAL.value,
        )
    return EvaluationRecord.id.is_(None)


async def list_visible_records(db: AsyncSession, user: User) -> list[EvaluationRecord]:
    query = select(EvaluationRecord).where(_live())
    condition = visible_records_filter(user)
    if condition is not None:
        query = query.where(condition)
    result = await db.execute(
        query.order_by(EvaluationRecord.created_at.desc(), EvaluationRecord.running_number.desc())
    )
    return list(result.scalars().all())


async def count_records(db: AsyncSession, *conditions: ColumnElement[bool]) -> int:
    result = await db.execute(
        select(func.count()).select_from(EvaluationRecord).where(_live(), *conditions)
    )
    return result.scalar_one()


async def count_by_status(db: AsyncSession, *conditions: ColumnElement[bool]) -> dict[str, int]:
    result = await db.execute(
        select(EvaluationRecord.status, func.count())
        .where(_live(), *conditions)
        .group_by(EvaluationRecord.status)
    )
    counts = {status.value: 0 for status in WorkflowStatus}
    counts.update({status: n for status, n in result.all()})
    return counts


# --- audit entries ---------------------------------------------------------


async def insert_audit_entry(db: AsyncSession, entry: AuditLogEntry) -> AuditLogEntry:
    db.add(entry)
    await db.flush()
    # Reload with the actor joined in for display
    result = await db.execute(
        select(AuditLogEntry)
        .where(AuditLogEntry.id == entry.id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def list_audit_entries(
    db: AsyncSession, ite_id: str, limit: int | None = None, offset: int = 0
) -> list[AuditLogEntry]:
    """Entries for a record, newest first."""
    query = (
        select(AuditLogEntry)
        .where(AuditLogEntry.ite_id == ite_id)
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .offset(offset)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def all_audit_entries_ascending(db: AsyncSession, ite_id: str) -> list[AuditLogEntry]:
    result = await db.execute(
        select(AuditLogEntry)
        .where(AuditLogEntry.ite_id == ite_id)
        .order_by(AuditLogEntry.created_at.asc(), AuditLogEntry.id.asc())
    )
    return list(result.scalars().all())
