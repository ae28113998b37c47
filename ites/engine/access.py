"""Access-control gateway - the per-request check every entry point passes through."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.roles import ACCESS_PREDICATES, AccessKind, can_view
from ites.engine.errors import (
    Forbidden,
    NotFound,
    PersistenceFailure,
    Unauthorized,
    ValidationError,
    WorkflowError,
)
from ites.models import EvaluationRecord, User
from ites.storage.repositories import get_record

logger = logging.getLogger(__name__)

# Same reason whether the record is missing or hidden from the caller
NOT_FOUND_REASON = "ITE not found"


@dataclass
class AccessDecision:
    """Outcome of an access check. ``record`` is only set when access is allowed."""

    allowed: bool
    user: User | None = None
    record: EvaluationRecord | None = None
    error: WorkflowError | None = None


def validate_record_id(record_id: str) -> str:
    """Record ids are UUID strings; anything else is a validation error."""
    try:
        return str(UUID(str(record_id)))
    except (TypeError, ValueError):
        raise ValidationError("Invalid ITE ID") from None


def require_user(user: User | None) -> User:
    if user is None:
        raise Unauthorized("Unauthorized")
    return user


async def load_record(db: AsyncSession, record_id: str) -> EvaluationRecord:
    """Resolve a live record or raise NotFound."""
    record = await get_record(db, validate_record_id(record_id))
    if record is None:
        raise NotFound(NOT_FOUND_REASON)
    return record


def authorize(user: User, record: EvaluationRecord, kind: AccessKind) -> None:
    """Raise unless ``user`` may perform ``kind`` on ``record``.

    Callers who cannot see the record get NotFound, never Forbidden.
    """
    if not can_view(user, record):
        raise NotFound(NOT_FOUND_REASON)
    if kind is not AccessKind.VIEW and not ACCESS_PREDICATES[kind](user, record):
        raise Forbidden(f"You do not have permission to {kind.value} this ITE")


async def check_access(
    db: AsyncSession,
    user: User | None,
    record_id: str,
    kind: AccessKind | str = AccessKind.VIEW,
) -> AccessDecision:
    """Resolve caller and record, then evaluate the predicate for ``kind``."""
    try:
        kind = AccessKind(kind)
    except ValueError:
        return AccessDecision(
            allowed=False, user=user, error=ValidationError(f"Unknown operation kind: {kind}")
        )
    try:
        user = require_user(user)
        record = await load_record(db, record_id)
        authorize(user, record, kind)
    except WorkflowError as exc:
        if not isinstance(exc, (Unauthorized, ValidationError)):
            logger.info(
                "Access denied kind=%s ite_id=%s user_id=%s: %s",
                kind.value,
                record_id,
                user.id if user else None,
                exc.kind.value,
            )
        return AccessDecision(allowed=False, user=user, error=exc)
    except SQLAlchemyError:
        logger.exception("Failed to resolve ITE %s", record_id)
        return AccessDecision(
            allowed=False, user=user, error=PersistenceFailure("Failed to fetch ITE")
        )
    return AccessDecision(allowed=True, user=user, record=record)
