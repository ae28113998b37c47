"""Error taxonomy and typed operation results for the workflow core."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"


class WorkflowError(Exception):
    """Base class for failures raised inside the core.

    ``context`` carries optional structured details (``from_status``,
    ``to_status``, ``role``) so transition failures explain themselves.
    """

    kind: ErrorKind = ErrorKind.PERSISTENCE

    def __init__(self, reason: str, **context: Any):
        super().__init__(reason)
        self.reason = reason
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind.value, "reason": self.reason, **self.context}


class Unauthorized(WorkflowError):
    kind = ErrorKind.UNAUTHORIZED


class Forbidden(WorkflowError):
    kind = ErrorKind.FORBIDDEN


class NotFound(WorkflowError):
    kind = ErrorKind.NOT_FOUND


class ValidationError(WorkflowError):
    kind = ErrorKind.VALIDATION


class ConflictError(WorkflowError):
    """Record status changed between read and write - reload and retry."""

    kind = ErrorKind.CONFLICT


class PersistenceFailure(WorkflowError):
    kind = ErrorKind.PERSISTENCE


class AuditWriteFailure(PersistenceFailure):
    """Audit entry could not be written. Internal only unless strict mode is on."""


@dataclass
class OperationResult(Generic[T]):
    """Value or error returned by every public core operation."""

    value: T | None = None
    error: WorkflowError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: WorkflowError) -> "OperationResult[T]":
        return cls(error=error)
