"""Database models."""

from ites.models.user import User
from ites.models.evaluation import EvaluationRecord
from ites.models.audit_log import AuditLogEntry

__all__ = ["User", "EvaluationRecord", "AuditLogEntry"]
