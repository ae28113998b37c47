"""Evaluation record (ITE) model."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ites.auth.roles import WorkflowStatus
from ites.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class EvaluationRecord(Base):
    """One item technical evaluation and its lifecycle fields."""

    __tablename__ = "ites"
    __table_args__ = (
        UniqueConstraint("year", "running_number", name="uq_ites_year_running_number"),
        CheckConstraint(
            "(status = 'REJECTED') = (rejection_reason IS NOT NULL AND rejection_reason <> '')",
            name="ck_ites_rejection_reason",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ite_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    running_number: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WorkflowStatus.DRAFT.value, index=True
    )
    creator_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    reviewer_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )
    approver_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payload - opaque to the workflow
    metadata_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    its_fields: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    comparison_data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    recommendations: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    accepted_cells: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
