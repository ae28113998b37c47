"""Initial schema - users, ites, audit_logs.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="VIEWER"),
        sa.Column("api_key_hash", sa.String(255), unique=True, nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "ites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ite_number", sa.String(32), unique=True, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("running_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="DRAFT"),
        sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reviewer_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("approved_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("metadata_json", JSON, nullable=False),
        sa.Column("its_fields", JSON, nullable=False),
        sa.Column("comparison_data", JSON, nullable=False),
        sa.Column("recommendations", JSON, nullable=False),
        sa.Column("accepted_cells", JSON, nullable=False),
        sa.Column("comments", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("year", "running_number", name="uq_ites_year_running_number"),
        # Rejection reason is present exactly while the record is rejected
        sa.CheckConstraint(
            "(status = 'REJECTED') = (rejection_reason IS NOT NULL AND rejection_reason <> '')",
            name="ck_ites_rejection_reason",
        ),
    )
    op.create_index("ix_ites_status", "ites", ["status"])
    op.create_index("ix_ites_creator_id", "ites", ["creator_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("ite_id", sa.String(36), sa.ForeignKey("ites.id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("old_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("metadata_json", JSON, nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_ite_id", "audit_logs", ["ite_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ite_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_ites_creator_id", table_name="ites")
    op.drop_index("ix_ites_status", table_name="ites")
    op.drop_table("ites")
    op.drop_table("users")
