"""Create audit, document type, validation rule and submission tables.

Revision ID: f1a2c3d4e5b6
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "f1a2c3d4e5b6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )

    op.create_table(
        "document_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("folder_label", sa.String(128), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "validation_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "doc_type_id",
            sa.Integer(),
            sa.ForeignKey("document_types.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("required_keywords", sa.Text(), nullable=False, server_default=""),
        sa.Column("forbidden_keywords", sa.Text(), nullable=False, server_default=""),
        sa.Column("allowed_extensions", sa.String(255), nullable=False, server_default=".pdf, .docx, .xlsx"),
        sa.Column("max_file_size_mb", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("min_word_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("faculty_id", sa.String(64), nullable=False),
        sa.Column("course_code", sa.String(64), nullable=False),
        sa.Column(
            "doc_type_id",
            sa.Integer(),
            sa.ForeignKey("document_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("semester", sa.String(32), nullable=False),
        sa.Column("academic_year", sa.String(16), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("faculty_name", sa.String(255), nullable=True),
        sa.Column("department", sa.String(128), nullable=True),
        sa.Column("section", sa.String(64), nullable=False, server_default=""),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(128), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("staging_key", sa.String(512), nullable=True),
        sa.Column("vault_key", sa.String(512), nullable=True),
        sa.Column("staged", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("status", sa.String(32), nullable=False, server_default="SUBMITTED"),
        sa.Column("validation_issues_json", sa.Text(), nullable=True),
        sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("content_analysis_json", sa.Text(), nullable=True),
        sa.Column("content_analyzed_at", sa.DateTime(), nullable=True),
        sa.Column("reviewer_remarks", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("revision_requested_at", sa.DateTime(), nullable=True),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint(
            "faculty_id",
            "course_code",
            "doc_type_id",
            "semester",
            "academic_year",
            "version",
            name="uq_submission_slot_version",
        ),
    )
    op.create_index(
        "idx_submissions_slot",
        "submissions",
        ["faculty_id", "course_code", "doc_type_id", "semester", "academic_year"],
    )
    op.create_index("idx_submissions_status", "submissions", ["status"])
    op.create_index("idx_submissions_current", "submissions", ["is_current"])

    op.create_table(
        "submission_transitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "submission_id",
            sa.Integer(),
            sa.ForeignKey("submissions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("from_status", sa.String(32), nullable=True),
        sa.Column("to_status", sa.String(32), nullable=False),
        sa.Column("actor", sa.String(320), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_submission_transitions_submission", "submission_transitions", ["submission_id"])
    op.create_index("idx_submission_transitions_to_status", "submission_transitions", ["to_status"])


def downgrade() -> None:
    op.drop_index("idx_submission_transitions_to_status", table_name="submission_transitions")
    op.drop_index("idx_submission_transitions_submission", table_name="submission_transitions")
    op.drop_table("submission_transitions")
    op.drop_index("idx_submissions_current", table_name="submissions")
    op.drop_index("idx_submissions_status", table_name="submissions")
    op.drop_index("idx_submissions_slot", table_name="submissions")
    op.drop_table("submissions")
    op.drop_table("validation_rules")
    op.drop_table("document_types")
    op.drop_table("audit_events")
