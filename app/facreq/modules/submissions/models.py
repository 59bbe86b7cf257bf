from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.facreq.models import Base


class DocumentType(Base):
    __tablename__ = "document_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)  # e.g. "Syllabus"
    folder_label: Mapped[str] = mapped_column(String(128), nullable=False)  # vault folder name
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    rule: Mapped["ValidationRule | None"] = relationship(
        "ValidationRule",
        back_populates="doc_type",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ValidationRule(Base):
    """
    Administrator-entered rule configuration, stored as typed-in text.
    Parsed into a RuleSet (rules.py) before any validation runs.
    """

    __tablename__ = "validation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    doc_type_id: Mapped[int] = mapped_column(
        ForeignKey("document_types.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Comma-separated; required entries may hold "|"-separated alternatives ("Vision|Mission").
    required_keywords: Mapped[str] = mapped_column(Text, nullable=False, default="")
    forbidden_keywords: Mapped[str] = mapped_column(Text, nullable=False, default="")
    allowed_extensions: Mapped[str] = mapped_column(String(255), nullable=False, default=".pdf, .docx, .xlsx")
    max_file_size_mb: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    min_word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    doc_type: Mapped[DocumentType] = relationship("DocumentType", back_populates="rule", lazy="selectin")


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint(
            "faculty_id",
            "course_code",
            "doc_type_id",
            "semester",
            "academic_year",
            "version",
            name="uq_submission_slot_version",
        ),
        Index("idx_submissions_slot", "faculty_id", "course_code", "doc_type_id", "semester", "academic_year"),
        Index("idx_submissions_status", "status"),
        Index("idx_submissions_current", "is_current"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Identity (the "slot") + version chain
    faculty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    course_code: Mapped[str] = mapped_column(String(64), nullable=False)
    doc_type_id: Mapped[int] = mapped_column(ForeignKey("document_types.id", ondelete="RESTRICT"), nullable=False)
    semester: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "1st Semester"
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)  # e.g. "2025-2026"
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Descriptive, used for vault layout and queue filters
    faculty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    section: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    # File
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False, default="application/octet-stream")
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)

    # Exactly one of staging_key / vault_key is set.
    staging_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    vault_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    staged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="SUBMITTED")

    validation_issues_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    content_analysis_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    reviewer_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    revision_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Optimistic concurrency counter; bumped by SQLAlchemy on every UPDATE.
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version}

    doc_type: Mapped[DocumentType] = relationship("DocumentType", lazy="selectin")

    transitions: Mapped[list["SubmissionTransition"]] = relationship(
        "SubmissionTransition",
        back_populates="submission",
        order_by="SubmissionTransition.id",
        lazy="selectin",
    )

    @property
    def validation_issues(self) -> list[str]:
        if not self.validation_issues_json:
            return []
        return list(json.loads(self.validation_issues_json))

    @property
    def content_analysis(self) -> dict | None:
        if not self.content_analysis_json:
            return None
        return json.loads(self.content_analysis_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "faculty_id": self.faculty_id,
            "faculty_name": self.faculty_name,
            "department": self.department,
            "course_code": self.course_code,
            "section": self.section,
            "doc_type_id": self.doc_type_id,
            "doc_type_name": self.doc_type.name if self.doc_type else None,
            "semester": self.semester,
            "academic_year": self.academic_year,
            "version": self.version,
            "is_current": self.is_current,
            "original_filename": self.original_filename,
            "size_bytes": self.size_bytes,
            "status": self.status,
            "staged": self.staged,
            "staging_key": self.staging_key,
            "vault_key": self.vault_key,
            "validation_issues": self.validation_issues,
            "word_count": self.word_count,
            "content_analysis": self.content_analysis,
            "reviewer_remarks": self.reviewer_remarks,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
            "revision_requested_at": self.revision_requested_at.isoformat() if self.revision_requested_at else None,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "row_version": self.row_version,
        }


class SubmissionTransition(Base):
    """Append-only lifecycle log. Rows are never updated or deleted."""

    __tablename__ = "submission_transitions"
    __table_args__ = (
        Index("idx_submission_transitions_submission", "submission_id"),
        Index("idx_submission_transitions_to_status", "to_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    submission_id: Mapped[int] = mapped_column(ForeignKey("submissions.id", ondelete="RESTRICT"), nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(32), nullable=True)  # None for the creation record
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor: Mapped[str | None] = mapped_column(String(320), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    submission: Mapped[Submission] = relationship("Submission", back_populates="transitions", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor,
            "remarks": self.remarks,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
