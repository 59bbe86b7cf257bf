"""
Version ledger: every upload to a slot becomes the next immutable version.

A slot is (faculty, course, document type, semester, academic year). Only the
highest version of a slot is current; older versions are kept for history.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError
from .lifecycle import IN_FLIGHT, SubmissionStatus, status_of
from .models import Submission
from .validator import FileMeta


@dataclass(frozen=True)
class SubmissionIdentity:
    faculty_id: str
    course_code: str
    doc_type_id: int
    semester: str
    academic_year: str

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("faculty_id", "course_code", "semester", "academic_year")
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise ValueError(f"Missing submission identity field(s): {', '.join(missing)}")

    @classmethod
    def of(cls, sub: Submission) -> "SubmissionIdentity":
        return cls(
            faculty_id=sub.faculty_id,
            course_code=sub.course_code,
            doc_type_id=sub.doc_type_id,
            semester=sub.semester,
            academic_year=sub.academic_year,
        )

    def clauses(self) -> tuple:
        return (
            Submission.faculty_id == self.faculty_id,
            Submission.course_code == self.course_code,
            Submission.doc_type_id == self.doc_type_id,
            Submission.semester == self.semester,
            Submission.academic_year == self.academic_year,
        )


def latest_version(s: Session, identity: SubmissionIdentity) -> Submission | None:
    stmt = (
        select(Submission)
        .where(*identity.clauses())
        .order_by(Submission.version.desc())
        .limit(1)
    )
    if s.get_bind().dialect.name == "postgresql":
        stmt = stmt.with_for_update()
    return s.scalars(stmt).first()


def current_version(s: Session, identity: SubmissionIdentity) -> Submission | None:
    return s.scalars(select(Submission).where(*identity.clauses(), Submission.is_current.is_(True))).first()


def version_history(s: Session, identity: SubmissionIdentity) -> list[Submission]:
    return list(s.scalars(select(Submission).where(*identity.clauses()).order_by(Submission.version.asc())))


def ensure_slot_open(s: Session, identity: SubmissionIdentity) -> Submission | None:
    """Raise ConflictError while the slot's latest version still awaits review."""
    latest = latest_version(s, identity)
    if latest is not None and status_of(latest) in IN_FLIGHT:
        raise ConflictError(
            f"Version {latest.version} of this requirement is still {latest.status}; "
            "wait for the review to conclude before submitting again."
        )
    return latest


def record_version(
    s: Session,
    identity: SubmissionIdentity,
    file_meta: FileMeta,
    *,
    sha256: str,
    staging_key: str,
    faculty_name: str | None = None,
    department: str | None = None,
    section: str = "",
) -> Submission:
    previous = ensure_slot_open(s, identity)
    version = previous.version + 1 if previous else 1
    if previous is not None:
        previous.is_current = False

    sub = Submission(
        faculty_id=identity.faculty_id,
        course_code=identity.course_code,
        doc_type_id=identity.doc_type_id,
        semester=identity.semester,
        academic_year=identity.academic_year,
        version=version,
        is_current=True,
        faculty_name=faculty_name,
        department=department,
        section=section or "",
        original_filename=file_meta.filename,
        content_type=file_meta.content_type,
        size_bytes=file_meta.size_bytes,
        sha256=sha256,
        staging_key=staging_key,
        vault_key=None,
        staged=True,
        status=SubmissionStatus.SUBMITTED.value,
    )
    s.add(sub)
    try:
        s.flush()
    except IntegrityError as e:
        # Another writer took this version number first.
        raise ConflictError("A newer version of this requirement was submitted concurrently.") from e
    return sub
