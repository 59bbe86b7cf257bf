from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .lifecycle import REVIEWABLE, SubmissionStatus
from .models import DocumentType, Submission, SubmissionTransition


@dataclass(frozen=True)
class ScopeFilter:
    """Narrows queue / bulk operations. Unset fields match everything."""

    department: str | None = None
    academic_year: str | None = None
    semester: str | None = None
    faculty_id: str | None = None
    course_code: str | None = None
    doc_type_id: int | None = None
    status: SubmissionStatus | None = None

    @classmethod
    def from_mapping(cls, data: dict | None) -> "ScopeFilter":
        data = data or {}

        def _text(key: str) -> str | None:
            v = (str(data.get(key) or "")).strip()
            # "All Departments" is what the reviewer dropdown sends for no filter.
            return v if v and not v.lower().startswith("all ") else None

        doc_type_raw = _text("doc_type_id")
        status_raw = _text("status")
        return cls(
            department=_text("department"),
            academic_year=_text("academic_year"),
            semester=_text("semester"),
            faculty_id=_text("faculty_id"),
            course_code=_text("course_code"),
            doc_type_id=int(doc_type_raw) if doc_type_raw else None,
            status=SubmissionStatus(status_raw.upper()) if status_raw else None,
        )

    def clauses(self) -> list:
        out = []
        if self.department:
            out.append(Submission.department == self.department)
        if self.academic_year:
            out.append(Submission.academic_year == self.academic_year)
        if self.semester:
            out.append(Submission.semester == self.semester)
        if self.faculty_id:
            out.append(Submission.faculty_id == self.faculty_id)
        if self.course_code:
            out.append(Submission.course_code == self.course_code)
        if self.doc_type_id is not None:
            out.append(Submission.doc_type_id == self.doc_type_id)
        return out


def _pending_statement(scope: ScopeFilter | None):
    scope = scope or ScopeFilter()
    statuses = [scope.status] if scope.status in REVIEWABLE else sorted(REVIEWABLE)
    return (
        select(Submission)
        .where(
            Submission.is_current.is_(True),
            Submission.status.in_([st.value for st in statuses]),
            *scope.clauses(),
        )
        .order_by(Submission.submitted_at.asc(), Submission.id.asc())
    )


def validation_queue(s: Session, scope: ScopeFilter | None = None) -> list[Submission]:
    """Current submissions waiting on a reviewer, oldest first."""
    if scope is not None and scope.status is not None and scope.status not in REVIEWABLE:
        return []
    return list(s.scalars(_pending_statement(scope)))


def pending_ids(s: Session, scope: ScopeFilter | None = None) -> list[int]:
    return [sub.id for sub in validation_queue(s, scope)]


def recent_approvals(s: Session, limit: int = 5) -> list[dict]:
    rows = s.execute(
        select(SubmissionTransition, Submission, DocumentType)
        .join(Submission, Submission.id == SubmissionTransition.submission_id)
        .join(DocumentType, DocumentType.id == Submission.doc_type_id)
        .where(SubmissionTransition.to_status == SubmissionStatus.APPROVED.value)
        .order_by(SubmissionTransition.created_at.desc(), SubmissionTransition.id.desc())
        .limit(limit)
    ).all()
    return [
        {
            "id": sub.id,
            "filename": sub.original_filename,
            "type": doc_type.name,
            "faculty": sub.faculty_name or sub.faculty_id,
            "approved_by": tr.actor,
            "approved_at": tr.created_at.isoformat(),
        }
        for tr, sub, doc_type in rows
    ]


def validation_stats(s: Session) -> dict:
    counts = {st.value: 0 for st in SubmissionStatus}
    for status, n in s.execute(
        select(Submission.status, func.count(Submission.id))
        .where(Submission.is_current.is_(True))
        .group_by(Submission.status)
    ):
        counts[status] = n
    vault_count = s.scalar(
        select(func.count(Submission.id)).where(
            Submission.status == SubmissionStatus.APPROVED.value,
            Submission.staged.is_(False),
        )
    )
    staged_count = s.scalar(select(func.count(Submission.id)).where(Submission.staged.is_(True)))
    return {
        "by_status": counts,
        "pending": counts[SubmissionStatus.VALIDATED.value] + counts[SubmissionStatus.FAILED.value],
        "vault_count": vault_count or 0,
        "staged_count": staged_count or 0,
    }


def storage_key_for(sub: Submission) -> str | None:
    """Where the file lives right now: the vault once promoted, otherwise staging."""
    if not sub.staged and sub.vault_key:
        return sub.vault_key
    return sub.staging_key
