"""Version ledger against a real (sqlite) session."""
import pytest

from app.facreq import create_app
from app.facreq.db import session_scope
from app.facreq.models import Base
from app.facreq.modules.submissions import ledger
from app.facreq.modules.submissions.errors import ConflictError
from app.facreq.modules.submissions.ledger import SubmissionIdentity
from app.facreq.modules.submissions.models import DocumentType
from app.facreq.modules.submissions.validator import FileMeta


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "store"))

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(DocumentType(id=1, name="Syllabus", folder_label="Syllabus"))
    return app


def _identity() -> SubmissionIdentity:
    return SubmissionIdentity("F-001", "CS101", 1, "1st Semester", "2025-2026")


def _record(s, status: str | None = None):
    sub = ledger.record_version(
        s, _identity(), FileMeta("s.pdf", 10), sha256="0" * 64, staging_key="staging/x.pdf"
    )
    if status:
        sub.status = status
    return sub


def test_identity_requires_all_fields():
    with pytest.raises(ValueError):
        SubmissionIdentity("F-001", "", 1, "1st Semester", "2025-2026")


def test_first_version_is_one(app):
    with session_scope(app) as s:
        sub = _record(s)
        assert sub.version == 1
        assert sub.is_current is True
        assert sub.status == "SUBMITTED"
        assert sub.staged is True


def test_in_review_slot_rejects_new_version(app):
    with session_scope(app) as s:
        _record(s, "VALIDATED")
    with session_scope(app) as s:
        with pytest.raises(ConflictError):
            _record(s)


def test_terminal_version_is_superseded(app):
    with session_scope(app) as s:
        _record(s, "REJECTED")
    with session_scope(app) as s:
        second = _record(s)
        assert second.version == 2
    with session_scope(app) as s:
        history = ledger.version_history(s, _identity())
        assert [(v.version, v.is_current) for v in history] == [(1, False), (2, True)]
        assert ledger.current_version(s, _identity()).version == 2


def test_other_slots_are_independent(app):
    with session_scope(app) as s:
        _record(s, "VALIDATED")
        other = ledger.record_version(
            s,
            SubmissionIdentity("F-001", "CS102", 1, "1st Semester", "2025-2026"),
            FileMeta("s.pdf", 10),
            sha256="0" * 64,
            staging_key="staging/y.pdf",
        )
        assert other.version == 1
