from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.facreq.db import db_session
from app.facreq.modules.submissions.errors import (
    ConfigurationError,
    ConflictError,
    PromotionFailedError,
    SubmissionNotFoundError,
)
from app.facreq.modules.submissions.ledger import SubmissionIdentity
from app.facreq.modules.submissions.queries import (
    ScopeFilter,
    recent_approvals,
    validation_queue,
    validation_stats,
)
from app.facreq.modules.submissions.service import UploadedFile, get_pipeline

bp = Blueprint("submissions", __name__)


def _actor() -> str | None:
    return (request.headers.get("X-Actor") or "").strip() or None


def _form(key: str) -> str:
    return (request.form.get(key) or "").strip()


@bp.errorhandler(SubmissionNotFoundError)
def _not_found(e):
    return jsonify({"error": str(e)}), 404


@bp.errorhandler(ConflictError)
def _conflict(e):
    return jsonify({"error": str(e)}), 409


@bp.errorhandler(PromotionFailedError)
def _promotion_failed(e):
    return jsonify({"error": str(e), "submission_id": e.submission_id}), 502


@bp.errorhandler(ConfigurationError)
def _misconfigured(e):
    current_app.logger.error("Configuration error: %s", e)
    return jsonify({"error": str(e)}), 500


@bp.errorhandler(ValueError)
def _bad_request(e):
    return jsonify({"error": str(e)}), 400


@bp.post("/submissions")
def create_submission():
    f = request.files.get("file")
    if not f or not f.filename:
        return jsonify({"error": "file is required"}), 400
    doc_type_raw = _form("doc_type_id")
    if not doc_type_raw.isdigit():
        return jsonify({"error": "doc_type_id must be an integer"}), 400

    identity = SubmissionIdentity(
        faculty_id=_form("faculty_id"),
        course_code=_form("course_code").upper(),
        doc_type_id=int(doc_type_raw),
        semester=_form("semester"),
        academic_year=_form("academic_year"),
    )
    upload = UploadedFile(
        filename=f.filename,
        data=f.read(),
        content_type=f.mimetype or "application/octet-stream",
    )
    sub = get_pipeline(current_app).submit(
        identity,
        upload,
        actor=_actor() or identity.faculty_id,
        faculty_name=_form("faculty_name") or None,
        department=_form("department") or None,
        section=_form("section"),
    )
    return jsonify(sub.to_dict()), 201


@bp.get("/submissions/<int:submission_id>")
def get_submission(submission_id: int):
    return jsonify(get_pipeline(current_app).get(submission_id).to_dict())


@bp.get("/submissions/<int:submission_id>/history")
def submission_history(submission_id: int):
    transitions, versions = get_pipeline(current_app).history(submission_id)
    return jsonify(
        {
            "submission_id": submission_id,
            "transitions": [t.to_dict() for t in transitions],
            "versions": [
                {
                    "id": v.id,
                    "version": v.version,
                    "status": v.status,
                    "is_current": v.is_current,
                    "original_filename": v.original_filename,
                    "submitted_at": v.submitted_at.isoformat() if v.submitted_at else None,
                }
                for v in versions
            ],
        }
    )


@bp.post("/submissions/<int:submission_id>/analysis")
def analyze_submission(submission_id: int):
    result = get_pipeline(current_app).run_content_analysis(submission_id, actor=_actor())
    return jsonify(result.to_dict())


@bp.post("/submissions/<int:submission_id>/actions")
def submission_action(submission_id: int):
    payload = request.get_json(silent=True) or {}
    action = (payload.get("action") or "").strip()
    if not action:
        return jsonify({"error": "action is required"}), 400
    row_version = payload.get("row_version")
    sub = get_pipeline(current_app).reviewer_action(
        submission_id,
        action,
        (payload.get("remarks") or "").strip() or None,
        actor=_actor(),
        expected_row_version=int(row_version) if row_version is not None else None,
    )
    return jsonify(sub.to_dict())


@bp.post("/submissions/approve-all")
def approve_all():
    payload = request.get_json(silent=True) or {}
    report = get_pipeline(current_app).approve_all(
        ScopeFilter.from_mapping(payload),
        actor=_actor(),
        remarks=(payload.get("remarks") or "").strip() or None,
    )
    return jsonify(report.to_dict())


@bp.get("/validation/queue")
def queue():
    s = db_session()
    items = validation_queue(s, ScopeFilter.from_mapping(request.args))
    return jsonify({"count": len(items), "items": [sub.to_dict() for sub in items]})


@bp.get("/validation/recent")
def recent():
    limit = request.args.get("limit", type=int) or 5
    return jsonify({"items": recent_approvals(db_session(), limit=min(limit, 50))})


@bp.get("/validation/stats")
def stats():
    return jsonify(validation_stats(db_session()))
