"""
Submission pipeline: the public entry points for faculty and reviewers.

    submit            ledger -> staging upload -> validator -> lifecycle
    reviewer_action   lifecycle -> staging coordinator (promote / discard)
    approve_all       reviewer_action(APPROVE) for each pending item, bounded concurrency
    run_content_analysis   annotates a submission; never changes its status

Operations on the same submission id (and submits to the same slot) are serialized
in-process; across processes the row_version check on UPDATE catches the loser.
"""
from __future__ import annotations

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime

from flask import Flask
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.utils import secure_filename

from app.facreq.audit import record_event
from app.facreq.storage import StorageError, storage_from_config
from app.facreq.utils import KeyedLocks, call_with_timeout

from . import ledger, lifecycle
from .analysis import STATUS_ERROR, AnalysisResult, ContentAnalyzer, analyzer_from_config
from .errors import (
    ConfigurationError,
    ConflictError,
    ContentAnalysisError,
    ExtractionError,
    PromotionFailedError,
    StaleSubmissionError,
    SubmissionNotFoundError,
)
from .extraction import extract_text
from .ledger import SubmissionIdentity
from .lifecycle import REVIEWABLE, ReviewAction, status_of
from .models import Submission, SubmissionTransition
from .queries import ScopeFilter, pending_ids, storage_key_for
from .rules import load_rule_set
from .staging import StagingCoordinator
from .validator import FileMeta, VerdictReport, combine_segments, evaluate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def meta(self) -> FileMeta:
        return FileMeta(filename=self.filename, size_bytes=len(self.data), content_type=self.content_type)


@dataclass
class BulkApprovalReport:
    approved: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)  # promotion did not complete
    skipped: dict[int, str] = field(default_factory=dict)  # decided by someone else meanwhile

    def to_dict(self) -> dict:
        return {
            "approved_count": len(self.approved),
            "failed_count": len(self.failed),
            "skipped_count": len(self.skipped),
            "approved": sorted(self.approved),
            "failed": {str(k): v for k, v in sorted(self.failed.items())},
            "skipped": {str(k): v for k, v in sorted(self.skipped.items())},
        }


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.bin"


class SubmissionPipeline:
    def __init__(
        self,
        sessions: sessionmaker,
        coordinator: StagingCoordinator,
        *,
        analyzer: ContentAnalyzer | None = None,
        analysis_timeout_seconds: float | None = 60,
        bulk_max_workers: int = 4,
    ) -> None:
        self.sessions = sessions
        self.coordinator = coordinator
        self.analyzer = analyzer
        self.analysis_timeout_seconds = analysis_timeout_seconds
        self.bulk_max_workers = max(1, bulk_max_workers)
        self._submission_locks = KeyedLocks()
        self._slot_locks = KeyedLocks()
        self._analysis_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="content-analysis")

    def close(self) -> None:
        self._analysis_executor.shutdown(wait=False)
        self.coordinator.close()

    # -- helpers ----------------------------------------------------------

    def _load(self, s: Session, submission_id: int) -> Submission:
        sub = s.get(Submission, submission_id)
        if sub is None:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return sub

    def _commit(self, s: Session, submission_id: int | None = None) -> None:
        try:
            s.commit()
        except StaleDataError as e:
            s.rollback()
            raise StaleSubmissionError(f"Submission {submission_id} was changed by another operation; reload and retry.") from e

    def get(self, submission_id: int) -> Submission:
        with self.sessions() as s:
            return self._load(s, submission_id)

    def history(self, submission_id: int) -> tuple[list[SubmissionTransition], list[Submission]]:
        """Transition log of one submission plus every version recorded for its slot."""
        with self.sessions() as s:
            sub = self._load(s, submission_id)
            versions = ledger.version_history(s, SubmissionIdentity.of(sub))
            return list(sub.transitions), versions

    # -- faculty ----------------------------------------------------------

    def submit(
        self,
        identity: SubmissionIdentity,
        upload: UploadedFile,
        *,
        actor: str | None,
        extracted_text: str | list[str] | None = None,
        faculty_name: str | None = None,
        department: str | None = None,
        section: str = "",
    ) -> Submission:
        """Record a new version, run the automated checks, and set the initial status."""
        meta = upload.meta
        with self._slot_locks.hold(identity):
            s: Session = self.sessions()
            staging_key: str | None = None
            try:
                # Configuration and slot checks happen before anything touches storage.
                doc_type, rule_set = load_rule_set(s, identity.doc_type_id)
                ledger.ensure_slot_open(s, identity)

                verdict, text = self._evaluate(rule_set, upload, extracted_text)

                staging_key = self.coordinator.stage(
                    identity.faculty_id,
                    identity.course_code,
                    sanitize_upload_filename(upload.filename),
                    upload.data,
                    upload.content_type,
                )
                sub = ledger.record_version(
                    s,
                    identity,
                    meta,
                    sha256=hashlib.sha256(upload.data).hexdigest(),
                    staging_key=staging_key,
                    faculty_name=faculty_name,
                    department=department,
                    section=section,
                )
                sub.doc_type = doc_type
                sub.extracted_text = text or None
                lifecycle.record_creation(s, sub, actor=actor)
                lifecycle.apply_verdict(s, sub, verdict, actor=actor)
                record_event(
                    s,
                    actor=actor,
                    action="submission.create",
                    entity_type="Submission",
                    entity_id=str(sub.id),
                    metadata={
                        "doc_type": doc_type.name,
                        "version": sub.version,
                        "filename": sub.original_filename,
                        "verdict": verdict.verdict,
                        "issues": list(verdict.issues),
                        "word_count": verdict.word_count,
                    },
                )
                s.commit()
            except Exception:
                s.rollback()
                if staging_key is not None:
                    self.coordinator.delete_key(staging_key)
                raise
            finally:
                s.close()
        logger.info(
            "Submission %s recorded: slot=%s version=%s status=%s", sub.id, identity, sub.version, sub.status
        )
        return sub

    def _evaluate(self, rule_set, upload: UploadedFile, extracted_text) -> tuple[VerdictReport, str]:
        """Run the validator; extracts text first unless the caller supplied it or the file fails structurally."""
        meta = upload.meta
        extraction_issue: str | None = None
        segments = extracted_text
        if segments is None and rule_set.allows_extension(meta.extension) and meta.size_bytes <= rule_set.max_file_size_bytes:
            try:
                segments = extract_text(upload.filename, upload.data)
            except ExtractionError as e:
                logger.warning("Text extraction failed for %s: %s", upload.filename, e)
                extraction_issue = str(e)
                segments = []
        verdict = evaluate(rule_set, meta, segments)
        if extraction_issue:
            verdict = VerdictReport(passed=False, issues=(extraction_issue,) + verdict.issues, word_count=verdict.word_count)
        return verdict, combine_segments(segments)

    # -- reviewer ---------------------------------------------------------

    def reviewer_action(
        self,
        submission_id: int,
        action: str | ReviewAction,
        remarks: str | None = None,
        *,
        actor: str | None,
        expected_row_version: int | None = None,
    ) -> Submission:
        action = ReviewAction.parse(action)
        with self._submission_locks.hold(submission_id):
            s: Session = self.sessions()
            try:
                sub = self._load(s, submission_id)
                if expected_row_version is not None and sub.row_version != expected_row_version:
                    raise StaleSubmissionError(
                        f"Submission {submission_id} changed since it was loaded (row version {sub.row_version})."
                    )
                if status_of(sub) not in REVIEWABLE:
                    raise StaleSubmissionError(f"Submission {submission_id} is already {sub.status}.")

                metadata: dict = {"version": sub.version, "from": sub.status}
                if action is ReviewAction.APPROVE:
                    lifecycle.approve(s, sub, self.coordinator, actor=actor, remarks=remarks)
                    metadata["vault_key"] = sub.vault_key
                elif action is ReviewAction.REJECT:
                    _, discard = lifecycle.reject(s, sub, self.coordinator, actor=actor, remarks=remarks)
                    if not discard.ok:
                        metadata["storage_warning"] = discard.warning
                        record_event(
                            s,
                            actor=actor,
                            action="submission.storage_cleanup_warning",
                            entity_type="Submission",
                            entity_id=str(sub.id),
                            reason=discard.warning,
                            metadata={"staging_key": sub.staging_key},
                        )
                else:
                    lifecycle.request_revision(s, sub, actor=actor, remarks=remarks)

                metadata["to"] = sub.status
                record_event(
                    s,
                    actor=actor,
                    action=f"submission.{action.value.lower()}",
                    entity_type="Submission",
                    entity_id=str(sub.id),
                    reason=remarks,
                    metadata=metadata,
                )
                self._commit(s, submission_id)
            except PromotionFailedError as e:
                # Status and pointers stay as they were; only the failed attempt is recorded.
                s.rollback()
                record_event(
                    s,
                    actor=actor,
                    action="submission.approve_failed",
                    entity_type="Submission",
                    entity_id=str(submission_id),
                    reason=e.reason,
                )
                s.commit()
                raise
            except Exception:
                s.rollback()
                raise
            finally:
                s.close()
        return sub

    def approve_all(self, scope: ScopeFilter | None = None, *, actor: str | None, remarks: str | None = None) -> BulkApprovalReport:
        """Approve every pending submission in scope; one item's failure never stops the rest."""
        with self.sessions() as s:
            ids = pending_ids(s, scope)
        report = BulkApprovalReport()
        if not ids:
            return report

        with ThreadPoolExecutor(max_workers=self.bulk_max_workers, thread_name_prefix="bulk-approve") as pool:
            futures = {
                pool.submit(self.reviewer_action, sid, ReviewAction.APPROVE, remarks, actor=actor): sid for sid in ids
            }
            for fut in as_completed(futures):
                sid = futures[fut]
                try:
                    fut.result()
                    report.approved.append(sid)
                except PromotionFailedError as e:
                    report.failed[sid] = str(e)
                except ConflictError as e:
                    report.skipped[sid] = str(e)
                except Exception as e:
                    logger.exception("Bulk approval of submission %s failed unexpectedly", sid)
                    report.failed[sid] = str(e)

        logger.info(
            "Bulk approval by %s: %d approved, %d failed, %d skipped",
            actor, len(report.approved), len(report.failed), len(report.skipped),
        )
        return report

    # -- content analysis -------------------------------------------------

    def run_content_analysis(self, submission_id: int, *, actor: str | None = None) -> AnalysisResult:
        if self.analyzer is None:
            raise ConfigurationError("Content analysis is disabled (CONTENT_ANALYSIS_BACKEND=none).")
        with self._submission_locks.hold(submission_id):
            s: Session = self.sessions()
            try:
                sub = self._load(s, submission_id)
                key = storage_key_for(sub)
                try:
                    if not key:
                        raise StorageError(f"submission {sub.id} has no stored file")
                    data = self.coordinator.fetch(key)
                    result = call_with_timeout(
                        self._analysis_executor,
                        self.analysis_timeout_seconds,
                        self.analyzer.analyze,
                        sub.original_filename,
                        data,
                        sub.extracted_text or "",
                    )
                except (ContentAnalysisError, StorageError, TimeoutError) as e:
                    logger.warning("Content analysis failed for submission %s: %s", sub.id, e)
                    result = AnalysisResult(status=STATUS_ERROR, issues=(str(e),), engine=self.analyzer.name)

                sub.content_analysis_json = json.dumps(result.to_dict())
                sub.content_analyzed_at = datetime.utcnow()
                record_event(
                    s,
                    actor=actor,
                    action="submission.content_analysis",
                    entity_type="Submission",
                    entity_id=str(sub.id),
                    metadata=result.to_dict(),
                )
                self._commit(s, submission_id)
            except Exception:
                s.rollback()
                raise
            finally:
                s.close()
        return result


def pipeline_from_config(config: dict, sessions: sessionmaker) -> SubmissionPipeline:
    storage = storage_from_config(config)
    coordinator = StagingCoordinator(
        storage,
        staging_prefix=config.get("STAGING_PREFIX") or "",
        vault_prefix=config.get("VAULT_PREFIX") or "",
        timeout_seconds=float(config.get("STORAGE_TIMEOUT_SECONDS") or 30),
    )
    return SubmissionPipeline(
        sessions,
        coordinator,
        analyzer=analyzer_from_config(config),
        analysis_timeout_seconds=float(config.get("CONTENT_ANALYSIS_TIMEOUT_SECONDS") or 60),
        bulk_max_workers=int(config.get("BULK_APPROVE_MAX_WORKERS") or 4),
    )


def init_pipeline(app: Flask) -> SubmissionPipeline:
    pipeline = pipeline_from_config(app.config, app.extensions["sqlalchemy_sessionmaker"])
    app.extensions["submission_pipeline"] = pipeline
    return pipeline


def get_pipeline(app: Flask) -> SubmissionPipeline:
    pipeline = app.extensions.get("submission_pipeline")
    if pipeline is None:
        pipeline = init_pipeline(app)
    return pipeline
