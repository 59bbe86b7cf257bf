"""
Submission lifecycle state machine.

    SUBMITTED -> VALIDATED | FAILED                       (automated verdict)
    VALIDATED | FAILED -> APPROVED | REJECTED | REVISION_REQUESTED   (reviewer)
    APPROVED | REJECTED | REVISION_REQUESTED -> ARCHIVED   (administrative sweep)

All status writes go through transition(), which also appends the transition record.
Approval and rejection additionally drive the staging coordinator.
"""
from __future__ import annotations

import json
import logging
import warnings
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .errors import InvalidTransitionError, PromotionFailedError, StorageCleanupWarning
from .models import Submission, SubmissionTransition

if TYPE_CHECKING:
    from .staging import DiscardResult, StagingCoordinator
    from .validator import VerdictReport

logger = logging.getLogger(__name__)


class SubmissionStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    VALIDATED = "VALIDATED"
    FAILED = "FAILED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    ARCHIVED = "ARCHIVED"


S = SubmissionStatus

TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    S.SUBMITTED: frozenset({S.VALIDATED, S.FAILED}),
    S.VALIDATED: frozenset({S.APPROVED, S.REJECTED, S.REVISION_REQUESTED}),
    S.FAILED: frozenset({S.APPROVED, S.REJECTED, S.REVISION_REQUESTED}),
    S.APPROVED: frozenset({S.ARCHIVED}),
    S.REJECTED: frozenset({S.ARCHIVED}),
    S.REVISION_REQUESTED: frozenset({S.ARCHIVED}),
    S.ARCHIVED: frozenset(),
}

# Awaiting a reviewer decision; a new version may not be submitted over these.
REVIEWABLE = frozenset({S.VALIDATED, S.FAILED})
IN_FLIGHT = frozenset({S.SUBMITTED}) | REVIEWABLE


class ReviewAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_REVISION = "REQUEST_REVISION"

    @classmethod
    def parse(cls, raw: "str | ReviewAction") -> "ReviewAction":
        if isinstance(raw, ReviewAction):
            return raw
        key = (raw or "").strip().upper().replace("-", "_").replace(" ", "_")
        aliases = {"REVISION": "REQUEST_REVISION", "REVISION_REQUESTED": "REQUEST_REVISION", "REVISE": "REQUEST_REVISION"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown reviewer action: {raw!r}") from None

    @property
    def target(self) -> SubmissionStatus:
        return {
            ReviewAction.APPROVE: S.APPROVED,
            ReviewAction.REJECT: S.REJECTED,
            ReviewAction.REQUEST_REVISION: S.REVISION_REQUESTED,
        }[self]


def status_of(sub: Submission) -> SubmissionStatus:
    return SubmissionStatus(sub.status)


def can_transition(from_status: SubmissionStatus, to_status: SubmissionStatus) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def ensure_transition(sub: Submission, to_status: SubmissionStatus) -> None:
    current = status_of(sub)
    if not can_transition(current, to_status):
        raise InvalidTransitionError(current.value, to_status.value)


def _append_record(
    s: Session,
    sub: Submission,
    from_status: SubmissionStatus | None,
    to_status: SubmissionStatus,
    actor: str | None,
    remarks: str | None,
    now: datetime,
) -> SubmissionTransition:
    record = SubmissionTransition(
        submission_id=sub.id,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value,
        actor=actor,
        remarks=remarks,
        created_at=now,
    )
    s.add(record)
    return record


def record_creation(s: Session, sub: Submission, *, actor: str | None) -> SubmissionTransition:
    return _append_record(s, sub, None, S.SUBMITTED, actor, None, sub.submitted_at or datetime.utcnow())


def transition(
    s: Session,
    sub: Submission,
    to_status: SubmissionStatus,
    *,
    actor: str | None,
    remarks: str | None = None,
) -> SubmissionTransition:
    """The only place a submission's status changes."""
    ensure_transition(sub, to_status)
    from_status = status_of(sub)
    now = datetime.utcnow()

    sub.status = to_status.value
    if to_status is S.APPROVED:
        sub.approved_at = now
    elif to_status is S.REJECTED:
        sub.rejected_at = now
    elif to_status is S.REVISION_REQUESTED:
        sub.revision_requested_at = now
    elif to_status is S.ARCHIVED:
        sub.archived_at = now
    if remarks and to_status in (S.APPROVED, S.REJECTED, S.REVISION_REQUESTED):
        sub.reviewer_remarks = remarks

    logger.info("Submission %s: %s -> %s (actor=%s)", sub.id, from_status.value, to_status.value, actor)
    return _append_record(s, sub, from_status, to_status, actor, remarks, now)


def apply_verdict(s: Session, sub: Submission, verdict: VerdictReport, *, actor: str | None) -> SubmissionTransition:
    """Write the validator verdict (once) and move SUBMITTED -> VALIDATED | FAILED."""
    if sub.validation_issues_json is not None:
        raise InvalidTransitionError(sub.status, "verdict already recorded")
    sub.validation_issues_json = json.dumps(list(verdict.issues))
    sub.word_count = verdict.word_count
    target = S.VALIDATED if verdict.passed else S.FAILED
    return transition(s, sub, target, actor=actor)


def approve(
    s: Session,
    sub: Submission,
    coordinator: StagingCoordinator,
    *,
    actor: str | None,
    remarks: str | None = None,
) -> SubmissionTransition:
    """
    Promote the staged file, then record APPROVED.

    A failed promotion raises PromotionFailedError with the submission untouched; no
    APPROVED record is written.
    """
    ensure_transition(sub, S.APPROVED)
    result = coordinator.promote(sub)
    if not result.ok:
        raise PromotionFailedError(sub.id, result.error or "object store move did not complete")
    return transition(s, sub, S.APPROVED, actor=actor, remarks=remarks)


def reject(
    s: Session,
    sub: Submission,
    coordinator: StagingCoordinator,
    *,
    actor: str | None,
    remarks: str | None = None,
) -> tuple[SubmissionTransition, DiscardResult]:
    """Record REJECTED; discard failures are reported but never block the rejection."""
    ensure_transition(sub, S.REJECTED)
    result = coordinator.discard(sub)
    if not result.ok:
        warnings.warn(result.warning or "staged object cleanup failed", StorageCleanupWarning, stacklevel=2)
    return transition(s, sub, S.REJECTED, actor=actor, remarks=remarks), result


def request_revision(s: Session, sub: Submission, *, actor: str | None, remarks: str | None) -> SubmissionTransition:
    if not (remarks or "").strip():
        raise ValueError("Requesting a revision requires remarks for the faculty member.")
    return transition(s, sub, S.REVISION_REQUESTED, actor=actor, remarks=remarks.strip())


def archive(s: Session, sub: Submission, *, actor: str | None, remarks: str | None = None) -> SubmissionTransition:
    return transition(s, sub, S.ARCHIVED, actor=actor, remarks=remarks)
