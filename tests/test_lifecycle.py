import pytest

from app.facreq.modules.submissions.errors import InvalidTransitionError
from app.facreq.modules.submissions.lifecycle import (
    IN_FLIGHT,
    REVIEWABLE,
    TRANSITIONS,
    ReviewAction,
    SubmissionStatus,
    can_transition,
    ensure_transition,
)
from app.facreq.modules.submissions.models import Submission

S = SubmissionStatus


def test_every_status_has_a_transition_entry():
    assert set(TRANSITIONS) == set(SubmissionStatus)


@pytest.mark.parametrize(
    "src,dst",
    [
        (S.SUBMITTED, S.VALIDATED),
        (S.SUBMITTED, S.FAILED),
        (S.VALIDATED, S.APPROVED),
        (S.FAILED, S.APPROVED),
        (S.FAILED, S.REJECTED),
        (S.VALIDATED, S.REVISION_REQUESTED),
        (S.APPROVED, S.ARCHIVED),
    ],
)
def test_legal_transitions(src, dst):
    assert can_transition(src, dst)


@pytest.mark.parametrize(
    "src,dst",
    [
        (S.SUBMITTED, S.APPROVED),
        (S.APPROVED, S.REJECTED),
        (S.REJECTED, S.APPROVED),
        (S.ARCHIVED, S.SUBMITTED),
        (S.VALIDATED, S.FAILED),
    ],
)
def test_illegal_transitions(src, dst):
    assert not can_transition(src, dst)


def test_ensure_transition_raises_with_both_states():
    sub = Submission(status=S.APPROVED.value)
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition(sub, S.REJECTED)
    assert exc.value.from_status == "APPROVED"
    assert exc.value.to_status == "REJECTED"


def test_reviewable_and_in_flight_sets():
    assert REVIEWABLE == {S.VALIDATED, S.FAILED}
    assert S.SUBMITTED in IN_FLIGHT
    assert S.APPROVED not in IN_FLIGHT


@pytest.mark.parametrize("raw", ["REVISION", "revision-requested", "Request Revision", "revise"])
def test_review_action_aliases(raw):
    assert ReviewAction.parse(raw) is ReviewAction.REQUEST_REVISION


def test_review_action_rejects_unknown():
    with pytest.raises(ValueError):
        ReviewAction.parse("publish")


def test_review_action_targets():
    assert ReviewAction.APPROVE.target is S.APPROVED
    assert ReviewAction.REJECT.target is S.REJECTED
