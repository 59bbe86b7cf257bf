from __future__ import annotations


class SubmissionError(Exception):
    """Base class for submission pipeline errors."""


class SubmissionNotFoundError(SubmissionError):
    pass


class ConflictError(SubmissionError):
    """The slot or submission is in a state that forbids the requested operation."""


class InvalidTransitionError(ConflictError):
    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from '{from_status}' to '{to_status}'")
        self.from_status = from_status
        self.to_status = to_status


class StaleSubmissionError(ConflictError):
    """Another operation changed the submission first."""


class PromotionFailedError(SubmissionError):
    """The staged object was not moved into the vault; approval was not recorded."""

    def __init__(self, submission_id: int, reason: str) -> None:
        super().__init__(f"Approval halted, integrity preserved: {reason}. Retry the approval.")
        self.submission_id = submission_id
        self.reason = reason


class ConfigurationError(SubmissionError):
    """Missing rule set, storage root, or similar setup; raised before any side effect."""


class ExtractionError(SubmissionError):
    pass


class ContentAnalysisError(SubmissionError):
    pass


class StorageCleanupWarning(UserWarning):
    """Discarding a staged object failed; the rejection itself still stands."""
