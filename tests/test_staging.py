"""Staging coordinator behaviour against a local store with injectable faults."""
import hashlib
import time

import pytest

from app.facreq.modules.submissions.errors import ConfigurationError
from app.facreq.modules.submissions.models import DocumentType, Submission
from app.facreq.modules.submissions.staging import StagingCoordinator, build_vault_key
from app.facreq.storage import LocalStorage, Storage, StorageError

PDF_BYTES = b"%PDF-1.4 fake"


class FaultyStorage(Storage):
    """Wraps LocalStorage; individual operations can be told to misbehave."""

    def __init__(self, inner: LocalStorage) -> None:
        self.inner = inner
        self.fail_move = False
        self.move_lands_then_fails = False
        self.move_lands_then_hangs = 0.0
        self.move_stalls_before_landing = 0.0
        self.fail_delete = False
        self.move_calls = 0

    def put_bytes(self, key, data, *, content_type=None):
        self.inner.put_bytes(key, data, content_type=content_type)

    def open(self, key):
        return self.inner.open(key)

    def exists(self, key):
        return self.inner.exists(key)

    def ensure_container(self, prefix):
        return self.inner.ensure_container(prefix)

    def move(self, key, target_key):
        self.move_calls += 1
        if self.fail_move:
            raise StorageError("simulated outage")
        if self.move_stalls_before_landing:
            time.sleep(self.move_stalls_before_landing)
        self.inner.move(key, target_key)
        if self.move_lands_then_fails:
            raise StorageError("connection reset after copy")
        if self.move_lands_then_hangs:
            time.sleep(self.move_lands_then_hangs)
        return target_key

    def delete(self, key):
        if self.fail_delete:
            raise StorageError("simulated delete failure")
        self.inner.delete(key)


@pytest.fixture()
def storage(tmp_path):
    return FaultyStorage(LocalStorage(root=tmp_path))


@pytest.fixture()
def coordinator(storage):
    c = StagingCoordinator(storage, staging_prefix="staging", vault_prefix="vault", timeout_seconds=0.5)
    yield c
    c.close()


def _staged_submission(
    coordinator: StagingCoordinator, data: bytes = PDF_BYTES, folder_label: str = "Syllabus", **overrides
) -> Submission:
    key = coordinator.stage("F-001", "CS101", "syllabus.pdf", data, "application/pdf")
    fields = dict(
        id=1,
        faculty_id="F-001",
        faculty_name="Ana Cruz",
        course_code="CS101",
        section="A",
        semester="1st Semester",
        academic_year="2025-2026",
        version=2,
        original_filename="syllabus.pdf",
        sha256=hashlib.sha256(data).hexdigest(),
        staging_key=key,
        vault_key=None,
        staged=True,
        status="VALIDATED",
    )
    fields.update(overrides)
    sub = Submission(**fields)
    sub.doc_type = DocumentType(name="Syllabus", folder_label=folder_label)
    return sub


def test_vault_key_is_deterministic(coordinator):
    sub = _staged_submission(coordinator)
    expected = "vault/2025-2026/1st_Semester/Ana_Cruz_F-001/CS101/A/Syllabus/v2_1_syllabus.pdf"
    assert build_vault_key("vault", sub, folder_label="Syllabus") == expected
    assert coordinator.vault_key_for(sub) == expected


def test_vault_key_omits_empty_section(coordinator):
    sub = _staged_submission(coordinator, section="")
    assert "/CS101/Syllabus/" in coordinator.vault_key_for(sub)


def test_stage_writes_under_staging_prefix(coordinator, storage):
    sub = _staged_submission(coordinator)
    assert sub.staging_key.startswith("staging/F-001/CS101/")
    assert sub.staging_key.endswith(".pdf")
    assert storage.exists(sub.staging_key)


def test_promote_moves_object_and_flips_pointers(coordinator, storage):
    sub = _staged_submission(coordinator)
    staging_key = sub.staging_key
    result = coordinator.promote(sub)
    assert result.ok
    assert sub.vault_key == result.vault_key
    assert sub.staging_key is None
    assert sub.staged is False
    assert storage.exists(result.vault_key)
    assert not storage.exists(staging_key)


def test_promote_is_idempotent(coordinator, storage):
    sub = _staged_submission(coordinator)
    first = coordinator.promote(sub)
    again = coordinator.promote(sub)
    assert again.ok and again.already_promoted
    assert again.vault_key == first.vault_key
    assert storage.move_calls == 1


def test_failed_promote_leaves_submission_untouched(coordinator, storage):
    sub = _staged_submission(coordinator)
    staging_key = sub.staging_key
    storage.fail_move = True
    result = coordinator.promote(sub)
    assert not result.ok
    assert "simulated outage" in result.error
    assert sub.staging_key == staging_key
    assert sub.vault_key is None
    assert sub.staged is True
    assert storage.exists(staging_key)


def test_error_after_copy_is_resolved_by_location_check(coordinator, storage):
    sub = _staged_submission(coordinator)
    storage.move_lands_then_fails = True
    result = coordinator.promote(sub)
    assert result.ok
    assert sub.staged is False
    assert storage.exists(result.vault_key)


def test_timeout_after_move_landed_counts_as_success(coordinator, storage):
    sub = _staged_submission(coordinator)
    storage.move_lands_then_hangs = 1.5
    result = coordinator.promote(sub)
    assert result.ok
    assert storage.exists(result.vault_key)


def test_retry_adopts_object_left_in_vault(coordinator, storage):
    sub = _staged_submission(coordinator)
    staging_key = sub.staging_key
    target = coordinator.vault_key_for(sub)
    # Previous attempt copied the object but never deleted the source.
    storage.inner.put_bytes(target, PDF_BYTES)
    result = coordinator.promote(sub)
    assert result.ok
    assert result.vault_key == target
    assert storage.move_calls == 0
    assert not storage.exists(staging_key)


def test_promote_requires_vault_prefix(storage):
    c = StagingCoordinator(storage, staging_prefix="staging", vault_prefix="")
    try:
        sub = _staged_submission(c)
        with pytest.raises(ConfigurationError):
            c.promote(sub)
    finally:
        c.close()


def test_discard_deletes_staged_object(coordinator, storage):
    sub = _staged_submission(coordinator)
    key = sub.staging_key
    result = coordinator.discard(sub)
    assert result.ok
    assert sub.staged is False
    assert not storage.exists(key)


def test_discard_failure_is_reported_not_raised(coordinator, storage):
    sub = _staged_submission(coordinator)
    storage.fail_delete = True
    result = coordinator.discard(sub)
    assert not result.ok
    assert "simulated delete failure" in result.warning
    assert sub.staged is True


def test_doc_types_sharing_a_folder_get_distinct_vault_keys(coordinator, storage):
    syllabus = _staged_submission(coordinator, data=b"syllabus body", id=1, doc_type_id=1, version=1)
    outline = _staged_submission(coordinator, data=b"outline body", id=2, doc_type_id=2, version=1)

    first = coordinator.promote(syllabus)
    second = coordinator.promote(outline)

    assert first.ok and second.ok
    assert first.vault_key != second.vault_key
    assert storage.get_bytes(first.vault_key) == b"syllabus body"
    assert storage.get_bytes(second.vault_key) == b"outline body"


def test_foreign_object_at_vault_key_is_not_adopted(coordinator, storage):
    sub = _staged_submission(coordinator)
    staging_key = sub.staging_key
    target = coordinator.vault_key_for(sub)
    storage.inner.put_bytes(target, b"somebody else's file")

    result = coordinator.promote(sub)

    assert not result.ok
    assert "different file" in result.error
    assert storage.move_calls == 0
    assert sub.staged is True
    assert sub.vault_key is None
    assert storage.exists(staging_key)
    assert storage.get_bytes(target) == b"somebody else's file"


def test_move_landing_after_timeout_is_removed_on_discard(coordinator, storage):
    sub = _staged_submission(coordinator)
    target = coordinator.vault_key_for(sub)
    storage.move_stalls_before_landing = 1.0

    result = coordinator.promote(sub)
    assert not result.ok
    assert sub.staged is True

    deadline = time.monotonic() + 5
    while not storage.exists(target) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert storage.exists(target)

    discarded = coordinator.discard(sub)
    assert discarded.ok
    assert sub.staged is False
    assert not storage.exists(target)


def test_discard_keeps_vault_object_of_another_submission(coordinator, storage):
    sub = _staged_submission(coordinator)
    target = coordinator.vault_key_for(sub)
    storage.inner.put_bytes(target, b"somebody else's file")

    assert coordinator.discard(sub).ok
    assert storage.exists(target)
