"""
Staging coordinator: moves files between the staging area and the vault.

Uploads land under the staging prefix. Approval promotes the object to a deterministic
vault key; rejection deletes it. Every object-store call runs with a deadline, and an
unclear outcome (error or timeout mid-move) is resolved by looking at where the object
actually is before anything is reported or retried.
"""
from __future__ import annotations

import hashlib
import logging
import posixpath
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from app.facreq.storage import Storage
from app.facreq.utils import call_with_timeout, path_segment

from .errors import ConfigurationError
from .models import Submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionResult:
    ok: bool
    vault_key: str | None = None
    error: str | None = None
    already_promoted: bool = False

    @classmethod
    def success(cls, vault_key: str, *, already_promoted: bool = False) -> "PromotionResult":
        return cls(ok=True, vault_key=vault_key, already_promoted=already_promoted)

    @classmethod
    def failure(cls, error: str) -> "PromotionResult":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class DiscardResult:
    ok: bool
    warning: str | None = None


class VaultKeyOccupiedError(Exception):
    """The vault key already holds an object whose content is not this submission's."""


def build_staging_key(staging_prefix: str, *, faculty_id: str, course_code: str, filename: str) -> str:
    ext = posixpath.splitext(filename or "")[1].lower()
    return "/".join(
        [
            staging_prefix.strip("/"),
            path_segment(faculty_id),
            path_segment(course_code),
            f"{uuid.uuid4().hex}{ext}",
        ]
    )


def build_vault_key(vault_prefix: str, sub: Submission, *, folder_label: str) -> str:
    """
    Deterministic vault location:
    {vault}/{academic_year}/{semester}/{faculty}/{course}[/{section}]/{doc type folder}/v{n}_{submission id}_{file}

    Folder labels and sanitized segments can coincide across slots; the submission id keeps
    the key unique to one submission.
    """
    faculty = path_segment(f"{sub.faculty_name}_{sub.faculty_id}" if sub.faculty_name else sub.faculty_id)
    parts = [
        vault_prefix.strip("/"),
        path_segment(sub.academic_year),
        path_segment(sub.semester),
        faculty,
        path_segment(sub.course_code),
    ]
    if (sub.section or "").strip():
        parts.append(path_segment(sub.section))
    parts.append(path_segment(folder_label))
    parts.append(f"v{sub.version}_{sub.id}_{path_segment(sub.original_filename, default='document.bin')}")
    return "/".join(parts)


class StagingCoordinator:
    def __init__(
        self,
        storage: Storage,
        *,
        staging_prefix: str,
        vault_prefix: str,
        timeout_seconds: float = 30.0,
        max_workers: int = 8,
    ) -> None:
        self.storage = storage
        self.staging_prefix = (staging_prefix or "").strip("/")
        self.vault_prefix = (vault_prefix or "").strip("/")
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="object-store")

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _call(self, fn, *args, **kwargs):
        return call_with_timeout(self._executor, self.timeout_seconds, fn, *args, **kwargs)

    # -- staging area -----------------------------------------------------

    def stage(self, faculty_id: str, course_code: str, filename: str, data: bytes, content_type: str) -> str:
        if not self.staging_prefix:
            raise ConfigurationError("STAGING_PREFIX is not configured.")
        key = build_staging_key(self.staging_prefix, faculty_id=faculty_id, course_code=course_code, filename=filename)
        self._call(self.storage.put_bytes, key, data, content_type=content_type)
        return key

    def fetch(self, key: str) -> bytes:
        return self._call(self.storage.get_bytes, key)

    def delete_key(self, key: str) -> bool:
        """Best-effort removal of an object nobody points at (e.g. after a failed insert)."""
        try:
            self._call(self.storage.delete, key)
            return True
        except Exception as e:
            logger.warning("Could not remove orphaned staged object %s: %s", key, e)
            return False

    # -- promotion --------------------------------------------------------

    def vault_key_for(self, sub: Submission) -> str:
        if not self.vault_prefix:
            raise ConfigurationError("VAULT_PREFIX is not configured; cannot promote approved files.")
        return build_vault_key(self.vault_prefix, sub, folder_label=sub.doc_type.folder_label)

    def _holds_own_copy(self, sub: Submission, key: str) -> bool:
        data = self._call(self.storage.get_bytes, key)
        return hashlib.sha256(data).hexdigest() == sub.sha256

    def _landed(self, sub: Submission, staging_key: str, target_key: str) -> bool:
        """True if this submission's object already sits at target_key (a previous move completed)."""
        if not self._call(self.storage.exists, target_key):
            return False
        if not self._holds_own_copy(sub, target_key):
            raise VaultKeyOccupiedError(f"vault key {target_key} holds a different file")
        if self._call(self.storage.exists, staging_key):
            # Copy finished but the source delete did not; drop the leftover.
            logger.warning("Object present in both staging (%s) and vault (%s); removing staged copy", staging_key, target_key)
            self.delete_key(staging_key)
        return True

    def _mark_promoted(self, sub: Submission, vault_key: str) -> None:
        sub.vault_key = vault_key
        sub.staging_key = None
        sub.staged = False

    def promote(self, sub: Submission) -> PromotionResult:
        if not sub.staged and sub.vault_key:
            return PromotionResult.success(sub.vault_key, already_promoted=True)
        target = self.vault_key_for(sub)
        if not sub.staging_key:
            return PromotionResult.failure(f"submission {sub.id} has no staged object")
        staging_key = sub.staging_key

        try:
            if self._landed(sub, staging_key, target):
                logger.info("Submission %s already present at %s; adopting", sub.id, target)
            else:
                self._call(self.storage.ensure_container, posixpath.dirname(target))
                self._call(self.storage.move, staging_key, target)
        except VaultKeyOccupiedError as e:
            logger.error("Promotion refused for submission %s: %s staging=%s", sub.id, e, staging_key)
            return PromotionResult.failure(str(e))
        except Exception as e:
            logger.warning("Promotion of submission %s ended ambiguously (%s); re-checking object location", sub.id, e)
            try:
                landed = self._landed(sub, staging_key, target)
            except Exception as check_err:
                logger.error(
                    "Promotion failed for submission %s: %s (location check also failed: %s) staging=%s vault=%s",
                    sub.id, e, check_err, staging_key, target,
                )
                return PromotionResult.failure(str(e))
            if not landed:
                logger.error("Promotion failed for submission %s: %s staging=%s vault=%s", sub.id, e, staging_key, target)
                return PromotionResult.failure(str(e))

        self._mark_promoted(sub, target)
        logger.info("Promoted submission %s: %s -> %s", sub.id, staging_key, target)
        return PromotionResult.success(target)

    # -- discard ----------------------------------------------------------

    def _remove_late_vault_copy(self, sub: Submission) -> None:
        """A timed-out move can still complete after promotion was reported failed."""
        if not self.vault_prefix or sub.vault_key:
            return
        target = self.vault_key_for(sub)
        if not self._call(self.storage.exists, target):
            return
        if not self._holds_own_copy(sub, target):
            logger.warning("Vault key %s holds another file; leaving it for submission %s", target, sub.id)
            return
        logger.warning("Removing vault copy %s left by an interrupted promotion of submission %s", target, sub.id)
        self._call(self.storage.delete, target)

    def discard(self, sub: Submission) -> DiscardResult:
        if not sub.staged or not sub.staging_key:
            return DiscardResult(ok=True)
        try:
            self._call(self.storage.delete, sub.staging_key)
            self._remove_late_vault_copy(sub)
        except Exception as e:
            msg = f"could not delete stored objects for {sub.staging_key}: {e}"
            logger.warning("Storage cleanup deferred for submission %s: %s", sub.id, msg)
            return DiscardResult(ok=False, warning=msg)
        sub.staging_key = None
        sub.staged = False
        return DiscardResult(ok=True)
