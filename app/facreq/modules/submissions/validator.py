"""
Automated checks for an uploaded requirement file.

Order is fixed: extension -> size -> word count -> required keywords -> forbidden keywords.
The two structural checks stop evaluation immediately; content checks accumulate.

Batch semantics: extracted text may be several segments (pages, sheets, files). A
required keyword group is satisfied by any segment, while a single forbidden hit in any
segment fails the whole submission.
"""
from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field

from .rules import RuleSet

ISSUE_INVALID_EXTENSION = "invalid extension"
ISSUE_FILE_TOO_LARGE = "file too large"


@dataclass(frozen=True)
class FileMeta:
    filename: str
    size_bytes: int
    content_type: str = "application/octet-stream"

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


@dataclass(frozen=True)
class VerdictReport:
    passed: bool
    issues: tuple[str, ...] = field(default_factory=tuple)
    word_count: int = 0

    @property
    def verdict(self) -> str:
        return "PASS" if self.passed else "FAIL"

    def to_dict(self) -> dict:
        return {"verdict": self.verdict, "issues": list(self.issues), "word_count": self.word_count}


def combine_segments(text: str | Sequence[str] | None) -> str:
    if text is None:
        return ""
    if isinstance(text, str):
        return text
    return "\n\n".join(seg or "" for seg in text)


def count_words(text: str) -> int:
    return len(text.split())


def evaluate(rule_set: RuleSet, file_meta: FileMeta, extracted_text: str | Sequence[str] | None) -> VerdictReport:
    if not rule_set.allows_extension(file_meta.extension):
        return VerdictReport(passed=False, issues=(ISSUE_INVALID_EXTENSION,))

    if file_meta.size_bytes > rule_set.max_file_size_bytes:
        return VerdictReport(passed=False, issues=(ISSUE_FILE_TOO_LARGE,))

    combined = combine_segments(extracted_text)
    haystack = combined.lower()
    words = count_words(combined)
    issues: list[str] = []

    if words < rule_set.min_word_count:
        issues.append(f"word count {words} is below the minimum of {rule_set.min_word_count}")

    for group in rule_set.required_keywords:
        if not any(keyword in haystack for keyword in group):
            issues.append(f"missing required keyword: {' or '.join(group)}")

    for keyword in rule_set.forbidden_keywords:
        if keyword in haystack:
            issues.append(f"forbidden keyword found: {keyword}")

    return VerdictReport(passed=not issues, issues=tuple(issues), word_count=words)
