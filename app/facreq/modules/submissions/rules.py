"""
Per-document-type validation rules.

Administrators type rules in as comma-separated text. They are parsed exactly once,
here, into an immutable RuleSet; the validator never sees the raw strings.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .errors import ConfigurationError
from .models import DocumentType, ValidationRule

MB = 1024 * 1024


def split_csv(raw: str | Iterable[str] | None) -> list[str]:
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    out: list[str] = []
    seen: set[str] = set()
    for item in items:
        v = (item or "").strip()
        if not v or v.lower() in seen:
            continue
        seen.add(v.lower())
        out.append(v)
    return out


def normalize_extension(ext: str) -> str:
    e = (ext or "").strip().lower()
    if not e:
        return ""
    return e if e.startswith(".") else f".{e}"


def parse_keyword_groups(raw: str | Iterable[str] | None) -> tuple[tuple[str, ...], ...]:
    """'Vision|Mission, Grading System' -> (('vision', 'mission'), ('grading system',))"""
    groups: list[tuple[str, ...]] = []
    for entry in split_csv(raw):
        alternatives = tuple(a.strip().lower() for a in entry.split("|") if a.strip())
        if alternatives and alternatives not in groups:
            groups.append(alternatives)
    return tuple(groups)


@dataclass(frozen=True)
class RuleSet:
    required_keywords: tuple[tuple[str, ...], ...]
    forbidden_keywords: tuple[str, ...]
    allowed_extensions: tuple[str, ...]
    max_file_size_bytes: int
    min_word_count: int = 0
    doc_type_id: int | None = None

    def __post_init__(self) -> None:
        if not self.allowed_extensions:
            raise ConfigurationError("Rule set must allow at least one file extension.")
        if self.max_file_size_bytes <= 0:
            raise ConfigurationError("Rule set size ceiling must be greater than zero.")
        if self.min_word_count < 0:
            raise ConfigurationError("Minimum word count cannot be negative.")

    @classmethod
    def build(
        cls,
        *,
        required_keywords: str | Iterable[str] | None = None,
        forbidden_keywords: str | Iterable[str] | None = None,
        allowed_extensions: str | Iterable[str] | None = None,
        max_file_size_mb: float = 10,
        min_word_count: int = 0,
        doc_type_id: int | None = None,
    ) -> "RuleSet":
        extensions: list[str] = []
        for ext in split_csv(allowed_extensions):
            e = normalize_extension(ext)
            if e and e not in extensions:
                extensions.append(e)
        return cls(
            required_keywords=parse_keyword_groups(required_keywords),
            forbidden_keywords=tuple(k.lower() for k in split_csv(forbidden_keywords)),
            allowed_extensions=tuple(extensions),
            max_file_size_bytes=int(float(max_file_size_mb) * MB),
            min_word_count=int(min_word_count or 0),
            doc_type_id=doc_type_id,
        )

    @classmethod
    def from_row(cls, rule: ValidationRule) -> "RuleSet":
        return cls.build(
            required_keywords=rule.required_keywords,
            forbidden_keywords=rule.forbidden_keywords,
            allowed_extensions=rule.allowed_extensions,
            max_file_size_mb=rule.max_file_size_mb,
            min_word_count=rule.min_word_count,
            doc_type_id=rule.doc_type_id,
        )

    @property
    def max_file_size_mb(self) -> float:
        return self.max_file_size_bytes / MB

    def allows_extension(self, ext: str) -> bool:
        return normalize_extension(ext) in self.allowed_extensions


def load_rule_set(s: Session, doc_type_id: int) -> tuple[DocumentType, RuleSet]:
    doc_type = s.get(DocumentType, doc_type_id)
    if doc_type is None:
        raise ConfigurationError(f"Unknown document type {doc_type_id}.")
    if not doc_type.is_active:
        raise ConfigurationError(f"Document type '{doc_type.name}' is not accepting submissions.")
    if doc_type.rule is None:
        raise ConfigurationError(f"No validation rules configured for document type '{doc_type.name}'.")
    return doc_type, RuleSet.from_row(doc_type.rule)
