"""Tests for the automated rule checks."""
import pytest

from app.facreq.modules.submissions.errors import ConfigurationError
from app.facreq.modules.submissions.rules import MB, RuleSet
from app.facreq.modules.submissions.validator import (
    ISSUE_FILE_TOO_LARGE,
    ISSUE_INVALID_EXTENSION,
    FileMeta,
    evaluate,
)


def _rules(**overrides) -> RuleSet:
    kwargs = dict(
        required_keywords="Vision",
        forbidden_keywords="Draft",
        allowed_extensions=".pdf",
        max_file_size_mb=5,
        min_word_count=50,
    )
    kwargs.update(overrides)
    return RuleSet.build(**kwargs)


def _text(words: int, *extra: str) -> str:
    return " ".join(list(extra) + ["word"] * (words - len(extra)))


def test_passing_pdf_has_no_issues():
    report = evaluate(_rules(), FileMeta("syllabus.pdf", 2 * MB), _text(80, "Vision"))
    assert report.passed is True
    assert report.verdict == "PASS"
    assert report.issues == ()
    assert report.word_count == 80


def test_wrong_extension_stops_all_other_checks():
    # Text would also fail word count and keywords; none of that is reported.
    report = evaluate(_rules(), FileMeta("syllabus.docx", 2 * MB), "Draft")
    assert report.verdict == "FAIL"
    assert list(report.issues) == [ISSUE_INVALID_EXTENSION]


def test_oversize_file_fails_with_single_issue():
    report = evaluate(_rules(), FileMeta("syllabus.pdf", 5 * MB + 1), "Draft")
    assert list(report.issues) == [ISSUE_FILE_TOO_LARGE]


def test_file_exactly_at_ceiling_is_accepted():
    report = evaluate(_rules(min_word_count=0), FileMeta("syllabus.pdf", 5 * MB), "Vision")
    assert report.passed


def test_extension_match_is_case_insensitive():
    report = evaluate(_rules(min_word_count=0), FileMeta("SYLLABUS.PDF", 100), "vision statement")
    assert report.passed


def test_content_issues_accumulate_in_fixed_order():
    rules = _rules(required_keywords="Vision, Grading System", forbidden_keywords="Draft, TODO")
    report = evaluate(rules, FileMeta("s.pdf", 100), "draft todo")
    assert list(report.issues) == [
        "word count 2 is below the minimum of 50",
        "missing required keyword: vision",
        "missing required keyword: grading system",
        "forbidden keyword found: draft",
        "forbidden keyword found: todo",
    ]


def test_required_alternatives_any_one_satisfies_group():
    rules = _rules(required_keywords="Vision|Mission", min_word_count=0)
    assert evaluate(rules, FileMeta("s.pdf", 10), "Our MISSION statement").passed
    report = evaluate(rules, FileMeta("s.pdf", 10), "Nothing relevant")
    assert list(report.issues) == ["missing required keyword: vision or mission"]


def test_required_keyword_may_appear_in_any_segment():
    rules = _rules(required_keywords="Vision, Grading", min_word_count=0, forbidden_keywords="")
    report = evaluate(rules, FileMeta("s.pdf", 10), ["page one has vision", "page two has grading"])
    assert report.passed


def test_forbidden_keyword_in_one_segment_fails_whole_file():
    rules = _rules(required_keywords="", min_word_count=0)
    report = evaluate(rules, FileMeta("s.pdf", 10), ["clean page", "another clean page", "DRAFT copy"])
    assert not report.passed
    assert list(report.issues) == ["forbidden keyword found: draft"]


def test_no_extracted_text_counts_as_zero_words():
    report = evaluate(_rules(required_keywords="", min_word_count=1), FileMeta("scan.pdf", 10), None)
    assert list(report.issues) == ["word count 0 is below the minimum of 1"]


def test_rule_set_requires_an_extension():
    with pytest.raises(ConfigurationError):
        RuleSet.build(allowed_extensions="", max_file_size_mb=5)


def test_rule_set_rejects_non_positive_size():
    with pytest.raises(ConfigurationError):
        RuleSet.build(allowed_extensions=".pdf", max_file_size_mb=0)
