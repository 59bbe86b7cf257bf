import json

import pytest

from app.facreq.modules.submissions import analysis
from app.facreq.modules.submissions.analysis import (
    STATUS_CLEAN,
    STATUS_FLAGGED,
    HttpContentAnalyzer,
    LocalContentAnalyzer,
    analyzer_from_config,
)
from app.facreq.modules.submissions.errors import ConfigurationError, ContentAnalysisError


def test_local_clean_text():
    text = " ".join(["This course covers the vision and mission of the college."] * 5)
    result = LocalContentAnalyzer().analyze("s.pdf", b"", text)
    assert result.status == STATUS_CLEAN
    assert result.issues == ()
    assert result.engine == "local"


def test_local_flags_empty_text():
    result = LocalContentAnalyzer().analyze("scan.pdf", b"", "   ")
    assert result.status == STATUS_FLAGGED
    assert "scanned image" in result.issues[0]


def test_local_flags_placeholders_and_short_text():
    result = LocalContentAnalyzer(min_words=50).analyze("s.docx", b"", "Grading: TBD. [Insert policy here]")
    assert result.status == STATUS_FLAGGED
    assert any(i.startswith("very little text") for i in result.issues)
    assert any("TBD" in i for i in result.issues)
    assert any("[Insert policy here]" in i for i in result.issues)


def test_local_flags_garbled_text():
    result = LocalContentAnalyzer(min_words=1).analyze("s.pdf", b"", "���� ok")
    assert "extracted text looks garbled" in result.issues


class _FakeResponse:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def read(self) -> bytes:
        return self._payload

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_http_analyzer_parses_response(monkeypatch):
    sent = {}

    def fake_urlopen(req, timeout):
        sent["body"] = json.loads(req.data.decode("utf-8"))
        sent["timeout"] = timeout
        return _FakeResponse(b'{"status": "flagged", "issues": ["looks machine generated"]}')

    monkeypatch.setattr(analysis.urllib.request, "urlopen", fake_urlopen)
    result = HttpContentAnalyzer(url="http://bot.local/analyze", timeout_seconds=5).analyze("s.pdf", b"abc", "text")
    assert result.status == "FLAGGED"
    assert result.issues == ("looks machine generated",)
    assert sent["body"]["filename"] == "s.pdf"
    assert sent["body"]["content_base64"] == "YWJj"
    assert sent["timeout"] == 5


def test_http_analyzer_gives_up_after_retries(monkeypatch):
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(1)
        raise analysis.urllib.error.URLError("connection refused")

    monkeypatch.setattr(analysis.urllib.request, "urlopen", fake_urlopen)
    monkeypatch.setattr(analysis.time, "sleep", lambda _s: None)
    with pytest.raises(ContentAnalysisError):
        HttpContentAnalyzer(url="http://bot.local/analyze", retries=2).analyze("s.pdf", b"", "")
    assert len(calls) == 3


def test_http_analyzer_rejects_malformed_payload(monkeypatch):
    monkeypatch.setattr(analysis.urllib.request, "urlopen", lambda req, timeout: _FakeResponse(b'{"issues": []}'))
    with pytest.raises(ContentAnalysisError):
        HttpContentAnalyzer(url="http://bot.local/analyze").analyze("s.pdf", b"", "")


def test_analyzer_from_config():
    assert analyzer_from_config({"CONTENT_ANALYSIS_BACKEND": "none"}) is None
    assert isinstance(analyzer_from_config({}), LocalContentAnalyzer)
    http = analyzer_from_config({"CONTENT_ANALYSIS_BACKEND": "http", "CONTENT_ANALYSIS_URL": "http://x/a"})
    assert isinstance(http, HttpContentAnalyzer)
    with pytest.raises(ConfigurationError):
        analyzer_from_config({"CONTENT_ANALYSIS_BACKEND": "http"})
    with pytest.raises(ConfigurationError):
        analyzer_from_config({"CONTENT_ANALYSIS_BACKEND": "magic"})
