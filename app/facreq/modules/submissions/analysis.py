"""
Content-analysis ("bot check") adapters.

A second, independent opinion on a submission. Results only annotate the submission;
they never move it through the lifecycle.
"""
from __future__ import annotations

import base64
import json
import re
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .errors import ConfigurationError, ContentAnalysisError

STATUS_CLEAN = "CLEAN"
STATUS_FLAGGED = "FLAGGED"
STATUS_ERROR = "ERROR"

PLACEHOLDER_PATTERNS = (
    re.compile(r"\blorem ipsum\b", re.IGNORECASE),
    re.compile(r"\[\s*insert [^\]]*\]", re.IGNORECASE),
    re.compile(r"\bTBD\b"),
)


@dataclass(frozen=True)
class AnalysisResult:
    status: str
    issues: tuple[str, ...] = field(default_factory=tuple)
    engine: str = ""

    def to_dict(self) -> dict:
        return {"status": self.status, "issues": list(self.issues), "engine": self.engine}


class ContentAnalyzer(ABC):
    name = "base"

    @abstractmethod
    def analyze(self, filename: str, data: bytes, text: str) -> AnalysisResult:
        """Inspect a file (and its extracted text) and report supplementary issues."""


class LocalContentAnalyzer(ContentAnalyzer):
    """Text-quality heuristics that catch scans, garbled extraction and template leftovers."""

    name = "local"

    def __init__(self, *, min_words: int = 20, min_readable_ratio: float = 0.6) -> None:
        self.min_words = min_words
        self.min_readable_ratio = min_readable_ratio

    def analyze(self, filename: str, data: bytes, text: str) -> AnalysisResult:
        stripped = (text or "").strip()
        if not stripped:
            return AnalysisResult(
                status=STATUS_FLAGGED,
                issues=("no extractable text; the file may be a scanned image",),
                engine=self.name,
            )

        issues: list[str] = []
        readable = sum(1 for ch in stripped if ch.isalnum() or ch.isspace() or ch in ".,;:'\"()-/%")
        if readable / len(stripped) < self.min_readable_ratio:
            issues.append("extracted text looks garbled")

        words = len(stripped.split())
        if words < self.min_words:
            issues.append(f"very little text ({words} words)")

        for pattern in PLACEHOLDER_PATTERNS:
            m = pattern.search(stripped)
            if m:
                issues.append(f"placeholder text left in document: {m.group(0)!r}")

        return AnalysisResult(status=STATUS_FLAGGED if issues else STATUS_CLEAN, issues=tuple(issues), engine=self.name)


@dataclass(frozen=True)
class HttpContentAnalyzer(ContentAnalyzer):
    url: str
    timeout_seconds: float = 60
    retries: int = 2

    name = "http"

    def analyze(self, filename: str, data: bytes, text: str) -> AnalysisResult:
        body = json.dumps(
            {
                "filename": filename,
                "content_base64": base64.b64encode(data).decode("ascii"),
                "text": text,
            }
        ).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                req = urllib.request.Request(self.url, data=body, method="POST")
                req.add_header("Content-Type", "application/json")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                break
            except urllib.error.HTTPError as e:
                if e.code == 429 or e.code >= 500:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = e
                    continue
                raise ContentAnalysisError(f"HTTP {e.code} from content analysis service") from e
            except (urllib.error.URLError, TimeoutError, OSError) as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        else:
            raise ContentAnalysisError(f"Content analysis request failed after retries: {last_err}")

        try:
            payload = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise ContentAnalysisError("Invalid JSON from content analysis service") from e
        if not isinstance(payload, dict) or "status" not in payload:
            raise ContentAnalysisError("Content analysis response is missing 'status'")
        issues = payload.get("issues") or []
        if not isinstance(issues, list):
            raise ContentAnalysisError("Content analysis 'issues' must be a list")
        return AnalysisResult(
            status=str(payload["status"]).upper(),
            issues=tuple(str(i) for i in issues),
            engine=self.name,
        )


def analyzer_from_config(config: dict) -> ContentAnalyzer | None:
    backend = (config.get("CONTENT_ANALYSIS_BACKEND") or "local").strip().lower()
    if backend == "none":
        return None
    if backend == "local":
        return LocalContentAnalyzer()
    if backend == "http":
        url = (config.get("CONTENT_ANALYSIS_URL") or "").strip()
        if not url:
            raise ConfigurationError("CONTENT_ANALYSIS_URL is required for the http content analysis backend.")
        return HttpContentAnalyzer(
            url=url,
            timeout_seconds=float(config.get("CONTENT_ANALYSIS_TIMEOUT_SECONDS") or 60),
        )
    raise ConfigurationError(f"Unknown CONTENT_ANALYSIS_BACKEND {backend!r}; expected local, http or none.")
