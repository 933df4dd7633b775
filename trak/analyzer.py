"""Quality analysis of a finished session.

Three ways to produce an AnalysisResult, recorded in ``result.source``:

- ``ai``: the model's review, validated against the review schema.
- ``heuristic``: no AI backend configured; pattern scan from heuristics.py.
- ``fallback``: the AI call or its response failed; zero issues.

Issue counts and the quality score are always recomputed locally, so
scores stay comparable no matter where the issues came from.
"""

from __future__ import annotations

import logging
import math
import os
import time

from . import heuristics
from .config import TrakSettings
from .errors import BackendError, ParseError
from .export import format_duration
from .llm import CompletionClient
from .models import (
    MAX_ISSUES,
    AnalysisMetrics,
    AnalysisResult,
    AnalysisSource,
    DetectedIssue,
    IssueCount,
    IssueType,
    Session,
    Severity,
)
from .schemas import ReviewResponse, parse_review

logger = logging.getLogger(__name__)

ZERO_ISSUE_FLOOR = 85

FALLBACK_SUMMARY = "Analysis unavailable - AI backend failed or returned an unusable response"

SYSTEM_PROMPT = """You are a senior software engineer conducting a thorough code review. Identify meaningful quality issues and give detailed, actionable feedback.

Issue categories to detect:
1. complexity: high cyclomatic complexity, deep nesting, overly long functions, convoluted conditionals
2. duplication: repeated code blocks, copy-paste patterns that should be abstracted
3. error-handling: missing or empty exception handlers, unhandled promises, silent failures
4. security: injection risks, dynamic code execution, hardcoded secrets, insecure data handling
5. performance: inefficient algorithms, blocking operations, unnecessary work, leftover debug output

Severity:
- high: security vulnerabilities, major performance problems, code that can cause failures
- medium: maintainability problems, moderate performance issues, error-handling gaps
- low: minor optimizations and readability improvements

Every description must be at least 3 complete sentences: what the problem is, why it is risky, and what impact it can have.
Only report genuine issues; skip pure style preferences.

Return valid JSON only, with exactly this structure:
{
  "issues": [
    {
      "id": "unique-id",
      "type": "complexity|duplication|error-handling|security|performance",
      "severity": "high|medium|low",
      "filePath": "src/path/to/file.ts",
      "lineNumber": 42,
      "description": "Three or more sentences describing the issue and its implications",
      "suggestion": "Specific, actionable recommendation"
    }
  ],
  "metrics": {"qualityScore": 85, "complexity": 12, "duplication": 5},
  "summary": "Short professional summary of overall quality and key findings"
}"""

LANGUAGES = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".md": "markdown",
}


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def compute_quality_score(
    issue_count: IssueCount,
    complexity: float = 0,
    duplication: float = 0,
) -> int:
    """Deterministic 0-100 score; sessions without issues never drop below 85."""
    complexity_penalty = min(12, math.floor(max(0, complexity) / 25) * 3)
    duplication_penalty = min(10, max(0, math.floor(duplication)))
    score = (
        100
        - 18 * issue_count.high
        - 8 * issue_count.medium
        - 3 * issue_count.low
        - complexity_penalty
        - duplication_penalty
    )
    score = max(0, min(100, score))
    if issue_count.total == 0:
        score = max(score, ZERO_ISSUE_FLOOR)
    return score


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def detect_languages(paths) -> list[str]:
    seen: list[str] = []
    for path in paths:
        ext = os.path.splitext(path)[1].lower()
        if not ext:
            continue
        language = LANGUAGES.get(ext, ext.lstrip("."))
        if language not in seen:
            seen.append(language)
    return seen


def build_analysis_prompt(
    session: Session,
    file_contents: dict[str, str],
    max_files: int = 5,
    char_budget: int = 2000,
) -> str:
    selected = list(file_contents.items())[:max_files]
    files_block = "\n\n".join(
        f"### {path}\n```{LANGUAGES.get(os.path.splitext(path)[1].lower(), '')}\n"
        f"{content[:char_budget]}\n```"
        for path, content in selected
    )
    languages = ", ".join(detect_languages(file_contents)) or "unknown"
    duration = format_duration(session.start_time, session.end_time) or "0m"
    return f"""Conduct a thorough code review of the following changes from a development session.

Languages: {languages}
Session duration: {duration}
Files changed: {len(session.changes)}

Code to review:
{files_block or "(no file contents available)"}

Focus on real quality issues: security vulnerabilities, error-handling gaps, performance bottlenecks, complexity and duplication.
Respond in the required JSON format."""


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class QualityAnalyzer:
    def __init__(
        self,
        client: CompletionClient | None = None,
        settings: TrakSettings | None = None,
    ):
        self.client = client
        self.settings = settings or TrakSettings()

    def analyze(self, session: Session, file_contents: dict[str, str]) -> AnalysisResult:
        started = time.perf_counter()
        if self.client is None:
            return self._heuristic_result(file_contents, started)

        prompt = build_analysis_prompt(
            session,
            file_contents,
            max_files=self.settings.max_prompt_files,
            char_budget=self.settings.prompt_char_budget,
        )
        try:
            raw = self.client.complete(SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=2000)
        except BackendError as e:
            logger.warning("Code analysis failed, using fallback: %s", e)
            return self._fallback_result(file_contents, started)

        try:
            review = parse_review(raw)
        except ParseError as e:
            logger.warning("Could not parse analysis response, using fallback: %s", e)
            return self._fallback_result(file_contents, started)

        return self._review_result(review, started)

    def _review_result(self, review: ReviewResponse, started: float) -> AnalysisResult:
        issues = [
            DetectedIssue(
                id=item.id or f"issue-{index + 1}",
                type=IssueType(item.type),
                severity=Severity(item.severity),
                file_path=item.file_path,
                line_number=item.line_number,
                description=item.description,
                suggestion=item.suggestion,
            )
            for index, item in enumerate(review.issues)
        ]
        complexity = math.floor(review.metrics.complexity)
        duplication = math.floor(review.metrics.duplication)
        return _build_result(
            issues,
            complexity=complexity,
            duplication=duplication,
            summary=review.summary.strip() or "Code analysis completed",
            source=AnalysisSource.AI,
            started=started,
        )

    def _heuristic_result(self, file_contents: dict[str, str], started: float) -> AnalysisResult:
        issues = heuristics.scan_files(file_contents)
        counts = IssueCount.from_issues(issues[:MAX_ISSUES])
        summary = (
            f"Heuristic analysis of {len(file_contents)} files found {len(issues)} issues "
            f"({counts.high} high, {counts.medium} medium, {counts.low} low reported)."
        )
        return _build_result(
            issues,
            complexity=heuristics.estimate_complexity(file_contents),
            duplication=heuristics.estimate_duplication(file_contents),
            summary=summary,
            source=AnalysisSource.HEURISTIC,
            started=started,
        )

    def _fallback_result(self, file_contents: dict[str, str], started: float) -> AnalysisResult:
        return _build_result(
            [],
            complexity=heuristics.estimate_complexity(file_contents),
            duplication=heuristics.estimate_duplication(file_contents),
            summary=FALLBACK_SUMMARY,
            source=AnalysisSource.FALLBACK,
            started=started,
        )


def _build_result(
    issues: list[DetectedIssue],
    complexity: int,
    duplication: int,
    summary: str,
    source: AnalysisSource,
    started: float,
) -> AnalysisResult:
    """Cap the issue list, recount it and score it."""
    returned = issues[:MAX_ISSUES]
    counts = IssueCount.from_issues(returned)
    return AnalysisResult(
        issues=returned,
        metrics=AnalysisMetrics(
            quality_score=compute_quality_score(counts, complexity, duplication),
            issue_count=counts,
            complexity=complexity,
            duplication=duplication,
        ),
        summary=summary,
        analysis_time=int((time.perf_counter() - started) * 1000),
        source=source,
        total_issues=len(issues),
    )
