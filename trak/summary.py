"""Natural-language session summaries, AI-backed with a deterministic fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from .errors import BackendError
from .export import format_duration
from .llm import CompletionClient
from .models import AnalysisResult, Session, count_changes

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert software developer assistant that summarizes coding sessions. "
    "Focus on what was built, fixed or improved. Be specific but brief."
)

MAX_SAMPLE_FILES = 3
SAMPLE_CHARS = 500


class SummarySource(StrEnum):
    AI = "ai"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class SessionSummary:
    text: str
    source: SummarySource


def quality_line(analysis: AnalysisResult) -> str:
    ic = analysis.metrics.issue_count
    return (
        f"Quality: {analysis.metrics.quality_score}/100 | "
        f"Issues: {ic.high} high, {ic.medium} medium, {ic.low} low"
    )


def fallback_summary(session: Session, analysis: AnalysisResult | None = None) -> str:
    """Built only from change counts and issue totals."""
    counts = count_changes(session.changes)
    text = (
        f"Worked on {len(session.changes)} files: {counts['added']} added, "
        f"{counts['modified']} modified, {counts['deleted']} deleted."
    )
    if analysis is not None and analysis.issues:
        text += f" Code analysis found {len(analysis.issues)} issues."
    return text


def build_summary_prompt(
    session: Session,
    file_contents: dict[str, str],
    analysis: AnalysisResult | None,
) -> str:
    changes = "\n".join(
        f"- {c.path} ({c.type}, {c.change_count} changes)" for c in session.changes
    ) or "- (no files changed)"
    samples = "".join(
        f"\n### {path}\n```\n{content[:SAMPLE_CHARS]}\n```\n"
        for path, content in list(file_contents.items())[:MAX_SAMPLE_FILES]
    )
    findings = ""
    if analysis is not None:
        findings = f"\n**Code analysis**: {analysis.summary}\n{quality_line(analysis)}\n"
    return f"""Summarize this coding session.

**Session Duration**: {format_duration(session.start_time, session.end_time) or "0m"}
**Working Directory**: {session.working_directory}

**File Changes**:
{changes}

**Sample File Contents** (first {MAX_SAMPLE_FILES} files):
{samples}{findings}
Reply with 2-4 short bullet points ("- ") describing what changed, then one final line exactly in the form:
Quality: <score>/100 | Issues: <high> high, <medium> medium, <low> low"""


class SummaryGenerator:
    def __init__(self, client: CompletionClient | None = None):
        self.client = client

    def generate(
        self,
        session: Session,
        file_contents: dict[str, str],
        analysis: AnalysisResult | None = None,
    ) -> SessionSummary:
        if self.client is None:
            return SessionSummary(fallback_summary(session, analysis), SummarySource.FALLBACK)

        prompt = build_summary_prompt(session, file_contents, analysis)
        try:
            text = self.client.complete(SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=500)
        except BackendError as e:
            logger.warning("Summary generation failed, using fallback: %s", e)
            return SessionSummary(fallback_summary(session, analysis), SummarySource.FALLBACK)

        return SessionSummary(_normalize(text, analysis), SummarySource.AI)


def _normalize(text: str, analysis: AnalysisResult | None) -> str:
    """Replace whatever quality line the model wrote with the computed one."""
    lines = [line.rstrip() for line in text.strip().splitlines()]
    lines = [line for line in lines if not line.lstrip().lower().startswith("quality:")]
    while lines and not lines[-1]:
        lines.pop()
    if analysis is not None:
        lines.append(quality_line(analysis))
    return "\n".join(lines)
