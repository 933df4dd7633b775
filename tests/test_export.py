"""Tests for trak/export.py: durations, JSON and Markdown rendering."""

from __future__ import annotations

import pytest

from trak.export import (
    export_history_markdown,
    export_session_json,
    export_session_markdown,
    format_duration,
    session_overview,
)
from trak.models import (
    AnalysisMetrics,
    AnalysisResult,
    AnalysisSource,
    ChangeEntry,
    ChangeType,
    DetectedIssue,
    IssueCount,
    IssueType,
    Session,
    SessionStatus,
    Severity,
)


@pytest.fixture
def session():
    issue = DetectedIssue(
        id="h1",
        type=IssueType.SECURITY,
        severity=Severity.HIGH,
        file_path="src/a.py",
        line_number=7,
        description="Uses eval.",
        suggestion="Do not.",
    )
    return Session(
        session_id="sess_20260228T100000_abcd",
        working_directory="/tmp/project",
        status=SessionStatus.STOPPED,
        start_time="2026-02-28T10:00:00+00:00",
        end_time="2026-02-28T12:15:00+00:00",
        changes=[
            ChangeEntry("src/a.py", ChangeType.ADDED, "2026-02-28T10:05:00+00:00"),
            ChangeEntry("README.md", ChangeType.MODIFIED, "2026-02-28T10:06:00+00:00", 3),
        ],
        summary="- Added a.py",
        analysis=AnalysisResult(
            issues=[issue],
            metrics=AnalysisMetrics(quality_score=82, issue_count=IssueCount(high=1)),
            summary="One issue",
            analysis_time=3,
            source=AnalysisSource.HEURISTIC,
            total_issues=1,
        ),
    )


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


class TestFormatDuration:
    def test_hours_and_minutes(self):
        assert format_duration("2026-01-01T10:00:00+00:00", "2026-01-01T12:15:00+00:00") == "2h 15m"

    def test_minutes_only(self):
        assert format_duration("2026-01-01T10:00:00+00:00", "2026-01-01T10:09:59+00:00") == "9m"

    def test_missing_start(self):
        assert format_duration(None) == ""

    def test_invalid_timestamp(self):
        assert format_duration("yesterday", "today") == ""

    def test_negative_span(self):
        assert format_duration("2026-01-01T12:00:00+00:00", "2026-01-01T10:00:00+00:00") == ""

    def test_open_ended_uses_now(self):
        assert format_duration("2000-01-01T00:00:00+00:00").endswith("m")


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestJsonExport:
    def test_adds_duration_and_change_summary(self, session):
        data = export_session_json(session)
        assert data["session_id"] == "sess_20260228T100000_abcd"
        assert data["duration"] == "2h 15m"
        assert data["change_summary"] == {"added": 1, "modified": 1, "deleted": 0}
        assert data["analysis"]["metrics"]["quality_score"] == 82

    def test_overview(self, session):
        overview = session_overview(session)
        assert overview["files_changed"] == 2
        assert overview["quality_score"] == 82
        assert overview["issue_count"] == {"high": 1, "medium": 0, "low": 0}
        assert overview["analysis_source"] == "heuristic"

    def test_overview_without_analysis(self, session):
        session.analysis = None
        overview = session_overview(session)
        assert overview["quality_score"] is None
        assert overview["analysis_source"] is None


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


class TestMarkdownExport:
    def test_session_document(self, session):
        md = export_session_markdown(session)
        assert md.startswith("# Session sess_20260228T100000_abcd")
        assert "| Duration | 2h 15m |" in md
        assert "| Files | 1 added, 1 modified, 0 deleted |" in md
        assert "## Summary" in md
        assert "`README.md` (modified, 3x)" in md
        assert "**Score:** 82/100 (heuristic)" in md
        assert "- **high** security - `src/a.py:7`: Uses eval." in md

    def test_output_is_ascii(self, session):
        assert export_session_markdown(session).isascii()

    def test_heading_level(self, session):
        md = export_session_markdown(session, heading_level=2)
        assert md.startswith("## Session")
        assert "### Quality" in md

    def test_truncation_noted(self, session):
        session.analysis = AnalysisResult(
            issues=session.analysis.issues,
            metrics=session.analysis.metrics,
            summary="",
            analysis_time=0,
            total_issues=40,
        )
        assert "Showing 1 of 40 issues" in export_session_markdown(session)

    def test_active_session_has_no_end(self, session):
        session.end_time = None
        session.status = SessionStatus.ACTIVE
        assert "| Ended |" not in export_session_markdown(session)

    def test_history(self, session):
        md = export_history_markdown([session, session])
        assert md.startswith("# Session history")
        assert "**Sessions:** 2" in md
        assert md.count("## Session sess_") == 2
