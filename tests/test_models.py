"""Tests for trak/models.py: enums, dataclasses, dict (de)serialization."""

from __future__ import annotations

import re
from dataclasses import asdict

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
    count_changes,
    generate_session_id,
    session_from_dict,
    session_to_dict,
)


def _issue(severity=Severity.LOW, issue_id="i1") -> DetectedIssue:
    return DetectedIssue(
        id=issue_id,
        type=IssueType.SECURITY,
        severity=severity,
        file_path="src/app.py",
        line_number=3,
        description="Bad.",
        suggestion="Fix it.",
    )


# --- Enums ---


class TestEnums:
    def test_change_type_values(self):
        assert {t.value for t in ChangeType} == {"added", "modified", "deleted"}

    def test_issue_type_values(self):
        assert IssueType.ERROR_HANDLING == "error-handling"
        assert len(IssueType) == 5

    def test_status_serializes_as_string(self):
        assert asdict(Session("s", "/tmp", SessionStatus.ACTIVE, "t"))["status"] == "active"


# --- Session IDs ---


class TestGenerateSessionId:
    def test_format(self):
        assert re.match(r"^sess_\d{8}T\d{6}_[0-9a-f]{4}$", generate_session_id())

    def test_unique(self):
        ids = {generate_session_id() for _ in range(50)}
        assert len(ids) == 50


# --- Issue counts ---


class TestIssueCount:
    def test_from_issues(self):
        issues = [_issue(Severity.HIGH), _issue(Severity.LOW), _issue(Severity.LOW)]
        counts = IssueCount.from_issues(issues)
        assert (counts.high, counts.medium, counts.low) == (1, 0, 2)
        assert counts.total == 3

    def test_empty(self):
        assert IssueCount.from_issues([]).total == 0


class TestCountChanges:
    def test_counts_by_type(self):
        changes = [
            ChangeEntry("a.py", ChangeType.ADDED, "t"),
            ChangeEntry("b.py", ChangeType.MODIFIED, "t"),
            ChangeEntry("c.py", ChangeType.MODIFIED, "t"),
        ]
        assert count_changes(changes) == {"added": 1, "modified": 2, "deleted": 0}


# --- Serialization ---


class TestSerialization:
    def test_roundtrip_with_analysis(self):
        session = Session(
            session_id="sess_20260101T000000_abcd",
            working_directory="/tmp/proj",
            status=SessionStatus.STOPPED,
            start_time="2026-01-01T00:00:00+00:00",
            end_time="2026-01-01T01:00:00+00:00",
            changes=[ChangeEntry("a.py", ChangeType.MODIFIED, "2026-01-01T00:30:00+00:00", 4)],
            summary="Did things.",
            analysis=AnalysisResult(
                issues=[_issue(Severity.HIGH)],
                metrics=AnalysisMetrics(quality_score=82, issue_count=IssueCount(high=1)),
                summary="One issue",
                analysis_time=12,
                source=AnalysisSource.HEURISTIC,
                total_issues=1,
            ),
        )
        restored = session_from_dict(session_to_dict(session))
        assert restored == session
        assert restored.analysis.source is AnalysisSource.HEURISTIC

    def test_missing_optional_fields_default(self):
        restored = session_from_dict({
            "session_id": "sess_20260101T000000_abcd",
            "working_directory": "/tmp/proj",
            "status": "active",
            "start_time": "2026-01-01T00:00:00+00:00",
        })
        assert restored.changes == []
        assert restored.analysis is None
        assert restored.daemon_process_id is None

    def test_list_fields_are_independent(self):
        s1 = Session("a", "/tmp", SessionStatus.ACTIVE, "t")
        s2 = Session("b", "/tmp", SessionStatus.ACTIVE, "t")
        s1.changes.append(ChangeEntry("x.py", ChangeType.ADDED, "t"))
        assert s2.changes == []
