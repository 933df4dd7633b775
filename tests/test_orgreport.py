"""Tests for trak/orgreport.py: payload shape and retry policy.

HTTP is served by httpx.MockTransport; time.sleep is patched so the
backoff schedule is recorded instead of waited out.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from trak import orgreport
from trak.config import OrgCredentials
from trak.gitrepo import GitRepoInfo
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

CREDENTIALS = OrgCredentials(
    org_token="tok_abcdefgh",
    org_endpoint="https://org.example.com",
    developer_id="dev-1",
    developer_name="Sam",
)


@pytest.fixture(autouse=True)
def _no_git(monkeypatch):
    monkeypatch.setattr(orgreport, "detect_github_repo", lambda cwd: GitRepoInfo("acme", "widgets"))
    monkeypatch.setattr(orgreport, "detect_git_branch", lambda cwd: "main")


@pytest.fixture
def session():
    issues = [
        DetectedIssue(f"i{n}", IssueType.PERFORMANCE, Severity.LOW, "a.py", 1, "Slow.", "Speed up.")
        for n in range(30)
    ]
    return Session(
        session_id="sess_20260101T100000_aaaa",
        working_directory="/tmp/project",
        status=SessionStatus.STOPPED,
        start_time="2026-01-01T10:00:00+00:00",
        end_time="2026-01-01T11:30:00+00:00",
        changes=[ChangeEntry("a.py", ChangeType.MODIFIED, "t", 2)],
        summary="Worked on 1 files.",
        analysis=AnalysisResult(
            issues=issues,
            metrics=AnalysisMetrics(quality_score=40, issue_count=IssueCount(low=30)),
            summary="",
            analysis_time=1,
            source=AnalysisSource.HEURISTIC,
        ),
    )


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


class TestBuildReport:
    def test_fields(self, session):
        report = orgreport.build_report(session, CREDENTIALS, repo="acme/widgets", branch="main")
        assert report["developerId"] == "dev-1"
        assert report["developerName"] == "Sam"
        assert report["repo"] == "acme/widgets"
        assert report["branch"] == "main"
        assert report["duration"] == "1h 30m"
        assert report["files"] == 1
        assert report["qualityScore"] == 40
        assert report["changes"] == [{"path": "a.py", "type": "modified", "changeCount": 2}]

    def test_issue_details_truncated(self, session):
        report = orgreport.build_report(session, CREDENTIALS)
        assert len(report["issueDetails"]) == 25
        assert report["issueDetails"][0]["filePath"] == "a.py"

    def test_repo_and_branch_omitted_when_unknown(self, session):
        report = orgreport.build_report(session, CREDENTIALS)
        assert "repo" not in report
        assert "branch" not in report

    def test_without_analysis(self, session):
        session.analysis = None
        session.summary = None
        report = orgreport.build_report(session, CREDENTIALS)
        assert report["qualityScore"] == 0
        assert report["issues"] == 0
        assert report["summary"] == "No summary available"


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestSendSessionReport:
    def test_success_first_attempt(self, session):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201)

        with patch("trak.orgreport.time.sleep") as sleep:
            assert orgreport.send_session_report(session, CREDENTIALS, client=mock_client(handler))
        assert len(requests) == 1
        sleep.assert_not_called()
        request = requests[0]
        assert str(request.url) == "https://org.example.com/api/sessions"
        assert request.headers["Authorization"] == "Bearer tok_abcdefgh"
        assert request.headers["User-Agent"] == "trak-cli/0.1.0"
        body = json.loads(request.content)
        assert body["sessionId"] == "sess_20260101T100000_aaaa"
        assert body["repo"] == "acme/widgets"

    def test_server_error_retried_three_times(self, session, caplog):
        # Scenario: endpoint always answers 500.
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(500)

        with patch("trak.orgreport.time.sleep") as sleep:
            result = orgreport.send_session_report(session, CREDENTIALS, client=mock_client(handler))

        assert result is False
        assert len(attempts) == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
        assert sum(c.args[0] for c in sleep.call_args_list) >= 3.0
        assert "HTTP 500" in caplog.text

    def test_network_error_never_raises(self, session):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with patch("trak.orgreport.time.sleep"):
            assert orgreport.send_session_report(session, CREDENTIALS, client=mock_client(handler)) is False

    def test_recovers_on_retry(self, session):
        responses = iter([httpx.Response(503), httpx.Response(200)])

        with patch("trak.orgreport.time.sleep") as sleep:
            result = orgreport.send_session_report(
                session, CREDENTIALS, client=mock_client(lambda request: next(responses))
            )
        assert result is True
        assert sleep.call_count == 1
