"""Tests for trak/lifecycle.py: start/stop orchestration and re-analysis."""

from __future__ import annotations

import json
import threading
from unittest.mock import patch

import pytest

from trak.config import OrgCredentials, TrakConfig
from trak.errors import BackendError, DaemonError, NotFoundError, SessionActiveError
from trak.lifecycle import read_changed_files, reanalyze, start_tracking, stop_tracking
from trak.models import AnalysisSource, ChangeType, FileChange, SessionStatus
from trak.session import SessionManager
from trak.summary import SummarySource

CREDENTIALS = OrgCredentials(
    org_token="tok_abcdefgh",
    org_endpoint="https://org.example.com",
    developer_id="dev-1",
    developer_name="Sam",
)


def record(workdir, path, text, type=ChangeType.ADDED):
    target = workdir / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text)
    SessionManager(workdir).record_change(
        FileChange(type=type, path=path, timestamp="2026-01-01T00:00:00+00:00")
    )


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


class TestStartTracking:
    def test_background_records_daemon_pid(self, workdir):
        with patch("trak.lifecycle.spawn_daemon", return_value=4242) as spawn:
            session = start_tracking(workdir)
        spawn.assert_called_once_with(workdir.resolve())
        assert session.daemon_process_id == 4242
        assert SessionManager(workdir).get_current().daemon_process_id == 4242

    def test_spawn_failure_rolls_back(self, workdir):
        with patch("trak.lifecycle.spawn_daemon", side_effect=OSError("no python")):
            with pytest.raises(DaemonError):
                start_tracking(workdir)
        assert SessionManager(workdir).get_current() is None

    def test_rejected_while_active(self, workdir):
        with patch("trak.lifecycle.spawn_daemon", return_value=4242):
            first = start_tracking(workdir)
            with pytest.raises(SessionActiveError):
                start_tracking(workdir)
        assert SessionManager(workdir).get_current().session_id == first.session_id

    def test_foreground_returns_when_stopped(self, workdir):
        stop_event = threading.Event()
        stop_event.set()
        session = start_tracking(workdir, background=False, stop_event=stop_event)
        assert session.status == SessionStatus.ACTIVE
        assert session.daemon_process_id is None


# ---------------------------------------------------------------------------
# File contents
# ---------------------------------------------------------------------------


class TestReadChangedFiles:
    def test_skips_deleted_missing_and_binary(self, workdir):
        SessionManager(workdir).start()
        record(workdir, "a.py", "print(1)\n")
        record(workdir, "gone.py", "x", ChangeType.MODIFIED)
        (workdir / "gone.py").unlink()
        record(workdir, "old.py", "", ChangeType.DELETED)
        (workdir / "blob.py").write_bytes(b"\xff\xfe\x00")
        record(workdir, "blob.py", "", ChangeType.MODIFIED)
        (workdir / "blob.py").write_bytes(b"\xff\xfe\x00")

        contents = read_changed_files(SessionManager(workdir).get_current())
        assert contents == {"a.py": "print(1)\n"}


# ---------------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------------


class TestStopTracking:
    def test_no_active_session(self, workdir):
        with pytest.raises(NotFoundError):
            stop_tracking(workdir)

    def test_empty_session_heuristic(self, workdir):
        # Scenario: zero changes, no AI backend.
        SessionManager(workdir).start()
        report = stop_tracking(workdir, report=False)
        assert report.session.status == SessionStatus.STOPPED
        assert report.session.analysis.issues == []
        assert report.session.analysis.metrics.quality_score >= 85
        assert "0 files" in report.session.summary
        assert report.analysis_source == AnalysisSource.HEURISTIC
        assert report.summary_source == SummarySource.FALLBACK
        assert report.reported is None
        assert report.archive_path.exists()
        assert SessionManager(workdir).get_current() is None

    def test_archive_contains_analysis(self, workdir):
        SessionManager(workdir).start()
        record(workdir, "src/a.ts", "const r = eval(userInput);\ntry { go(); } catch (e) {}\n")
        report = stop_tracking(workdir, report=False)
        data = json.loads(report.archive_path.read_text())
        assert data["analysis"]["metrics"]["quality_score"] == 74
        assert data["changes"][0]["path"] == "src/a.ts"

    def test_ai_failure_never_blocks_stop(self, workdir, fake_llm):
        SessionManager(workdir).start()
        record(workdir, "a.py", "x = 1\n")
        client = fake_llm(BackendError("down"), BackendError("down"))
        report = stop_tracking(workdir, client=client, report=False)
        assert report.analysis_source == AnalysisSource.FALLBACK
        assert report.summary_source == SummarySource.FALLBACK
        assert report.session.status == SessionStatus.STOPPED

    def test_terminates_recorded_daemon(self, workdir):
        manager = SessionManager(workdir)
        manager.start()
        manager.attach_daemon(999999)
        with patch("trak.lifecycle.terminate_daemon", return_value=True) as terminate:
            stop_tracking(workdir, report=False)
        terminate.assert_called_once_with(999999)

    def test_reports_when_logged_in(self, workdir):
        SessionManager(workdir).start()
        config = TrakConfig(org=CREDENTIALS)
        with patch("trak.lifecycle.send_session_report", return_value=False) as send:
            report = stop_tracking(workdir, config=config)
        assert report.reported is False
        assert send.call_args.args[1] == CREDENTIALS

    def test_report_skipped_when_disabled(self, workdir):
        SessionManager(workdir).start()
        config = TrakConfig(org=CREDENTIALS)
        config.settings.report_sessions = False
        with patch("trak.lifecycle.send_session_report") as send:
            report = stop_tracking(workdir, config=config)
        send.assert_not_called()
        assert report.reported is None


# ---------------------------------------------------------------------------
# Re-analysis
# ---------------------------------------------------------------------------


class TestReanalyze:
    def test_creates_new_record(self, workdir, fake_llm):
        SessionManager(workdir).start()
        record(workdir, "a.py", "eval(x)\n")
        first = stop_tracking(workdir, report=False)
        original_text = first.archive_path.read_text()

        raw = json.dumps({"issues": [], "metrics": {}, "summary": "Clean"})
        second = reanalyze(workdir, first.session.session_id, client=fake_llm(raw, "- Rewrote a.py"))

        assert second.archive_path != first.archive_path
        assert first.archive_path.read_text() == original_text
        assert second.analysis_source == AnalysisSource.AI
        assert second.session.analysis.metrics.quality_score == 100

        latest = SessionManager(workdir).store.get_session(first.session.session_id)
        assert latest.summary.startswith("- Rewrote a.py")

    def test_unknown_session(self, workdir):
        with pytest.raises(NotFoundError):
            reanalyze(workdir, "sess_20260101T000000_ffff")
