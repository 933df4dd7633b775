"""Start/stop orchestration shared by the CLI and tests.

Stop pipeline: terminate the background watcher, reload the active record,
analyze, summarize, archive, then optionally report to the organization.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path

from .analyzer import QualityAnalyzer
from .config import TrakConfig
from .daemon import spawn_daemon, terminate_daemon, watch_until_signalled
from .errors import DaemonError, NotFoundError
from .llm import CompletionClient
from .models import AnalysisSource, ChangeType, Session
from .orgreport import send_session_report
from .session import SessionManager
from .store import _now_iso
from .summary import SummaryGenerator, SummarySource

logger = logging.getLogger(__name__)


@dataclass
class StopReport:
    session: Session
    archive_path: Path
    analysis_source: AnalysisSource
    summary_source: SummarySource
    reported: bool | None = None  # None when no report was attempted


def start_tracking(
    directory: str | os.PathLike,
    background: bool = True,
    config: TrakConfig | None = None,
    stop_event: threading.Event | None = None,
) -> Session:
    """Start a session and its watcher.

    In the background the watcher runs in a detached daemon whose pid is
    recorded in the session. In the foreground this blocks until SIGINT or
    SIGTERM (or ``stop_event``) and leaves the session active.
    """
    config = config or TrakConfig()
    manager = SessionManager(directory)
    session = manager.start()

    if background:
        try:
            pid = spawn_daemon(manager.working_directory)
        except OSError as e:
            manager.stop()
            raise DaemonError(f"Could not start the background watcher: {e}") from e
        return manager.attach_daemon(pid)

    watch_until_signalled(manager, config.settings.watcher_config(), stop_event)
    return manager.reload() or session


def read_changed_files(session: Session) -> dict[str, str]:
    """Current contents of the session's surviving files, keyed by relative path."""
    root = Path(session.working_directory)
    contents: dict[str, str] = {}
    for change in session.changes:
        if change.type == ChangeType.DELETED:
            continue
        try:
            contents[change.path] = (root / change.path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping %s: %s", change.path, e)
    return contents


def _analyze(
    session: Session,
    client: CompletionClient | None,
    config: TrakConfig,
):
    files = read_changed_files(session)
    analysis = QualityAnalyzer(client, config.settings).analyze(session, files)
    summary = SummaryGenerator(client).generate(session, files, analysis)
    return analysis, summary


def stop_tracking(
    directory: str | os.PathLike,
    client: CompletionClient | None = None,
    config: TrakConfig | None = None,
    report: bool = True,
) -> StopReport:
    """Finish the active session.

    Raises:
        NotFoundError: no session is active in ``directory``.
    """
    config = config or TrakConfig()
    manager = SessionManager(directory)
    session = manager.get_current()
    if session is None:
        raise NotFoundError("No active session. Run 'trak start' first.")

    pid = session.daemon_process_id
    if pid and pid != os.getpid():
        terminate_daemon(pid)
        # The daemon may have written changes right up to its exit.
        session = manager.reload()
        if session is None:
            raise NotFoundError("Session was stopped by another process")

    analysis, summary = _analyze(session, client, config)
    stopped = manager.stop(summary.text, analysis)
    if stopped is None:
        raise NotFoundError("Session was stopped by another process")

    reported = None
    if report and config.org is not None and config.settings.report_sessions:
        reported = send_session_report(stopped, config.org)

    return StopReport(
        session=stopped,
        archive_path=manager.last_archive_path,
        analysis_source=analysis.source,
        summary_source=summary.source,
        reported=reported,
    )


def reanalyze(
    directory: str | os.PathLike,
    session_id: str,
    client: CompletionClient | None = None,
    config: TrakConfig | None = None,
) -> StopReport:
    """Analyze an archived session again and archive the result as a new record.

    Raises:
        NotFoundError: no archived session with that id.
    """
    config = config or TrakConfig()
    manager = SessionManager(directory)
    session = manager.store.get_session(session_id)
    if session is None:
        raise NotFoundError(f"Session not found: {session_id}")

    analysis, summary = _analyze(session, client, config)
    updated = dataclasses.replace(session, summary=summary.text, analysis=analysis)
    path = manager.store.archive(updated, recorded_at=_now_iso())
    logger.info("Re-analyzed %s -> %s", session_id, path.name)
    return StopReport(
        session=updated,
        archive_path=path,
        analysis_source=analysis.source,
        summary_source=summary.source,
    )
