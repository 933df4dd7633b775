"""Session state machine: NoSession -> Active -> Stopped (archived).

One SessionManager per working directory. The on-disk active pointer is
the source of truth shared with other processes (CLI, background watcher,
dashboard); every mutation rewrites the whole record atomically.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .errors import NotFoundError, SessionActiveError
from .models import (
    AnalysisResult,
    ChangeEntry,
    FileChange,
    Session,
    SessionStatus,
    generate_session_id,
)
from .store import SessionStore, _now_iso
from .validation import validate_change_path, validate_working_directory

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the session lifecycle for one working directory."""

    def __init__(self, working_directory: str | os.PathLike):
        self.working_directory: Path = validate_working_directory(working_directory)
        self.store = SessionStore(self.working_directory)
        self.last_archive_path: Path | None = None
        self._session: Session | None = None
        self._by_path: dict[str, ChangeEntry] = {}

    # --- Internal state handling ---

    def _adopt(self, session: Session | None) -> Session | None:
        self._session = session
        self._by_path = {c.path: c for c in session.changes} if session else {}
        return session

    def _refresh(self) -> Session | None:
        """Reload the active pointer from disk (last writer wins)."""
        return self._adopt(self.store.read_current())

    def _persist(self) -> None:
        if self._session is not None:
            self.store.write_current(self._session)

    # --- Transitions ---

    def start(self) -> Session:
        """Begin a new session.

        Raises:
            SessionActiveError: a session is already active for this directory.
        """
        current = self.get_current()
        if current is not None and current.status == SessionStatus.ACTIVE:
            raise SessionActiveError(
                f"Session already active ({current.session_id}). Run 'trak stop' first."
            )
        self.store.ensure_dirs()
        session = Session(
            session_id=generate_session_id(),
            working_directory=str(self.working_directory),
            status=SessionStatus.ACTIVE,
            start_time=_now_iso(),
        )
        self._adopt(session)
        self._persist()
        logger.info("Started session %s in %s", session.session_id, self.working_directory)
        return session

    def record_change(self, change: FileChange) -> ChangeEntry | None:
        """Fold one change event into the active session.

        Returns the updated entry, or None when no session is active (events
        arriving after stop are dropped).
        """
        path = validate_change_path(change.path)
        session = self._refresh()
        if session is None or session.status != SessionStatus.ACTIVE:
            logger.debug("Dropping change for %s: no active session", path)
            return None

        entry = self._by_path.get(path)
        if entry is not None:
            entry.change_count += 1
            entry.type = change.type
            entry.timestamp = change.timestamp
        else:
            entry = ChangeEntry(
                path=path,
                type=change.type,
                timestamp=change.timestamp,
                change_count=1,
            )
            session.changes.append(entry)
            self._by_path[path] = entry

        self._persist()
        return entry

    def attach_daemon(self, pid: int) -> Session:
        """Record the background watcher's process id in the active session."""
        session = self._refresh()
        if session is None or session.status != SessionStatus.ACTIVE:
            raise NotFoundError("No active session to attach a watcher to")
        session.daemon_process_id = pid
        self._persist()
        return session

    def stop(
        self,
        summary: str | None = None,
        analysis: AnalysisResult | None = None,
    ) -> Session | None:
        """Stop the active session, archive it and clear the active pointer.

        Returns the archived snapshot, or None if no session was active.
        """
        session = self._refresh()
        if session is None or session.status != SessionStatus.ACTIVE:
            return None

        session.end_time = _now_iso()
        session.status = SessionStatus.STOPPED
        session.summary = summary
        session.analysis = analysis

        self.last_archive_path = self.store.archive(session)
        self.store.clear_current()
        self._adopt(None)
        logger.info("Stopped session %s -> %s", session.session_id, self.last_archive_path.name)
        return session

    # --- Queries ---

    def reload(self) -> Session | None:
        """Drop any cached state and re-read the active pointer."""
        return self._refresh()

    def get_current(self) -> Session | None:
        """The in-memory session if held, else whatever the active pointer says."""
        if self._session is not None:
            return self._session
        return self._refresh()

    def is_active(self) -> bool:
        session = self.get_current()
        return session is not None and session.status == SessionStatus.ACTIVE
