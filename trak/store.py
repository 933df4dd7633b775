"""Session data store: the active pointer plus immutable history records.

Layout per working directory:

    .trak/current-session.json     mutable active pointer (empty = no session)
    .trak/sessions/<ts>-<id>.json  one immutable record per stopped session

All writes are atomic (temp file + os.replace) so the CLI, the background
watcher and the dashboard never observe a half-written record.
"""

from __future__ import annotations

import errno
import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from .errors import InputError, NotFoundError, ParseError
from .models import Session, session_from_dict, session_to_dict
from .validation import validate_session_id

logger = logging.getLogger(__name__)

STATE_DIRNAME = ".trak"
CURRENT_FILENAME = "current-session.json"
SESSIONS_DIRNAME = "sessions"
DAEMON_LOG_FILENAME = "daemon.log"

SCHEMA_VERSION = 1
MAX_JSON_FILE_SIZE = 10 * 1024 * 1024  # 10 MB


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _atomic_write(path: Path, data: dict) -> None:
    """Write JSON atomically via temp file + rename."""
    tmp_fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _atomic_truncate(path: Path) -> None:
    """Replace path with an empty file (the 'no active session' marker)."""
    tmp_fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    os.close(tmp_fd)
    os.replace(tmp_path, path)


def _safe_read_json(path: Path) -> dict | None:
    """Read and parse a JSON file with size limit and symlink rejection.

    Returns None for an empty file.

    Raises:
        NotFoundError: if the file does not exist.
        ParseError: if the file is a symlink, too large, not UTF-8 or not valid JSON.
    """
    try:
        fd = os.open(path, os.O_RDONLY | os.O_NOFOLLOW)
    except FileNotFoundError as e:
        raise NotFoundError(f"State file not found: {path.name}") from e
    except OSError as e:
        if e.errno in (errno.ELOOP, errno.EMLINK):
            raise ParseError(f"Refusing to read symlink: {path.name}") from e
        raise
    size = os.fstat(fd).st_size
    if size > MAX_JSON_FILE_SIZE:
        os.close(fd)
        raise ParseError(f"File too large: {path.name} ({size} bytes, max {MAX_JSON_FILE_SIZE})")
    try:
        with os.fdopen(fd, encoding="utf-8") as f:
            content = f.read()
    except UnicodeDecodeError as e:
        raise ParseError(f"Invalid UTF-8 in {path.name}: {e.reason}") from e
    if not content.strip():
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Corrupt JSON in {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object in {path.name}")
    return data


def _decode_session(data: dict, source: Path) -> Session:
    try:
        session = session_from_dict(data)
        datetime.fromisoformat(session.start_time)
        return session
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Malformed session record {source.name}: {e}") from e


def _archive_filename(session: Session, recorded_at: str | None = None) -> str:
    stamp = (recorded_at or session.end_time or _now_iso())[:19].replace(":", "-")
    return f"{stamp}-{session.session_id}.json"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SessionStore:
    """File-backed persistence for one working directory."""

    def __init__(self, working_directory: str | os.PathLike):
        self.working_directory = Path(working_directory)
        self.state_dir = self.working_directory / STATE_DIRNAME
        self.current_path = self.state_dir / CURRENT_FILENAME
        self.sessions_dir = self.state_dir / SESSIONS_DIRNAME
        self.daemon_log_path = self.state_dir / DAEMON_LOG_FILENAME

    def ensure_dirs(self) -> None:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    # --- Active pointer ---

    def read_current(self) -> Session | None:
        """Load the active pointer. Missing, empty or corrupt means no session."""
        try:
            data = _safe_read_json(self.current_path)
            if data is None:
                return None
            return _decode_session(data, self.current_path)
        except NotFoundError:
            return None
        except ParseError as e:
            logger.warning("Ignoring unreadable active session record: %s", e)
            return None

    def write_current(self, session: Session) -> None:
        self.ensure_dirs()
        data = session_to_dict(session)
        data["schema_version"] = SCHEMA_VERSION
        _atomic_write(self.current_path, data)

    def clear_current(self) -> None:
        if self.current_path.exists():
            _atomic_truncate(self.current_path)

    # --- History ---

    def archive(self, session: Session, recorded_at: str | None = None) -> Path:
        """Write an immutable history record. Never overwrites an existing one.

        The filename is stamped with ``recorded_at``, defaulting to the end time.
        """
        self.ensure_dirs()
        path = self.sessions_dir / _archive_filename(session, recorded_at)
        counter = 1
        while path.exists():
            path = self.sessions_dir / f"{path.stem.split('~')[0]}~{counter}.json"
            counter += 1
        data = session_to_dict(session)
        data["schema_version"] = SCHEMA_VERSION
        _atomic_write(path, data)
        return path

    def _history_paths(self) -> list[Path]:
        if not self.sessions_dir.is_dir():
            return []
        return sorted(self.sessions_dir.glob("*.json"), reverse=True)

    def iter_history(self):
        """Yield (path, session) newest first, skipping unreadable records."""
        for path in self._history_paths():
            try:
                data = _safe_read_json(path)
            except (NotFoundError, ParseError) as exc:
                logger.warning("Skipping unreadable session record %s: %s", path.name, exc)
                continue
            if data is None:
                continue
            try:
                yield path, _decode_session(data, path)
            except ParseError as exc:
                logger.warning("Skipping malformed session record: %s", exc)

    def list_sessions(
        self,
        limit: int | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[Session]:
        """Archived sessions, newest start time first.

        A re-analyzed session has several records; only the newest is listed.
        """
        lower = _parse_bound(date_from, "from")
        upper = _parse_bound(date_to, "to")
        sessions = []
        seen: set[str] = set()
        for _, session in self.iter_history():
            if session.session_id in seen:
                continue
            seen.add(session.session_id)
            started = _as_aware(datetime.fromisoformat(session.start_time))
            if lower and started < _as_aware(lower):
                continue
            if upper and started > _as_aware(upper):
                continue
            sessions.append(session)
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        if limit is not None:
            sessions = sessions[:limit]
        return sessions

    def get_session(self, session_id: str) -> Session | None:
        """Newest archival record for session_id, or None."""
        validate_session_id(session_id)
        for _, session in self.iter_history():
            if session.session_id == session_id:
                return session
        return None

    def find_record(self, session_id: str) -> Path | None:
        validate_session_id(session_id)
        for path, session in self.iter_history():
            if session.session_id == session_id:
                return path
        return None


def _parse_bound(value: str | None, name: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise InputError(f"Invalid {name} date: {value!r}") from e


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)
