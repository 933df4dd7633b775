"""Polling file watcher that emits normalized change events.

The watcher snapshots (mtime, size) for every tracked file, compares
snapshots on each poll and holds created/modified paths back until they
have been stable for ``debounce_ms`` (trailing-edge debounce), so an
editor autosave burst produces a single event. Deletions are emitted on
the poll that notices them.

Callbacks run on the watcher thread in detection order.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .models import ChangeType, FileChange
from .store import STATE_DIRNAME, _now_iso

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".ts", ".js", ".tsx", ".jsx", ".py", ".go", ".rs", ".md")
DEFAULT_EXCLUDES = (
    "node_modules",
    "dist",
    "build",
    ".git",
    STATE_DIRNAME,
    "__pycache__",
    "fixtures",
    "*.test.*",
)

ChangeCallback = Callable[[FileChange], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class WatcherConfig:
    include_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDES
    debounce_ms: int = 300
    poll_interval_ms: int = 100


@dataclass
class _Pending:
    type: ChangeType
    stat: tuple[int, int]
    changed_at: float  # monotonic seconds


@dataclass
class _ScanResult:
    files: dict[str, tuple[int, int]] = field(default_factory=dict)
    errors: list[Exception] = field(default_factory=list)


class FileWatcher:
    """Watch a directory tree and report created/modified/deleted files."""

    def __init__(self, config: WatcherConfig | None = None):
        self.config = config or WatcherConfig()
        self.directory: Path | None = None
        self._extensions = {e if e.startswith(".") else f".{e}" for e in self.config.include_extensions}
        self._change_callbacks: list[ChangeCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._snapshot: dict[str, tuple[int, int]] = {}
        self._pending: dict[str, _Pending] = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # --- Registration ---

    def on_change(self, callback: ChangeCallback) -> None:
        self._change_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    # --- Filtering ---

    def is_excluded(self, rel_path: str) -> bool:
        parts = rel_path.split("/")
        for pattern in self.config.exclude_patterns:
            if fnmatch.fnmatch(rel_path, pattern):
                return True
            if any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True
        return False

    def is_included(self, rel_path: str) -> bool:
        if self.is_excluded(rel_path):
            return False
        if not self._extensions:
            return True
        return os.path.splitext(rel_path)[1] in self._extensions

    # --- Scanning ---

    def _scan(self) -> _ScanResult:
        result = _ScanResult()
        root = self.directory

        def onerror(exc: OSError) -> None:
            result.errors.append(exc)

        for dirpath, dirnames, filenames in os.walk(root, onerror=onerror):
            rel_dir = os.path.relpath(dirpath, root)
            rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/")
            dirnames[:] = [
                d for d in dirnames
                if not self.is_excluded(f"{rel_dir}/{d}" if rel_dir else d)
            ]
            for name in filenames:
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if not self.is_included(rel_path):
                    continue
                try:
                    st = os.stat(os.path.join(dirpath, name))
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    result.errors.append(exc)
                    continue
                result.files[rel_path] = (st.st_mtime_ns, st.st_size)
        return result

    def poll(self, now: float | None = None) -> list[FileChange]:
        """Run one scan/compare/emit cycle. Returns the events emitted."""
        if self.directory is None:
            raise RuntimeError("FileWatcher.poll() called before prime() or start()")
        now = time.monotonic() if now is None else now
        scan = self._scan()
        for exc in scan.errors:
            self._report_error(exc)

        emitted: list[FileChange] = []
        current = scan.files

        for path, stat in current.items():
            previous = self._snapshot.get(path)
            pending = self._pending.get(path)
            if previous is None and pending is None:
                self._pending[path] = _Pending(ChangeType.ADDED, stat, now)
            elif pending is not None:
                if pending.stat != stat:
                    pending.stat = stat
                    pending.changed_at = now
            elif previous != stat:
                self._pending[path] = _Pending(ChangeType.MODIFIED, stat, now)

        for path in list(self._pending):
            if path in current:
                continue
            pending = self._pending.pop(path)
            # Created and removed before it ever settled: nothing to report.
            if pending.type == ChangeType.ADDED and path not in self._snapshot:
                continue
            emitted.append(self._emit(ChangeType.DELETED, path))
            self._snapshot.pop(path, None)

        for path in list(self._snapshot):
            if path not in current:
                del self._snapshot[path]
                emitted.append(self._emit(ChangeType.DELETED, path))

        stable_after = self.config.debounce_ms / 1000
        for path in sorted(self._pending, key=lambda p: self._pending[p].changed_at):
            pending = self._pending[path]
            if now - pending.changed_at < stable_after:
                continue
            del self._pending[path]
            self._snapshot[path] = pending.stat
            emitted.append(self._emit(pending.type, path))

        return emitted

    def _emit(self, change_type: ChangeType, path: str) -> FileChange:
        change = FileChange(type=change_type, path=path, timestamp=_now_iso())
        for callback in self._change_callbacks:
            try:
                callback(change)
            except Exception as exc:
                logger.exception("Change listener failed for %s", path)
                self._report_error(exc)
        return change

    def _report_error(self, exc: Exception) -> None:
        if not self._error_callbacks:
            logger.warning("File watcher error: %s", exc)
            return
        for callback in self._error_callbacks:
            try:
                callback(exc)
            except Exception:
                logger.exception("Error listener failed")

    # --- Lifecycle ---

    def prime(self, directory: str | os.PathLike) -> None:
        """Take the initial snapshot. Files that already exist are not reported."""
        self.directory = Path(directory).resolve()
        scan = self._scan()
        for exc in scan.errors:
            self._report_error(exc)
        self._snapshot = scan.files
        self._pending = {}

    def start(self, directory: str | os.PathLike) -> None:
        """Prime the snapshot and start polling on a background thread.

        Returns once the watcher is ready.
        """
        if self._thread is not None:
            raise RuntimeError("FileWatcher already started")
        self.prime(directory)
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="trak-watcher", daemon=True,
        )
        self._thread.start()
        logger.info("Watching %s (%d files)", self.directory, len(self._snapshot))

    def _run(self) -> None:
        interval = self.config.poll_interval_ms / 1000
        while not self._stop_event.wait(interval):
            try:
                self.poll()
            except Exception as exc:
                logger.exception("Watcher poll failed")
                self._report_error(exc)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop polling and wait for the watcher thread to exit."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Stopped watching %s", self.directory)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
