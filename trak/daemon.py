"""Detached background watcher process.

``trak start`` spawns ``python -m trak.daemon <directory>``; the child
watches the tree and folds every change into the active session until it
receives SIGTERM (sent by ``trak stop``) or SIGINT.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from pathlib import Path

from .config import load_config, load_environment
from .errors import TrakError
from .models import FileChange
from .session import SessionManager
from .store import SessionStore
from .watcher import FileWatcher, WatcherConfig

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def _child_env() -> dict[str, str]:
    """Make the trak package importable from the watched directory."""
    paths = [str(PROJECT_ROOT), os.environ.get("PYTHONPATH", "")]
    return {**os.environ, "PYTHONPATH": os.pathsep.join(p for p in paths if p)}


def spawn_daemon(directory: str | os.PathLike) -> int:
    """Start the background watcher for ``directory`` and return its pid."""
    store = SessionStore(Path(directory).resolve())
    store.ensure_dirs()
    with open(store.daemon_log_path, "a", encoding="utf-8") as log_file:
        process = subprocess.Popen(
            [sys.executable, "-m", "trak.daemon", str(store.working_directory)],
            cwd=store.working_directory,
            stdin=subprocess.DEVNULL,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            start_new_session=True,
            env=_child_env(),
        )
    logger.info("Spawned watcher daemon pid=%d for %s", process.pid, directory)
    return process.pid


def _process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to someone else.
        return True
    return True


def terminate_daemon(pid: int, timeout: float = 5.0) -> bool:
    """Ask the daemon to exit and wait for it. Returns True once it is gone.

    A daemon that already exited is not an error.
    """
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.debug("Daemon pid=%d already exited", pid)
        return True
    except PermissionError as e:
        logger.warning("Could not signal daemon pid=%d: %s", pid, e)
        return False

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _process_alive(pid):
            return True
        time.sleep(0.05)
    logger.warning("Daemon pid=%d still running after %.1fs", pid, timeout)
    return False


def watch_until_signalled(
    manager: SessionManager,
    config: WatcherConfig,
    stop_event: threading.Event | None = None,
) -> None:
    """Run a watcher feeding ``manager`` until SIGTERM/SIGINT (or ``stop_event``).

    The watcher is always stopped before returning.
    """
    stop_event = stop_event or threading.Event()
    watcher = FileWatcher(config)

    def on_change(change: FileChange) -> None:
        logger.info("File change detected: %s %s", change.type, change.path)
        if manager.record_change(change) is None:
            # Session was stopped elsewhere; nothing left to track.
            stop_event.set()

    def on_error(exc: Exception) -> None:
        logger.warning("File watcher error: %s", exc)

    def on_signal(signum, frame) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        stop_event.set()

    watcher.on_change(on_change)
    watcher.on_error(on_error)

    previous = {
        sig: signal.signal(sig, on_signal) for sig in (signal.SIGTERM, signal.SIGINT)
    }
    watcher.start(manager.working_directory)
    logger.info("Watching %s", manager.working_directory)
    try:
        while not stop_event.wait(0.5):
            pass
    finally:
        watcher.stop()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        logger.info("File watcher stopped")


def run_daemon(directory: str | os.PathLike) -> int:
    manager = SessionManager(directory)
    manager.store.ensure_dirs()
    handler = logging.FileHandler(manager.store.daemon_log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.INFO)

    load_environment()
    logger.info("Daemon started pid=%d cwd=%s", os.getpid(), manager.working_directory)
    try:
        settings = load_config().settings
    except TrakError as e:
        logger.warning("Using default watcher settings: %s", e)
        settings = None

    if not manager.is_active():
        logger.warning("No active session in %s, exiting", manager.working_directory)
        return 1

    watcher_config = settings.watcher_config() if settings else WatcherConfig()
    watch_until_signalled(manager, watcher_config)
    logger.info("Daemon exiting")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m trak.daemon <directory>", file=sys.stderr)
        sys.exit(2)
    sys.exit(run_daemon(sys.argv[1]))
