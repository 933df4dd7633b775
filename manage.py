#!/usr/bin/env python3
"""trak command line: track a development session and analyze what changed.

Usage:
    trak <command> [options]

All output is JSON on stdout; diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Add parent dir to path so `from trak import ...` works
sys.path.insert(0, str(Path(__file__).parent))

from trak import config as trak_config
from trak import export, lifecycle
from trak.errors import NotFoundError, TrakError
from trak.llm import create_llm_client
from trak.session import SessionManager
from trak.store import SessionStore
from trak.validation import validate_port, validate_positive_int, validate_session_id


def main() -> None:
    parser = argparse.ArgumentParser(prog="trak", description="Development session tracker")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command")

    # --- Session commands ---
    p = sub.add_parser("start", help="Start tracking file changes")
    p.add_argument("--dir", default=".", help="Working directory (default: current)")
    p.add_argument("--foreground", action="store_true", help="Watch in this process until Ctrl-C")

    p = sub.add_parser("stop", help="Stop the session, analyze and summarize it")
    p.add_argument("--dir", default=".")
    p.add_argument("--no-report", action="store_true", help="Skip the organization report")

    p = sub.add_parser("status", help="Show the active session")
    p.add_argument("--dir", default=".")

    # --- History commands ---
    p = sub.add_parser("history", help="List archived sessions")
    p.add_argument("--dir", default=".")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--from", dest="date_from", help="ISO date lower bound on start time")
    p.add_argument("--to", dest="date_to", help="ISO date upper bound on start time")

    p = sub.add_parser("show", help="Show one archived session")
    p.add_argument("session_id")
    p.add_argument("--dir", default=".")

    p = sub.add_parser("export", help="Export one archived session")
    p.add_argument("session_id")
    p.add_argument("--dir", default=".")
    p.add_argument("--format", choices=["json", "markdown"], default="json")

    p = sub.add_parser("reanalyze", help="Analyze an archived session again")
    p.add_argument("session_id")
    p.add_argument("--dir", default=".")

    # --- Organization ---
    p = sub.add_parser("login", help="Store organization credentials")
    p.add_argument("--token", required=True, help="Organization token")
    p.add_argument("--name", required=True, help="Developer display name")
    p.add_argument("--developer-id", required=True)
    p.add_argument("--endpoint", help="Organization endpoint URL")

    sub.add_parser("logout", help="Forget organization credentials")

    # --- Web server ---
    p = sub.add_parser("serve", help="Start the dashboard API server")
    p.add_argument("--dir", default=".")
    p.add_argument("--port", type=int)
    p.add_argument("--host", default="127.0.0.1")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose)
    trak_config.load_environment()

    try:
        result = _dispatch(args)
    except TrakError as e:
        print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False))
        sys.exit(1)
    print(json.dumps(result, indent=2, ensure_ascii=False))


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _dispatch(args: argparse.Namespace) -> dict | list:
    cmd = args.command

    if cmd == "start":
        config = trak_config.load_config()
        session = lifecycle.start_tracking(
            args.dir, background=not args.foreground, config=config
        )
        return export.export_session_json(session)

    if cmd == "stop":
        config = trak_config.load_config()
        client = create_llm_client(config.settings)
        report = lifecycle.stop_tracking(
            args.dir, client=client, config=config, report=not args.no_report
        )
        return _stop_report(report)

    if cmd == "status":
        session = SessionManager(args.dir).get_current()
        if session is None:
            return {"active": False}
        return {"active": True, "session": export.export_session_json(session)}

    if cmd == "history":
        limit = validate_positive_int(args.limit, "limit", max_val=1000)
        sessions = SessionStore(_resolve(args.dir)).list_sessions(
            limit=limit, date_from=args.date_from, date_to=args.date_to
        )
        return [export.session_overview(s) for s in sessions]

    if cmd == "show":
        return export.export_session_json(_archived(args.dir, args.session_id))

    if cmd == "export":
        session = _archived(args.dir, args.session_id)
        if args.format == "markdown":
            return {"format": "markdown", "content": export.export_session_markdown(session)}
        return export.export_session_json(session)

    if cmd == "reanalyze":
        config = trak_config.load_config()
        report = lifecycle.reanalyze(
            args.dir, args.session_id, client=create_llm_client(config.settings), config=config
        )
        return _stop_report(report)

    if cmd == "login":
        credentials = trak_config.login(
            org_token=args.token,
            developer_name=args.name,
            developer_id=args.developer_id,
            org_endpoint=args.endpoint,
        )
        return {
            "status": "logged_in",
            "developer_id": credentials.developer_id,
            "developer_name": credentials.developer_name,
            "org_endpoint": credentials.org_endpoint,
        }

    if cmd == "logout":
        return {"status": "logged_out" if trak_config.logout() else "not_logged_in"}

    if cmd == "serve":
        port = args.port or trak_config.load_config().settings.dashboard_port
        _serve(args.dir, args.host, validate_port(port))
        return {}  # never reached: uvicorn runs until interrupted

    return {"error": f"Unknown command: {cmd}"}


def _resolve(directory: str) -> Path:
    return Path(directory).resolve()


def _archived(directory: str, session_id: str):
    validate_session_id(session_id)
    session = SessionStore(_resolve(directory)).get_session(session_id)
    if session is None:
        raise NotFoundError(f"Session not found: {session_id}")
    return session


def _stop_report(report: lifecycle.StopReport) -> dict:
    session = report.session
    return {
        "session": export.session_overview(session),
        "issues": [asdict(i) for i in session.analysis.issues] if session.analysis else [],
        "archive_path": str(report.archive_path),
        "analysis_source": str(report.analysis_source),
        "summary_source": str(report.summary_source),
        "reported": report.reported,
    }


def _serve(directory: str, host: str, port: int) -> None:
    """Start the dashboard API via uvicorn."""
    import uvicorn

    from web import app as web_app

    web_app.WORKING_DIR = _resolve(directory)
    print(f"Dashboard API: http://{host}:{port}", file=sys.stderr)
    uvicorn.run(web_app.app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
