"""Dashboard API: read-mostly access to tracked sessions.

Routes:
  GET  /api/sessions                        -> archived session overviews, newest first
  GET  /api/sessions/{session_id}           -> single archived session
  GET  /api/current                         -> active session or null
  GET  /api/export/session/{id}?format=     -> export session as JSON or Markdown
  GET  /api/export/history?format=          -> export history as JSON or Markdown
  GET  /api/repo-info                       -> detected GitHub repository
  POST /api/issues/create                   -> file a detected issue on GitHub

All API errors return consistent JSON: {"error": "message", "code": "ERROR_CODE"}
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

# Ensure trak is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trak import export
from trak.errors import ErrorCode, TrakError
from trak.gitrepo import detect_github_repo
from trak.issues import create_github_issue, format_issue
from trak.models import DetectedIssue, IssueType, Severity, session_to_dict
from trak.store import SessionStore
from trak.validation import validate_repo_full_name, validate_session_id

logger = logging.getLogger(__name__)

# Directory whose .trak/ state is served; set by `trak serve`.
WORKING_DIR: Path = Path.cwd()

app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

_STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.SESSION_ACTIVE: 400,
    ErrorCode.PARSE_ERROR: 500,
    ErrorCode.BACKEND_ERROR: 502,
    ErrorCode.DAEMON_ERROR: 500,
}


def _store() -> SessionStore:
    return SessionStore(WORKING_DIR)


# ---------------------------------------------------------------------------
# Error response helper
# ---------------------------------------------------------------------------


def _error_response(message: str, code: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message, "code": code}, status_code=status_code)


def _markdown_response(content: str, filename: str) -> PlainTextResponse:
    return PlainTextResponse(
        content,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(TrakError)
async def trak_error_handler(request: Request, exc: TrakError):
    status_code = _STATUS_BY_CODE.get(exc.code, 500)
    if exc.code == ErrorCode.PARSE_ERROR:
        logger.error("Corrupt session data on %s: %s", request.url.path, exc)
        return _error_response("Session store contains corrupt data", "DATA_CORRUPT", 500)
    logger.warning("%s on %s: %s", exc.code, request.url.path, exc)
    return _error_response(exc.message, str(exc.code), status_code)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("ValueError on %s: %s", request.url.path, exc)
    return _error_response("Invalid request", "VALIDATION_ERROR", 400)


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=True)
    return _error_response("Internal server error", "INTERNAL_ERROR", 500)


# ---------------------------------------------------------------------------
# Session routes
# ---------------------------------------------------------------------------


@app.get("/api/sessions")
def api_sessions(
    limit: int = Query(50, ge=1, le=500),
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
):
    sessions = _store().list_sessions(limit=limit, date_from=date_from, date_to=date_to)
    return JSONResponse([export.session_overview(s) for s in sessions])


@app.get("/api/sessions/{session_id}")
def api_session_detail(session_id: str):
    validate_session_id(session_id)
    session = _store().get_session(session_id)
    if not session:
        return _error_response("Session not found", "NOT_FOUND", 404)
    return JSONResponse(session_to_dict(session))


@app.get("/api/current")
def api_current():
    session = _store().read_current()
    return JSONResponse(export.export_session_json(session) if session else None)


# ---------------------------------------------------------------------------
# Export routes
# ---------------------------------------------------------------------------


@app.get("/api/export/session/{session_id}")
def api_export_session(
    session_id: str,
    format: str = Query("json", pattern="^(json|markdown)$"),
):
    validate_session_id(session_id)
    session = _store().get_session(session_id)
    if not session:
        return _error_response("Session not found", "NOT_FOUND", 404)

    if format == "markdown":
        return _markdown_response(export.export_session_markdown(session), f"{session_id}.md")

    return JSONResponse(export.export_session_json(session))


@app.get("/api/export/history")
def api_export_history(
    format: str = Query("json", pattern="^(json|markdown)$"),
    limit: int = Query(100, ge=1, le=500),
):
    sessions = _store().list_sessions(limit=limit)
    if not sessions:
        return _error_response("No sessions recorded", "NOT_FOUND", 404)

    if format == "markdown":
        return _markdown_response(export.export_history_markdown(sessions), "trak-history.md")

    return JSONResponse([export.export_session_json(s) for s in sessions])


# ---------------------------------------------------------------------------
# GitHub integration
# ---------------------------------------------------------------------------


class IssuePayload(BaseModel):
    id: str = Field(min_length=1)
    type: IssueType
    severity: Severity
    file_path: str = Field(min_length=1)
    line_number: int = Field(ge=1)
    description: str = Field(min_length=1)
    suggestion: str = ""


class IssueCreateRequest(BaseModel):
    issue: IssuePayload
    session_id: str
    repo: str | None = None


@app.get("/api/repo-info")
def api_repo_info():
    info = detect_github_repo(str(WORKING_DIR))
    if info is None:
        return JSONResponse({"detected": False, "repo": None})
    return JSONResponse({"detected": True, "repo": info.full_name})


@app.post("/api/issues/create")
def api_create_issue(body: IssueCreateRequest):
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if not token:
        return _error_response(
            "GITHUB_TOKEN is not set; export a token with repo access",
            "VALIDATION_ERROR",
            400,
        )

    repo = body.repo
    if not repo:
        info = detect_github_repo(str(WORKING_DIR))
        if info is None:
            return _error_response(
                "No GitHub repository detected; pass repo as owner/repo",
                "VALIDATION_ERROR",
                400,
            )
        repo = info.full_name
    repo = validate_repo_full_name(repo)
    session_id = validate_session_id(body.session_id)

    issue = DetectedIssue(**body.issue.model_dump())
    draft = format_issue(issue, session_id)
    created = create_github_issue(draft, repo, token)
    return JSONResponse({"success": True, "issue_url": created["url"], "issue_number": created["number"]})
