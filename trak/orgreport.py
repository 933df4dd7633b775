"""Best-effort delivery of finished sessions to an organization endpoint."""

from __future__ import annotations

import logging
import time

import httpx

from .config import OrgCredentials
from .export import format_duration
from .gitrepo import detect_git_branch, detect_github_repo
from .models import MAX_ISSUES, Session

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY = 1.0
REQUEST_TIMEOUT = 10.0
USER_AGENT = "trak-cli/0.1.0"


def build_report(
    session: Session,
    credentials: OrgCredentials,
    repo: str | None = None,
    branch: str | None = None,
) -> dict:
    analysis = session.analysis
    issues = analysis.issues if analysis else []
    report = {
        "developerId": credentials.developer_id,
        "developerName": credentials.developer_name,
        "sessionId": session.session_id,
        "timestamp": session.end_time or session.start_time,
        "duration": format_duration(session.start_time, session.end_time) or "0m",
        "files": len(session.changes),
        "summary": session.summary or "No summary available",
        "qualityScore": analysis.metrics.quality_score if analysis else 0,
        "issues": len(issues),
        "changes": [
            {"path": c.path, "type": str(c.type), "changeCount": c.change_count}
            for c in session.changes
        ],
        "issueDetails": [
            {
                "id": i.id,
                "type": str(i.type),
                "severity": str(i.severity),
                "filePath": i.file_path,
                "lineNumber": i.line_number,
                "description": i.description,
                "suggestion": i.suggestion,
            }
            for i in issues[:MAX_ISSUES]
        ],
    }
    if repo:
        report["repo"] = repo
    if branch:
        report["branch"] = branch
    return report


def send_session_report(
    session: Session,
    credentials: OrgCredentials,
    client: httpx.Client | None = None,
) -> bool:
    """POST the session report, retrying with 1s/2s backoff.

    Returns True once the endpoint accepts the report. Never raises.
    """
    repo_info = detect_github_repo(session.working_directory)
    report = build_report(
        session,
        credentials,
        repo=repo_info.full_name if repo_info else None,
        branch=detect_git_branch(session.working_directory),
    )
    url = f"{credentials.org_endpoint.rstrip('/')}/api/sessions"
    headers = {
        "Authorization": f"Bearer {credentials.org_token}",
        "User-Agent": USER_AGENT,
    }

    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=REQUEST_TIMEOUT)
    try:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = client.post(url, json=report, headers=headers, timeout=REQUEST_TIMEOUT)
            except httpx.HTTPError as e:
                failure = str(e) or type(e).__name__
            else:
                if response.is_success:
                    logger.info("Session %s reported to %s", session.session_id, url)
                    return True
                failure = f"HTTP {response.status_code}"

            if attempt == MAX_ATTEMPTS:
                logger.warning("Failed to send session report: %s", failure)
                return False
            delay = BASE_DELAY * 2 ** (attempt - 1)
            logger.debug("Report attempt %d failed (%s), retrying in %.0fs", attempt, failure, delay)
            time.sleep(delay)
    finally:
        if owns_client:
            client.close()
    return False
