"""Turn detected issues into GitHub issues."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx

from .errors import BackendError
from .models import DetectedIssue, IssueType
from .validation import validate_repo_full_name

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"

TYPE_LABELS = {
    IssueType.SECURITY: "security",
    IssueType.PERFORMANCE: "performance",
    IssueType.COMPLEXITY: "refactor",
    IssueType.DUPLICATION: "refactor",
    IssueType.ERROR_HANDLING: "bug",
}

_STATUS_MESSAGES = {
    401: "Invalid GitHub token, check GITHUB_TOKEN",
    403: "Permission denied, the token needs repo access",
    404: "Repository not found, check the repository name and permissions",
}


@dataclass(frozen=True)
class IssueDraft:
    title: str
    body: str
    labels: list[str] = field(default_factory=list)


def _first_sentence(text: str) -> str:
    return text.split(".")[0].strip()


def issue_labels(issue: DetectedIssue) -> list[str]:
    labels = [TYPE_LABELS[issue.type]]
    labels.append(f"{issue.severity}-priority")
    labels.append("trak")
    return labels


def format_issue(issue: DetectedIssue, session_id: str) -> IssueDraft:
    today = datetime.now(UTC).strftime("%Y-%m-%d")
    body = f"""## Issue detected by trak

**Severity:** {issue.severity}
**Type:** {issue.type}
**File:** `{issue.file_path}`
**Line:** {issue.line_number}

### Description

{issue.description}

### Suggested fix

{issue.suggestion}

---

Session ID: `{session_id}`
Detected: {today}
"""
    return IssueDraft(
        title=f"[trak] {issue.type}: {_first_sentence(issue.description)}",
        body=body,
        labels=issue_labels(issue),
    )


def create_github_issue(
    draft: IssueDraft,
    repo_full_name: str,
    token: str,
    client: httpx.Client | None = None,
) -> dict:
    """File the draft in ``owner/repo``. Returns ``{"url", "number"}``.

    Raises:
        InputError: malformed repository name.
        BackendError: the GitHub API could not be reached or refused the request.
    """
    repo_full_name = validate_repo_full_name(repo_full_name)
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=15.0)
    try:
        response = client.post(
            f"{GITHUB_API}/repos/{repo_full_name}/issues",
            json={"title": draft.title, "body": draft.body, "labels": draft.labels},
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )
    except httpx.HTTPError as e:
        raise BackendError(f"GitHub request failed: {e}") from e
    finally:
        if owns_client:
            client.close()

    if not response.is_success:
        message = _STATUS_MESSAGES.get(
            response.status_code, f"GitHub API returned HTTP {response.status_code}"
        )
        logger.warning("Issue creation in %s failed: %s", repo_full_name, message)
        raise BackendError(message)

    data = response.json()
    return {"url": data.get("html_url"), "number": data.get("number")}
