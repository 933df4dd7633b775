"""Input validation for CLI arguments, store operations and API requests.

Centralised validation rules so the CLI, the session manager and the
dashboard share the same constraints.
"""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath

from .errors import InputError

# ---------------------------------------------------------------------------
# String length limits
# ---------------------------------------------------------------------------

MAX_DEVELOPER_NAME = 100
MAX_DEVELOPER_ID = 200
MAX_TOKEN = 500
MAX_ENDPOINT = 500
MAX_CHANGE_PATH = 1024

MIN_TOKEN = 8

# ---------------------------------------------------------------------------
# Regex patterns
# ---------------------------------------------------------------------------

_SESSION_ID_RE = re.compile(r"^sess_\d{8}T\d{6}_[0-9a-f]{4}$")
_REPO_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]*/[A-Za-z0-9._\-]+$")
_ENDPOINT_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$")


# ---------------------------------------------------------------------------
# Validators: all raise InputError (a ValueError) on failure
# ---------------------------------------------------------------------------


def validate_string_length(value: str, field: str, max_len: int) -> str:
    """Validate string is non-empty and within length limit."""
    if not value or not value.strip():
        raise InputError(f"{field} cannot be empty")
    stripped = value.strip()
    if len(stripped) > max_len:
        raise InputError(f"{field} too long ({len(stripped)} chars, max {max_len})")
    return stripped


def validate_session_id(session_id: str) -> str:
    """Reject session IDs that could escape the sessions directory."""
    if not _SESSION_ID_RE.match(session_id or ""):
        raise InputError(f"Invalid session ID format: {session_id}")
    return session_id


def validate_working_directory(directory: str | os.PathLike) -> Path:
    """Working directory must exist; returned as an absolute path."""
    if not directory:
        raise InputError("Working directory cannot be empty")
    path = Path(directory).expanduser().resolve()
    if not path.is_dir():
        raise InputError(f"Working directory not found: {directory}")
    return path


def validate_change_path(path: str) -> str:
    """Change paths are relative, POSIX-style and stay inside the working directory."""
    if not path or not path.strip():
        raise InputError("Change path cannot be empty")
    if len(path) > MAX_CHANGE_PATH:
        raise InputError(f"Change path too long ({len(path)} chars, max {MAX_CHANGE_PATH})")
    posix = PurePosixPath(path.replace("\\", "/"))
    if posix.is_absolute() or ".." in posix.parts:
        raise InputError(f"Change path must be relative to the working directory: {path}")
    return str(posix)


def validate_org_token(token: str) -> str:
    token = validate_string_length(token, "organization token", MAX_TOKEN)
    if len(token) < MIN_TOKEN:
        raise InputError(
            f"Invalid organization token. Token must be at least {MIN_TOKEN} characters."
        )
    return token


def validate_endpoint(endpoint: str) -> str:
    endpoint = validate_string_length(endpoint, "endpoint", MAX_ENDPOINT)
    if not _ENDPOINT_RE.match(endpoint):
        raise InputError(f"Invalid endpoint URL: '{endpoint}'. Must start with http:// or https://")
    return endpoint.rstrip("/")


def validate_repo_full_name(repo: str) -> str:
    """Validate GitHub repository in owner/repo form."""
    if not repo or not _REPO_RE.match(repo):
        raise InputError(
            f"Invalid repo format: '{repo}'. Use \"owner/repo\" format (e.g., \"microsoft/vscode\")"
        )
    return repo


def validate_positive_int(value: int, field: str, max_val: int | None = None) -> int:
    """Validate integer is positive (> 0), optionally with upper bound."""
    if value < 1:
        raise InputError(f"{field} must be positive (got {value})")
    if max_val is not None and value > max_val:
        raise InputError(f"{field} too large ({value}, max {max_val})")
    return value


def validate_port(port: int) -> int:
    if port < 1 or port > 65535:
        raise InputError(f"Port must be 1-65535 (got {port})")
    return port
