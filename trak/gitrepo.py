"""Git repository detection for reports and issue filing."""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass

_GITHUB_REMOTE_RE = re.compile(r"github\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$")


@dataclass(frozen=True)
class GitRepoInfo:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def _git(cwd: str, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, NotADirectoryError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def parse_github_remote(url: str) -> GitRepoInfo | None:
    """Parse https, ssh:// and scp-style GitHub remotes."""
    match = _GITHUB_REMOTE_RE.search(url.strip())
    if not match:
        return None
    return GitRepoInfo(owner=match.group(1), repo=match.group(2))


def detect_github_repo(cwd: str) -> GitRepoInfo | None:
    url = _git(cwd, "remote", "get-url", "origin")
    if url is None:
        remotes = _git(cwd, "remote", "-v")
        if remotes:
            fields = remotes.splitlines()[0].split()
            url = fields[1] if len(fields) > 1 else None
    return parse_github_remote(url) if url else None


def detect_git_branch(cwd: str) -> str | None:
    return _git(cwd, "rev-parse", "--abbrev-ref", "HEAD")
