"""Offline, pattern-based issue detection.

Used when no AI backend is configured. Each rule fires at most once per
file (on its first match); the overall result is capped at MAX_ISSUES.
The complexity and duplication numbers are cheap proxies, not a real
cyclomatic complexity or clone analysis.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass

from .models import MAX_ISSUES, DetectedIssue, IssueType, Severity


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: re.Pattern
    type: IssueType
    severity: Severity
    description: str
    suggestion: str


# Braces holding nothing but whitespace and comments.
_EMPTY_BLOCK = r"\{(?:\s|//[^\n]*|/\*[\s\S]*?\*/)*\}"


RULES: tuple[Rule, ...] = (
    Rule(
        name="dynamic-code",
        pattern=re.compile(r"(?<![.\w])(?:eval|exec)\s*\(|\bnew\s+Function\s*\("),
        type=IssueType.SECURITY,
        severity=Severity.HIGH,
        description=(
            "Dynamic code execution is used in this file. Evaluating strings as code "
            "lets any attacker-influenced input run with the privileges of the process. "
            "It also defeats static analysis and makes the control flow hard to audit."
        ),
        suggestion="Replace dynamic evaluation with explicit parsing or a lookup of allowed operations.",
    ),
    Rule(
        name="hardcoded-credential",
        pattern=re.compile(
            r"AKIA[0-9A-Z]{16}"
            r"|gh[pousr]_[A-Za-z0-9]{36}"
            r"|github_pat_[A-Za-z0-9_]{22,}"
            r"|sk-[A-Za-z0-9_\-]{20,}"
            r"|xox[abprs]-[A-Za-z0-9\-]{10,}"
            r"|AIza[0-9A-Za-z_\-]{35}"
        ),
        type=IssueType.SECURITY,
        severity=Severity.HIGH,
        description=(
            "A credential-shaped token is embedded in the source. Anyone with read access "
            "to the repository or its history can reuse it. Leaked keys are routinely "
            "harvested from public code within minutes."
        ),
        suggestion="Move the secret to the environment or a secret manager and rotate the exposed key.",
    ),
    Rule(
        name="empty-handler",
        pattern=re.compile(
            rf"catch\s*(?:\([^)]*\))?\s*{_EMPTY_BLOCK}"
            r"|except(?:\s+[^:\n]*)?:(?:[ \t]*(?:#[^\n]*)?\n)?[ \t]*(?:pass\b|\.\.\.)"
            rf"|\.catch\(\s*\(\s*\w*\s*\)\s*=>\s*{_EMPTY_BLOCK}\s*\)"
        ),
        type=IssueType.ERROR_HANDLING,
        severity=Severity.MEDIUM,
        description=(
            "An exception handler swallows errors without handling them. Failures in this "
            "block disappear silently instead of being reported. This hides bugs and leaves "
            "the program running in an unknown state."
        ),
        suggestion="Log the error, recover explicitly, or let it propagate to a caller that can handle it.",
    ),
    Rule(
        name="debug-output",
        pattern=re.compile(r"\bconsole\.(?:log|debug)\s*\(|^[ \t]*print\s*\(|\bdebugger\s*;", re.MULTILINE),
        type=IssueType.PERFORMANCE,
        severity=Severity.LOW,
        description=(
            "Debug output statements were left in the source. They add noise to logs and "
            "can slow hot paths. They may also leak internal data to the console."
        ),
        suggestion="Remove the statement or route it through the project's logger at debug level.",
    ),
    Rule(
        name="work-marker",
        pattern=re.compile(r"\b(?:TODO|FIXME)\b"),
        type=IssueType.COMPLEXITY,
        severity=Severity.LOW,
        description=(
            "The file contains unresolved TODO or FIXME markers. They flag work that was "
            "knowingly left incomplete. Accumulated markers make it hard to tell finished "
            "code from placeholders."
        ),
        suggestion="Resolve the markers or track them as issues instead of comments.",
    ),
)

_BRANCH_RE = re.compile(r"\b(?:if|elif|for|while|switch|case)\b|&&|\|\||\band\b|\bor\b")
_MIN_SIGNIFICANT_LINE = 12


def line_number_at(text: str, offset: int) -> int:
    """1-indexed line number of a character offset."""
    return max(1, text.count("\n", 0, max(0, offset)) + 1)


def detect_issues(file_contents: dict[str, str], limit: int = MAX_ISSUES) -> list[DetectedIssue]:
    """Scan file contents and return at most ``limit`` issues, in path order."""
    return scan_files(file_contents)[:limit]


def scan_files(file_contents: dict[str, str]) -> list[DetectedIssue]:
    """All issues found, uncapped. Files are visited in sorted path order."""
    issues: list[DetectedIssue] = []
    for path in sorted(file_contents):
        text = file_contents[path]
        for rule in RULES:
            match = rule.pattern.search(text)
            if match is None:
                continue
            issues.append(
                DetectedIssue(
                    id=f"heuristic-{len(issues) + 1}",
                    type=rule.type,
                    severity=rule.severity,
                    file_path=path,
                    line_number=line_number_at(text, match.start()),
                    description=rule.description,
                    suggestion=rule.suggestion,
                )
            )
    return issues


def estimate_complexity(file_contents: dict[str, str]) -> int:
    """Count branching constructs across all files."""
    return sum(len(_BRANCH_RE.findall(text)) for text in file_contents.values())


def estimate_duplication(file_contents: dict[str, str]) -> int:
    """Percentage of significant lines that repeat an earlier line."""
    lines = [
        line.strip()
        for path in sorted(file_contents)
        for line in file_contents[path].splitlines()
        if len(line.strip()) >= _MIN_SIGNIFICANT_LINE
    ]
    if not lines:
        return 0
    counts = Counter(lines)
    repeated = sum(n - 1 for n in counts.values() if n > 1)
    return (repeated * 100) // len(lines)
