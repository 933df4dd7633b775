"""Session data models: dataclasses plus dict (de)serialization."""

from __future__ import annotations

import secrets
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

MAX_ISSUES = 25


class SessionStatus(StrEnum):
    ACTIVE = "active"
    STOPPED = "stopped"


class ChangeType(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class IssueType(StrEnum):
    COMPLEXITY = "complexity"
    DUPLICATION = "duplication"
    ERROR_HANDLING = "error-handling"
    SECURITY = "security"
    PERFORMANCE = "performance"


class Severity(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AnalysisSource(StrEnum):
    AI = "ai"
    HEURISTIC = "heuristic"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class FileChange:
    """One normalized filesystem event, before deduplication."""

    type: ChangeType
    path: str  # relative to the watched directory, POSIX separators
    timestamp: str  # ISO 8601


@dataclass
class ChangeEntry:
    """Per-file aggregate of observed events. Keyed by path within a session."""

    path: str  # relative to the working directory
    type: ChangeType
    timestamp: str  # ISO 8601, most recent event
    change_count: int = 1


@dataclass(frozen=True)
class DetectedIssue:
    id: str
    type: IssueType
    severity: Severity
    file_path: str
    line_number: int
    description: str
    suggestion: str


@dataclass(frozen=True)
class IssueCount:
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_issues(cls, issues: list[DetectedIssue]) -> IssueCount:
        return cls(
            high=sum(1 for i in issues if i.severity == Severity.HIGH),
            medium=sum(1 for i in issues if i.severity == Severity.MEDIUM),
            low=sum(1 for i in issues if i.severity == Severity.LOW),
        )

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low


@dataclass(frozen=True)
class AnalysisMetrics:
    quality_score: int
    issue_count: IssueCount = field(default_factory=IssueCount)
    complexity: int = 0
    duplication: int = 0


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of ending a session. Computed once, never mutated."""

    issues: list[DetectedIssue]
    metrics: AnalysisMetrics
    summary: str
    analysis_time: int  # milliseconds
    source: AnalysisSource = AnalysisSource.AI
    total_issues: int = 0  # before truncation to MAX_ISSUES


@dataclass
class Session:
    """One tracked span of work in a working directory."""

    session_id: str
    working_directory: str
    status: SessionStatus
    start_time: str  # ISO 8601
    end_time: str | None = None
    changes: list[ChangeEntry] = field(default_factory=list)
    daemon_process_id: int | None = None
    summary: str | None = None
    analysis: AnalysisResult | None = None


def generate_session_id() -> str:
    """Generate readable + unique session ID: sess_20260210T143012_a1b2."""
    now = datetime.now(UTC)
    timestamp = now.strftime("%Y%m%dT%H%M%S")
    suffix = secrets.token_hex(2)
    return f"sess_{timestamp}_{suffix}"


def count_changes(changes: list[ChangeEntry]) -> dict[str, int]:
    counts = {t.value: 0 for t in ChangeType}
    for change in changes:
        counts[change.type] += 1
    return counts


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def session_to_dict(session: Session) -> dict:
    return asdict(session)


def issue_from_dict(data: dict) -> DetectedIssue:
    return DetectedIssue(
        id=str(data["id"]),
        type=IssueType(data["type"]),
        severity=Severity(data["severity"]),
        file_path=data["file_path"],
        line_number=int(data["line_number"]),
        description=data.get("description", ""),
        suggestion=data.get("suggestion", ""),
    )


def analysis_from_dict(data: dict) -> AnalysisResult:
    metrics = data.get("metrics", {})
    issues = [issue_from_dict(i) for i in data.get("issues", [])]
    return AnalysisResult(
        issues=issues,
        metrics=AnalysisMetrics(
            quality_score=int(metrics.get("quality_score", 0)),
            issue_count=IssueCount(**metrics.get("issue_count", {})),
            complexity=int(metrics.get("complexity", 0)),
            duplication=int(metrics.get("duplication", 0)),
        ),
        summary=data.get("summary", ""),
        analysis_time=int(data.get("analysis_time", 0)),
        source=AnalysisSource(data.get("source", AnalysisSource.AI)),
        total_issues=int(data.get("total_issues", len(issues))),
    )


def session_from_dict(data: dict) -> Session:
    analysis = data.get("analysis")
    return Session(
        session_id=data["session_id"],
        working_directory=data["working_directory"],
        status=SessionStatus(data["status"]),
        start_time=data["start_time"],
        end_time=data.get("end_time"),
        changes=[
            ChangeEntry(
                path=c["path"],
                type=ChangeType(c["type"]),
                timestamp=c["timestamp"],
                change_count=int(c.get("change_count", 1)),
            )
            for c in data.get("changes", [])
        ],
        daemon_process_id=data.get("daemon_process_id"),
        summary=data.get("summary"),
        analysis=analysis_from_dict(analysis) if analysis else None,
    )
