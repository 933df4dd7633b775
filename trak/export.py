"""Export session data as JSON or Markdown.

Formatting-only module: no file I/O. All functions accept model objects
and return dicts or strings.
"""

from __future__ import annotations

from datetime import UTC, datetime

from .models import ChangeType, Session, count_changes, session_to_dict


def format_duration(started_at: str | None, ended_at: str | None = None) -> str:
    """Format the time between two ISO timestamps as '2h 15m'.

    A missing end means "until now".
    """
    if not started_at:
        return ""
    try:
        start = datetime.fromisoformat(started_at)
        end = datetime.fromisoformat(ended_at) if ended_at else datetime.now(UTC)
    except (ValueError, TypeError):
        return ""
    total_minutes = int((end - start).total_seconds()) // 60
    if total_minutes < 0:
        return ""
    hours, minutes = divmod(total_minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _format_iso_short(iso_str: str | None) -> str:
    """Format ISO timestamp as '2026-02-28 10:00'."""
    if not iso_str:
        return ""
    try:
        dt = datetime.fromisoformat(iso_str)
        return dt.strftime("%Y-%m-%d %H:%M")
    except (ValueError, TypeError):
        return ""


_CHANGE_MARKERS = {
    ChangeType.ADDED: "+",
    ChangeType.MODIFIED: "~",
    ChangeType.DELETED: "-",
}


# ---------------------------------------------------------------------------
# Session export
# ---------------------------------------------------------------------------


def export_session_json(session: Session) -> dict:
    """Export a single session as a rich JSON dict."""
    data = session_to_dict(session)
    data["change_summary"] = count_changes(session.changes)
    data["duration"] = format_duration(session.start_time, session.end_time)
    return data


def session_overview(session: Session) -> dict:
    """Lightweight listing entry for history views."""
    analysis = session.analysis
    return {
        "session_id": session.session_id,
        "start_time": session.start_time,
        "end_time": session.end_time,
        "status": session.status,
        "duration": format_duration(session.start_time, session.end_time),
        "files_changed": len(session.changes),
        "summary": session.summary or "",
        "quality_score": analysis.metrics.quality_score if analysis else None,
        "issue_count": (
            {
                "high": analysis.metrics.issue_count.high,
                "medium": analysis.metrics.issue_count.medium,
                "low": analysis.metrics.issue_count.low,
            }
            if analysis
            else {"high": 0, "medium": 0, "low": 0}
        ),
        "analysis_source": analysis.source if analysis else None,
    }


def export_session_markdown(session: Session, heading_level: int = 1) -> str:
    """Export a single session as a readable Markdown document.

    heading_level controls the top-level heading depth (1 = '#', 2 = '##').
    Sub-sections are one level deeper.
    """
    h = "#" * heading_level
    hsub = "#" * (heading_level + 1)
    lines: list[str] = []

    lines.append(f"{h} Session {session.session_id}")
    lines.append("")

    lines.append("| Field | Value |")
    lines.append("|-------|-------|")
    lines.append(f"| Directory | `{session.working_directory}` |")
    lines.append(f"| Status | {session.status} |")
    lines.append(f"| Started | {_format_iso_short(session.start_time)} |")
    if session.end_time:
        lines.append(f"| Ended | {_format_iso_short(session.end_time)} |")
        lines.append(f"| Duration | {format_duration(session.start_time, session.end_time)} |")
    counts = count_changes(session.changes)
    lines.append(
        f"| Files | {counts['added']} added, {counts['modified']} modified, "
        f"{counts['deleted']} deleted |"
    )
    lines.append("")

    if session.summary:
        lines.append(f"{hsub} Summary")
        lines.append("")
        lines.append(session.summary)
        lines.append("")

    if session.changes:
        lines.append(f"{hsub} Changes")
        lines.append("")
        for change in session.changes:
            marker = _CHANGE_MARKERS[change.type]
            lines.append(f"- `{marker}` `{change.path}` ({change.type}, {change.change_count}x)")
        lines.append("")

    analysis = session.analysis
    if analysis:
        ic = analysis.metrics.issue_count
        lines.append(f"{hsub} Quality")
        lines.append("")
        lines.append(f"**Score:** {analysis.metrics.quality_score}/100 ({analysis.source})")
        lines.append(f"**Issues:** {ic.high} high, {ic.medium} medium, {ic.low} low")
        if analysis.total_issues > len(analysis.issues):
            lines.append(f"*Showing {len(analysis.issues)} of {analysis.total_issues} issues.*")
        lines.append("")
        for issue in analysis.issues:
            lines.append(
                f"- **{issue.severity}** {issue.type} - `{issue.file_path}:{issue.line_number}`: "
                f"{issue.description}"
            )
        if analysis.issues:
            lines.append("")

    return "\n".join(lines)


def export_history_markdown(sessions: list[Session]) -> str:
    """Export several sessions as a single Markdown document."""
    lines: list[str] = []

    lines.append("# Session history")
    lines.append("")
    lines.append(f"**Sessions:** {len(sessions)}")
    lines.append("")
    lines.append("---")
    lines.append("")

    for i, session in enumerate(sessions):
        lines.append(export_session_markdown(session, heading_level=2))
        if i < len(sessions) - 1:
            lines.append("---")
            lines.append("")

    return "\n".join(lines)
