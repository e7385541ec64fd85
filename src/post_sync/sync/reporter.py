"""Report formatting functions.

Provides human-readable and machine-readable output for sync runs and
remote listings:

- ``format_sync_report`` -- full post-run summary.
- ``format_publication`` -- one line per publication status.
- ``format_remote_listing`` -- a page of remote drafts or articles.
- ``report_to_json`` -- structured dict printed by the ``--json`` flag.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import SyncReport
    from .records import PublicationRecord

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one outcome.
    Skipped documents are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(f"Sync report ({report.mode.value})")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Processed {len(report.outcomes)} files: "
        f"{len(report.created)} created, "
        f"{len(report.updated)} updated, "
        f"{len(report.skipped)} unchanged, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    if report.created:
        lines.append("Created drafts:")
        for o in report.created:
            lines.append(f"  {o.path} -> {o.draft_token}")
        lines.append("")

    if report.updated:
        lines.append("Updated drafts:")
        for o in report.updated:
            lines.append(f"  {o.path} -> {o.draft_token}")
        lines.append("")

    if report.published:
        lines.append("Submitted for publication:")
        for o in report.published:
            lines.append(f"  {o.path} -> {o.publication_token}")
        lines.append("")

    if report.warnings:
        lines.append("Warnings:")
        for o in report.warnings:
            lines.append(f"  {o.path}: {o.warning}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for o in report.errors:
            lines.append(f"  {o.path}: {o.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} files (unchanged)")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_publication(path: str, record: PublicationRecord) -> str:
    line = f"{path}: {record.status} (publish_id: {record.publish_id})"
    if record.article_url:
        line += f" {record.article_url}"
    return line


def _format_time(value: Any) -> str:
    try:
        return datetime.fromtimestamp(int(value)).strftime("%Y-%m-%d %H:%M")
    except (TypeError, ValueError, OverflowError, OSError):
        return "-"


def format_remote_listing(page: dict[str, Any], id_key: str) -> str:
    """Format one page of ``draft/batchget`` or ``freepublish/batchget``.

    Args:
        page: Decoded response body.
        id_key: ``media_id`` for drafts, ``article_id`` for articles.

    Returns:
        One line per item, or a notice when the page is empty.
    """
    items = page.get("item") or []
    if not items:
        return "No items found."

    lines: list[str] = []
    for item in items:
        news = (item.get("content") or {}).get("news_item") or [{}]
        title = news[0].get("title", "(untitled)")
        updated = _format_time(item.get("update_time"))
        lines.append(f"{item.get(id_key, '?')}  {updated}  {title}")
    lines.append(
        f"({len(items)} of {page.get('total_count', len(items))} total)"
    )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, and per-outcome details.
    """
    outcomes_list = []
    for o in report.outcomes:
        entry: dict = {
            "path": o.path,
            "action": o.action.value,
            "success": o.success,
        }
        if o.draft_token:
            entry["draft_token"] = o.draft_token
        if o.publication_token:
            entry["publication_token"] = o.publication_token
        if o.warning:
            entry["warning"] = o.warning
        if o.error:
            entry["error"] = o.error
        outcomes_list.append(entry)

    return {
        "mode": report.mode.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.outcomes),
            "created": len(report.created),
            "updated": len(report.updated),
            "skipped": len(report.skipped),
            "published": len(report.published),
            "errors": len(report.errors),
        },
        "outcomes": outcomes_list,
    }
