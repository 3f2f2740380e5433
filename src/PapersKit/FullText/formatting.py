"""Plain-text rendering shared by the CLI and the MCP server."""

from __future__ import annotations

from typing import Iterable, List

from .sync import SyncReport
from .types import (
    ContentApi,
    DirectUrl,
    ListEntry,
    LocalLibrary,
    PdfSource,
    RemoteLibrary,
    RemoteStatus,
    WorkTextResult,
)

__all__ = ["describe_source", "format_listing", "format_sync_report", "format_work_text"]

_REMOTE_MARKS = {
    RemoteStatus.OK: "✓ remote",
    RemoteStatus.NO_BACKUP: "✗ remote",
    RemoteStatus.NO_ITEM: "",
}

_STATUS_LABELS = {
    "uploaded": "Uploaded",
    "downloaded": "Downloaded",
    "would_upload": "Would upload",
    "would_download": "Would download",
    "skipped": "Skipped",
    "failed": "Failed",
}


def describe_source(source: PdfSource) -> str:
    if isinstance(source, LocalLibrary):
        return f"Zotero (local: {source.path})"
    if isinstance(source, RemoteLibrary):
        return f"Zotero (remote: {source.item_key})"
    if isinstance(source, DirectUrl):
        return f"Direct URL: {source.url}"
    if isinstance(source, ContentApi):
        return "OpenAlex Content API"
    return str(source)


def format_work_text(result: WorkTextResult) -> str:
    """Header lines (title, ID, DOI, source, length) followed by the text."""
    lines: List[str] = []
    if result.title:
        lines.append(f"Work: {result.title}")
    lines.append(f"ID:   {result.work_id}")
    if result.doi:
        lines.append(f"DOI:  {result.doi}")
    lines.append(f"Source: {describe_source(result.source)}")
    lines.append(f"Length: {len(result.text)} characters")
    body = result.text if result.text.endswith("\n") else result.text + "\n"
    return "\n".join(lines) + "\n\n" + body


def format_listing(entries: Iterable[ListEntry]) -> str:
    rows = []
    for entry in entries:
        marks = ["✓ local" if entry.local else "✗ local"]
        remote = _REMOTE_MARKS[entry.remote_status]
        if remote:
            marks.append(remote)
        rows.append(f"{entry.key}  [{'] ['.join(marks)}]  {entry.title}")
    if not rows:
        return "No extractions found."
    return "\n".join(rows)


def format_sync_report(report: SyncReport) -> str:
    lines = []
    for outcome in report.outcomes:
        label = _STATUS_LABELS.get(outcome.status, outcome.status)
        detail = f" ({outcome.detail})" if outcome.detail else ""
        lines.append(f"{label}: {outcome.key}{detail}")
    counts = report.counts()
    if counts:
        summary = ", ".join(f"{count} {status}" for status, count in sorted(counts.items()))
    else:
        summary = "nothing to do"
    prefix = "[dry run] " if report.dry_run else ""
    lines.append(f"{prefix}{report.operation}: {summary}")
    return "\n".join(lines)
