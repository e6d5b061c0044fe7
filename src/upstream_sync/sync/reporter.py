"""Report formatting functions.

Provides human-readable and machine-readable output for every command:

- ``format_diff_report`` -- classified paths grouped by category.
- ``format_sync_result`` / ``format_verify_result`` -- post-sync summary.
- ``format_detect`` / ``format_status`` -- version and baseline overview.
- ``format_conflict_diff`` -- unified diff for conflict review.
- ``*_to_json`` -- structured dicts for ``--json`` and MCP output.
"""

from __future__ import annotations

import difflib
from collections import defaultdict
from pathlib import Path

from ..file_handler import MAX_PREVIEW_BYTES, read_text_file
from .models import (
    DiffReport,
    FileDiffEntry,
    FileStatus,
    SyncResult,
    SyncRun,
    SyncState,
    VerifyResult,
)

_RULE = "=" * 60

_STATUS_ICONS = {
    FileStatus.ADDED: "+",
    FileStatus.MODIFIED: "~",
    FileStatus.CONFLICT: "!",
    FileStatus.UNCHANGED: "*",
}

# ------------------------------------------------------------------
# Diff report
# ------------------------------------------------------------------


def _entry_line(entry: FileDiffEntry) -> str:
    tags = ""
    if entry.status == FileStatus.CONFLICT:
        tags += " [CONFLICT]"
    elif entry.is_customized:
        tags += " [CUSTOMIZED]"
    if entry.protected:
        tags += " [PROTECTED]"
    return f"  {_STATUS_ICONS[entry.status]} {entry.relative_path}{tags}"


def format_diff_report(report: DiffReport) -> str:
    """Format a diff report as human-readable text.

    Unchanged paths are counted but not listed unless they carry a local
    customization or are protected.

    Args:
        report: The diff report (possibly filtered).

    Returns:
        Multi-line formatted string.
    """
    summary = report.summary()
    lines: list[str] = [
        f"Upstream sync report: {report.upstream_version}",
        _RULE,
        f"  Total files:  {summary['total']}",
        f"  Unchanged:    {summary['unchanged']} "
        f"({summary['customized']} customized)",
        f"  Modified:     {summary['modified']}",
        f"  Added:        {summary['added']}",
        f"  Conflicts:    {summary['conflicts']}",
        f"  Protected:    {summary['protected']}",
    ]
    if summary["errors"]:
        lines.append(f"  Read errors:  {summary['errors']}")
    if summary["orphans"]:
        lines.append(f"  Local-only:   {summary['orphans']}")
    lines.append("")

    groups: dict[str, list[FileDiffEntry]] = defaultdict(list)
    for entry in report.entries:
        if (
            entry.status == FileStatus.UNCHANGED
            and not entry.locally_modified
            and not entry.protected
        ):
            continue
        groups[entry.category].append(entry)

    if not groups and not report.errors and not report.orphans:
        lines.append("  No changes detected.")
        return "\n".join(lines)

    for category in sorted(groups):
        lines.append(f"-- {category.upper()} " + "-" * max(4, 50 - len(category)))
        for entry in groups[category]:
            lines.append(_entry_line(entry))
        lines.append("")

    if report.errors:
        lines.append("Read errors:")
        for err in report.errors:
            lines.append(f"  {err.path}: {err.message}")
        lines.append("")

    if report.orphans:
        lines.append("Local-only (not tracked upstream):")
        for rel in report.orphans:
            lines.append(f"  ? {rel}")
        lines.append("")

    return "\n".join(lines).rstrip()


def diff_report_to_json(report: DiffReport) -> dict:
    """Convert a diff report to a structured dict for JSON serialisation."""
    return {
        "upstream_version": report.upstream_version,
        "timestamp": report.timestamp,
        "summary": report.summary(),
        "files": [
            {
                "relative_path": e.relative_path,
                "category": e.category,
                "status": e.status.value,
                "locally_modified": e.locally_modified,
                "protected": e.protected,
                "upstream_hash": e.upstream_hash,
                "local_hash": e.local_hash,
                "baseline_hash": e.baseline_hash,
            }
            for e in report.entries
        ],
        "errors": [e.model_dump() for e in report.errors],
        "orphans": list(report.orphans),
    }


# ------------------------------------------------------------------
# Sync / verify
# ------------------------------------------------------------------


def format_sync_result(result: SyncResult) -> str:
    """Format executor counts, then each non-empty path list.

    Args:
        result: The executor outcome.

    Returns:
        Multi-line formatted string.
    """
    header = "Sync results"
    if result.dry_run:
        header += " (DRY RUN, no changes made)"
    lines: list[str] = [
        header,
        "=" * 40,
        f"  Synced:    {len(result.synced)}",
        f"  Skipped:   {len(result.skipped)}",
        f"  Conflicts: {len(result.conflicts)}",
        f"  Errors:    {len(result.errors)}",
    ]
    if result.backup_dir:
        lines.append(f"  Backup:    {result.backup_dir}")
    lines.append("")

    if not (result.synced or result.skipped or result.conflicts or result.errors):
        lines.append("Nothing to sync: local installation is up to date.")

    if result.synced:
        lines.append("Would sync:" if result.dry_run else "Synced:")
        for rel in result.synced:
            action = result.planned.get(rel)
            label = f"[{action.value.upper()}] " if action else ""
            lines.append(f"  {label}{rel}")
        lines.append("")

    if result.skipped:
        lines.append("Skipped:")
        for rel in result.skipped:
            lines.append(f"  {rel}")
        lines.append("")

    if result.conflicts:
        lines.append("Unresolved conflicts (use --conflict to resolve):")
        for rel in result.conflicts:
            lines.append(f"  ! {rel}")
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for err in result.errors:
            lines.append(f"  {err}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_verify_result(result: VerifyResult) -> str:
    """Format verification outcome; passing checks are only counted."""
    status = "PASSED" if result.passed else "FAILED"
    lines = [f"Verification: {status} ({len(result.checks)} checks)"]
    for check in result.failed:
        lines.append(f"  x {check.file} [{check.check}]: {check.message}")
    return "\n".join(lines)


def format_sync_run(run: SyncRun) -> str:
    """Full human-readable report for one ``sync`` invocation."""
    parts = [f"Upstream version: {run.version}", format_sync_result(run.result)]
    if run.read_errors:
        lines = ["Unreadable files (not synced):"]
        for err in run.read_errors:
            lines.append(f"  {err.path}: {err.message}")
        parts.append("\n".join(lines))
    if run.verify is not None:
        parts.append(format_verify_result(run.verify))
    for outcome in run.triggers:
        status = "ok" if outcome.success else f"FAILED ({outcome.message})"
        parts.append(f"Trigger {outcome.name}: {status}")
    if not run.result.dry_run:
        parts.append(
            "Sync state saved."
            if run.state_updated
            else "Sync state NOT updated."
        )
    return "\n\n".join(parts)


def sync_run_to_json(run: SyncRun) -> dict:
    """Convert a sync run to a structured dict for JSON serialisation."""
    result = run.result
    data: dict = {
        "version": run.version,
        "dry_run": result.dry_run,
        "counts": {
            "synced": len(result.synced),
            "skipped": len(result.skipped),
            "conflicts": len(result.conflicts),
            "errors": len(result.errors),
        },
        "synced": list(result.synced),
        "skipped": list(result.skipped),
        "conflicts": list(result.conflicts),
        "errors": list(result.errors),
        "read_errors": [e.model_dump() for e in run.read_errors],
        "backup_dir": result.backup_dir,
        "planned": {k: v.value for k, v in result.planned.items()},
        "state_updated": run.state_updated,
        "succeeded": run.succeeded,
    }
    if run.verify is not None:
        data["verify"] = {
            "passed": run.verify.passed,
            "checks": [c.model_dump() for c in run.verify.checks],
        }
    if run.triggers:
        data["triggers"] = [t.model_dump() for t in run.triggers]
    return data


# ------------------------------------------------------------------
# Detect / status
# ------------------------------------------------------------------


def format_detect(versions: list[str], state: SyncState) -> str:
    """List available versions, marking the last synced one."""
    if not versions:
        return "No upstream versions found."
    lines = ["Available upstream versions", "=" * 40]
    for version in versions:
        marker = " (synced)" if version == state.last_synced_version else ""
        lines.append(f"  {version}{marker}")
    lines.append("")
    if state.last_synced_version:
        when = (state.last_sync_timestamp or "unknown")[:10]
        lines.append(f"  Last synced: {state.last_synced_version} ({when})")
    else:
        lines.append(
            "  No sync history. Run `sync --bootstrap` to initialize."
        )
    return "\n".join(lines)


def detect_to_json(versions: list[str], state: SyncState) -> dict:
    return {
        "versions": versions,
        "latest": versions[-1] if versions else None,
        "current_sync": state.last_synced_version,
    }


def format_status(state: SyncState, latest: str | None) -> str:
    """Summarise the persisted baseline and whether a newer version exists."""
    lines = ["Upstream sync status", "=" * 40]
    if not state.last_synced_version:
        lines.append(
            "  No sync history. Run `sync --bootstrap` to initialize."
        )
        return "\n".join(lines)

    lines.append(f"  Last synced version:  {state.last_synced_version}")
    lines.append(f"  Last sync timestamp:  {state.last_sync_timestamp}")
    lines.append(f"  Files tracked:        {len(state.files)}")

    if state.version_history:
        lines.append("")
        lines.append("  Version history:")
        for record in state.version_history:
            info = (
                f"synced {record.synced_at[:10]}"
                if record.synced_at
                else "detected only"
            )
            lines.append(f"    {record.version}: {info}")

    lines.append("")
    if latest and latest != state.last_synced_version:
        lines.append(f"  New version available: {latest}")
    elif latest:
        lines.append(f"  Up to date with latest: {latest}")
    return "\n".join(lines)


def status_to_json(state: SyncState, latest: str | None) -> dict:
    return {
        "last_synced_version": state.last_synced_version,
        "last_sync_timestamp": state.last_sync_timestamp,
        "files_tracked": len(state.files),
        "version_history": [
            r.model_dump() for r in state.version_history
        ],
        "latest": latest,
        "update_available": bool(
            latest and latest != state.last_synced_version
        ),
    }


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(
    relative_path: str,
    upstream_dir: Path,
    local_dir: Path,
    max_lines: int = 80,
) -> str:
    """Unified diff between the local and upstream copy of one path.

    Binary or oversized files get a one-line note instead of a diff.

    Args:
        relative_path: The conflicting path.
        upstream_dir: Root of the upstream tree.
        local_dir: Root of the local tree.
        max_lines: Diff lines shown before truncating.

    Returns:
        Multi-line formatted string.
    """
    rel = relative_path
    lines = [f"Conflict: {rel}"]
    local_path = local_dir / rel
    upstream_path = upstream_dir / rel

    try:
        if (
            local_path.stat().st_size > MAX_PREVIEW_BYTES
            or upstream_path.stat().st_size > MAX_PREVIEW_BYTES
        ):
            lines.append("  (file too large to preview)")
            return "\n".join(lines)
        local = read_text_file(local_path)
        upstream = read_text_file(upstream_path)
    except OSError as exc:
        lines.append(f"  (cannot read: {exc.strerror or exc})")
        return "\n".join(lines)

    if local is None or upstream is None:
        lines.append("  (binary file, no preview)")
        return "\n".join(lines)

    diff = list(
        difflib.unified_diff(
            local[0].splitlines(keepends=True),
            upstream[0].splitlines(keepends=True),
            fromfile=f"local/{rel}",
            tofile=f"upstream/{rel}",
        )
    )
    if not diff:
        lines.append("(no textual differences)")
        return "\n".join(lines)

    shown = "".join(diff[:max_lines]).rstrip()
    lines.append(shown)
    if len(diff) > max_lines:
        lines.append(f"... ({len(diff) - max_lines} more lines)")
    return "\n".join(lines)
