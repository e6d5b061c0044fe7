"""Sync executor: route classified entries, back up, then copy.

Routing is computed once by ``plan_sync()`` and is independent of the
filesystem, so a dry run and a real run with the same inputs and strategy
always agree on which paths are synced, skipped, and left in conflict.
Only a real run touches disk:

1. Every local file about to be overwritten is backed up into one
   timestamped directory (``backup_session``).  All backups finish before
   the first copy.
2. Each planned path is copied from upstream; failures are collected per
   file and the batch continues.

A file whose backup failed is not overwritten; it is reported as an error
instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..file_handler import copy_file
from .backup import backup_session
from .models import (
    ConflictStrategy,
    FileDiffEntry,
    FileStatus,
    PlannedAction,
    SyncOptions,
    SyncResult,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """Routing of actionable entries; no I/O involved."""

    to_copy: list[FileDiffEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)

    @property
    def planned(self) -> dict[str, PlannedAction]:
        return {
            e.relative_path: (
                PlannedAction.ADD
                if e.status == FileStatus.ADDED
                else PlannedAction.SYNC
            )
            for e in self.to_copy
        }


def plan_sync(
    entries: list[FileDiffEntry],
    strategy: ConflictStrategy,
    verbose: bool = False,
) -> SyncPlan:
    """Route entries into copy / skipped / conflicts.

    Only ``added``, ``modified`` and ``conflict`` entries are considered.
    Protected entries are always skipped.  Conflicts follow *strategy*:
    ``keep-local`` skips, ``skip`` reports, ``take-upstream`` copies.
    """
    level = logging.INFO if verbose else logging.DEBUG
    plan = SyncPlan()

    for entry in entries:
        if entry.status not in (
            FileStatus.ADDED,
            FileStatus.MODIFIED,
            FileStatus.CONFLICT,
        ):
            continue
        rel = entry.relative_path

        if entry.protected:
            logger.log(level, "SKIP (protected): %s", rel)
            plan.skipped.append(rel)
            continue

        if entry.locally_modified:
            if strategy == ConflictStrategy.KEEP_LOCAL:
                logger.log(level, "SKIP (keep-local): %s", rel)
                plan.skipped.append(rel)
                continue
            if strategy == ConflictStrategy.SKIP:
                logger.log(level, "CONFLICT (unresolved): %s", rel)
                plan.conflicts.append(rel)
                continue
            logger.log(level, "TAKE UPSTREAM: %s", rel)

        plan.to_copy.append(entry)

    return plan


def sync_batch(
    entries: list[FileDiffEntry],
    upstream_dir: Path,
    local_dir: Path,
    options: SyncOptions,
    backup_root: Path,
) -> SyncResult:
    """Apply upstream changes to *local_dir*.

    Args:
        entries: Diff entries (any status; non-actionable ones are ignored).
        upstream_dir: Root of the upstream tree.
        local_dir: Root of the local tree.
        options: Dry-run flag, conflict strategy, verbosity.
        backup_root: Parent directory for the timestamped backup.

    Returns:
        A ``SyncResult``.  Per-file failures are in ``errors``; nothing is
        raised for them.
    """
    plan = plan_sync(entries, options.conflict_strategy, options.verbose)
    level = logging.INFO if options.verbose else logging.DEBUG

    if not plan.to_copy and not plan.skipped and not plan.conflicts:
        logger.info("No files to sync.")

    if options.dry_run:
        for rel, action in plan.planned.items():
            logger.info("[DRY RUN] %s: %s", action.value.upper(), rel)
        return SyncResult(
            synced=[e.relative_path for e in plan.to_copy],
            skipped=plan.skipped,
            conflicts=plan.conflicts,
            dry_run=True,
            planned=plan.planned,
        )

    synced: list[str] = []
    errors: list[str] = []

    with backup_session(backup_root, local_dir) as backup:
        at_risk = [
            e.relative_path
            for e in plan.to_copy
            if e.status != FileStatus.ADDED
        ]
        backup.back_up(at_risk)

        for entry in plan.to_copy:
            rel = entry.relative_path
            if rel in backup.failures:
                errors.append(f"{rel}: backup failed, not overwritten")
                continue
            try:
                copy_file(upstream_dir / rel, local_dir / rel)
            except OSError as exc:
                logger.error("Failed to sync %s: %s", rel, exc)
                errors.append(f"{rel}: {exc}")
                continue
            logger.log(level, "SYNCED: %s", rel)
            synced.append(rel)

    backup_dir = backup.backup_dir
    return SyncResult(
        synced=synced,
        skipped=plan.skipped,
        conflicts=plan.conflicts,
        errors=errors,
        backup_dir=str(backup_dir) if backup_dir else None,
        dry_run=False,
        planned={
            rel: action
            for rel, action in plan.planned.items()
            if rel in synced
        },
    )
