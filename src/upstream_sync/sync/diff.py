"""Three-way diff classification of an upstream tree against a local tree.

Each path present upstream is compared against the baseline hash recorded
in ``SyncState`` at the last verified sync:

================  ==============  =========================================
local vs base     upstream vs     result
                  base
================  ==============  =========================================
same              same            ``unchanged``
same              changed         ``modified`` (safe to take upstream)
changed           same            ``unchanged`` + ``locally_modified``
                                  (a local customization, left alone)
changed           changed         ``conflict``
changed           changed, to     ``modified`` (baseline stale; re-verified
                  local content   on the next sync)
================  ==============  =========================================

Special cases, evaluated first:

* Local-only paths are never classified; they are outside upstream scope.
* Upstream-only paths with no baseline are ``added``.
* A path in both trees with no baseline takes the local hash as its
  baseline, so a first comparison never produces spurious conflicts.
* Identical upstream and local content is ``unchanged`` when it still
  matches the baseline.  When both moved away from the baseline to the same
  content (typically a sync whose verification failed) the path stays
  ``modified`` with ``locally_modified = False``: nothing local is at risk,
  and the next sync re-verifies it and records the new baseline.

Unreadable files become ``ReadError`` rows; one bad file never aborts the
report.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from .discovery import (
    WalkRules,
    categorize_path,
    discover_files,
    hash_many,
    validate_tree_root,
)
from .models import (
    DiffReport,
    FileDiffEntry,
    FileStatus,
    ReadError,
    SyncState,
)
from .protection import PathProtector

logger = logging.getLogger(__name__)

_SORT_ORDER = {
    FileStatus.CONFLICT: 0,
    FileStatus.ADDED: 1,
    FileStatus.MODIFIED: 2,
    FileStatus.UNCHANGED: 3,
}


def classify_file(
    upstream_hash: str,
    local_hash: str | None,
    baseline_hash: str | None,
) -> tuple[FileStatus, bool]:
    """Classify one upstream path.

    Args:
        upstream_hash: Digest of the upstream file (must exist).
        local_hash: Digest of the local file, ``None`` if absent.
        baseline_hash: Recorded baseline, ``None`` if never compared.

    Returns:
        ``(status, locally_modified)``.
    """
    if local_hash is None and baseline_hash is None:
        return FileStatus.ADDED, False

    if upstream_hash == local_hash:
        if baseline_hash is None or baseline_hash == upstream_hash:
            return FileStatus.UNCHANGED, False
        # stale baseline: keep actionable until a verified sync records it
        return FileStatus.MODIFIED, False

    baseline = local_hash if baseline_hash is None else baseline_hash
    locally_modified = local_hash != baseline
    upstream_changed = upstream_hash != baseline

    if not upstream_changed:
        return FileStatus.UNCHANGED, locally_modified
    if not locally_modified:
        return FileStatus.MODIFIED, False
    return FileStatus.CONFLICT, True


def generate_diff_report(
    upstream_version: str,
    upstream_dir: Path,
    local_dir: Path,
    state: SyncState,
    protector: PathProtector | None = None,
    rules: WalkRules | None = None,
    workers: int = 4,
    include_orphans: bool = False,
) -> DiffReport:
    """Compare *upstream_dir* to *local_dir* against *state*.

    Args:
        upstream_version: Version identifier recorded in the report.
        upstream_dir: Root of the upstream tree.
        local_dir: Root of the local tree.
        state: Current baseline.
        protector: Protection matcher; nothing is protected if ``None``.
        rules: Traversal exclusions.
        workers: Hashing concurrency.
        include_orphans: Also list local-only paths (never actionable).

    Returns:
        A ``DiffReport`` with entries sorted conflicts first.

    Raises:
        InvalidTreeError: If either root is not a directory.
    """
    upstream_dir = validate_tree_root(upstream_dir, "Upstream")
    local_dir = validate_tree_root(local_dir, "Local")
    protector = protector or PathProtector()

    presence = discover_files(upstream_dir, local_dir, rules)
    upstream_paths = [p for p, seen in presence.items() if seen.upstream]
    local_paths = [
        p for p, seen in presence.items() if seen.upstream and seen.local
    ]
    orphans = [
        p for p, seen in presence.items() if seen.local and not seen.upstream
    ]
    logger.debug(
        "Discovered %d upstream paths (%d also local, %d local-only)",
        len(upstream_paths),
        len(local_paths),
        len(orphans),
    )

    upstream_hashes = hash_many(upstream_dir, upstream_paths, workers)
    local_hashes = hash_many(local_dir, local_paths, workers)

    entries: list[FileDiffEntry] = []
    errors: list[ReadError] = []

    for rel in upstream_paths:
        upstream_hash = upstream_hashes[rel]
        if isinstance(upstream_hash, OSError):
            logger.warning("Cannot read upstream %s: %s", rel, upstream_hash)
            errors.append(
                ReadError(path=rel, message=f"upstream: {upstream_hash}")
            )
            continue

        local_hash = local_hashes.get(rel)
        if isinstance(local_hash, OSError):
            logger.warning("Cannot read local %s: %s", rel, local_hash)
            errors.append(ReadError(path=rel, message=f"local: {local_hash}"))
            continue

        baseline_hash = state.baseline_hash(rel)
        status, locally_modified = classify_file(
            upstream_hash, local_hash, baseline_hash
        )
        entries.append(
            FileDiffEntry(
                relative_path=rel,
                category=categorize_path(rel),
                status=status,
                locally_modified=locally_modified,
                protected=protector.is_protected(rel),
                upstream_hash=upstream_hash,
                local_hash=local_hash,
                baseline_hash=baseline_hash,
            )
        )

    entries.sort(key=lambda e: (_SORT_ORDER[e.status], e.relative_path))

    return DiffReport(
        upstream_version=upstream_version,
        timestamp=datetime.now(timezone.utc).isoformat(),
        entries=entries,
        errors=errors,
        orphans=orphans if include_orphans else [],
    )


def filter_report(
    report: DiffReport,
    category: str | None = None,
    path_contains: str | None = None,
) -> DiffReport:
    """Narrow a report to one category and/or a path substring.

    Summary counts are derived from the filtered entries.
    """

    def _keep(path: str) -> bool:
        if category and categorize_path(path) != category:
            return False
        if path_contains and path_contains not in path:
            return False
        return True

    return report.model_copy(
        update={
            "entries": [e for e in report.entries if _keep(e.relative_path)],
            "errors": [e for e in report.errors if _keep(e.path)],
            "orphans": [p for p in report.orphans if _keep(p)],
        }
    )
