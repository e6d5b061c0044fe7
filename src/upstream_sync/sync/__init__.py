"""Selective upstream synchronisation engine.

Public API for bringing a customised local installation up to date with a
newer upstream release, one file at a time.

Architecture
------------
Every upstream path is classified with a **three-way comparison**: the
upstream digest and the local digest are each compared against the
baseline digest recorded at the last verified sync.  Only paths where
upstream alone moved are safe to copy; paths where both sides moved are
conflicts and follow an explicit strategy.  The baseline is rewritten
only after the copied files have been verified.

Modules:

- ``engine``     -- ``UpstreamSyncEngine``: orchestrates a full run.
- ``discovery``  -- tree walking and SHA-256 hashing.
- ``diff``       -- ``generate_diff_report``: three-way classification.
- ``executor``   -- ``sync_batch``: routing, backups and copies.
- ``backup``     -- ``backup_session``: scoped pre-sync backups.
- ``verifier``   -- ``verify_sync_result``: post-sync checks.
- ``state``      -- ``SyncStateStore``: load/save the baseline.
- ``releases``   -- ``ReleaseDirectory``: version discovery.
- ``protection`` -- ``PathProtector``: never-mutated paths.
- ``triggers``   -- post-sync commands.
- ``reporter``   -- human-readable and JSON report formatting.
- ``models``     -- data contracts.

Usage example
-------------
::

    from pathlib import Path
    from upstream_sync.sync import (
        ConflictStrategy, ReleaseDirectory, SyncOptions, SyncStateStore,
        UpstreamSyncEngine, format_sync_run,
    )

    local = Path("~/.claude").expanduser()
    engine = UpstreamSyncEngine(
        local_dir=local,
        releases=ReleaseDirectory(local / "Releases", ".claude"),
        store=SyncStateStore(local / ".upstream_sync" / "state.json"),
        backup_root=local / ".sync-backup",
    )

    preview = engine.sync(options=SyncOptions(dry_run=True))
    print(format_sync_run(preview))

    run = engine.sync(
        options=SyncOptions(conflict_strategy=ConflictStrategy.KEEP_LOCAL)
    )
    print(format_sync_run(run))
"""

from .diff import classify_file, filter_report, generate_diff_report
from .discovery import InvalidTreeError, WalkRules
from .engine import UpstreamSyncEngine
from .executor import plan_sync, sync_batch
from .models import (
    ConflictStrategy,
    DiffReport,
    FileDiffEntry,
    FileStatus,
    SyncOptions,
    SyncResult,
    SyncRun,
    SyncState,
    VerifyCheck,
    VerifyResult,
)
from .protection import PathProtector
from .releases import ReleaseDirectory, UnknownVersionError
from .reporter import (
    diff_report_to_json,
    format_diff_report,
    format_sync_run,
    sync_run_to_json,
)
from .state import SyncStateStore, bootstrap_sync_state, update_sync_state
from .verifier import ParsedError, ParsedOk, verify_sync_result

__all__ = [
    "ConflictStrategy",
    "DiffReport",
    "FileDiffEntry",
    "FileStatus",
    "InvalidTreeError",
    "ParsedError",
    "ParsedOk",
    "PathProtector",
    "ReleaseDirectory",
    "SyncOptions",
    "SyncResult",
    "SyncRun",
    "SyncState",
    "SyncStateStore",
    "UnknownVersionError",
    "UpstreamSyncEngine",
    "VerifyCheck",
    "VerifyResult",
    "WalkRules",
    "bootstrap_sync_state",
    "classify_file",
    "diff_report_to_json",
    "filter_report",
    "format_diff_report",
    "format_sync_run",
    "generate_diff_report",
    "plan_sync",
    "sync_batch",
    "sync_run_to_json",
    "update_sync_state",
    "verify_sync_result",
]
