"""Pydantic models for the upstream sync engine.

Defines the core data contracts used across all sync modules:

- ``FileStatus``: Three-way classification of one path.
- ``ConflictStrategy``: Operator policy for paths changed on both sides.
- ``FileDiffEntry``: Classification of a single relative path.
- ``DiffReport``: All entries for one upstream version plus read errors.
- ``SyncOptions`` / ``SyncResult``: Executor input and outcome.
- ``VerifyCheck`` / ``VerifyResult``: Post-sync verification outcome.
- ``SyncState``: The persisted baseline (path -> hash) and version history.

Report models are frozen (immutable).  ``SyncState`` is deliberately
mutable: callers thread one instance through a run and persist it once.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class FileStatus(str, Enum):
    """Three-way classification of a path against its baseline."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    CONFLICT = "conflict"


class ConflictStrategy(str, Enum):
    """How the executor treats paths changed on both sides."""

    KEEP_LOCAL = "keep-local"
    TAKE_UPSTREAM = "take-upstream"
    SKIP = "skip"


class Resolution(str, Enum):
    """Which side a recorded baseline hash was taken from."""

    UPSTREAM = "upstream"
    LOCAL = "local"


class PlannedAction(str, Enum):
    """Action the executor takes (or would take) for one path."""

    ADD = "add"
    SYNC = "sync"


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class FileDiffEntry(BaseModel):
    """Classification of one relative path present upstream.

    Attributes:
        relative_path: POSIX-style path relative to both tree roots.
        category: First path segment (``"root"`` for top-level files).
        status: Three-way status label.
        locally_modified: Local content differs from the baseline.
        protected: Path matches a protection pattern; never mutated.
        upstream_hash: Digest of the upstream file.
        local_hash: Digest of the local file, ``None`` if absent.
        baseline_hash: Digest recorded at the last sync, ``None`` if the
            path was never compared before.
    """

    relative_path: str
    category: str = "root"
    status: FileStatus
    locally_modified: bool = False
    protected: bool = False
    upstream_hash: str | None = None
    local_hash: str | None = None
    baseline_hash: str | None = None

    model_config = {"frozen": True}

    @property
    def is_customized(self) -> bool:
        """Only the local side changed; informational, never actionable."""
        return (
            self.status == FileStatus.UNCHANGED and self.locally_modified
        )


class ReadError(BaseModel):
    """A path that could not be hashed or read."""

    path: str
    message: str

    model_config = {"frozen": True}


class DiffReport(BaseModel):
    """Classified entries for one upstream version.

    Attributes:
        upstream_version: Version identifier of the upstream tree.
        timestamp: ISO 8601 timestamp when the report was generated.
        entries: One entry per path present upstream.
        errors: Paths that could not be read, never classified.
        orphans: Local-only paths; only populated on request.
    """

    upstream_version: str
    timestamp: str
    entries: list[FileDiffEntry] = []
    errors: list[ReadError] = []
    orphans: list[str] = []

    model_config = {"frozen": True}

    def with_status(self, status: FileStatus) -> list[FileDiffEntry]:
        return [e for e in self.entries if e.status == status]

    @property
    def actionable(self) -> list[FileDiffEntry]:
        """Entries the executor considers: added, modified, conflict."""
        return [
            e
            for e in self.entries
            if e.status
            in (FileStatus.ADDED, FileStatus.MODIFIED, FileStatus.CONFLICT)
        ]

    @property
    def customized(self) -> list[FileDiffEntry]:
        return [e for e in self.entries if e.is_customized]

    @property
    def protected(self) -> list[FileDiffEntry]:
        return [e for e in self.entries if e.protected]

    def summary(self) -> dict[str, int]:
        """Counts by classification."""
        return {
            "total": len(self.entries),
            "unchanged": len(self.with_status(FileStatus.UNCHANGED)),
            "customized": len(self.customized),
            "modified": len(self.with_status(FileStatus.MODIFIED)),
            "added": len(self.with_status(FileStatus.ADDED)),
            "conflicts": len(self.with_status(FileStatus.CONFLICT)),
            "protected": len(self.protected),
            "errors": len(self.errors),
            "orphans": len(self.orphans),
        }


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class SyncOptions(BaseModel):
    """Executor options.

    Attributes:
        dry_run: Plan only; never touch disk.
        conflict_strategy: Policy for conflicting paths.
        verbose: Log every routing decision at INFO instead of DEBUG.
    """

    dry_run: bool = False
    conflict_strategy: ConflictStrategy = ConflictStrategy.SKIP
    verbose: bool = False

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of one executor run.

    Attributes:
        synced: Paths copied from upstream (or that would be, in a dry run).
        skipped: Protected paths and conflicts kept local.
        conflicts: Conflicts left unresolved under the ``skip`` strategy.
        errors: ``"<path>: <reason>"`` strings for failed copies.
        backup_dir: Directory holding pre-sync copies, if any were made.
        dry_run: Whether this was a preview.
        planned: Action per synced path.
    """

    synced: list[str] = []
    skipped: list[str] = []
    conflicts: list[str] = []
    errors: list[str] = []
    backup_dir: str | None = None
    dry_run: bool = False
    planned: dict[str, PlannedAction] = {}

    model_config = {"frozen": True}

    def partition(self) -> tuple[frozenset, frozenset, frozenset]:
        """Order-independent ``(synced, skipped, conflicts)`` view."""
        return (
            frozenset(self.synced),
            frozenset(self.skipped),
            frozenset(self.conflicts),
        )

    @property
    def clean(self) -> bool:
        """No copy errors and no unresolved conflicts."""
        return not self.errors and not self.conflicts


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


class VerifyCheck(BaseModel):
    """One independent post-sync check."""

    file: str
    check: str
    passed: bool
    message: str

    model_config = {"frozen": True}


class VerifyResult(BaseModel):
    """All checks for one sync run; ``passed`` is their conjunction."""

    checks: list[VerifyCheck] = []

    model_config = {"frozen": True}

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failed(self) -> list[VerifyCheck]:
        return [c for c in self.checks if not c.passed]


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class FileRecord(BaseModel):
    """Baseline for one path."""

    hash: str
    resolution: Resolution
    synced_at: str


class VersionRecord(BaseModel):
    """One entry of the append-only version history."""

    version: str
    detected_at: str
    synced_at: str | None = None


class SyncState(BaseModel):
    """What was last known to be in sync.

    Invariant: a path appears in ``files`` only if it was present in both
    trees at some prior comparison.
    """

    last_synced_version: str | None = None
    last_sync_timestamp: str | None = None
    files: dict[str, FileRecord] = Field(default_factory=dict)
    version_history: list[VersionRecord] = Field(default_factory=list)

    def baseline_hash(self, relative_path: str) -> str | None:
        record = self.files.get(relative_path)
        return record.hash if record else None


class TriggerOutcome(BaseModel):
    """Result of running one post-sync trigger."""

    name: str
    matched: list[str] = []
    success: bool
    returncode: int | None = None
    message: str = ""

    model_config = {"frozen": True}


class SyncRun(BaseModel):
    """Everything one ``sync`` invocation produced.

    Attributes:
        version: Upstream version applied.
        result: Executor outcome.
        verify: Verification outcome; ``None`` for dry runs.
        read_errors: Paths the diff could not read; never synced, and
            they block the baseline update.
        state_updated: Whether the baseline was rewritten.
        triggers: Post-sync trigger outcomes.
    """

    version: str
    result: SyncResult
    verify: VerifyResult | None = None
    read_errors: list[ReadError] = []
    state_updated: bool = False
    triggers: list[TriggerOutcome] = []

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        verified = self.verify is None or self.verify.passed
        return self.result.clean and verified and not self.read_errors
