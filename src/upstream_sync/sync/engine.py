"""Core engine that orchestrates one upstream sync run.

The ``UpstreamSyncEngine`` ties together release discovery, the diff
engine, the executor, the verifier, the state store and post-sync
triggers.  A ``sync`` run:

1. Resolves the upstream version to a tree path.
2. Loads the persisted baseline (a corrupt file loads as empty).
3. Classifies every upstream path against the baseline.
4. Applies the conflict strategy and copies (or previews) changes.
5. Verifies every synced file against upstream.
6. Persists the new baseline only if every file was readable, no copy
   failed and every verification check passed.
7. Runs post-sync triggers whose prefixes match a synced path.

Per-file failures are collected into the returned objects.  Only an
invalid tree root or an unknown version raises.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .diff import filter_report, generate_diff_report
from .discovery import WalkRules, validate_tree_root
from .executor import sync_batch
from .models import DiffReport, SyncOptions, SyncRun, SyncState
from .protection import PathProtector
from .releases import ReleaseDirectory
from .state import (
    SyncStateStore,
    bootstrap_sync_state,
    record_version,
    update_sync_state,
)
from .triggers import PostSyncTrigger, run_post_sync_triggers
from .verifier import VerifySettings, verify_sync_result

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)


class UpstreamSyncEngine:
    """Synchronise one local installation from a releases directory.

    Args:
        local_dir: Root of the local tree.
        releases: Version-to-path resolver.
        store: Persistence for the baseline.
        backup_root: Parent directory of per-run backup directories.
        protector: Protected path matcher.
        rules: Traversal exclusions.
        verify_settings: Verifier configuration.
        triggers: Post-sync triggers.
        workers: Hashing concurrency.
    """

    def __init__(
        self,
        local_dir: Path,
        releases: ReleaseDirectory,
        store: SyncStateStore,
        backup_root: Path,
        protector: PathProtector | None = None,
        rules: WalkRules | None = None,
        verify_settings: VerifySettings | None = None,
        triggers: list[PostSyncTrigger] | None = None,
        workers: int = 4,
    ) -> None:
        self.local_dir = local_dir
        self.releases = releases
        self.store = store
        self.backup_root = backup_root
        self.protector = protector or PathProtector()
        self.rules = rules or WalkRules()
        self.verify_settings = verify_settings or VerifySettings()
        self.triggers = triggers or []
        self.workers = workers

    @classmethod
    def from_config(cls, config: Config) -> "UpstreamSyncEngine":
        """Build an engine from a resolved runtime ``Config``.

        Raises:
            ValueError: If the publish manifest is malformed.
        """
        return cls(
            local_dir=config.local_dir,
            releases=ReleaseDirectory(
                config.releases_dir, config.release_subdir
            ),
            store=SyncStateStore(config.state_file),
            backup_root=config.backup_dir,
            protector=config.build_protector(),
            rules=config.walk_rules(),
            verify_settings=config.verify_settings(),
            triggers=config.build_triggers(),
            workers=config.workers,
        )

    # ------------------------------------------------------------------
    # Read-only commands
    # ------------------------------------------------------------------

    def detect(self) -> tuple[list[str], SyncState]:
        """List available versions.

        Newly seen versions are recorded in the history (detected only)
        when a state file already exists.
        """
        versions = self.releases.versions()
        state = self.store.load()
        if self.store.exists():
            added = [v for v in versions if record_version(state, v)]
            if added:
                logger.info("Detected new upstream versions: %s", added)
                self.store.save(state)
        return versions, state

    def status(self) -> tuple[SyncState, str | None]:
        """Persisted baseline plus the latest available version."""
        return self.store.load(), self.releases.latest()

    def diff(
        self,
        version: str | None = None,
        category: str | None = None,
        path_contains: str | None = None,
        include_orphans: bool = False,
    ) -> DiffReport:
        """Classify the local tree against *version* (latest by default).

        Raises:
            UnknownVersionError: If the version does not exist.
            InvalidTreeError: If either tree root is invalid.
        """
        version, upstream_dir = self.releases.resolve(version)
        return self.diff_trees(
            version,
            upstream_dir,
            self.store.load(),
            category=category,
            path_contains=path_contains,
            include_orphans=include_orphans,
        )

    def diff_trees(
        self,
        version: str,
        upstream_dir: Path,
        state: SyncState,
        category: str | None = None,
        path_contains: str | None = None,
        include_orphans: bool = False,
    ) -> DiffReport:
        """Diff an explicit upstream tree against an explicit state."""
        report = generate_diff_report(
            version,
            upstream_dir,
            self.local_dir,
            state,
            protector=self.protector,
            rules=self.rules,
            workers=self.workers,
            include_orphans=include_orphans,
        )
        if category or path_contains:
            report = filter_report(report, category, path_contains)
        return report

    # ------------------------------------------------------------------
    # Mutating commands
    # ------------------------------------------------------------------

    def sync(
        self,
        version: str | None = None,
        options: SyncOptions | None = None,
        category: str | None = None,
        path_contains: str | None = None,
    ) -> SyncRun:
        """Apply *version* to the local tree and persist the outcome.

        Raises:
            UnknownVersionError: If the version does not exist.
            InvalidTreeError: If either tree root is invalid.
        """
        version, upstream_dir = self.releases.resolve(version)
        state = self.store.load()
        run = self.sync_trees(
            version,
            upstream_dir,
            state,
            options or SyncOptions(),
            category=category,
            path_contains=path_contains,
        )
        if run.state_updated:
            self.store.save(state)
        return run

    def sync_trees(
        self,
        version: str,
        upstream_dir: Path,
        state: SyncState,
        options: SyncOptions,
        category: str | None = None,
        path_contains: str | None = None,
    ) -> SyncRun:
        """Run diff, sync, verify and the gated state update.

        *state* is mutated in place when the update is allowed; the caller
        owns persisting it.
        """
        report = self.diff_trees(
            version,
            upstream_dir,
            state,
            category=category,
            path_contains=path_contains,
        )
        upstream_dir = validate_tree_root(upstream_dir, "Upstream")
        logger.info(
            "Syncing %d actionable files from %s (strategy=%s%s)",
            len(report.actionable),
            version,
            options.conflict_strategy.value,
            ", dry run" if options.dry_run else "",
        )

        result = sync_batch(
            report.actionable,
            upstream_dir,
            self.local_dir,
            options,
            self.backup_root,
        )
        read_errors = list(report.errors)
        if result.dry_run:
            return SyncRun(
                version=version, result=result, read_errors=read_errors
            )

        upstream_hashes = {
            e.relative_path: e.upstream_hash
            for e in report.entries
            if e.upstream_hash is not None
        }
        verify = verify_sync_result(
            result.synced,
            upstream_dir,
            self.local_dir,
            self.verify_settings,
            upstream_hashes,
        )

        if result.errors or read_errors or not verify.passed:
            logger.warning(
                "Sync state not updated: %d copy errors, %d read errors, "
                "verification %s",
                len(result.errors),
                len(read_errors),
                "passed" if verify.passed else "failed",
            )
            return SyncRun(
                version=version,
                result=result,
                verify=verify,
                read_errors=read_errors,
            )

        update_sync_state(
            state, result.synced, upstream_dir, version, upstream_hashes
        )

        outcomes = (
            run_post_sync_triggers(result.synced, self.triggers, self.local_dir)
            if result.synced
            else []
        )
        return SyncRun(
            version=version,
            result=result,
            verify=verify,
            state_updated=True,
            triggers=outcomes,
        )

    def bootstrap(self, version: str | None = None) -> SyncState:
        """Replace the baseline with one derived from the local tree.

        Raises:
            UnknownVersionError: If the version does not exist.
            InvalidTreeError: If either tree root is invalid.
        """
        version, upstream_dir = self.releases.resolve(version)
        upstream_dir = validate_tree_root(upstream_dir, "Upstream")
        local_dir = validate_tree_root(self.local_dir, "Local")
        state = bootstrap_sync_state(
            upstream_dir, local_dir, version, self.rules, self.workers
        )
        self.store.save(state)
        return state
