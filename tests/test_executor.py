"""Tests for the sync executor.

Covers:
- plan_sync routing per status, protection and conflict strategy
- dry-run / real-run partition equivalence
- conflict strategies applied to on-disk content
- protected paths never written
- every backup completed before the first copy
- per-file copy failures collected without aborting the batch
"""

from __future__ import annotations

import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from upstream_sync.sync.executor import plan_sync, sync_batch
from upstream_sync.sync.models import (
    ConflictStrategy,
    FileDiffEntry,
    FileStatus,
    PlannedAction,
    SyncOptions,
)


def _entry(rel, status, locally_modified=False, protected=False):
    return FileDiffEntry(
        relative_path=rel,
        status=status,
        locally_modified=locally_modified,
        protected=protected,
    )


MIXED = [
    _entry("new.ts", FileStatus.ADDED),
    _entry("changed.ts", FileStatus.MODIFIED),
    _entry("both.ts", FileStatus.CONFLICT, locally_modified=True),
    _entry("same.ts", FileStatus.UNCHANGED),
    _entry("mine.ts", FileStatus.UNCHANGED, locally_modified=True),
    _entry("settings.json", FileStatus.MODIFIED, protected=True),
]


@pytest.fixture
def mixed_trees(trees, make_tree):
    """Trees matching MIXED: upstream has new content for every path."""
    upstream, local = trees
    make_tree(
        upstream,
        {
            "new.ts": "upstream new",
            "changed.ts": "upstream changed",
            "both.ts": "upstream both",
            "same.ts": "same",
            "mine.ts": "base mine",
            "settings.json": "upstream settings",
        },
    )
    make_tree(
        local,
        {
            "changed.ts": "base changed",
            "both.ts": "local both",
            "same.ts": "same",
            "mine.ts": "local mine",
            "settings.json": "local settings",
        },
    )
    return upstream, local


class TestPlanSync:
    """Routing is pure and ignores non-actionable entries."""

    def test_skip_strategy(self):
        """skip reports conflicts and syncs the rest."""
        plan = plan_sync(MIXED, ConflictStrategy.SKIP)
        assert [e.relative_path for e in plan.to_copy] == [
            "new.ts",
            "changed.ts",
        ]
        assert plan.skipped == ["settings.json"]
        assert plan.conflicts == ["both.ts"]

    def test_keep_local_strategy(self):
        """keep-local turns conflicts into skips."""
        plan = plan_sync(MIXED, ConflictStrategy.KEEP_LOCAL)
        assert plan.skipped == ["both.ts", "settings.json"]
        assert plan.conflicts == []

    def test_take_upstream_strategy(self):
        """take-upstream syncs conflicts too."""
        plan = plan_sync(MIXED, ConflictStrategy.TAKE_UPSTREAM)
        assert [e.relative_path for e in plan.to_copy] == [
            "new.ts",
            "changed.ts",
            "both.ts",
        ]
        assert plan.conflicts == []

    def test_protected_conflict_skipped_under_take_upstream(self):
        """Protected conflicts are skipped even under take-upstream."""
        entries = [
            _entry(
                "CLAUDE.md",
                FileStatus.CONFLICT,
                locally_modified=True,
                protected=True,
            )
        ]
        plan = plan_sync(entries, ConflictStrategy.TAKE_UPSTREAM)
        assert plan.to_copy == []
        assert plan.skipped == ["CLAUDE.md"]

    def test_planned_actions(self):
        """Each synced path gets its planned action."""
        plan = plan_sync(MIXED, ConflictStrategy.TAKE_UPSTREAM)
        assert plan.planned == {
            "new.ts": PlannedAction.ADD,
            "changed.ts": PlannedAction.SYNC,
            "both.ts": PlannedAction.SYNC,
        }

    def test_verbose_logs_at_info(self, caplog):
        """Verbose mode logs each decision at INFO."""
        with caplog.at_level("INFO", logger="upstream_sync.sync.executor"):
            plan_sync(MIXED, ConflictStrategy.SKIP, verbose=True)
        assert "CONFLICT (unresolved): both.ts" in caplog.text
        assert "SKIP (protected): settings.json" in caplog.text


class TestDryRunEquivalence:
    """Dry runs plan exactly what real runs do."""

    @pytest.mark.parametrize("strategy", list(ConflictStrategy))
    def test_partitions_match(self, mixed_trees, tmp_path, strategy):
        """Dry and real runs produce the same partitions."""
        upstream, local = mixed_trees
        backups = tmp_path / "backups"

        dry = sync_batch(
            MIXED,
            upstream,
            local,
            SyncOptions(dry_run=True, conflict_strategy=strategy),
            backups,
        )
        real = sync_batch(
            MIXED,
            upstream,
            local,
            SyncOptions(conflict_strategy=strategy),
            backups,
        )

        assert dry.partition() == real.partition()
        assert dry.planned == real.planned

    def test_dry_run_touches_nothing(self, mixed_trees, tmp_path):
        """A dry run writes no files or backups."""
        upstream, local = mixed_trees
        before = {p.name: p.read_bytes() for p in local.iterdir()}

        result = sync_batch(
            MIXED,
            upstream,
            local,
            SyncOptions(
                dry_run=True, conflict_strategy=ConflictStrategy.TAKE_UPSTREAM
            ),
            tmp_path / "backups",
        )

        assert result.dry_run
        assert result.backup_dir is None
        assert {p.name: p.read_bytes() for p in local.iterdir()} == before
        assert not (tmp_path / "backups").exists()


class TestRealRun:
    """Copies, backups and failures in real runs."""

    def _run(self, mixed_trees, tmp_path, strategy):
        upstream, local = mixed_trees
        return sync_batch(
            MIXED,
            upstream,
            local,
            SyncOptions(conflict_strategy=strategy),
            tmp_path / "backups",
        )

    def test_skip_leaves_conflict_untouched(self, mixed_trees, tmp_path):
        """skip leaves the conflicting file as is."""
        _, local = mixed_trees
        result = self._run(mixed_trees, tmp_path, ConflictStrategy.SKIP)

        assert sorted(result.synced) == ["changed.ts", "new.ts"]
        assert result.conflicts == ["both.ts"]
        assert not result.clean
        assert (local / "both.ts").read_text() == "local both"
        assert (local / "new.ts").read_text() == "upstream new"
        assert (local / "changed.ts").read_text() == "upstream changed"

    def test_keep_local_reports_skip(self, mixed_trees, tmp_path):
        """keep-local reports the conflict as skipped."""
        _, local = mixed_trees
        result = self._run(mixed_trees, tmp_path, ConflictStrategy.KEEP_LOCAL)

        assert "both.ts" in result.skipped
        assert result.conflicts == []
        assert result.clean
        assert (local / "both.ts").read_text() == "local both"

    def test_take_upstream_overwrites_with_backup(self, mixed_trees, tmp_path):
        """take-upstream backs up before overwriting."""
        _, local = mixed_trees
        result = self._run(
            mixed_trees, tmp_path, ConflictStrategy.TAKE_UPSTREAM
        )

        assert "both.ts" in result.synced
        assert (local / "both.ts").read_text() == "upstream both"
        backup_dir = tmp_path / "backups"
        (run_dir,) = list(backup_dir.iterdir())
        assert result.backup_dir == str(run_dir)
        assert (run_dir / "both.ts").read_text() == "local both"
        assert (run_dir / "changed.ts").read_text() == "base changed"
        assert not (run_dir / "new.ts").exists()

    @pytest.mark.parametrize("strategy", list(ConflictStrategy))
    def test_protected_path_never_written(
        self, mixed_trees, tmp_path, strategy
    ):
        """Protected paths are never written."""
        _, local = mixed_trees
        result = self._run(mixed_trees, tmp_path, strategy)

        assert "settings.json" in result.skipped
        assert "settings.json" not in result.synced
        assert (local / "settings.json").read_text() == "local settings"

    def test_unchanged_and_customized_are_ignored(self, mixed_trees, tmp_path):
        """Non-actionable entries are never touched."""
        _, local = mixed_trees
        result = self._run(
            mixed_trees, tmp_path, ConflictStrategy.TAKE_UPSTREAM
        )

        touched = set(result.synced) | set(result.skipped)
        assert "same.ts" not in touched
        assert "mine.ts" not in touched
        assert (local / "mine.ts").read_text() == "local mine"

    def test_all_backups_happen_before_first_copy(self, mixed_trees, tmp_path):
        """Every backup is taken before any copy starts."""
        upstream, local = mixed_trees
        backups = tmp_path / "backups"
        seen_at_first_copy: list[set[str]] = []

        from upstream_sync.sync import executor

        real_copy = executor.copy_file

        def recording_copy(src, dst):
            if not seen_at_first_copy:
                seen_at_first_copy.append(
                    {p.name for p in backups.rglob("*") if p.is_file()}
                )
            return real_copy(src, dst)

        with patch.object(executor, "copy_file", recording_copy):
            sync_batch(
                MIXED,
                upstream,
                local,
                SyncOptions(conflict_strategy=ConflictStrategy.TAKE_UPSTREAM),
                backups,
            )

        assert seen_at_first_copy == [{"changed.ts", "both.ts"}]

    def test_no_backup_dir_when_only_additions(self, trees, make_tree, tmp_path):
        """Pure additions create no backup directory."""
        upstream, local = trees
        make_tree(upstream, {"only-new.ts": "x"})

        result = sync_batch(
            [_entry("only-new.ts", FileStatus.ADDED)],
            upstream,
            local,
            SyncOptions(),
            tmp_path / "backups",
        )

        assert result.synced == ["only-new.ts"]
        assert result.backup_dir is None
        assert not (tmp_path / "backups").exists()

    def test_copy_failure_is_collected(self, mixed_trees, tmp_path):
        """A failed copy is recorded and the batch continues."""
        upstream, local = mixed_trees
        (upstream / "new.ts").unlink()

        result = sync_batch(
            MIXED,
            upstream,
            local,
            SyncOptions(),
            tmp_path / "backups",
        )

        assert result.synced == ["changed.ts"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("new.ts: ")
        assert "new.ts" not in result.planned

    def test_failed_backup_blocks_overwrite(self, mixed_trees, tmp_path):
        """A file whose backup failed is not overwritten."""
        upstream, local = mixed_trees

        backups = tmp_path / "backups"
        real_copy2 = shutil.copy2

        def failing_copy2(src, dst):
            if backups in Path(dst).parents:
                raise PermissionError(13, "Permission denied")
            return real_copy2(src, dst)

        with patch("shutil.copy2", failing_copy2):
            result = sync_batch(
                MIXED,
                upstream,
                local,
                SyncOptions(),
                backups,
            )

        assert result.synced == ["new.ts"]
        assert result.errors == ["changed.ts: backup failed, not overwritten"]
        assert (local / "changed.ts").read_text() == "base changed"
