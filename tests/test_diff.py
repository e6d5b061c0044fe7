"""Tests for three-way diff classification.

Covers:
- classify_file truth table, including missing baselines and local deletions
- generate_diff_report over real trees (read errors, orphans, protection)
- filter_report category and substring narrowing
"""

from __future__ import annotations

import os
import sys

import pytest

from upstream_sync.sync.diff import (
    classify_file,
    filter_report,
    generate_diff_report,
)
from upstream_sync.sync.discovery import InvalidTreeError
from upstream_sync.sync.models import (
    FileRecord,
    FileStatus,
    Resolution,
    SyncState,
)
from upstream_sync.sync.protection import PathProtector


def _state(hashes: dict[str, str]) -> SyncState:
    return SyncState(
        files={
            rel: FileRecord(
                hash=h, resolution=Resolution.UPSTREAM, synced_at="t"
            )
            for rel, h in hashes.items()
        }
    )


class TestClassifyFile:
    """Truth table for a single path."""

    @pytest.mark.parametrize(
        ("upstream", "local", "baseline", "expected"),
        [
            ("U", None, None, (FileStatus.ADDED, False)),
            ("B", "B", "B", (FileStatus.UNCHANGED, False)),
            ("U", "B", "B", (FileStatus.MODIFIED, False)),
            ("B", "L", "B", (FileStatus.UNCHANGED, True)),
            ("U", "L", "B", (FileStatus.CONFLICT, True)),
            # convergent change with a stale baseline stays actionable
            ("X", "X", "B", (FileStatus.MODIFIED, False)),
            # no baseline: local hash stands in for it
            ("U", "L", None, (FileStatus.MODIFIED, False)),
            ("S", "S", None, (FileStatus.UNCHANGED, False)),
            # local deletion of a tracked file
            ("B", None, "B", (FileStatus.UNCHANGED, True)),
            ("U", None, "B", (FileStatus.CONFLICT, True)),
        ],
    )
    def test_truth_table(self, upstream, local, baseline, expected):
        """classify_file matches the expected status for each case."""
        assert classify_file(upstream, local, baseline) == expected

    def test_customized_entry_is_not_actionable(self, trees, make_tree, digest):
        """A local-only edit is customized, not actionable."""
        upstream, local = trees
        make_tree(upstream, {"a.md": "base"})
        make_tree(local, {"a.md": "mine"})

        report = generate_diff_report(
            "v1", upstream, local, _state({"a.md": digest("base")})
        )

        (entry,) = report.entries
        assert entry.is_customized
        assert report.actionable == []
        assert report.customized == [entry]


class TestGenerateDiffReport:
    """Full reports from two trees and a baseline."""

    def test_scenario_from_two_trees(self, trees, make_tree, digest):
        """Added, modified, conflict and unchanged are all detected."""
        upstream, local = trees
        make_tree(
            upstream,
            {
                "hooks/guard.ts": "guard v2",
                "hooks/new.ts": "new",
                "settings.json": "{}",
                "skills/a.md": "upstream a2",
            },
        )
        make_tree(
            local,
            {
                "hooks/guard.ts": "guard v1",
                "settings.json": "{}",
                "skills/a.md": "my a",
                "notes/mine.md": "private",
            },
        )
        state = _state(
            {
                "hooks/guard.ts": digest("guard v1"),
                "settings.json": digest("{}"),
                "skills/a.md": digest("a1"),
            }
        )

        report = generate_diff_report("v2", upstream, local, state)

        by_path = {e.relative_path: e for e in report.entries}
        assert by_path["hooks/guard.ts"].status == FileStatus.MODIFIED
        assert by_path["hooks/new.ts"].status == FileStatus.ADDED
        assert by_path["settings.json"].status == FileStatus.UNCHANGED
        assert by_path["skills/a.md"].status == FileStatus.CONFLICT
        assert "notes/mine.md" not in by_path
        assert by_path["hooks/new.ts"].category == "hooks"
        assert by_path["settings.json"].category == "root"

    def test_entries_sorted_conflicts_first(self, trees, make_tree, digest):
        """Conflicts sort before other entries."""
        upstream, local = trees
        make_tree(upstream, {"a.txt": "new", "z.txt": "up"})
        make_tree(local, {"z.txt": "mine"})
        state = _state({"z.txt": digest("base")})

        report = generate_diff_report("v1", upstream, local, state)

        assert [e.status for e in report.entries] == [
            FileStatus.CONFLICT,
            FileStatus.ADDED,
        ]

    def test_records_hashes_on_entries(self, trees, make_tree, digest):
        """Entries carry upstream, local and baseline digests."""
        upstream, local = trees
        make_tree(upstream, {"f": "u"})
        make_tree(local, {"f": "l"})

        (entry,) = generate_diff_report(
            "v1", upstream, local, SyncState()
        ).entries

        assert entry.upstream_hash == digest("u")
        assert entry.local_hash == digest("l")
        assert entry.baseline_hash is None

    def test_protected_flag_is_reported(self, trees, make_tree):
        """Protected paths are flagged on their entries."""
        upstream, local = trees
        make_tree(upstream, {"settings.json": "up", "a.md": "up"})

        report = generate_diff_report(
            "v1",
            upstream,
            local,
            SyncState(),
            protector=PathProtector(["settings.json"]),
        )

        assert [e.relative_path for e in report.protected] == [
            "settings.json"
        ]

    def test_orphans_only_on_request(self, trees, make_tree):
        """Local-only files are listed only when asked for."""
        upstream, local = trees
        make_tree(upstream, {"a.md": "x"})
        make_tree(local, {"a.md": "x", "mine/b.md": "y"})

        plain = generate_diff_report("v1", upstream, local, SyncState())
        with_orphans = generate_diff_report(
            "v1", upstream, local, SyncState(), include_orphans=True
        )

        assert plain.orphans == []
        assert with_orphans.orphans == ["mine/b.md"]
        assert len(with_orphans.entries) == 1

    @pytest.mark.skipif(
        sys.platform == "win32" or os.geteuid() == 0,
        reason="permission bits not enforced",
    )
    def test_unreadable_file_becomes_read_error(self, trees, make_tree):
        """An unreadable file is reported instead of classified."""
        upstream, local = trees
        make_tree(upstream, {"ok.md": "x", "locked.md": "secret"})
        (upstream / "locked.md").chmod(0)
        try:
            report = generate_diff_report("v1", upstream, local, SyncState())
        finally:
            (upstream / "locked.md").chmod(0o644)

        assert [e.relative_path for e in report.entries] == ["ok.md"]
        assert [e.path for e in report.errors] == ["locked.md"]
        assert report.errors[0].message.startswith("upstream:")

    def test_missing_upstream_root_raises(self, tmp_path):
        """A missing upstream tree raises."""
        local = tmp_path / "local"
        local.mkdir()
        with pytest.raises(InvalidTreeError):
            generate_diff_report(
                "v1", tmp_path / "gone", local, SyncState()
            )

    def test_report_does_not_touch_disk(self, trees, make_tree):
        """Generating a report writes nothing."""
        upstream, local = trees
        make_tree(upstream, {"a.md": "new"})
        make_tree(local, {"b.md": "mine"})

        generate_diff_report("v1", upstream, local, SyncState())

        assert sorted(p.name for p in local.iterdir()) == ["b.md"]


class TestFilterReport:
    """Category and substring filtering."""

    @pytest.fixture
    def report(self, trees, make_tree):
        upstream, local = trees
        make_tree(
            upstream,
            {
                "hooks/a.ts": "1",
                "hooks/lib/b.ts": "2",
                "skills/c.md": "3",
                "top.json": "4",
            },
        )
        make_tree(local, {"hooks/only-local.ts": "5"})
        return generate_diff_report(
            "v1", upstream, local, SyncState(), include_orphans=True
        )

    def test_by_category(self, report):
        """Only entries in the category remain."""
        filtered = filter_report(report, category="hooks")
        assert sorted(e.relative_path for e in filtered.entries) == [
            "hooks/a.ts",
            "hooks/lib/b.ts",
        ]
        assert filtered.orphans == ["hooks/only-local.ts"]

    def test_root_category(self, report):
        """Top-level files belong to the root category."""
        filtered = filter_report(report, category="root")
        assert [e.relative_path for e in filtered.entries] == ["top.json"]

    def test_by_substring(self, report):
        """Only paths containing the substring remain."""
        filtered = filter_report(report, path_contains="lib/")
        assert [e.relative_path for e in filtered.entries] == [
            "hooks/lib/b.ts"
        ]

    def test_summary_reflects_filter(self, report):
        """Summary counts follow the filtered entries."""
        filtered = filter_report(report, category="skills")
        assert filtered.summary()["total"] == 1
        assert filtered.summary()["added"] == 1

    def test_no_filters_is_identity(self, report):
        """Without filters the report is unchanged."""
        assert filter_report(report).entries == report.entries
