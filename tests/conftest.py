"""Shared pytest fixtures for upstream-sync tests."""

import hashlib
from dataclasses import dataclass
from pathlib import Path

import pytest

from upstream_sync.sync.engine import UpstreamSyncEngine
from upstream_sync.sync.protection import PathProtector
from upstream_sync.sync.releases import ReleaseDirectory
from upstream_sync.sync.state import SyncStateStore
from upstream_sync.sync.verifier import VerifySettings


def sha(content: str | bytes) -> str:
    """SHA-256 of *content* as the engine computes it."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def write_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    """Create *files* (relative path -> content) under *root*."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_tree():
    """Return the tree-writing helper."""
    return write_tree


@pytest.fixture
def digest():
    """Return the hashing helper."""
    return sha


@pytest.fixture
def trees(tmp_path: Path) -> tuple[Path, Path]:
    """Empty (upstream, local) directories."""
    upstream = tmp_path / "upstream"
    local = tmp_path / "local"
    upstream.mkdir()
    local.mkdir()
    return upstream, local


@dataclass
class Workspace:
    """A local installation plus a releases directory beside it."""

    root: Path
    local: Path
    releases: Path
    engine: UpstreamSyncEngine

    def release(self, version: str, files: dict[str, str | bytes]) -> Path:
        return write_tree(self.releases / version / "app", files)

    def local_files(self, files: dict[str, str | bytes]) -> Path:
        return write_tree(self.local, files)

    def read(self, rel: str) -> str:
        return (self.local / rel).read_text(encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """Engine wired to tmp_path with no syntax checkers or references."""
    local = tmp_path / "local"
    releases = tmp_path / "releases"
    local.mkdir()
    releases.mkdir()
    engine = UpstreamSyncEngine(
        local_dir=local,
        releases=ReleaseDirectory(releases, "app"),
        store=SyncStateStore(tmp_path / "state" / "sync-state.json"),
        backup_root=tmp_path / "backups",
        protector=PathProtector(),
        verify_settings=VerifySettings(syntax_checkers={}, references=None),
        workers=1,
    )
    return Workspace(
        root=tmp_path, local=local, releases=releases, engine=engine
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's UPSTREAM_SYNC_* settings out of tests."""
    for key in (
        "UPSTREAM_SYNC_CONFIG",
        "UPSTREAM_SYNC_LOCAL_DIR",
        "UPSTREAM_SYNC_RELEASES_DIR",
        "UPSTREAM_SYNC_STATE_FILE",
        "UPSTREAM_SYNC_BACKUP_DIR",
        "LOG_FILE",
    ):
        monkeypatch.delenv(key, raising=False)
