"""File discovery and content hashing for upstream sync.

Walks the upstream and local trees, producing POSIX-style relative paths,
and computes SHA-256 digests of raw file bytes.  Hashing is byte-exact (no
normalisation) so that a post-sync hash match proves the local file is an
identical copy of upstream.

Traversal never descends into VCS metadata, dependency caches, or the
backup directory, and skips configured local-only top-level directories
that by definition never exist upstream.
"""

from __future__ import annotations

import hashlib
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SKIP_DIRS = frozenset(
    {".git", "node_modules", "__pycache__", ".sync-backup", ".upstream_sync"}
)
DEFAULT_SKIP_FILES = frozenset(
    {".DS_Store", "bun.lock", "bun.lockb", "Thumbs.db"}
)

_CHUNK_SIZE = 64 * 1024


class InvalidTreeError(ValueError):
    """An upstream or local root is missing or not a directory."""


@dataclass(frozen=True)
class WalkRules:
    """Names excluded from traversal.

    Attributes:
        skip_dirs: Directory names skipped at any depth.
        skip_files: File names skipped at any depth.
        exclude_dirs: Top-level directory names skipped (local-only data).
    """

    skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRS
    skip_files: frozenset[str] = DEFAULT_SKIP_FILES
    exclude_dirs: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Presence:
    """Which trees contain a relative path."""

    upstream: bool
    local: bool


def validate_tree_root(path: Path | str, label: str) -> Path:
    """Return *path* resolved, or raise if it is not a directory.

    Raises:
        InvalidTreeError: If the directory does not exist.
    """
    root = Path(path).expanduser()
    if not root.exists():
        raise InvalidTreeError(f"{label} directory not found: {root}")
    if not root.is_dir():
        raise InvalidTreeError(f"{label} path is not a directory: {root}")
    return root.resolve()


def walk_tree(root: Path, rules: WalkRules | None = None) -> list[str]:
    """Return sorted relative paths of every regular file under *root*.

    Unreadable directories are logged and skipped.
    """
    rules = rules or WalkRules()
    if not root.is_dir():
        return []

    def _on_error(exc: OSError) -> None:
        logger.warning("Cannot list %s: %s", exc.filename, exc.strerror)

    results: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current = Path(dirpath)
        at_top = current == root
        dirnames[:] = [
            d
            for d in dirnames
            if d not in rules.skip_dirs
            and not (at_top and d in rules.exclude_dirs)
        ]
        for name in filenames:
            if name in rules.skip_files:
                continue
            rel = (current / name).relative_to(root).as_posix()
            results.append(rel)
    return sorted(results)


def discover_files(
    upstream_dir: Path,
    local_dir: Path,
    rules: WalkRules | None = None,
) -> dict[str, Presence]:
    """Map the union of relative paths in both trees to their presence."""
    upstream = set(walk_tree(upstream_dir, rules))
    local = set(walk_tree(local_dir, rules))
    return {
        rel: Presence(upstream=rel in upstream, local=rel in local)
        for rel in sorted(upstream | local)
    }


def hash_file(path: Path) -> str:
    """Return the SHA-256 hex digest of the bytes of *path*.

    Raises:
        OSError: If the file cannot be read.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_many(
    root: Path, relative_paths: list[str], workers: int = 4
) -> dict[str, str | OSError]:
    """Hash many files under *root* concurrently.

    Returns:
        Mapping of relative path to digest, or to the ``OSError`` raised
        while reading it.  Order of evaluation is irrelevant to callers.
    """

    def _one(rel: str) -> str | OSError:
        try:
            return hash_file(root / rel)
        except OSError as exc:
            return exc

    if workers <= 1 or len(relative_paths) <= 1:
        return {rel: _one(rel) for rel in relative_paths}

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return dict(zip(relative_paths, pool.map(_one, relative_paths)))


def categorize_path(relative_path: str) -> str:
    """First path segment, or ``"root"`` for top-level files."""
    head, sep, _ = relative_path.partition("/")
    return head if sep else "root"
