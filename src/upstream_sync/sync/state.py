"""Sync state persistence layer.

Manages the JSON state file recording the baseline for every tracked path
(hash, which side it came from, when) and the version history.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Graceful corruption** -- an unreadable or unparseable state file loads
  as an empty ``SyncState`` so the next run behaves like a first run
  instead of crashing.
* **Explicit threading** -- the store only loads and saves.  The state
  object is passed through every call and mutated by the helpers below;
  nothing is held at module level.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .discovery import WalkRules, discover_files, hash_file, hash_many
from .models import FileRecord, Resolution, SyncState, VersionRecord

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncStateStore:
    """Load and save ``SyncState`` at a fixed path.

    Args:
        state_file: Path of the JSON state file.
    """

    def __init__(self, state_file: Path) -> None:
        self._state_file = state_file

    @property
    def path(self) -> Path:
        return self._state_file

    def exists(self) -> bool:
        return self._state_file.is_file()

    def load(self) -> SyncState:
        """Load state from disk.

        Returns:
            The persisted state; an empty ``SyncState`` if the file is
            missing or corrupt.
        """
        if not self._state_file.exists():
            return SyncState()
        try:
            raw = self._state_file.read_text(encoding="utf-8")
            return SyncState.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable state file %s (%s); starting with no "
                "baseline",
                self._state_file,
                exc.__class__.__name__,
            )
            return SyncState()

    def save(self, state: SyncState) -> None:
        """Persist *state* atomically.

        Writes to a temporary file in the same directory then atomically
        replaces the target.  Creates the parent directory if needed.
        """
        directory = self._state_file.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state.model_dump(mode="json"), fh, indent=2)
                fh.write("\n")
            os.replace(tmp_path, self._state_file)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Saved sync state to %s", self._state_file)


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------


def record_version(
    state: SyncState,
    version: str,
    synced_at: str | None = None,
    now: str | None = None,
) -> bool:
    """Upsert *version* in the history.

    An existing entry keeps its ``detected_at``; ``synced_at`` is only
    overwritten when a new value is given.

    Returns:
        ``True`` if a new history entry was appended.
    """
    for record in state.version_history:
        if record.version == version:
            if synced_at is not None:
                record.synced_at = synced_at
            return False
    state.version_history.append(
        VersionRecord(
            version=version,
            detected_at=now or synced_at or _utcnow(),
            synced_at=synced_at,
        )
    )
    return True


def update_sync_state(
    state: SyncState,
    synced: list[str],
    upstream_dir: Path,
    version: str,
    upstream_hashes: dict[str, str] | None = None,
) -> SyncState:
    """Record a verified sync in *state* (mutated and returned).

    Every synced path gets the upstream digest as its new baseline with
    ``resolution = upstream``.  Digests in *upstream_hashes* (the ones the
    verifier compared against) are recorded as-is; other paths are hashed
    from *upstream_dir*, and left untouched if that fails.
    """
    hashes = upstream_hashes or {}
    now = _utcnow()
    for rel in synced:
        digest = hashes.get(rel)
        if digest is None:
            try:
                digest = hash_file(upstream_dir / rel)
            except OSError as exc:
                logger.warning("Not recording baseline for %s: %s", rel, exc)
                continue
        state.files[rel] = FileRecord(
            hash=digest, resolution=Resolution.UPSTREAM, synced_at=now
        )

    state.last_synced_version = version
    state.last_sync_timestamp = now
    record_version(state, version, synced_at=now)
    return state


def bootstrap_sync_state(
    upstream_dir: Path,
    local_dir: Path,
    version: str,
    rules: WalkRules | None = None,
    workers: int = 4,
) -> SyncState:
    """Build a fresh baseline from an existing, untracked installation.

    Only paths present in **both** trees are recorded, with the *local*
    digest and ``resolution = local``.  Upstream-only paths stay out of
    ``files`` so the next diff reports them as ``added``.
    """
    now = _utcnow()
    state = SyncState(last_synced_version=version, last_sync_timestamp=now)
    record_version(state, version, synced_at=now)

    presence = discover_files(upstream_dir, local_dir, rules)
    shared = [p for p, seen in presence.items() if seen.upstream and seen.local]
    for rel, digest in hash_many(local_dir, shared, workers).items():
        if isinstance(digest, OSError):
            logger.warning("Skipping unreadable %s during bootstrap", rel)
            continue
        state.files[rel] = FileRecord(
            hash=digest, resolution=Resolution.LOCAL, synced_at=now
        )

    logger.info(
        "Bootstrapped baseline from %s: %d files tracked",
        version,
        len(state.files),
    )
    return state
