"""Scoped pre-sync backups.

``backup_session()`` is a context manager around one timestamped backup
directory.  The executor backs up every at-risk local file through the
session *before* it starts copying, so by the time the first destructive
write happens the backup set is complete.  Backups are best-effort per
file: a failure is logged and recorded, and the remaining files are still
backed up.

The backup directory is created lazily, so a run that overwrites nothing
leaves no empty directory behind.  On exit the session logs where the
backup lives; it never suppresses exceptions from the body.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class BackupSession:
    """Copies local files into a single timestamped backup directory.

    Args:
        backup_root: Parent directory holding one subdirectory per run.
        local_dir: Root of the local tree files are copied from.
        now: Timestamp used for the directory name (UTC now by default).
    """

    def __init__(
        self,
        backup_root: Path,
        local_dir: Path,
        now: datetime | None = None,
    ) -> None:
        self._backup_root = backup_root
        self._local_dir = local_dir
        self._stamp = (now or datetime.now(timezone.utc)).strftime(
            "%Y-%m-%dT%H-%M-%S"
        )
        self._backup_dir: Path | None = None
        self.backed_up: list[str] = []
        self.failures: dict[str, str] = {}

    @property
    def backup_dir(self) -> Path | None:
        """The directory, once at least one file has been backed up."""
        return self._backup_dir if self.backed_up else None

    def back_up(self, relative_paths: Iterable[str]) -> None:
        """Back up each existing local file; missing files are ignored."""
        for rel in relative_paths:
            source = self._local_dir / rel
            if not source.is_file():
                continue
            try:
                target = self._ensure_dir() / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
            except OSError as exc:
                logger.warning("Could not back up %s: %s", rel, exc)
                self.failures[rel] = str(exc)
                continue
            self.backed_up.append(rel)

    def _ensure_dir(self) -> Path:
        if self._backup_dir is None:
            candidate = self._backup_root / self._stamp
            suffix = 1
            while candidate.exists():
                candidate = self._backup_root / f"{self._stamp}-{suffix}"
                suffix += 1
            candidate.mkdir(parents=True)
            self._backup_dir = candidate
        return self._backup_dir

    def _discard_if_empty(self) -> None:
        if self._backup_dir is not None and not self.backed_up:
            shutil.rmtree(self._backup_dir, ignore_errors=True)
            self._backup_dir = None


@contextmanager
def backup_session(
    backup_root: Path, local_dir: Path, now: datetime | None = None
) -> Iterator[BackupSession]:
    """Open a ``BackupSession`` and report its outcome on exit."""
    session = BackupSession(backup_root, local_dir, now=now)
    try:
        yield session
    finally:
        session._discard_if_empty()
        if session.backup_dir is not None:
            logger.info(
                "Backed up %d files to %s",
                len(session.backed_up),
                session.backup_dir,
            )
        if session.failures:
            logger.warning(
                "%d files could not be backed up", len(session.failures)
            )
