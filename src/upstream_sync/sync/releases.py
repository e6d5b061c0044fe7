"""Upstream version discovery.

Upstream releases are unpacked side by side in a releases directory::

    Releases/
        v2.3/
            .claude/        <- release_subdir
        v2.4/
            .claude/

Each ``v<number>[.<number>...]`` subdirectory is one version; versions are
ordered numerically so ``v2.10`` sorts after ``v2.9``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^v(\d+(?:\.\d+)*)$")


class UnknownVersionError(LookupError):
    """A requested release does not exist in the releases directory."""


def version_key(version: str) -> tuple[int, ...]:
    """Numeric sort key for a ``v``-prefixed version name."""
    match = _VERSION_RE.match(version)
    if not match:
        return ()
    return tuple(int(part) for part in match.group(1).split("."))


class ReleaseDirectory:
    """Resolve version identifiers to upstream tree paths.

    Args:
        releases_dir: Directory containing one subdirectory per release.
        subdir: Path inside each release holding the upstream tree; empty
            for the release root itself.
    """

    def __init__(self, releases_dir: Path, subdir: str = "") -> None:
        self._releases_dir = releases_dir
        self._subdir = subdir.strip("/")

    @property
    def releases_dir(self) -> Path:
        return self._releases_dir

    def versions(self) -> list[str]:
        """Available versions, oldest first."""
        if not self._releases_dir.is_dir():
            logger.debug("Releases directory %s missing", self._releases_dir)
            return []
        found = [
            entry.name
            for entry in self._releases_dir.iterdir()
            if entry.is_dir() and _VERSION_RE.match(entry.name)
        ]
        return sorted(found, key=version_key)

    def latest(self) -> str | None:
        versions = self.versions()
        return versions[-1] if versions else None

    def upstream_path(self, version: str) -> Path:
        """Return the upstream tree for *version*.

        Raises:
            UnknownVersionError: If the version has no release directory.
        """
        release = self._releases_dir / version
        if not _VERSION_RE.match(version) or not release.is_dir():
            available = ", ".join(self.versions()) or "none"
            raise UnknownVersionError(
                f"Unknown upstream version {version!r} "
                f"(available: {available})"
            )
        return release / self._subdir if self._subdir else release

    def resolve(self, version: str | None) -> tuple[str, Path]:
        """Resolve *version*, defaulting to the latest release.

        Raises:
            UnknownVersionError: If no version is given and none exist, or
                the given one is unknown.
        """
        if version is None:
            version = self.latest()
            if version is None:
                raise UnknownVersionError(
                    f"No upstream versions found in {self._releases_dir}"
                )
        return version, self.upstream_path(version)
