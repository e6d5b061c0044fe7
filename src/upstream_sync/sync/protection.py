"""Protected path matching.

A protected path is reported in diffs but never mutated by the executor,
whatever its status or the conflict strategy.  Patterns come from two
places:

* Glob patterns from the ``protection.patterns`` config section, matched
  with ``fnmatch`` against the POSIX relative path.
* An optional publish manifest (YAML) whose ``private:`` list names paths
  that are never published upstream and therefore must never be
  overwritten from upstream either.

Pattern forms:

* ``hooks/*.ts`` -- glob, ``*`` also crosses ``/`` (``fnmatch`` semantics).
* ``VoiceServer/`` -- trailing slash, directory prefix.
* ``settings.json`` / ``MEMORY`` -- literal, exact file or directory prefix.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_GLOB_CHARS = frozenset("*?[")


class PathProtector:
    """Decide whether a relative path is protected.

    Args:
        patterns: Protection patterns (see module docstring).
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._patterns = tuple(p.strip() for p in patterns if p.strip())

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def is_protected(self, relative_path: str) -> bool:
        """Return ``True`` if *relative_path* matches any pattern."""
        return any(
            self._matches(relative_path, pattern)
            for pattern in self._patterns
        )

    @staticmethod
    def _matches(relative_path: str, pattern: str) -> bool:
        if pattern.endswith("/"):
            return relative_path.startswith(pattern)
        if _GLOB_CHARS & set(pattern):
            return fnmatch.fnmatchcase(relative_path, pattern)
        return relative_path == pattern or relative_path.startswith(
            pattern + "/"
        )


def load_private_paths(manifest: Path) -> list[str]:
    """Read the ``private:`` list from a publish manifest.

    Args:
        manifest: Path to the YAML manifest.

    Returns:
        List of path patterns; empty when the manifest does not exist or
        has no ``private`` key.

    Raises:
        ValueError: If the manifest exists but is not valid YAML or its
            ``private`` entry is not a list of strings.
    """
    if not manifest.is_file():
        logger.debug("No publish manifest at %s", manifest)
        return []

    try:
        data = yaml.safe_load(manifest.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(
            f"Publish manifest {manifest} is not valid YAML: {exc}"
        ) from exc

    if not isinstance(data, dict):
        return []
    private = data.get("private") or []
    if not isinstance(private, list) or not all(
        isinstance(p, str) for p in private
    ):
        raise ValueError(
            f"Publish manifest {manifest}: 'private' must be a list of paths"
        )
    logger.debug(
        "Loaded %d private paths from %s", len(private), manifest
    )
    return [p.strip() for p in private]


def build_protector(
    patterns: Iterable[str], manifest: Path | None = None
) -> PathProtector:
    """Combine configured patterns with the manifest's private paths."""
    combined = list(patterns)
    if manifest is not None:
        combined.extend(load_private_paths(manifest))
    return PathProtector(combined)
