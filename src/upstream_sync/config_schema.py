"""Unified configuration schema for upstream_sync.

Defines Pydantic models for the config file structure, one section per
concern.  Every section has defaults so an empty file (or no file at all)
is valid.  Includes the adapter that turns the file-level schema into the
runtime ``Config`` dataclass.

Usage:
    from upstream_sync.config_schema import build_config, to_runtime_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_runtime_config(unified, cli_overrides={"local_dir": "..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

from .sync.discovery import DEFAULT_SKIP_DIRS, DEFAULT_SKIP_FILES
from .sync.models import ConflictStrategy
from .sync.verifier import DEFAULT_REFERENCE_PATTERN

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class PathsConfig(BaseModel):
    """Filesystem locations.

    Relative ``releases_dir``, ``state_file`` and ``backup_dir`` values are
    resolved against ``local_dir``.
    """

    local_dir: str = Field(
        default="~/.claude", description="Root of the local installation"
    )
    releases_dir: str = Field(
        default="Releases",
        description="Directory holding one subdirectory per upstream version",
    )
    release_subdir: str = Field(
        default=".claude",
        description="Path of the upstream tree inside each release",
    )
    state_file: str | None = Field(
        default=None,
        description="Baseline file (default: .upstream_sync/state.json)",
    )
    backup_dir: str | None = Field(
        default=None, description="Backup root (default: .sync-backup)"
    )

    model_config = {"frozen": True}


class ProtectionConfig(BaseModel):
    """Paths that are never mutated by a sync."""

    patterns: list[str] = Field(
        default_factory=list, description="Glob or prefix patterns"
    )
    publish_manifest: str | None = Field(
        default=None,
        description="YAML manifest whose 'private' list is also protected",
    )

    model_config = {"frozen": True}


class DiscoveryConfig(BaseModel):
    """Traversal exclusions and hashing concurrency."""

    skip_dirs: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_SKIP_DIRS),
        description="Directory names never traversed",
    )
    skip_files: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_SKIP_FILES),
        description="File names never discovered",
    )
    exclude_dirs: list[str] = Field(
        default_factory=list,
        description="Local-only top-level directories",
    )
    workers: int = Field(
        default=4, ge=1, le=64, description="Parallel hashing threads (1-64)"
    )

    model_config = {"frozen": True}


class VerifyConfig(BaseModel):
    """Post-sync verification settings."""

    syntax_checkers: dict[str, list[str]] | None = Field(
        default=None,
        description="Extension -> argv with a {path} placeholder; "
        "null keeps the built-in checkers",
    )
    timeout: float = Field(
        default=10.0, gt=0, description="Seconds per syntax check"
    )
    reference_manifest: str | None = Field(
        default="settings.json",
        description="Manifest whose file references must resolve",
    )
    reference_pattern: str = Field(
        default=DEFAULT_REFERENCE_PATTERN,
        description="Regex matching one reference inside the manifest",
    )

    model_config = {"frozen": True}

    @field_validator("syntax_checkers")
    @classmethod
    def _checkers_have_placeholder(
        cls, value: dict[str, list[str]] | None
    ) -> dict[str, list[str]] | None:
        if value is None:
            return value
        normalised: dict[str, list[str]] = {}
        for ext, argv in value.items():
            if not argv:
                raise ValueError(f"Syntax checker for {ext!r} is empty")
            if not any("{path}" in arg for arg in argv):
                raise ValueError(
                    f"Syntax checker for {ext!r} must contain '{{path}}'"
                )
            key = ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            normalised[key] = argv
        return normalised


class TriggerConfig(BaseModel):
    """One post-sync trigger."""

    name: str
    prefixes: list[str] = Field(min_length=1)
    command: str | list[str]
    timeout: float = Field(default=30.0, gt=0)

    model_config = {"frozen": True}


class SyncSectionConfig(BaseModel):
    """Sync defaults."""

    conflict_strategy: ConflictStrategy = Field(
        default=ConflictStrategy.SKIP,
        description="keep-local, take-upstream or skip",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    paths: PathsConfig = Field(default_factory=PathsConfig)
    protection: ProtectionConfig = Field(default_factory=ProtectionConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    triggers: list[TriggerConfig] = Field(default_factory=list)
    sync: SyncSectionConfig = Field(default_factory=SyncSectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Raises:
        pydantic.ValidationError: If a section is malformed (this is a
            ``ValueError`` subclass).
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> runtime Config dataclass
# ---------------------------------------------------------------------------


def to_runtime_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Resolve a ``UnifiedConfig`` into the runtime ``Config``.

    Path precedence: CLI override > environment variable > config file >
    built-in default.  See ``config.load_config``.
    """
    # Import here to avoid circular imports (config.py imports config_schema)
    from .config import load_config

    overrides = cli_overrides or {}
    return load_config(
        local_dir=overrides.get("local_dir"),
        releases_dir=overrides.get("releases_dir"),
        state_file=overrides.get("state_file"),
        backup_dir=overrides.get("backup_dir"),
        debug=overrides.get("debug", False),
        unified=unified,
    )
