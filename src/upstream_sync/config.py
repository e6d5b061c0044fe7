"""Runtime configuration for the sync engine.

Reads filesystem locations from CLI args, environment variables, .env
files, and the YAML config hierarchy.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    UPSTREAM_SYNC_LOCAL_DIR: Root of the local installation
    UPSTREAM_SYNC_RELEASES_DIR: Directory of upstream releases
    UPSTREAM_SYNC_STATE_FILE: Baseline state file
    UPSTREAM_SYNC_BACKUP_DIR: Root of per-run backup directories
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .config_schema import UnifiedConfig
from .sync.discovery import WalkRules
from .sync.models import ConflictStrategy
from .sync.protection import PathProtector, build_protector
from .sync.triggers import PostSyncTrigger
from .sync.verifier import (
    DEFAULT_SYNTAX_CHECKERS,
    ReferenceRule,
    VerifySettings,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".upstream_sync/state.json"
DEFAULT_BACKUP_DIR = ".sync-backup"


@dataclass
class Config:
    local_dir: Path
    releases_dir: Path
    state_file: Path
    backup_dir: Path
    release_subdir: str = ""
    protect_patterns: list[str] = field(default_factory=list)
    publish_manifest: Path | None = None
    skip_dirs: list[str] = field(default_factory=list)
    skip_files: list[str] = field(default_factory=list)
    exclude_dirs: list[str] = field(default_factory=list)
    workers: int = 4
    syntax_checkers: dict[str, list[str]] = field(
        default_factory=lambda: dict(DEFAULT_SYNTAX_CHECKERS)
    )
    verify_timeout: float = 10.0
    reference_manifest: str | None = "settings.json"
    reference_pattern: str = r"hooks/[\w./-]+\.(?:ts|js|py|sh)"
    triggers: list[dict] = field(default_factory=list)
    conflict_strategy: ConflictStrategy = ConflictStrategy.SKIP
    debug: bool = False

    def walk_rules(self) -> WalkRules:
        """Traversal rules; the releases, state and backup directories are
        excluded when they live inside the local tree."""
        exclude = set(self.exclude_dirs)
        for owned in (
            self.releases_dir,
            self.state_file.parent,
            self.backup_dir,
        ):
            try:
                inside = owned.relative_to(self.local_dir)
            except ValueError:
                continue
            if inside.parts:
                exclude.add(inside.parts[0])
        return WalkRules(
            skip_dirs=frozenset(self.skip_dirs),
            skip_files=frozenset(self.skip_files),
            exclude_dirs=frozenset(exclude),
        )

    def build_protector(self) -> PathProtector:
        return build_protector(self.protect_patterns, self.publish_manifest)

    def verify_settings(self) -> VerifySettings:
        references = (
            ReferenceRule(self.reference_manifest, self.reference_pattern)
            if self.reference_manifest
            else None
        )
        return VerifySettings(
            syntax_checkers=dict(self.syntax_checkers),
            timeout=self.verify_timeout,
            references=references,
        )

    def build_triggers(self) -> list[PostSyncTrigger]:
        return [PostSyncTrigger.from_config(**t) for t in self.triggers]


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a numeric setting is out of range, the conflict
            strategy is unknown, or the state/backup locations collide.
    """
    if config.workers < 1:
        raise ValueError(
            f"Invalid worker count {config.workers}: must be at least 1"
        )
    if config.verify_timeout <= 0:
        raise ValueError(
            f"Invalid verify timeout {config.verify_timeout}: must be positive"
        )
    try:
        config.conflict_strategy = ConflictStrategy(config.conflict_strategy)
    except ValueError:
        choices = ", ".join(s.value for s in ConflictStrategy)
        raise ValueError(
            f"Invalid conflict strategy '{config.conflict_strategy}': "
            f"must be one of {choices}"
        ) from None
    if config.state_file == config.backup_dir:
        raise ValueError(
            f"State file and backup directory must differ: {config.state_file}"
        )
    for trigger in config.triggers:
        if not trigger.get("name") or not trigger.get("command"):
            raise ValueError(f"Trigger needs a name and a command: {trigger}")


def _resolve(value: str | Path, base: Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def load_config(
    local_dir: str | None = None,
    releases_dir: str | None = None,
    state_file: str | None = None,
    backup_dir: str | None = None,
    debug: bool = False,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each path (highest to lowest):
        CLI arg > env var / .env > YAML config > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        local_dir: Override local root.
        releases_dir: Override releases directory.
        state_file: Override state file path.
        backup_dir: Override backup root.
        debug: Enable debug logging (CLI flag).
        unified: Parsed YAML config; defaults when ``None``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a setting is invalid.
    """
    unified = unified or UnifiedConfig()
    paths = unified.paths

    final_local = Path(
        local_dir
        or os.getenv("UPSTREAM_SYNC_LOCAL_DIR")
        or paths.local_dir
    ).expanduser()
    final_local = final_local.resolve()

    final_releases = _resolve(
        releases_dir
        or os.getenv("UPSTREAM_SYNC_RELEASES_DIR")
        or paths.releases_dir,
        final_local,
    )
    final_state = _resolve(
        state_file
        or os.getenv("UPSTREAM_SYNC_STATE_FILE")
        or paths.state_file
        or DEFAULT_STATE_FILE,
        final_local,
    )
    final_backup = _resolve(
        backup_dir
        or os.getenv("UPSTREAM_SYNC_BACKUP_DIR")
        or paths.backup_dir
        or DEFAULT_BACKUP_DIR,
        final_local,
    )

    manifest = unified.protection.publish_manifest
    verify = unified.verify

    config = Config(
        local_dir=final_local,
        releases_dir=final_releases,
        state_file=final_state,
        backup_dir=final_backup,
        release_subdir=paths.release_subdir,
        protect_patterns=list(unified.protection.patterns),
        publish_manifest=_resolve(manifest, final_local) if manifest else None,
        skip_dirs=list(unified.discovery.skip_dirs),
        skip_files=list(unified.discovery.skip_files),
        exclude_dirs=list(unified.discovery.exclude_dirs),
        workers=unified.discovery.workers,
        syntax_checkers=(
            dict(verify.syntax_checkers)
            if verify.syntax_checkers is not None
            else dict(DEFAULT_SYNTAX_CHECKERS)
        ),
        verify_timeout=verify.timeout,
        reference_manifest=verify.reference_manifest,
        reference_pattern=verify.reference_pattern,
        triggers=[t.model_dump() for t in unified.triggers],
        conflict_strategy=unified.sync.conflict_strategy,
        debug=debug,
    )

    validate_config(config)
    return config
