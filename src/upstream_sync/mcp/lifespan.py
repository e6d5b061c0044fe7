"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config, to_runtime_config
from ..sync.discovery import validate_tree_root
from ..sync.engine import UpstreamSyncEngine

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load the YAML config hierarchy
    - Merge all sources: CLI > env vars > .env > YAML > defaults
    - Build the engine and check the local tree exists
    - Fail fast on invalid configuration

    Args:
        config_overrides: Optional dict with values from CLI (local_dir,
            releases_dir, state_file, backup_dir, config)

    Yields:
        Dict with 'engine' key containing the initialized UpstreamSyncEngine

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("Upstream Sync MCP Server starting...")
    overrides = config_overrides or {}

    try:
        load_dotenv()

        extra = overrides.get("config")
        raw = load_hierarchical_config(Path(extra) if extra else None)
        unified = build_config(raw)
        config = to_runtime_config(unified, cli_overrides=overrides)
        validate_tree_root(config.local_dir, "Local")
        engine = UpstreamSyncEngine.from_config(config)
    except (ValueError, FileNotFoundError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    sources = [str(p) for p in discover_config_files()]
    logger.info(
        "Local tree: %s, releases: %s, config files: %s",
        config.local_dir,
        config.releases_dir,
        sources or "none",
    )
    _stderr_print(f"Local tree: {config.local_dir}")

    try:
        yield {"engine": engine, "config": config}
    finally:
        logger.info("MCP server shutting down")
