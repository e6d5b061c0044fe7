"""MCP tool handlers for upstream sync.

Defines four tools:

- ``upstream_detect`` -- list available upstream versions.
- ``upstream_diff`` -- classify the local tree against a version.
- ``upstream_sync`` -- apply a version (dry run by default).
- ``upstream_status`` -- show the persisted baseline summary.

Engine calls are blocking filesystem work, so they run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import mcp.types as types

from ...sync.engine import UpstreamSyncEngine
from ...sync.models import ConflictStrategy, SyncOptions
from ...sync.reporter import (
    detect_to_json,
    diff_report_to_json,
    format_detect,
    format_diff_report,
    format_status,
    format_sync_run,
    status_to_json,
    sync_run_to_json,
)
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_VERSION_PROPERTY = {
    "type": "string",
    "description": "Upstream version such as 'v2.4'. Defaults to the latest.",
}


def _result(text: str, structured: dict) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def _optional_str(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_detect(
    engine: UpstreamSyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    versions, state = await asyncio.to_thread(engine.detect)
    return _result(
        format_detect(versions, state), detect_to_json(versions, state)
    )


async def _handle_diff(
    engine: UpstreamSyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    report = await asyncio.to_thread(
        engine.diff,
        _optional_str(args, "version"),
        category=_optional_str(args, "category"),
        path_contains=_optional_str(args, "path"),
        include_orphans=bool(args.get("show_orphans", False)),
    )
    return _result(format_diff_report(report), diff_report_to_json(report))


async def _handle_sync(
    engine: UpstreamSyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    conflict = args.get("conflict", ConflictStrategy.SKIP.value)
    try:
        strategy = ConflictStrategy(conflict)
    except ValueError:
        choices = ", ".join(s.value for s in ConflictStrategy)
        raise ValueError(
            f"Invalid conflict strategy '{conflict}': must be one of {choices}"
        ) from None

    options = SyncOptions(
        dry_run=bool(args.get("dry_run", True)),
        conflict_strategy=strategy,
    )
    run = await asyncio.to_thread(
        engine.sync,
        _optional_str(args, "version"),
        options,
        category=_optional_str(args, "category"),
        path_contains=_optional_str(args, "path"),
    )
    logger.info(
        "upstream_sync %s: %d synced, state_updated=%s",
        run.version,
        len(run.result.synced),
        run.state_updated,
    )
    return _result(format_sync_run(run), sync_run_to_json(run))


async def _handle_status(
    engine: UpstreamSyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    state, latest = await asyncio.to_thread(engine.status)
    return _result(format_status(state, latest), status_to_json(state, latest))


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_FILTER_PROPERTIES = {
    "category": {
        "type": "string",
        "description": "Only paths whose first segment matches "
        "('root' for top-level files)",
    },
    "path": {
        "type": "string",
        "description": "Only paths containing this substring",
    },
}

UPSTREAM_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="upstream_detect",
            description=(
                "List upstream versions available in the releases directory "
                "and the version last synced."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        handler=_handle_detect,
    ),
    ToolSpec(
        tool=types.Tool(
            name="upstream_diff",
            description=(
                "Classify every upstream file as unchanged, added, modified "
                "or conflict against the local installation. Never writes."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "version": _VERSION_PROPERTY,
                    **_FILTER_PROPERTIES,
                    "show_orphans": {
                        "type": "boolean",
                        "default": False,
                        "description": "Also list local-only files",
                    },
                },
                "required": [],
            },
        ),
        handler=_handle_diff,
    ),
    ToolSpec(
        tool=types.Tool(
            name="upstream_sync",
            description=(
                "Apply upstream changes to the local installation. Local "
                "files are backed up before being overwritten; protected "
                "files are never touched. Defaults to a dry run."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "version": _VERSION_PROPERTY,
                    "dry_run": {
                        "type": "boolean",
                        "default": True,
                        "description": "Preview changes without applying them",
                    },
                    "conflict": {
                        "type": "string",
                        "enum": [s.value for s in ConflictStrategy],
                        "default": ConflictStrategy.SKIP.value,
                        "description": "How to treat files changed on both sides",
                    },
                    **_FILTER_PROPERTIES,
                },
                "required": [],
            },
        ),
        handler=_handle_sync,
        mutating=True,
    ),
    ToolSpec(
        tool=types.Tool(
            name="upstream_status",
            description=(
                "Show the last synced version, tracked file count, version "
                "history and whether a newer version is available."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        handler=_handle_status,
    ),
]
