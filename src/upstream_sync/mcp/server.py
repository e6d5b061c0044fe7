"""MCP Server for upstream sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents inspect and apply upstream releases through standardized tools.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import setup_logging
from ..sync.engine import UpstreamSyncEngine
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

server = Server("upstream-sync")

# Global engine instance (initialized in lifespan)
_engine: UpstreamSyncEngine | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> UpstreamSyncEngine:
    """Get the global UpstreamSyncEngine instance.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "UpstreamSyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: UpstreamSyncEngine | None) -> None:
    """Set the global UpstreamSyncEngine instance, or None to clear."""
    global _engine
    _engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available tools (mutating tools are absent in read-only mode)."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), builds the
    engine via the lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with values to override (local_dir,
            releases_dir, state_file, backup_dir, config, log_file,
            read_only)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    read_only = bool(overrides.get("read_only", False))
    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)%s",
        registry.tool_count(),
        len(ALL_SPECS),
        " in read-only mode" if read_only else "",
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of "
            f"{len(ALL_SPECS)} tools enabled",
            file=sys.stderr,
        )
    set_registry(registry)

    async with server_lifespan(config_overrides=overrides) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="upstream-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_engine(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Upstream Sync MCP Server - inspect and apply upstream releases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .upstream_sync/config.yml)
  upstream-sync-mcp

  # Point at a specific installation
  upstream-sync-mcp --local-dir ~/.claude --releases-dir ~/.claude/Releases

  # Expose only read-only tools
  upstream-sync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument("--config", help="Extra YAML config file")
    parser.add_argument("--local-dir", help="Root of the local installation")
    parser.add_argument("--releases-dir", help="Directory of upstream releases")
    parser.add_argument("--state-file", help="Baseline state file")
    parser.add_argument("--backup-dir", help="Root of per-run backups")
    parser.add_argument(
        "--log-file",
        default="/tmp/upstream-sync-mcp.log",
        help="Log file path (default: /tmp/upstream-sync-mcp.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Disable tools that modify the local installation",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"upstream-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {
        key: value
        for key, value in {
            "config": args.config,
            "local_dir": args.local_dir,
            "releases_dir": args.releases_dir,
            "state_file": args.state_file,
            "backup_dir": args.backup_dir,
            "log_file": args.log_file,
            "read_only": args.read_only,
        }.items()
        if value
    }

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
