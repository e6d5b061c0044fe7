"""ToolSpec and ToolRegistry for MCP tool dispatch.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, whether the tool
  mutates the local tree, and an async handler with standardized signature
  (engine, args) -> CallToolResult.
- ToolRegistry: Drops mutating specs in read-only mode at construction
  time, then provides list_tools() and call_tool() dispatch with error
  translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...sync.engine import UpstreamSyncEngine
from ...sync.releases import UnknownVersionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        handler: Async handler with signature (engine, args) -> CallToolResult.
        mutating: Whether the tool can write to the local tree or state.
    """

    tool: types.Tool
    handler: Callable[
        [UpstreamSyncEngine, dict], Awaitable[types.CallToolResult]
    ]
    mutating: bool = False


class ToolRegistry:
    """Registry of ToolSpecs.

    In read-only mode, mutating specs are never registered, so they are
    neither listed nor callable.
    """

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {
            spec.tool.name: spec
            for spec in specs
            if not (read_only and spec.mutating)
        }

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        engine: UpstreamSyncEngine,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Translates unknown versions, validation errors and unexpected
        exceptions into structured CallToolResult responses with corrective
        actions.

        Raises:
            ValueError: If tool name is not registered (unknown or
                disabled in read-only mode).
        """
        from .errors import build_error_response

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(engine, args)
        except UnknownVersionError as e:
            return build_error_response(
                "not_found",
                str(e),
                "Use upstream_detect to list available versions.",
            )
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and configured paths, then retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log file and retry.",
            )
