"""Tests for tool registration and routing in the MCP server.

Verifies:
- Global accessors raise before the lifespan has run
- Upstream tools appear in handle_list_tools with correct schemas
- Tool calls route to the engine via ToolRegistry
- Unknown and filtered-out tools return an error response

Note: Detailed handler behavior is tested in
tests/test_mcp/tools/test_upstream.py -- this file only tests the server
routing layer.
"""

import asyncio
from unittest.mock import MagicMock

import mcp.types as types
import pytest

from upstream_sync.mcp.server import (
    get_engine,
    get_registry,
    handle_call_tool,
    handle_list_tools,
    set_engine,
    set_registry,
)
from upstream_sync.mcp.tools import ALL_SPECS
from upstream_sync.mcp.tools.registry import ToolRegistry
from upstream_sync.sync.models import SyncState


def _init(read_only: bool = False):
    set_registry(ToolRegistry(ALL_SPECS, read_only=read_only))
    engine = MagicMock()
    engine.detect.return_value = (["v1", "v2"], SyncState())
    set_engine(engine)
    return engine


def _clear():
    set_engine(None)
    set_registry(None)


class TestGlobalAccessors:
    """Test module-level engine and registry accessors."""

    def test_engine_not_initialized(self):
        """get_engine raises before startup."""
        _clear()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()

    def test_registry_not_initialized(self):
        """get_registry raises before startup."""
        _clear()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_registry()

    def test_set_and_get(self):
        """Values set at startup are returned."""
        engine = _init()
        try:
            assert get_engine() is engine
            assert get_registry().tool_count() == len(ALL_SPECS)
        finally:
            _clear()


class TestToolRegistration:
    """Test upstream tools are registered in handle_list_tools."""

    def setup_method(self):
        _init()

    def teardown_method(self):
        _clear()

    def test_upstream_tools_registered(self):
        """All upstream tools are listed."""
        tools = asyncio.run(handle_list_tools())
        tool_names = [t.name for t in tools]

        assert "upstream_detect" in tool_names
        assert "upstream_diff" in tool_names
        assert "upstream_sync" in tool_names
        assert "upstream_status" in tool_names

    def test_tools_have_object_schemas(self):
        """Every tool has an object input schema."""
        tools = asyncio.run(handle_list_tools())
        for tool in tools:
            assert isinstance(tool, types.Tool)
            assert tool.inputSchema["type"] == "object"


class TestToolRouting:
    """Test handle_call_tool dispatch."""

    def teardown_method(self):
        _clear()

    def test_detect_routes_to_engine(self):
        """upstream_detect reaches the engine."""
        engine = _init()

        result = asyncio.run(handle_call_tool("upstream_detect", {}))

        engine.detect.assert_called_once_with()
        assert not result.isError
        assert result.structuredContent["latest"] == "v2"

    def test_unknown_tool(self):
        """An unknown tool gets a structured error."""
        _init()

        result = asyncio.run(handle_call_tool("no_such_tool", {}))

        assert result.isError
        assert result.structuredContent["error_type"] == "unknown_tool"
        assert "list_tools" in result.structuredContent["corrective_action"]

    def test_read_only_rejects_sync(self):
        """Read-only mode refuses the sync tool."""
        engine = _init(read_only=True)

        result = asyncio.run(
            handle_call_tool("upstream_sync", {"dry_run": False})
        )

        assert result.structuredContent["error_type"] == "unknown_tool"
        engine.sync.assert_not_called()
