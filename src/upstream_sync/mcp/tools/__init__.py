"""MCP tool handlers for upstream sync.

This package wraps ``UpstreamSyncEngine`` with async handlers, formatted
text output, and structured error responses.
"""

from .errors import build_error_response
from .registry import ToolRegistry, ToolSpec
from .upstream import UPSTREAM_SPECS

ALL_SPECS: list[ToolSpec] = list(UPSTREAM_SPECS)

__all__ = [
    "build_error_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "UPSTREAM_SPECS",
]
