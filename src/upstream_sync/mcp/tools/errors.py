"""Error response builder for MCP tool handlers.

Structured error responses carry a corrective action so AI agents can
recover without human intervention.
"""

import mcp.types as types


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            unknown_tool, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Unknown upstream version 'v9'", "Use upstream_detect to list available versions.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        structuredContent={
            "error_type": error_type,
            "message": message,
            "corrective_action": corrective_action,
        },
        isError=True,
    )
