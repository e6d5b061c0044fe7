"""MCP stdio server exposing the upstream sync engine as tools."""
