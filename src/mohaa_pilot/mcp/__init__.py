"""mohaa-pilot MCP Server — Expose the automation engine as MCP tools.

Lets AI agents launch OpenMoHAA, talk to its console and run validated
automation scripts through the Model Context Protocol.

Transport: stdio (standard for MCP CLI tools).
"""

from mohaa_pilot.mcp.server import create_server, main

__all__ = ["create_server", "main"]
