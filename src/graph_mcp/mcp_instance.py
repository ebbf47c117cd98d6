"""
Graph MCP Instance

The single FastMCP instance every tool module registers with. Kept in its own
module so tools and the server can import it without circular imports.
"""

from fastmcp import FastMCP

mcp = FastMCP("graph-mcp")

__all__ = ["mcp"]
