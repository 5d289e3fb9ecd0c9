"""
DataFast MCP - Revenue analytics tools for AI assistants.

Record payments, create custom goals and look up visitors in DataFast,
straight from any MCP client.
"""

__version__ = "1.0.0"
__author__ = "DataFast"


def serve() -> None:
    """Run the DataFast MCP server.

    This is called when you run: datafast-mcp
    Or: python -m datafast_mcp.server
    """
    from datafast_mcp.server import main as _main
    _main()


__all__ = ["serve", "__version__"]
