"""
MCP Server - How assistants talk to DataFast.

This file sets up the DataFast "buttons" (tools) and routes each press to
a handler:

1. create_payment        - "Record this payment"
2. create_goal           - "This visitor just converted"
3. get_visitor_data      - "Who is this visitor?"
4. validate_visitor      - "Is this visitor ID usable?"
5. batch_create_goals    - "Record all of these conversions"
6. create_revenue_goal   - "Conversion + revenue in one go"
7. get_integration_guide - "How do I wire DataFast in?"

Transports: stdio (API key from DATAFAST_API_KEY) or HTTP (SSE at /sse,
Streamable HTTP at /mcp, API key from the ?api_key= query parameter).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, Tool

from datafast_mcp import __version__
from datafast_mcp.client import DataFastClient
from datafast_mcp.config import Settings, load_settings
from datafast_mcp.credentials import (
    CredentialContext,
    credential_from_value,
    current_credential,
    use_credential,
)
from datafast_mcp.handlers import dispatch
from datafast_mcp.schemas import TOOLS

logger = logging.getLogger("datafast_mcp.server")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


# Create the MCP server
server = Server("datafast", version=__version__)

# Settings and API client (lazy - built on first use unless configure() ran)
_settings: Settings | None = None
_client: DataFastClient | None = None


def configure(settings: Settings) -> None:
    """Install settings and build the API client for them."""
    global _settings, _client
    _settings = settings
    _client = DataFastClient(
        base_url=settings.base_url,
        timeout=settings.request_timeout_seconds,
    )
    for name in ("datafast_mcp.server", "datafast_mcp.http", "datafast_mcp.client", "datafast_mcp.handlers"):
        logging.getLogger(name).setLevel(settings.log_level)


def get_settings() -> Settings:
    if _settings is None:
        configure(load_settings())
    return _settings


def get_client() -> DataFastClient:
    """Get the API client, creating it if needed."""
    if _client is None:
        configure(get_settings())
    return _client


def _resolve_credential() -> Optional[CredentialContext]:
    """Credential for the current tool call.

    Normally bound once per session by the transport. Streamable HTTP
    requests also carry ?api_key= themselves, which is used as a fallback.
    """
    credential = current_credential()
    if credential is not None:
        return credential

    try:
        request = server.request_context.request
    except LookupError:
        return None

    query_params = getattr(request, "query_params", None)
    if query_params is None:
        return None
    return credential_from_value(query_params.get("api_key"))


# =============================================================================
# TOOL DEFINITIONS - What buttons the assistant can press
# =============================================================================

@server.list_tools()
async def list_tools() -> list[Tool]:
    """Tell the client what tools are available."""
    return TOOLS


# =============================================================================
# TOOL HANDLERS - What happens when a button is pressed
# =============================================================================

@server.call_tool()
async def call_tool(name: str, arguments: dict) -> CallToolResult:
    """Handle tool calls (arguments already validated against the tool schema)."""
    arguments = arguments or {}
    logger.info(f"[{name}] called with fields: {', '.join(sorted(arguments)) or 'none'}")

    result = await dispatch(name, arguments, _resolve_credential(), get_client())

    if result.isError:
        logger.info(f"[{name}] returned an error result")
    return result


# =============================================================================
# SERVER STARTUP
# =============================================================================

async def run_stdio(settings: Settings) -> None:
    """Serve over stdin/stdout with the key from settings."""
    credential = credential_from_value(settings.api_key)
    if credential is None:
        logger.warning("DATAFAST_API_KEY is missing or invalid; API tools will return an error")
    else:
        logger.info(f"Using API key {credential.masked}")

    with use_credential(credential):
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="datafast-mcp",
        description="DataFast analytics tools over the Model Context Protocol",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="stdio for local clients, http for SSE (/sse) and Streamable HTTP (/mcp)",
    )
    parser.add_argument("--host", help="HTTP bind address (default from config)")
    parser.add_argument("--port", type=int, help="HTTP port (default from config)")
    parser.add_argument("--config", type=Path, help="Path to a YAML config file")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """Start the MCP server.

    stdio is what desktop clients spawn; http serves remote clients.
    """
    args = parse_args(argv)
    settings = load_settings(args.config)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    configure(settings)

    logger.info(f"DataFast MCP {__version__} starting ({args.transport}, API {settings.base_url})")

    if args.transport == "http":
        from datafast_mcp.http_app import run_http
        run_http(settings)
    else:
        asyncio.run(run_stdio(settings))


if __name__ == "__main__":
    main()
