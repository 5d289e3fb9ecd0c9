"""
HTTP transport - remote clients connect here.

Routes:
    GET  /sse            open an SSE session          (needs ?api_key=)
    POST /sse/message    messages for an SSE session  (identified by session_id)
    *    /mcp            Streamable HTTP              (needs ?api_key=)

The API key is pulled from the connection URL once and bound to the
session's Credential Context; every tool call in that session uses it.
Anything else is a 404.
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from datafast_mcp.config import Settings
from datafast_mcp.credentials import credential_from_value, use_credential

logger = logging.getLogger("datafast_mcp.http")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

SSE_PATH = "/sse"
SSE_MESSAGE_PATH = "/sse/message"
STREAMABLE_PATH = "/mcp"

MISSING_API_KEY_TEXT = (
    "DataFast API key is required. Please provide it as a query parameter: "
    "?api_key=your_api_key"
)


def _missing_key_response() -> PlainTextResponse:
    return PlainTextResponse(MISSING_API_KEY_TEXT, status_code=401)


class SseMessageEndpoint:
    """ASGI app for POST /sse/message (routed raw, SseServerTransport writes the response)."""

    def __init__(self, transport: SseServerTransport):
        self.transport = transport

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.transport.handle_post_message(scope, receive, send)


class StreamableHTTPEndpoint:
    """ASGI app for /mcp: checks the API key, then hands over to the session manager.

    The session manager starts a session's server task from inside the
    first request, so the credential bound here carries over to it.
    """

    def __init__(self, session_manager: StreamableHTTPSessionManager):
        self.session_manager = session_manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope)
        credential = credential_from_value(request.query_params.get("api_key"))
        if credential is None:
            logger.warning(f"Rejected {request.method} {STREAMABLE_PATH}: missing api_key")
            await _missing_key_response()(scope, receive, send)
            return

        with use_credential(credential):
            await self.session_manager.handle_request(scope, receive, send)


def create_app(mcp_server: Server | None = None) -> Starlette:
    """Build the Starlette app serving both MCP transports."""
    if mcp_server is None:
        from datafast_mcp.server import server as mcp_server

    sse = SseServerTransport(SSE_MESSAGE_PATH)
    session_manager = StreamableHTTPSessionManager(
        app=mcp_server,
        json_response=False,
        stateless=False,
    )

    async def handle_sse(request: Request) -> Response:
        credential = credential_from_value(request.query_params.get("api_key"))
        if credential is None:
            logger.warning(f"Rejected {SSE_PATH}: missing api_key")
            return _missing_key_response()

        logger.info(f"SSE session opened with API key {credential.masked}")
        with use_credential(credential):
            async with sse.connect_sse(request.scope, request.receive, request._send) as (read_stream, write_stream):
                await mcp_server.run(
                    read_stream,
                    write_stream,
                    mcp_server.create_initialization_options()
                )
        logger.info("SSE session closed")
        return Response()

    async def not_found(request: Request, exc: Exception) -> PlainTextResponse:
        return PlainTextResponse("Not found", status_code=404)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        async with session_manager.run():
            logger.info(f"Streamable HTTP transport ready at {STREAMABLE_PATH}")
            yield

    routes = [
        Route(SSE_PATH, endpoint=handle_sse, methods=["GET"]),
        Route(SSE_MESSAGE_PATH, endpoint=SseMessageEndpoint(sse), methods=["POST"]),
        Route(STREAMABLE_PATH, endpoint=StreamableHTTPEndpoint(session_manager), methods=["GET", "POST", "DELETE"]),
    ]
    return Starlette(
        routes=routes,
        exception_handlers={404: not_found},
        lifespan=lifespan,
    )


def run_http(settings: Settings) -> None:
    """Serve the HTTP transports with uvicorn (blocks)."""
    app = create_app()
    logger.info(f"Listening on http://{settings.host}:{settings.port} ({SSE_PATH}, {STREAMABLE_PATH})")
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=10,
    )
    uvicorn.Server(config).run()
