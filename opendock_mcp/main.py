"""OpenDock MCP Server.

Exposes the OpenDock dock-scheduling API (warehouses, docks, load types,
appointments, carriers, companies, organizations, metrics) as MCP tools.

Architecture:
- AuthManager owns the bearer token (static token, refresh, or login)
- ApiClient performs authenticated requests with single-shot retries
- Tools map MCP calls onto ApiClient requests
- Served over stdio (default) or as an ASGI app with the MCP endpoint at /mcp

Run with:
    python -m opendock_mcp.main
    python -m opendock_mcp.main --transport http --port 8002
"""
import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from mcp.server.fastmcp import FastMCP
from starlette.routing import Mount

from .api_client import ApiClient
from .config import LOG_LEVEL, REQUEST_TIMEOUT_SECONDS, ConfigurationError, load_config
from .models import OpendockConfig
from .token_manager import AuthManager
from .tools import register_tools


# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,  # MCP servers should log to stderr, not stdout
)
logger = logging.getLogger(__name__)


# ==============================================================================
# MCP Server
# ==============================================================================

def create_server(config: OpendockConfig) -> tuple[FastMCP, ApiClient]:
    """Build the MCP server and the API client its tools call.

    The auth manager and API client share one HTTP connection pool, which
    is released by ``shutdown``.
    """
    http_client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
    auth = AuthManager(config, http_client=http_client)
    api = ApiClient(config.api_url, auth, http_client=http_client)

    # Set streamable_http_path to "/streamable" so the app can be mounted at
    # "/mcp", making the endpoint /mcp/streamable
    mcp = FastMCP(
        "opendock",
        stateless_http=True,
        streamable_http_path="/streamable",
    )
    register_tools(mcp, api)

    return mcp, api


async def shutdown(api: ApiClient) -> None:
    """Close the HTTP clients used by the API client and its auth manager."""
    for client in (api.http_client, api.auth.http_client):
        if client is not None and not client.is_closed:
            await client.aclose()


# ==============================================================================
# ASGI Application (HTTP transport)
# ==============================================================================

def create_app(mcp: FastMCP, api: ApiClient) -> FastAPI:
    """Wrap the MCP server in a FastAPI app with a health endpoint."""

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        logger.info("[Server] Starting OpenDock MCP Server")

        # Start MCP's session manager (required for streamable HTTP transport)
        async with mcp.session_manager.run():
            yield

        logger.info("[Server] Shutting down...")
        await shutdown(api)

    app = FastAPI(
        title="OpenDock MCP",
        description="MCP endpoint at `/mcp/streamable` exposing OpenDock scheduling tools.",
        version="1.0.0",
        lifespan=app_lifespan,
    )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "opendock-mcp",
            "has_token": api.auth.has_token,
        }

    app.routes.append(Mount("/mcp", app=mcp.streamable_http_app()))
    return app


# ==============================================================================
# Entry Point
# ==============================================================================

async def serve_stdio(mcp: FastMCP, api: ApiClient) -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    try:
        await mcp.run_stdio_async()
    finally:
        await shutdown(api)


def main():
    """Run the server over stdio or HTTP."""
    import uvicorn

    parser = argparse.ArgumentParser(description="OpenDock MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="MCP transport (default: stdio)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to with --transport http (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8002,
        help="Port to bind to with --transport http (default: 8002)"
    )

    args = parser.parse_args()

    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(f"[Server] {e}")
        sys.exit(1)

    mcp, api = create_server(config)
    logger.info(f"[Server] OpenDock API: {config.api_url}")

    if args.transport == "stdio":
        asyncio.run(serve_stdio(mcp, api))
        return

    logger.info(f"[Server] MCP Endpoint: http://{args.host}:{args.port}/mcp/streamable")
    uvicorn.run(create_app(mcp, api), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
