"""
NoteBridge FastMCP Server

Main MCP server definition. Tools are registered via imports from the
tools module.
"""

import asyncio
import contextlib
import signal
import sys

import uvicorn
from loguru import logger

from notebridge_mcp.config import settings

# Configure logging
logger.remove()  # Remove default handler
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    level=settings.log_level,
    colorize=True,
)

logger.info("🚀 NoteBridge MCP Server")
logger.info(f"✓ Notes backend: {settings.api_base_url}")
logger.info(
    f"✓ Edit sessions: max age {settings.edit_session_max_age_seconds}s, "
    f"retain on conflict={settings.retain_session_on_conflict}"
)
if settings.tenant_id:
    logger.info(f"✓ Tenant header: {settings.tenant_id}")
if not settings.api_token:
    logger.warning("⚠️  NOTEBRIDGE_API_TOKEN not set - backend requests are unauthenticated")

# Import MCP server instance
from notebridge_mcp.mcp_instance import mcp  # noqa: E402

# Import tools to register them with the server
# This triggers the @tool decorators which register tools with the mcp instance
from notebridge_mcp.tools import note_edits  # noqa: F401, E402

logger.info("✓ NoteBridge MCP server initialized with 7 note edit tools")

# Create ASGI app for Streamable HTTP transport (exposes the /mcp endpoint)
app = mcp.http_app()


async def serve() -> None:
    """
    Serve the ASGI app with uvicorn until SIGINT/SIGTERM.

    In-flight requests get settings.shutdown_timeout_seconds to finish.
    """
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            access_log=settings.uvicorn_access_log,
            timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        )
    )

    def request_shutdown(sig: int) -> None:
        logger.info(f"Received signal {sig}, shutting down (timeout {settings.shutdown_timeout_seconds}s)")
        server.should_exit = True

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            # add_signal_handler is POSIX only
            loop.add_signal_handler(sig, request_shutdown, sig)

    logger.info(f"🌐 Serving on http://{settings.host}:{settings.port}/mcp")
    await server.serve()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
