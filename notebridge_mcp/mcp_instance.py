"""
MCP server instance.

Tools register themselves on this instance via @mcp.tool() when their
modules are imported (see server.py).
"""

from fastmcp import FastMCP
from loguru import logger

from notebridge_mcp.config import settings

# Validate session configuration at module load
settings.validate_session_config()

mcp = FastMCP(name="NoteBridge")

logger.info(f"✓ FastMCP instance created: backend={settings.api_base_url}")
