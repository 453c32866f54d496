"""
Async HTTP client factory for making requests to the notes backend.

Provides a context manager pattern for creating httpx clients configured
with the backend base URL and request timeout from settings.
"""

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Callable, Optional

import httpx
from loguru import logger

from notebridge_mcp.config import settings

# Global client factory (can be overridden for testing)
_client_factory: Optional[Callable[[], AsyncContextManager[httpx.AsyncClient]]] = None


def set_client_factory(
    factory: Optional[Callable[[], AsyncContextManager[httpx.AsyncClient]]],
) -> None:
    """
    Override the default client factory.

    This is primarily used for testing to inject clients backed by
    httpx.MockTransport. Pass None to restore the default.

    Args:
        factory: Async context manager function that yields an httpx.AsyncClient
    """
    global _client_factory
    _client_factory = factory
    logger.debug("Custom client factory set" if factory else "Default client factory restored")


@asynccontextmanager
async def get_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Get an AsyncClient as a context manager.

    If a custom factory has been set via set_client_factory(), uses that.

    Usage:
        async with get_client() as client:
            response = await client.get("/v1/notes/abc")

    Yields:
        httpx.AsyncClient pointed at the notes backend
    """
    if _client_factory:
        async with _client_factory() as client:
            yield client
    else:
        async with httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds),
        ) as client:
            yield client
