"""
HTTP request helpers for calling the notes backend.

Every request carries the configured bearer token and tenant header.
Responses are checked with raise_for_status(), so callers see
httpx.HTTPStatusError for any non-2xx answer.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from notebridge_mcp.config import settings


def backend_headers() -> Dict[str, str]:
    """Build the auth and tenant headers for a backend request."""
    headers: Dict[str, str] = {}
    if settings.api_token:
        headers["Authorization"] = f"Bearer {settings.api_token}"
    if settings.tenant_id:
        headers["X-TB-Tenant-ID"] = settings.tenant_id
    return headers


async def call_get(
    client: httpx.AsyncClient,
    path: str,
    params: Optional[Dict[str, Any]] = None,
) -> httpx.Response:
    """
    Make GET request to the notes backend.

    Args:
        client: httpx client from get_client()
        path: API endpoint path (e.g., "/v1/notes/{uid}")
        params: Query parameters

    Returns:
        HTTP response

    Raises:
        httpx.HTTPStatusError: If request fails
    """
    logger.debug(f"GET {path} params={params}")
    response = await client.get(path, params=params, headers=backend_headers())
    response.raise_for_status()
    return response


async def call_put(
    client: httpx.AsyncClient,
    path: str,
    json: Optional[Dict[str, Any]] = None,
    if_match: Optional[int] = None,
) -> httpx.Response:
    """
    Make PUT request to the notes backend.

    Args:
        client: httpx client from get_client()
        path: API endpoint path (e.g., "/v1/notes/{uid}")
        json: JSON request body
        if_match: Optional version for optimistic locking

    Returns:
        HTTP response

    Raises:
        httpx.HTTPStatusError: If request fails (409/412 on version mismatch)
    """
    headers = backend_headers()
    if if_match is not None:
        headers["If-Match"] = str(if_match)

    logger.debug(f"PUT {path} if_match={if_match}")
    response = await client.put(path, json=json, headers=headers)
    response.raise_for_status()
    return response
