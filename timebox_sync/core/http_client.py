"""Shared HTTP client manager for feed fetching.

One pooled ``httpx.AsyncClient`` per client id, reused across refresh cycles so a
feed refetch does not pay connection setup again.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_shared_clients: dict[str, httpx.AsyncClient] = {}

DEFAULT_LIMITS = httpx.Limits(max_connections=8, max_keepalive_connections=4)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=30.0)

# Some calendar hosts (e.g. Office365) reject obviously automated clients
DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) timebox-sync/0.1",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


def build_client(
    timeout: Optional[httpx.Timeout] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create a client with the engine's defaults."""
    return httpx.AsyncClient(
        transport=transport,
        limits=DEFAULT_LIMITS,
        timeout=timeout or DEFAULT_TIMEOUT,
        follow_redirects=True,
        headers=DEFAULT_HEADERS,
    )


def get_shared_client(client_id: str = "default") -> httpx.AsyncClient:
    """Get or create a shared HTTP client.

    Creation never awaits, so two callers on the event loop cannot race here.
    """
    client = _shared_clients.get(client_id)
    if client is None or client.is_closed:
        client = build_client()
        _shared_clients[client_id] = client
        logger.debug("Created shared HTTP client '%s'", client_id)
    return client


async def close_all_clients() -> None:
    """Close all shared HTTP clients; call on shutdown."""
    clients = list(_shared_clients.items())
    _shared_clients.clear()
    for client_id, client in clients:
        if client.is_closed:
            continue
        try:
            await client.aclose()
            logger.debug("Closed shared HTTP client '%s'", client_id)
        except (httpx.HTTPError, RuntimeError) as e:
            logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)
