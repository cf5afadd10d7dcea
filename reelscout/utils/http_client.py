"""Shared persistent httpx clients for the recommendation sources.

One client per upstream keeps TCP/TLS connections pooled across the many
small requests a batch run makes.
"""

import httpx

from reelscout.constants import API_TIMEOUT_EXTERNAL, HTTPX_TIMEOUT

# Connection pool limits
_POOL_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)

_clients: dict[str, httpx.AsyncClient] = {}

_TIMEOUTS = {
    "tmdb": HTTPX_TIMEOUT,
    "trakt": HTTPX_TIMEOUT,
    "mdblist": API_TIMEOUT_EXTERNAL,
}


def get_client(service: str) -> httpx.AsyncClient:
    """Get the persistent httpx client for a source (tmdb, trakt, mdblist)."""
    client = _clients.get(service)
    if client is None or client.is_closed:
        client = httpx.AsyncClient(
            timeout=_TIMEOUTS.get(service, API_TIMEOUT_EXTERNAL),
            limits=_POOL_LIMITS,
            http2=False,
        )
        _clients[service] = client
    return client


async def close_all_clients() -> None:
    """Close all persistent httpx clients. Call once the batch is done."""
    for client in _clients.values():
        await client.aclose()
    _clients.clear()
