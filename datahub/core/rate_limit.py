"""Per-client limits on the public data and search endpoints (slowapi).

These limits apply to inbound requests. The budget for calls to the upstream
open-data APIs is a separate window kept by the fetch gateway.
"""

import ipaddress
from functools import lru_cache

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from datahub.core.config import get_settings
from datahub.core.errors import RateLimited

# Inbound limits are all expressed per minute
INBOUND_RETRY_AFTER_SECONDS = 60

ProxyNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=1)
def _get_trusted_proxies() -> tuple[frozenset[str], tuple[ProxyNetwork, ...]]:
    """Split TRUSTED_PROXIES into literal addresses and CIDR blocks."""
    addresses = set()
    blocks = []
    for item in get_settings().trusted_proxies.split(","):
        item = item.strip()
        if "/" in item:
            blocks.append(ipaddress.ip_network(item, strict=False))
        elif item:
            addresses.add(item)
    return frozenset(addresses), tuple(blocks)


def _is_trusted_proxy(ip: str) -> bool:
    addresses, blocks = _get_trusted_proxies()
    if ip in addresses:
        return True
    try:
        parsed = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(parsed in block for block in blocks)


def get_client_ip(request: Request) -> str:
    """Limiter key: the peer address, or the first X-Forwarded-For hop when
    the peer is one of our reverse proxies."""
    peer = get_remote_address(request)
    forwarded = request.headers.get("X-Forwarded-For")
    if not forwarded or not _is_trusted_proxy(peer):
        return peer
    return forwarded.split(",")[0].strip()


limiter = Limiter(key_func=get_client_ip, enabled=get_settings().is_rate_limit_enabled)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Render an inbound limit hit with the same body as an outbound RateLimited."""
    error = RateLimited(INBOUND_RETRY_AFTER_SECONDS)
    return JSONResponse(
        status_code=429,
        content=error.to_dict(),
        headers={"Retry-After": str(error.details["retry_after"])},
    )
