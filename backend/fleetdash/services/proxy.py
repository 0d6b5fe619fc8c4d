from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from fleetdash.core.config import settings
from fleetdash.errors import UpstreamError

logger = logging.getLogger(__name__)

# httpx already decoded the body, so length/encoding headers no longer apply
DROPPED_HEADERS = {"www-authenticate", "content-length", "content-encoding", "transfer-encoding", "connection"}


@dataclass
class RelayedResponse:
    status_code: int
    content: bytes
    headers: dict[str, str] = field(default_factory=dict)


def relay_headers(upstream: httpx.Headers) -> dict[str, str]:
    headers = {k: v for k, v in upstream.items() if k.lower() not in DROPPED_HEADERS}
    headers["Access-Control-Allow-Origin"] = "*"
    return headers


async def relay(
    method: str,
    path: str,
    query: str = "",
    body: bytes | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RelayedResponse:
    """Forward one request to the upstream API with injected Basic credentials."""
    target = f"{settings.upstream_base_url.rstrip('/')}/{path.lstrip('/')}"
    if query:
        target = f"{target}?{query}"
    method = method.upper()
    content = body if method not in {"GET", "HEAD"} else None

    logger.debug("Relaying %s %s", method, target)
    try:
        async with httpx.AsyncClient(timeout=settings.upstream_timeout_sec, transport=transport) as client:
            response = await client.request(
                method,
                target,
                auth=httpx.BasicAuth(settings.api_username, settings.api_password),
                headers={"Content-Type": "application/json"},
                content=content,
            )
    except httpx.HTTPError as e:
        logger.error("Relay to %s failed: %s", target, e)
        raise UpstreamError(f"Upstream request failed: {e}") from e

    return RelayedResponse(
        status_code=response.status_code,
        content=response.content,
        headers=relay_headers(response.headers),
    )
