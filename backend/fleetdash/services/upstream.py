from __future__ import annotations

import logging
from typing import Any

import httpx

from fleetdash.core.config import settings
from fleetdash.errors import UpstreamError

logger = logging.getLogger(__name__)


class UpstreamClient:
    """Async client for the GPS-tracking API.

    Credentials are injected with HTTP Basic auth. Pass ``transport`` to
    route requests somewhere else (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.upstream_base_url).rstrip("/"),
            auth=httpx.BasicAuth(
                username if username is not None else settings.api_username,
                password if password is not None else settings.api_password,
            ),
            timeout=timeout or settings.upstream_timeout_sec,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> UpstreamClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Upstream %s answered %s", path, e.response.status_code)
            raise UpstreamError(f"Upstream {path} answered {e.response.status_code}", e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error("Upstream %s failed: %s", path, e)
            raise UpstreamError(f"Upstream {path} failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Upstream {path} returned invalid JSON") from e

    async def get_groups(self) -> list[dict]:
        return await self._get("/groups") or []

    async def get_vehicles(self, group_code: str) -> list[dict]:
        return await self._get(f"/vehicles/group/{group_code}") or []

    async def get_vehicle(self, vehicle_code: str) -> dict:
        return await self._get(f"/vehicle/{vehicle_code}") or {}

    async def get_trips(self, vehicle_code: str, date_from: str, date_to: str) -> list[dict]:
        return await self._get(f"/vehicle/{vehicle_code}/trips", params={"from": date_from, "to": date_to}) or []
