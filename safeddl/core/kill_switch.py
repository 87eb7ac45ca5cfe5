"""
Kill switch gate.

Asks the coordinator whether automated changes are currently forbidden,
globally or for one connection. The gate fails closed: any transport
error, non-2xx response or malformed payload is answered with "blocked".
Nothing is cached; every call is a fresh remote read.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from safeddl.config import settings
from safeddl.core.coordinator_client import auth_headers
from safeddl.models.kill_switch import KillSwitchState

logger = logging.getLogger(__name__)


class KillSwitchGate:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=auth_headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_state(self, connection_id: Optional[str] = None) -> KillSwitchState:
        """
        Read the raw kill switch state.

        Raises on any transport, status or payload problem; callers that need
        a yes/no answer should use `is_blocked`.
        """
        params: dict[str, Any] = {}
        if connection_id:
            params["connection_id"] = connection_id
        async with self._client() as client:
            response = await client.get("/api/kill-switch", params=params)
            response.raise_for_status()
            return KillSwitchState.model_validate(response.json())

    async def is_blocked(self, connection_id: Optional[str] = None) -> bool:
        """Return True when execution must not proceed."""
        try:
            state = await self.fetch_state(connection_id)
        except httpx.HTTPStatusError as e:
            logger.error(
                "Kill switch API returned status %s; treating as active",
                e.response.status_code,
            )
            return True
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.error("Error calling kill switch API (%s); treating as active", e)
            return True
        except Exception:
            logger.exception("Unexpected kill switch failure; treating as active")
            return True

        if state.blocked:
            logger.info(
                "Kill switch is active for connection %s (global=%s, connection=%s, reason=%s)",
                connection_id,
                state.global_active,
                state.connection_active,
                state.reason,
            )
        return state.blocked

    async def is_globally_blocked(self) -> bool:
        """Global-only check used by the poller before it lists work."""
        try:
            state = await self.fetch_state(None)
        except Exception as e:
            logger.warning("Failed to check kill switch, treating as active: %s", e)
            return True
        return state.global_active
