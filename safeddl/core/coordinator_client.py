"""
HTTP client for the ClaimCoordinator service.

`claim` is the only call whose answer gates progress; every other write
(status, audit, rollback records, verification metrics) is best effort:
failures are logged and reported as False, never raised, so an execution
that is already resolved cannot flip outcome because reporting failed.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from safeddl.config import settings
from safeddl.models.execution import (
    AuditEntry,
    ExecutionRequest,
    ExecutionStatus,
    FailReason,
    RollbackRecord,
)
from safeddl.models.metrics import MetricsCapture

logger = logging.getLogger(__name__)


def auth_headers() -> dict[str, str]:
    """Headers every agent-to-coordinator call carries."""
    return {
        "Content-Type": "application/json",
        "X-API-SECRET": settings.API_KEY,
        "X-Tenant-Id": settings.TENANT_ID,
    }


class CoordinatorClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        agent_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.agent_id = agent_id or settings.AGENT_ID
        self.timeout = settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=auth_headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def list_scheduled(self) -> list[ExecutionRequest]:
        """
        List claimable executions, oldest first.

        Raises:
            httpx.HTTPError: on transport failure or non-2xx status
        """
        async with self._client() as client:
            response = await client.get("/api/executions/scheduled")
            response.raise_for_status()
            payload = response.json()
        rows = payload.get("executions", []) if isinstance(payload, dict) else payload
        return [ExecutionRequest.model_validate(row) for row in rows]

    async def claim(self, execution_id: str) -> bool:
        """
        Try to take exclusive ownership of an execution.

        Returns:
            True when this agent now owns the execution; False on 409, any
            other non-2xx status, or a transport error.
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/api/executions/{execution_id}/claim",
                    json={"agent_id": self.agent_id},
                )
        except httpx.HTTPError as e:
            logger.error("Error claiming execution %s: %s", execution_id, e)
            return False

        if response.status_code == 409:
            logger.warning(
                "Execution %s already claimed or not claimable", execution_id
            )
            return False
        if not response.is_success:
            logger.error(
                "Claim API returned status %s for %s",
                response.status_code,
                execution_id,
            )
            return False

        return True

    async def update_status(
        self,
        execution_id: str,
        status: ExecutionStatus,
        fail_reason: Optional[FailReason] = None,
        message: Optional[str] = None,
    ) -> bool:
        body: dict[str, Any] = {"status": ExecutionStatus(status).value}
        if fail_reason is not None:
            body["fail_reason"] = FailReason(fail_reason).value
        if message is not None:
            body["message"] = message
        return await self._best_effort(
            "update execution status",
            "PATCH",
            f"/api/executions/{execution_id}/status",
            body,
        )

    async def submit_verification_metrics(
        self,
        execution_id: str,
        before: MetricsCapture,
        after: MetricsCapture,
    ) -> bool:
        return await self._best_effort(
            "submit verification metrics",
            "POST",
            "/api/verification-metrics",
            {
                "execution_id": execution_id,
                "before_metrics": before.model_dump(mode="json"),
                "after_metrics": after.model_dump(mode="json"),
            },
        )

    async def record_rollback(self, record: RollbackRecord) -> bool:
        return await self._best_effort(
            "record rollback", "POST", "/api/rollbacks", record.model_dump(mode="json")
        )

    async def send_audit(self, entry: AuditEntry) -> bool:
        return await self._best_effort(
            "send audit log", "POST", "/api/audit", entry.model_dump(mode="json")
        )

    async def _best_effort(
        self, operation: str, method: str, path: str, body: dict[str, Any]
    ) -> bool:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=body)
        except Exception as e:
            logger.error("Failed to %s (%s %s): %s", operation, method, path, e)
            return False

        if not response.is_success:
            logger.error(
                "Failed to %s: %s %s returned %s",
                operation,
                method,
                path,
                response.status_code,
            )
            return False
        return True
