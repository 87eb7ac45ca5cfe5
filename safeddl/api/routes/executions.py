"""
API routes for execution records: listing, claiming and status transitions.

Also accepts the append-only verification samples and rollback records
agents report while running an execution.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from safeddl.api.dependencies import get_store
from safeddl.api.error_handling import http_exception
from safeddl.core.claim_store import ClaimStore, ExecutionNotFound, InvalidTransition
from safeddl.models import (
    ClaimRequest,
    ExecutionRequest,
    RollbackRecord,
    StatusUpdate,
    VerificationMetricsSubmission,
)

router = APIRouter()


def _not_found(execution_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Execution not found: {execution_id}",
    )


@router.get("/executions/scheduled", response_model=Dict[str, List[ExecutionRequest]])
async def list_scheduled_executions(store: ClaimStore = Depends(get_store)):
    """
    List executions waiting to be claimed, oldest first.
    """
    try:
        return {"executions": await store.list_scheduled()}
    except Exception as e:
        raise http_exception("list scheduled executions", e)


@router.get("/executions/{execution_id}", response_model=ExecutionRequest)
async def get_execution(execution_id: str, store: ClaimStore = Depends(get_store)):
    try:
        return await store.get(execution_id)
    except ExecutionNotFound:
        raise _not_found(execution_id)
    except Exception as e:
        raise http_exception("get execution", e)


@router.post("/executions/{execution_id}/claim", response_model=ExecutionRequest)
async def claim_execution(
    execution_id: str,
    body: Optional[ClaimRequest] = None,
    store: ClaimStore = Depends(get_store),
):
    """
    Atomically claim an execution for one agent.

    Returns 409 when the execution is not in a claimable status, including
    when another agent won the race.
    """
    try:
        claimed = await store.claim(execution_id, body.agent_id if body else None)
    except Exception as e:
        raise http_exception("claim execution", e)

    if claimed is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Execution {execution_id} is not claimable",
        )
    return claimed


@router.patch("/executions/{execution_id}/status", response_model=ExecutionRequest)
async def update_execution_status(
    execution_id: str,
    body: StatusUpdate,
    store: ClaimStore = Depends(get_store),
):
    """
    Move an execution to a new status.

    Args:
        execution_id: Execution id
        body: Target status with optional fail_reason and message

    Returns:
        The updated execution record
    """
    try:
        return await store.update_status(execution_id, body)
    except ExecutionNotFound:
        raise _not_found(execution_id)
    except InvalidTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        raise http_exception("update execution status", e)


@router.post(
    "/verification-metrics",
    status_code=status.HTTP_201_CREATED,
    response_model=Dict[str, Any],
)
async def submit_verification_metrics(
    body: VerificationMetricsSubmission,
    store: ClaimStore = Depends(get_store),
):
    try:
        await store.insert_verification_metrics(body)
    except Exception as e:
        raise http_exception("store verification metrics", e)
    return {"execution_id": body.execution_id, "stored": True}


@router.post(
    "/rollbacks",
    status_code=status.HTTP_201_CREATED,
    response_model=Dict[str, Any],
)
async def record_rollback(body: RollbackRecord, store: ClaimStore = Depends(get_store)):
    try:
        await store.insert_rollback(body)
    except Exception as e:
        raise http_exception("record rollback", e)
    return {"execution_id": body.execution_id, "status": body.status.value}
