"""
API routes for the execution audit trail.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, status

from safeddl.api.dependencies import get_store
from safeddl.api.error_handling import http_exception
from safeddl.core.claim_store import ClaimStore
from safeddl.models import AuditEntry

router = APIRouter()


@router.post("/audit", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def append_audit_entry(body: AuditEntry, store: ClaimStore = Depends(get_store)):
    try:
        await store.insert_audit(body)
    except Exception as e:
        raise http_exception("append audit entry", e)
    return {"execution_run_id": body.execution_run_id, "action": body.action}


@router.get("/audit", response_model=Dict[str, List[AuditEntry]])
async def list_audit_entries(
    execution_id: str = Query(..., min_length=1),
    store: ClaimStore = Depends(get_store),
):
    """List audit entries for one execution, oldest first."""
    try:
        return {"entries": await store.list_audit(execution_id)}
    except Exception as e:
        raise http_exception("list audit entries", e)
