"""
API routes for the operator kill switch.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from safeddl.api.dependencies import get_store
from safeddl.api.error_handling import http_exception
from safeddl.core.claim_store import ClaimStore
from safeddl.models import KillSwitchState, KillSwitchToggle

router = APIRouter()


@router.get("/kill-switch", response_model=KillSwitchState)
async def get_kill_switch(
    connection_id: Optional[str] = Query(None),
    store: ClaimStore = Depends(get_store),
):
    """
    Read the global switch and, when given, the per-connection switch.

    Agents treat any non-2xx answer from this endpoint as "blocked".
    """
    try:
        return await store.get_kill_switch_state(connection_id)
    except Exception as e:
        raise http_exception("read kill switch", e)


@router.post("/kill-switch/toggle", response_model=KillSwitchState)
async def toggle_kill_switch(
    body: KillSwitchToggle,
    store: ClaimStore = Depends(get_store),
):
    """Engage or release a switch. No connection_id targets the global switch."""
    try:
        return await store.set_kill_switch(body.connection_id, body.enabled, body.reason)
    except Exception as e:
        raise http_exception("toggle kill switch", e)
