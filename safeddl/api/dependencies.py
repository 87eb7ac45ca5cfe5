"""
Shared FastAPI dependencies for the coordinator routes.
"""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from safeddl.config import settings
from safeddl.core.claim_store import ClaimStore

_store: Optional[ClaimStore] = None


def get_store() -> ClaimStore:
    global _store
    if _store is None:
        _store = ClaimStore()
    return _store


async def require_api_key(
    x_api_secret: Optional[str] = Header(None, alias="X-API-SECRET"),
) -> None:
    """Reject callers without the shared agent secret (only when one is configured)."""
    if not settings.API_KEY:
        return
    if x_api_secret is None or not secrets.compare_digest(x_api_secret, settings.API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-API-SECRET header",
        )
