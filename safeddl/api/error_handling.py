"""
Centralized API error handling helpers.

Goal: an unreachable coordinator store must surface to agents as a
retryable 503, never as "no scheduled work" or a claim conflict.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Any

import asyncpg
from fastapi import HTTPException, status

from safeddl.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiError:
    status_code: int
    code: str
    message: str
    hint: str | None = None
    debug: str | None = None


def _maybe_debug(exc: BaseException) -> str | None:
    if settings.APP_DEBUG:
        return str(exc)
    return None


def classify_store_error(exc: BaseException) -> ApiError | None:
    """
    Classify coordinator store failures into retryable errors.

    Connection-level failures are matched by type first; wrapped errors
    fall back to message matching.
    """
    if isinstance(
        exc,
        (
            OSError,
            asyncpg.exceptions.CannotConnectNowError,
            asyncpg.exceptions.TooManyConnectionsError,
            asyncpg.exceptions.ConnectionDoesNotExistError,
            asyncpg.exceptions.InterfaceError,
        ),
    ):
        return ApiError(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="STORE_UNAVAILABLE",
            message="Coordinator store is unavailable.",
            hint="Check Postgres connectivity (COORDINATOR_DB_*), then retry.",
            debug=_maybe_debug(exc),
        )

    lower = str(exc).lower()
    if "connection refused" in lower or "pool not initialized" in lower:
        return ApiError(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="STORE_CONNECTION_FAILED",
            message="Failed to connect to the coordinator store.",
            hint="Check Postgres connectivity (COORDINATOR_DB_*), then retry.",
            debug=_maybe_debug(exc),
        )

    return None


def http_exception(operation: str, exc: BaseException) -> HTTPException:
    """
    Convert an exception into a consistent HTTPException payload.
    """
    logger.error(
        "API error during '%s': %s\n%s",
        operation,
        exc,
        traceback.format_exc(),
    )

    classified = classify_store_error(exc)
    if classified is not None:
        detail: dict[str, Any] = {
            "code": classified.code,
            "message": classified.message,
            "operation": operation,
        }
        if classified.hint:
            detail["hint"] = classified.hint
        if classified.debug:
            detail["debug"] = classified.debug
        return HTTPException(status_code=classified.status_code, detail=detail)

    base_detail: dict[str, Any] = {
        "code": "INTERNAL_ERROR",
        "message": f"{operation} failed.",
        "operation": operation,
    }
    dbg = _maybe_debug(exc)
    if dbg:
        base_detail["debug"] = dbg
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=base_detail,
    )
