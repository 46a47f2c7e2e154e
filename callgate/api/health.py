"""
Health endpoints.

Liveness (/healthz) has no dependencies; readiness (/readyz) checks the
database and the tables the entitlements engine reads.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from callgate.core.database import check_connection, get_engine, metadata

logger = logging.getLogger(__name__)

root_router = APIRouter(tags=["health"])


def _not_ready(detail: str) -> JSONResponse:
    logger.warning("[readyz] not ready", extra={"error_code": "not_ready", "event_type": detail})
    return JSONResponse(status_code=503, content={"status": "error", "detail": detail})


@root_router.get("/healthz")
def healthz():
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    """Database reachable and every table in the schema present."""
    if not check_connection():
        return _not_ready("database unreachable")

    inspector = inspect(get_engine())
    missing = sorted(name for name in metadata.tables if not inspector.has_table(name))
    if missing:
        return _not_ready(f"missing tables: {', '.join(missing)}")
    return {"status": "ok"}
