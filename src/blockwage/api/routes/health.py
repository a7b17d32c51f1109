"""Liveness, readiness and health endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from blockwage.api.dependencies import DbSession
from blockwage.database import check_connection
from blockwage.models import Base

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    settlement_mode: str
    asset: str
    attestation: bool


@router.get("/health", response_model=HealthResponse)
def health_check(db: DbSession, request: Request) -> HealthResponse:
    """Database reachability plus the settlement settings in force."""
    config = request.app.state.settlement_config
    try:
        db_ok = check_connection(db)
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        db_ok = False

    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if db_ok else "unhealthy",
        settlement_mode=config.mode.value,
        asset=config.asset,
        attestation=config.proofs.attestation_enabled,
    )


@router.get("/ready")
def readiness_check(request: Request):
    """Ready once every settlement table exists."""
    try:
        present = set(inspect(request.app.state.engine).get_table_names())
    except SQLAlchemyError:
        logger.exception("Readiness check could not inspect the schema")
        present = set()

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "missing_tables": missing},
        )
    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
