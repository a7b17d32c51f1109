"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from blockwage.api.routes import health_router, salary_router
from blockwage.config import Settings, get_settings
from blockwage.database import create_schema, init_db
from blockwage.settlement.config import SettlementConfig
from blockwage.settlement.errors import SettlementError
from blockwage.settlement.providers.base import FundTransferProvider
from blockwage.settlement.providers.custody_stub import CustodyStubProvider
from blockwage.settlement.services.claims import describe_error

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[str, int] = {
    "INVALID_EMPLOYEE_ID": status.HTTP_400_BAD_REQUEST,
    "INVALID_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "INVALID_PERIOD": status.HTTP_400_BAD_REQUEST,
    "MALFORMED_PROOF": status.HTTP_400_BAD_REQUEST,
    "PROOF_MISMATCH": status.HTTP_400_BAD_REQUEST,
    "PERIOD_MISALIGNED": status.HTTP_400_BAD_REQUEST,
    "ATTESTATION_FAILED": status.HTTP_403_FORBIDDEN,
    "UNAUTHORIZED_DEPOSITOR": status.HTTP_403_FORBIDDEN,
    "NOT_ASSIGNED": status.HTTP_404_NOT_FOUND,
    "EMPLOYEE_NOT_ASSIGNED": status.HTTP_404_NOT_FOUND,
    "ALREADY_PAID": status.HTTP_409_CONFLICT,
    "ALREADY_PROCESSED": status.HTTP_409_CONFLICT,
    "PERIOD_NOT_LATER_THAN_LAST_PAID": status.HTTP_409_CONFLICT,
    "PROOF_ALREADY_CONSUMED": status.HTTP_409_CONFLICT,
    "INSUFFICIENT_PERIOD_FUNDS": status.HTTP_409_CONFLICT,
    "PAYMENT_NOT_VERIFIED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "FUND_TRANSFER_FAILED": status.HTTP_502_BAD_GATEWAY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    if app.state.create_schema:
        create_schema(app.state.engine)
    yield


def create_app(
    *,
    settings: Settings | None = None,
    engine: Engine | None = None,
    provider: FundTransferProvider | None = None,
    create_tables: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Defaults to environment settings
        engine: Database engine; defaults to the global one from DATABASE_URL
        provider: Custody adapter; defaults to the in-memory stub
        create_tables: Create missing tables on startup
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="BlockWage Settlement API",
        description="Escrowed payroll: salary claims and proof-based settlement",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.settlement_config = SettlementConfig.from_settings(settings)
    if engine is None:
        engine, session_factory = init_db()
    else:
        session_factory = sessionmaker(engine, autoflush=False)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.provider = provider or CustodyStubProvider()
    app.state.create_schema = create_tables

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SettlementError)
    async def settlement_exception_handler(
        request: Request, exc: SettlementError
    ) -> JSONResponse:
        """Map settlement errors to status codes with employee-facing text."""
        status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
        if status_code >= 500:
            logger.error("Settlement failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": describe_error(exc),
                "code": exc.code,
                "message": str(exc),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(salary_router)

    return app
