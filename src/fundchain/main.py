"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fundchain.campaigns.orchestrator import ActionOrchestrator
from fundchain.campaigns.router import router as campaigns_router
from fundchain.campaigns.service import CampaignService, system_clock
from fundchain.config import get_settings
from fundchain.ledger.factory import get_ledger_gateway
from fundchain.ledger.interface import LedgerGateway
from fundchain.shared.correlation import CorrelationIdMiddleware
from fundchain.shared.exceptions import CampaignNotFoundError, ValidationError
from fundchain.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()

    logger.info(
        "Application starting",
        extra={"app": settings.app_name, "env": settings.app_env, "gateway": type(app.state.gateway).__name__},
    )

    yield

    logger.info("Shutting down application")
    await app.state.gateway.close()
    logger.info("Application shutdown complete")


def create_app(
    gateway: LedgerGateway | None = None,
    clock: Callable[[], int] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        gateway: Ledger gateway to use; defaults to the configured one.
        clock: Source of the current Unix time; defaults to the system clock.
    """
    settings = get_settings()

    app = FastAPI(
        title="FundChain API",
        description="Crowdfunding campaigns on a smart-contract ledger",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    gateway = gateway or get_ledger_gateway()
    service = CampaignService(
        gateway,
        clock=clock or system_clock,
        decimals=settings.amount_decimals,
    )
    app.state.gateway = gateway
    app.state.campaign_service = service
    app.state.orchestrator = ActionOrchestrator(gateway, service)

    # Map domain exceptions to HTTP responses
    @app.exception_handler(CampaignNotFoundError)
    async def _not_found(_: Request, exc: CampaignNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": {"code": exc.code, "message": exc.message}},
        )

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"code": exc.code, "message": exc.message, "errors": exc.details}},
        )

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(campaigns_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
