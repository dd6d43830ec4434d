"""
FastAPI application factory for the Deal or No Deal backend.
Configures routes, middleware, exception handlers and background workers.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from app.api.middleware import add_middleware
from app.api.routes import admin, games, leaderboard, notifications, payments, players, scatter
from app.api.schemas.common import HealthCheckResponse, SuccessResponse, create_error_response
from app.cache.redis_client import close_redis_client, shared_client
from app.core.config import settings
from app.core.database import init_database, close_database, DatabaseManager
from app.core.exceptions import (
    DealOrNoDealException,
    AuthenticationError,
    AuthorizationError,
    BlockchainError,
    ConflictError,
    ExternalServiceError,
    GameStateError,
    NotFoundError,
    PaymentError,
    RateLimitError,
    ValidationError,
)
from app.core.logging import setup_logging
from app.scheduler.leaderboard_scheduler import get_leaderboard_scheduler, shutdown_leaderboard_scheduler
from app.scheduler.payment_monitor import get_payment_monitor, shutdown_payment_monitor
from app.services.bsc_client import close_bsc_client
from app.services.market_ticker import get_market_ticker, shutdown_market_ticker


logger = structlog.get_logger(__name__)

# Most specific first
EXCEPTION_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PaymentError, status.HTTP_402_PAYMENT_REQUIRED),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (GameStateError, status.HTTP_400_BAD_REQUEST),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (BlockchainError, status.HTTP_502_BAD_GATEWAY),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def status_for_exception(exc: DealOrNoDealException) -> int:
    for exc_type, status_code in EXCEPTION_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def domain_exception_handler(request: Request, exc: DealOrNoDealException) -> JSONResponse:
    status_code = status_for_exception(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request rejected",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.code,
        error=exc.message
    )
    body = create_error_response(exc.message, exc.code, exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Deal or No Deal backend", version=settings.app_version)

    await init_database()

    monitor = get_payment_monitor()
    scheduler = get_leaderboard_scheduler()
    ticker = get_market_ticker()
    try:
        await monitor.start()
        await scheduler.start()
        await ticker.start()
    except DealOrNoDealException as e:
        logger.error("Failed to start background services", error=e.message)

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    await shutdown_market_ticker()
    await shutdown_leaderboard_scheduler()
    await shutdown_payment_monitor()
    await close_bsc_client()
    await close_redis_client()
    await close_database()
    logger.info("Application shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Create and configure FastAPI application."""
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        Backend API for Deal or No Deal - pay the entry fee in USDT on BNB Smart
        Chain, open cases, beat the banker and climb the monthly XP leaderboard.

        ## Authentication

        Use your BNB Smart Chain wallet address as a Bearer token:
        ```
        Authorization: Bearer <0x wallet address>
        ```

        ## Payments

        1. `POST /payments/intents` with the chosen case
        2. Send the USDT transfer, then `POST /payments/submit` with the hash
        3. Wait about 15 seconds, then poll `GET /payments/status/{tx_hash}`
           up to 12 times every 3 seconds until it reports `completed`
        """,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan if use_lifespan else None,
    )

    add_middleware(app)
    app.add_exception_handler(DealOrNoDealException, domain_exception_handler)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check"
    )
    async def health_check():
        database = await DatabaseManager.health_check()
        services = {"api": "healthy", "database": database["status"]}

        redis = shared_client()
        if redis is not None:
            services["redis"] = (await redis.health_check())["status"]

        if database["status"] != "healthy":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "unhealthy",
                    "version": settings.app_version,
                    "services": services,
                    "error": database.get("error"),
                }
            )

        return HealthCheckResponse(status="healthy", version=settings.app_version, services=services)

    @app.get("/", response_model=SuccessResponse, tags=["System"], summary="API Information")
    async def root():
        return SuccessResponse(
            message=f"{settings.app_name} v{settings.app_version}",
            data={
                "version": settings.app_version,
                "environment": settings.environment,
                "docs_url": "/docs" if settings.debug else None,
            }
        )

    prefix = settings.api_v1_prefix
    app.include_router(games.router, prefix=f"{prefix}/games", tags=["Games"])
    app.include_router(payments.router, prefix=f"{prefix}/payments", tags=["Payments"])
    app.include_router(players.router, prefix=f"{prefix}/players", tags=["Players"])
    app.include_router(leaderboard.router, prefix=f"{prefix}/leaderboard", tags=["Leaderboard"])
    app.include_router(scatter.router, prefix=f"{prefix}/scatter", tags=["Scatter"])
    app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["Notifications"])
    app.include_router(admin.router, prefix=f"{prefix}/admin", tags=["Admin"])

    logger.info("FastAPI application created successfully")
    return app
