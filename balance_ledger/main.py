"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from balance_ledger.config import settings
from balance_ledger.jobs.scheduler import register_jobs, scheduler
from balance_ledger.routers import admin, balance, transactions
from balance_ledger.schemas.balance import BalanceUpdate
from balance_ledger.services.notifier import BALANCE_UPDATE_EVENT, BalanceNotifier
from balance_ledger.utils.errors import AppError, ValidationError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _log_balance_update(update: BalanceUpdate) -> None:
    logger.debug("%s %s -> %s", BALANCE_UPDATE_EVENT, update.user_id, update.current_balance)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Share one balance notifier and run the accrual jobs with the app."""
    notifier = BalanceNotifier()
    notifier.subscribe(_log_balance_update)
    app.state.notifier = notifier

    if settings.enable_scheduler:
        register_jobs(notifier)
        scheduler.start()
        logger.info("Scheduler started (timezone %s)", settings.timezone)
    try:
        yield
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    """Convert domain exceptions into structured API responses."""
    if exc.status_code >= 500:
        logger.warning("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Report the first body/query validation failure as INVALID_INPUT."""
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return await app_error_handler(request, ValidationError(message))


async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    """Catch unexpected errors without leaking internals."""
    logger.exception("Unhandled exception", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


async def request_timing_middleware(request: Request, call_next):
    """Stamp processing time on responses and warn about slow requests."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.1f}"

    threshold_ms = settings.slow_request_log_threshold_ms
    if 0 < threshold_ms <= elapsed_ms:
        logger.warning("Slow request %s %s %.1fms", request.method, request.url.path, elapsed_ms)
    return response


def create_app() -> FastAPI:
    """Build the API with middleware, error handlers and routers attached."""
    application = FastAPI(
        title=settings.app_name,
        description="Balance ledger and transaction approval API",
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(request_timing_middleware)

    application.add_exception_handler(AppError, app_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
    application.include_router(balance.router, prefix="/balance", tags=["balance"])
    application.include_router(admin.router, prefix="/admin", tags=["admin"])

    @application.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint for deploys and uptime probes."""
        return {"status": "ok", "version": settings.app_version}

    return application


app = create_app()
