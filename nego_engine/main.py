"""FastAPI application entry point - Nego Engine"""

import asyncio
import contextlib
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nego_engine.config import settings, validate_settings
from nego_engine.core.logging import log, setup_logging
from nego_engine.core.exceptions import AppException
from nego_engine.api.routes import admin, discount_codes, negotiations
from nego_engine.tasks.expiry import run_expiry_sweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(
        debug=settings.DEBUG,
        log_format=settings.LOG_FORMAT,
        log_dir=settings.get("LOG_DIR", "logs"),
    )
    log.info(f"Starting {settings.APP_NAME}...")
    log.info(f"Environment: {settings.current_env}")
    validate_settings()

    sweeper = None
    if settings.get("SWEEPER_ENABLED", True):
        sweeper = asyncio.create_task(
            run_expiry_sweeper(settings.get("SWEEP_INTERVAL_SECONDS", 300))
        )

    yield

    log.info("Shutting down...")
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title=settings.APP_NAME,
    description="Price negotiation and single-use discount code redemption",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log all requests."""
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    request.state.request_id = request_id

    with log.contextualize(request_id=request_id):
        log.info(
            "Request started",
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000
        log.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle application exceptions."""
    if exc.status_code >= 500:
        log.error(f"{exc.details.get('code')}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    log.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


# Routes
app.include_router(
    negotiations.router,
    prefix=f"{settings.API_PREFIX}/negotiations",
    tags=["negotiations"],
)
app.include_router(
    discount_codes.router,
    prefix=f"{settings.API_PREFIX}/discount-codes",
    tags=["discount-codes"],
)
app.include_router(admin.router, prefix=f"{settings.API_PREFIX}/admin", tags=["admin"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.APP_NAME}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
    }
