"""FastAPI application entry point."""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadengine.config import settings
from leadengine.api import health, intake, leads, site_visits
from leadengine.api.health import ACCESS_DENIED, ERRORS
from leadengine.errors import (
    ConflictError,
    LeadEngineError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

logger = structlog.get_logger()

app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant lead lifecycle engine for real-estate agencies",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS - allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(intake.router, prefix=settings.api_prefix)
app.include_router(leads.router, prefix=settings.api_prefix)
app.include_router(site_visits.router, prefix=settings.api_prefix)

STATUS_BY_ERROR = (
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


@app.exception_handler(LeadEngineError)
async def lead_engine_error_handler(request: Request, exc: LeadEngineError):
    status = next((code for cls, code in STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    if isinstance(exc, PermissionDeniedError):
        ACCESS_DENIED.labels(reason=exc.reason).inc()
    if status == 500:
        ERRORS.labels(type=exc.code).inc()
        logger.error("lead_engine_error", path=request.url.path, code=exc.code, error=str(exc))
    return JSONResponse(status_code=status, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    ERRORS.labels(type=type(exc).__name__).inc()
    logger.error("unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "internal_error"})


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
    }
