"""Health check and metrics endpoints."""

from fastapi import APIRouter, Response
from prometheus_client import Counter, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text

from leadengine.database import SessionLocal
from leadengine.schemas.common import HealthResponse
from leadengine.services.dispatch import get_redis
from leadengine.services.webhook import WebhookEmitter

router = APIRouter(tags=["health"])

# Prometheus metrics
LEADS_CREATED = Counter("leads_created_total", "Leads created or re-engaged", ["channel", "outcome"])
ASSIGNMENTS = Counter("lead_assignments_total", "Lead assignments", ["method"])
ACCESS_DENIED = Counter("lead_access_denied_total", "Guard denials", ["reason"])
ERRORS = Counter("errors_total", "Total errors", ["type"])


@router.get("/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint."""
    db_status = "ok"
    redis_status = "ok"

    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"

    try:
        get_redis().ping()
    except Exception:
        redis_status = "error"

    overall = "healthy" if db_status == "ok" and redis_status == "ok" else "degraded"
    return HealthResponse(
        status=overall,
        db=db_status,
        redis=redis_status,
        webhook="enabled" if WebhookEmitter().is_enabled else "disabled",
    )


@router.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
