"""Bulk and machine-to-machine lead intake, plus bulk webhook export."""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Response

from leadengine.api.deps import get_lead_service
from leadengine.api.health import LEADS_CREATED
from leadengine.middleware.auth import get_principal, verify_inbound_api_key
from leadengine.schemas.requests import (
    BulkImportRequest,
    BulkImportResult,
    LeadCreateResult,
    WebhookExportRequest,
    WebhookExportResult,
)
from leadengine.services.guard import Principal
from leadengine.services.leads import LeadService

logger = structlog.get_logger()
router = APIRouter(prefix="/intake", tags=["intake"])


@router.post("/webhook", response_model=LeadCreateResult, status_code=201,
             dependencies=[Depends(verify_inbound_api_key)])
def ingest_webhook_lead(
    response: Response,
    payload: dict[str, Any] = Body(...),
    service: LeadService = Depends(get_lead_service),
):
    """Accept a lead from a form builder or ad platform (X-API-Key auth)."""
    result = service.ingest_webhook(payload)
    if result.is_existing:
        response.status_code = 200
    LEADS_CREATED.labels(channel="webhook", outcome="existing" if result.is_existing else "created").inc()
    logger.info("webhook_lead_ingested", lead_id=result.lead.id, is_existing=result.is_existing)
    return result


@router.post("/bulk", response_model=BulkImportResult)
def bulk_import_leads(
    payload: BulkImportRequest,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    result = service.bulk_import(payload, principal)
    if result.imported:
        LEADS_CREATED.labels(channel="bulk", outcome="created").inc(result.imported)
    return result


@router.post("/export", response_model=WebhookExportResult, status_code=202)
def export_leads_to_webhook(
    payload: WebhookExportRequest,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    """Queue a bulk push of matching leads to the outbound webhook (super_admin)."""
    return service.export_to_webhook(payload, principal)
