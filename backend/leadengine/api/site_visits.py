"""Site-visit endpoints nested under a lead."""

from fastapi import APIRouter, Depends

from leadengine.api.deps import get_lead_service
from leadengine.middleware.auth import get_principal
from leadengine.schemas.lead import Lead
from leadengine.schemas.requests import (
    SiteVisitCancel,
    SiteVisitComplete,
    SiteVisitCreate,
    SiteVisitReschedule,
)
from leadengine.services.guard import Principal
from leadengine.services.leads import LeadService

router = APIRouter(prefix="/leads/{lead_id}/site-visits", tags=["site-visits"])


@router.post("", response_model=Lead, status_code=201)
def schedule_site_visit(
    lead_id: str,
    payload: SiteVisitCreate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    """Schedule a visit. Unassigned leads are auto-assigned on a best-effort basis."""
    return service.schedule_site_visit(lead_id, payload, principal)


@router.post("/complete", response_model=Lead)
def complete_site_visit(
    lead_id: str,
    payload: SiteVisitComplete,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.complete_site_visit(lead_id, payload, principal)


@router.post("/cancel", response_model=Lead)
def cancel_site_visit(
    lead_id: str,
    payload: SiteVisitCancel,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.cancel_site_visit(lead_id, principal, visit_id=payload.visit_id, reason=payload.reason)


@router.patch("/{visit_id}", response_model=Lead)
def reschedule_site_visit(
    lead_id: str,
    visit_id: str,
    payload: SiteVisitReschedule,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.reschedule_site_visit(lead_id, visit_id, payload, principal)


@router.patch("/{visit_id}/remarks", response_model=Lead)
def update_site_visit_remarks(
    lead_id: str,
    visit_id: str,
    payload: SiteVisitComplete,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.update_site_visit_remarks(lead_id, visit_id, payload, principal)


@router.delete("/{visit_id}", response_model=Lead)
def delete_site_visit(
    lead_id: str,
    visit_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.delete_site_visit(lead_id, visit_id, principal)
