"""Lead endpoints: intake, reads, edits and engagement records."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response

from leadengine.api.deps import get_lead_service
from leadengine.api.health import ASSIGNMENTS, LEADS_CREATED
from leadengine.middleware.auth import get_principal, optional_principal
from leadengine.schemas.enums import LeadPriority, LeadSource, LeadStatus
from leadengine.schemas.lead import Lead
from leadengine.schemas.requests import (
    AssignmentOutcome,
    AssignRequest,
    AutoAssignRequest,
    CommunicationCreate,
    DocumentCreate,
    EntryPermissionsUpdate,
    LeadCreate,
    LeadCreateResult,
    LeadListResponse,
    LeadUpdate,
    MergeRequest,
    NoteCreate,
    NoteUpdate,
    ReminderCreate,
    ReminderUpdate,
    TaskCreate,
    TaskUpdate,
)
from leadengine.services.guard import Principal
from leadengine.services.leads import LeadService

logger = structlog.get_logger()
router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("", response_model=LeadCreateResult, status_code=201)
def create_lead(
    payload: LeadCreate,
    response: Response,
    principal: Optional[Principal] = Depends(optional_principal),
    service: LeadService = Depends(get_lead_service),
):
    """Create a lead. Anonymous callers are allowed (public enquiry forms)."""
    result = service.create(payload, principal)
    if result.is_existing:
        response.status_code = 200
    LEADS_CREATED.labels(channel="api", outcome="existing" if result.is_existing else "created").inc()
    if result.lead.assigned_agent_id and not result.is_existing:
        ASSIGNMENTS.labels(method="create").inc()
    return result


@router.get("", response_model=LeadListResponse)
def list_leads(
    status: Optional[LeadStatus] = None,
    priority: Optional[LeadPriority] = None,
    source: Optional[LeadSource] = None,
    assigned_agent_id: Optional[str] = None,
    team: Optional[str] = None,
    agency_id: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    filters = {
        "status": status,
        "priority": priority,
        "source": source,
        "assigned_agent_id": assigned_agent_id,
        "team": team,
        "agency_id": agency_id,
    }
    return service.list_leads(principal, filters=filters, search=search, page=page, per_page=per_page)


@router.get("/{lead_id}", response_model=Lead)
def get_lead(
    lead_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.get(lead_id, principal)


@router.patch("/{lead_id}", response_model=Lead)
def update_lead(
    lead_id: str,
    payload: LeadUpdate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.update(lead_id, payload, principal)


@router.delete("/{lead_id}", status_code=204)
def delete_lead(
    lead_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    service.delete(lead_id, principal)
    return Response(status_code=204)


@router.get("/{lead_id}/duplicates", response_model=list[Lead])
def find_duplicates(
    lead_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.find_duplicates(lead_id, principal)


@router.post("/{lead_id}/merge", response_model=Lead)
def merge_leads(
    lead_id: str,
    payload: MergeRequest,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    """Fold ``source_lead_id`` into this lead and delete the source."""
    return service.merge(lead_id, payload.source_lead_id, principal)


@router.put("/{lead_id}/entry-permissions", response_model=Lead)
def set_entry_permissions(
    lead_id: str,
    payload: EntryPermissionsUpdate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.set_entry_permissions(lead_id, payload.entry_permissions, principal)


# --- assignment & scoring ---

@router.post("/{lead_id}/assign", response_model=Lead)
def assign_lead(
    lead_id: str,
    payload: AssignRequest,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    lead = service.assign(lead_id, payload.agent_id, principal, team=payload.team)
    ASSIGNMENTS.labels(method="manual").inc()
    return lead


@router.post("/{lead_id}/auto-assign", response_model=AssignmentOutcome)
def auto_assign_lead(
    lead_id: str,
    payload: AutoAssignRequest,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    outcome = service.auto_assign(lead_id, payload.method, principal)
    if outcome.assigned:
        ASSIGNMENTS.labels(method=outcome.method.value).inc()
    return outcome


@router.post("/{lead_id}/rescore", response_model=Lead)
def rescore_lead(
    lead_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.rescore(lead_id, principal)


@router.post("/{lead_id}/auto-stage")
def auto_stage_lead(
    lead_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    lead, changes = service.auto_stage(lead_id, principal)
    return {"lead": lead, "changes": changes}


# --- engagement records ---

@router.post("/{lead_id}/notes", response_model=Lead, status_code=201)
def add_note(
    lead_id: str,
    payload: NoteCreate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.add_note(lead_id, payload, principal)


@router.patch("/{lead_id}/notes/{note_id}", response_model=Lead)
def update_note(
    lead_id: str,
    note_id: str,
    payload: NoteUpdate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.update_note(lead_id, note_id, payload, principal)


@router.delete("/{lead_id}/notes/{note_id}", response_model=Lead)
def delete_note(
    lead_id: str,
    note_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.delete_note(lead_id, note_id, principal)


@router.post("/{lead_id}/communications", response_model=Lead, status_code=201)
def add_communication(
    lead_id: str,
    payload: CommunicationCreate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    """Log a call/email/sms/meeting. The first non-note entry settles the SLA."""
    return service.add_communication(lead_id, payload, principal)


@router.post("/{lead_id}/tasks", response_model=Lead, status_code=201)
def add_task(
    lead_id: str,
    payload: TaskCreate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.add_task(lead_id, payload, principal)


@router.patch("/{lead_id}/tasks/{task_id}", response_model=Lead)
def update_task(
    lead_id: str,
    task_id: str,
    payload: TaskUpdate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.update_task(lead_id, task_id, payload, principal)


@router.delete("/{lead_id}/tasks/{task_id}", response_model=Lead)
def delete_task(
    lead_id: str,
    task_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.delete_task(lead_id, task_id, principal)


@router.post("/{lead_id}/reminders", response_model=Lead, status_code=201)
def add_reminder(
    lead_id: str,
    payload: ReminderCreate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.add_reminder(lead_id, payload, principal)


@router.patch("/{lead_id}/reminders/{reminder_id}", response_model=Lead)
def update_reminder(
    lead_id: str,
    reminder_id: str,
    payload: ReminderUpdate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.update_reminder(lead_id, reminder_id, payload, principal)


@router.delete("/{lead_id}/reminders/{reminder_id}", response_model=Lead)
def delete_reminder(
    lead_id: str,
    reminder_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.delete_reminder(lead_id, reminder_id, principal)


@router.post("/{lead_id}/documents", response_model=Lead, status_code=201)
def add_document(
    lead_id: str,
    payload: DocumentCreate,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.add_document(lead_id, payload, principal)


@router.delete("/{lead_id}/documents/{document_id}", response_model=Lead)
def delete_document(
    lead_id: str,
    document_id: str,
    principal: Principal = Depends(get_principal),
    service: LeadService = Depends(get_lead_service),
):
    return service.delete_document(lead_id, document_id, principal)
