"""Request and response schemas for lead operations."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from leadengine.schemas.enums import (
    AssignmentMethod,
    CommunicationDirection,
    CommunicationType,
    InterestLevel,
    LeadStatus,
    TaskStatus,
    TaskType,
)
from leadengine.schemas.lead import Contact, EntryPermissions, Inquiry, Lead


class LeadCreate(BaseModel):
    agency_id: Optional[str] = None
    contact: Contact
    inquiry: Inquiry = Field(default_factory=Inquiry)
    source: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    campaign_name: Optional[str] = None
    property_id: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    team: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    ignore_duplicates: bool = False


class LeadUpdate(BaseModel):
    """Partial update. Only fields present in the request are applied."""

    contact: Optional[dict[str, Any]] = None
    inquiry: Optional[dict[str, Any]] = None
    booking: Optional[dict[str, Any]] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    source: Optional[str] = None
    campaign_name: Optional[str] = None
    property_id: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    team: Optional[str] = None
    tags: Optional[list[str]] = None
    lost_reason: Optional[str] = None


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    is_private: bool = False


class NoteUpdate(BaseModel):
    content: Optional[str] = Field(default=None, min_length=1, max_length=10000)
    is_private: Optional[bool] = None


class CommunicationCreate(BaseModel):
    type: CommunicationType
    direction: CommunicationDirection = CommunicationDirection.OUTBOUND
    subject: Optional[str] = None
    content: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    outcome: Optional[str] = None


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: TaskType = TaskType.FOLLOW_UP
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    status: Optional[TaskStatus] = None


class ReminderCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    reminder_date: datetime


class ReminderUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    reminder_date: Optional[datetime] = None
    is_completed: Optional[bool] = None


class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    type: Optional[str] = None
    size: Optional[int] = None


class AssignRequest(BaseModel):
    agent_id: str
    team: Optional[str] = None


class AutoAssignRequest(BaseModel):
    method: AssignmentMethod = AssignmentMethod.ROUND_ROBIN


class AssignmentOutcome(BaseModel):
    lead: Lead
    agent_id: Optional[str] = None
    method: AssignmentMethod
    assigned: bool


class SiteVisitCreate(BaseModel):
    scheduled_date: datetime
    scheduled_time: Optional[str] = None
    relationship_manager: Optional[str] = None
    property_id: Optional[str] = None
    notes: Optional[str] = None


class SiteVisitComplete(BaseModel):
    feedback: Optional[str] = None
    interest_level: Optional[InterestLevel] = None
    next_action: Optional[str] = None


class SiteVisitReschedule(BaseModel):
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = None
    relationship_manager: Optional[str] = None
    notes: Optional[str] = None


class SiteVisitCancel(BaseModel):
    visit_id: Optional[str] = None
    reason: Optional[str] = None


class MergeRequest(BaseModel):
    source_lead_id: str


class BulkImportRequest(BaseModel):
    agency_id: Optional[str] = None
    leads: list[dict[str, Any]] = Field(..., min_length=1)


class BulkImportError(BaseModel):
    row: int
    errors: list[str]


class BulkImportResult(BaseModel):
    imported: int
    failed: int
    lead_ids: list[str] = Field(default_factory=list)
    errors: list[BulkImportError] = Field(default_factory=list)


class LeadCreateResult(BaseModel):
    lead: Lead
    is_existing: bool = False
    message: str = "Lead created"


class LeadListResponse(BaseModel):
    items: list[Lead]
    total: int
    page: int
    per_page: int


class EntryPermissionsUpdate(BaseModel):
    entry_permissions: EntryPermissions


class WebhookExportRequest(BaseModel):
    agency_id: Optional[str] = None
    status: Optional[LeadStatus] = None
    limit: Optional[int] = Field(default=None, ge=1)


class WebhookExportResult(BaseModel):
    queued: bool
    count: int
