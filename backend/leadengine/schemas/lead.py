"""Lead aggregate and its sub-entities.

The lead is persisted as a single JSON document; these models are the
single source of truth for its shape. Legacy shapes (a lone ``site_visit``,
free-form priority/source strings) are migrated on load.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, Field, computed_field, field_validator, model_validator

from leadengine.config import settings
from leadengine.schemas.enums import (
    ActivityAction,
    CommunicationDirection,
    CommunicationType,
    InterestLevel,
    LeadPriority,
    LeadSource,
    LeadStatus,
    SiteVisitStatus,
    SlaStatus,
    TaskStatus,
    TaskType,
    TERMINAL_STATUSES,
)
from leadengine.services.normalization import normalize_priority, normalize_source, normalize_status


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

# Open tasks get a heads-up this long before they fall due
TASK_DUE_NOTICE = timedelta(hours=24)


def new_id() -> str:
    return str(uuid.uuid4())


class Contact(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Budget(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    currency: str = Field(default_factory=lambda: settings.default_currency)

    @field_validator("min", "max", mode="before")
    @classmethod
    def _numeric_or_none(cls, v):
        # Non-numeric input is treated as absent rather than rejected
        if v is None or v == "":
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None


class Inquiry(BaseModel):
    message: Optional[str] = None
    budget: Budget = Field(default_factory=Budget)
    preferred_location: list[str] = Field(default_factory=list)
    property_type: list[str] = Field(default_factory=list)
    timeline: Optional[str] = None
    requirements: Optional[str] = None
    project_name: Optional[str] = None
    purpose: Optional[str] = None


class Note(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str
    is_private: bool = False
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Communication(BaseModel):
    id: str = Field(default_factory=new_id)
    type: CommunicationType
    direction: CommunicationDirection = CommunicationDirection.OUTBOUND
    subject: Optional[str] = None
    content: Optional[str] = None
    duration: Optional[int] = None  # seconds
    outcome: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: Optional[str] = None
    type: TaskType = TaskType.FOLLOW_UP
    due_date: Optional[UtcDatetime] = None
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    completed_at: Optional[UtcDatetime] = None
    reminder_sent_at: Optional[UtcDatetime] = None
    overdue_alerted_at: Optional[UtcDatetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class Reminder(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: Optional[str] = None
    reminder_date: UtcDatetime
    is_completed: bool = False
    site_visit_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    completed_at: Optional[UtcDatetime] = None
    sent_at: Optional[UtcDatetime] = None

    @property
    def is_pending(self) -> bool:
        return not self.is_completed and self.sent_at is None


class Document(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    url: str
    type: Optional[str] = None
    size: Optional[int] = None
    uploaded_by: Optional[str] = None
    uploaded_at: UtcDatetime = Field(default_factory=utcnow)


class SiteVisit(BaseModel):
    id: str = Field(default_factory=new_id)
    scheduled_date: UtcDatetime
    scheduled_time: Optional[str] = None
    status: SiteVisitStatus = SiteVisitStatus.SCHEDULED
    completed_date: Optional[UtcDatetime] = None
    cancelled_date: Optional[UtcDatetime] = None
    feedback: Optional[str] = None
    interest_level: Optional[InterestLevel] = None
    next_action: Optional[str] = None
    relationship_manager: Optional[str] = None
    property_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Booking(BaseModel):
    unit_number: Optional[str] = None
    booking_amount: Optional[float] = None
    payment_mode: Optional[str] = None
    agreement_status: Optional[str] = None
    booking_date: Optional[UtcDatetime] = None


class SlaState(BaseModel):
    first_contact_at: Optional[UtcDatetime] = None
    first_contact_sla: int = Field(default_factory=lambda: settings.default_first_contact_sla_ms)
    response_time: Optional[int] = None  # ms
    status: SlaStatus = SlaStatus.PENDING
    last_contact_at: Optional[UtcDatetime] = None


class ScoreDetails(BaseModel):
    source: int = 0
    budget: int = 0
    timeline: int = 0
    engagement: int = 0
    total: int = 0
    calculated_at: UtcDatetime = Field(default_factory=utcnow)


class RolePermissions(BaseModel):
    view: bool = True
    edit: bool = True
    delete: bool = False


class EntryPermissions(BaseModel):
    agency_admin: RolePermissions = Field(default_factory=RolePermissions)
    agent: RolePermissions = Field(default_factory=RolePermissions)
    staff: RolePermissions = Field(default_factory=RolePermissions)

    def for_role(self, role: str) -> RolePermissions | None:
        return getattr(self, role, None) if role in ("agency_admin", "agent", "staff") else None


class ActivityEntry(BaseModel):
    action: ActivityAction
    field: Optional[str] = None
    old_value: Any = None
    new_value: Any = None
    description: Optional[str] = None
    performed_by: Optional[str] = None
    timestamp: UtcDatetime = Field(default_factory=utcnow)


class InterestedProperty(BaseModel):
    property_id: str
    action: str = "inquiry"
    date: UtcDatetime = Field(default_factory=utcnow)


class Lead(BaseModel):
    id: str = Field(default_factory=new_id)
    lead_code: Optional[str] = None
    agency_id: str

    status: LeadStatus = LeadStatus.NEW
    priority: LeadPriority = LeadPriority.WARM
    source: LeadSource = LeadSource.WEBSITE
    campaign_name: Optional[str] = None

    contact: Contact = Field(default_factory=Contact)
    inquiry: Inquiry = Field(default_factory=Inquiry)
    property_id: Optional[str] = None
    interested_properties: list[InterestedProperty] = Field(default_factory=list)

    assigned_agent_id: Optional[str] = None
    assigned_by: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    team: Optional[str] = None

    notes: list[Note] = Field(default_factory=list)
    communications: list[Communication] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    reminders: list[Reminder] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)
    site_visits: list[SiteVisit] = Field(default_factory=list)
    booking: Optional[Booking] = None
    tags: list[str] = Field(default_factory=list)

    score: int = 0
    score_details: Optional[ScoreDetails] = None
    sla: SlaState = Field(default_factory=SlaState)
    entry_permissions: EntryPermissions = Field(default_factory=EntryPermissions)
    activity_log: list[ActivityEntry] = Field(default_factory=list)

    converted_at: Optional[UtcDatetime] = None
    lost_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_site_visit(cls, data):
        """Fold a stored single ``site_visit`` into the ``site_visits`` list."""
        if not isinstance(data, dict) or "site_visit" not in data:
            return data
        data = dict(data)
        legacy = data.pop("site_visit")
        if not legacy:
            return data
        visits = list(data.get("site_visits") or [])
        legacy_id = legacy.get("id") if isinstance(legacy, dict) else getattr(legacy, "id", None)
        known_ids = {
            v.get("id") if isinstance(v, dict) else getattr(v, "id", None)
            for v in visits
        }
        if legacy_id is None or legacy_id not in known_ids:
            visits.insert(0, legacy)
        data["site_visits"] = visits
        return data

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, v):
        return normalize_priority(v)

    @field_validator("source", mode="before")
    @classmethod
    def _normalize_source(cls, v):
        return normalize_source(v)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_status(v)

    @property
    def current_site_visit(self) -> SiteVisit | None:
        """The latest visit entry, derived rather than stored."""
        return self.site_visits[-1] if self.site_visits else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @computed_field
    @property
    def next_due_at(self) -> Optional[datetime]:
        """Earliest moment the reminder sweep has work on this lead.

        Stored with the document and mirrored to an indexed column, so the
        sweep selects due leads without scanning every document.
        """
        candidates = [r.reminder_date for r in self.reminders if r.is_pending]
        for task in self.tasks:
            if not task.is_open or task.due_date is None:
                continue
            if task.reminder_sent_at is None:
                candidates.append(task.due_date - TASK_DUE_NOTICE)
            elif task.overdue_alerted_at is None:
                candidates.append(task.due_date)
        visit = self.current_site_visit
        if (self.status == LeadStatus.SITE_VISIT_SCHEDULED and visit is not None
                and visit.status == SiteVisitStatus.SCHEDULED):
            candidates.append(visit.scheduled_date)
        return min(candidates) if candidates else None

    def find_note(self, note_id: str) -> Note | None:
        return next((n for n in self.notes if n.id == note_id), None)

    def find_task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_reminder(self, reminder_id: str) -> Reminder | None:
        return next((r for r in self.reminders if r.id == reminder_id), None)

    def find_site_visit(self, visit_id: str) -> SiteVisit | None:
        return next((v for v in self.site_visits if v.id == visit_id), None)
