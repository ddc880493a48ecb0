"""Canonical enumerations shared by the lead aggregate and the engine."""

from enum import Enum


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    SITE_VISIT_SCHEDULED = "site_visit_scheduled"
    SITE_VISIT_COMPLETED = "site_visit_completed"
    NEGOTIATION = "negotiation"
    BOOKED = "booked"
    LOST = "lost"
    CLOSED = "closed"
    JUNK = "junk"


TERMINAL_STATUSES = frozenset({LeadStatus.BOOKED, LeadStatus.LOST, LeadStatus.CLOSED, LeadStatus.JUNK})

# Statuses that count towards an agent's workload
ACTIVE_STATUSES = (
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.QUALIFIED,
    LeadStatus.SITE_VISIT_SCHEDULED,
    LeadStatus.SITE_VISIT_COMPLETED,
    LeadStatus.NEGOTIATION,
)


class LeadPriority(str, Enum):
    HOT = "Hot"
    WARM = "Warm"
    COLD = "Cold"
    NOT_INTERESTED = "Not_interested"


class LeadSource(str, Enum):
    WEBSITE = "website"
    PHONE = "phone"
    EMAIL = "email"
    WALK_IN = "walk_in"
    REFERRAL = "referral"
    SOCIAL_MEDIA = "social_media"
    OTHER = "other"


class Timeline(str, Enum):
    IMMEDIATE = "immediate"
    ONE_MONTH = "1_month"
    THREE_MONTHS = "3_months"
    SIX_MONTHS = "6_months"
    ONE_YEAR = "1_year"
    FLEXIBLE = "flexible"


class CommunicationType(str, Enum):
    CALL = "call"
    EMAIL = "email"
    SMS = "sms"
    MEETING = "meeting"
    NOTE = "note"


class CommunicationDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskType(str, Enum):
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    SITE_VISIT = "site_visit"
    FOLLOW_UP = "follow_up"
    OTHER = "other"


class SiteVisitStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class InterestLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NOT_INTERESTED = "not_interested"


class SlaStatus(str, Enum):
    PENDING = "pending"
    MET = "met"
    BREACHED = "breached"


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    AGENCY_ADMIN = "agency_admin"
    AGENT = "agent"
    STAFF = "staff"
    USER = "user"


class AssignmentMethod(str, Enum):
    ROUND_ROBIN = "round_robin"
    WORKLOAD = "workload"
    LOCATION = "location"
    PROJECT = "project"
    SOURCE = "source"
    SMART = "smart"


class ActivityAction(str, Enum):
    STATUS_CHANGE = "status_change"
    PRIORITY_CHANGE = "priority_change"
    ASSIGNMENT_CHANGE = "assignment_change"
    NOTE_ADDED = "note_added"
    NOTE_UPDATED = "note_updated"
    NOTE_DELETED = "note_deleted"
    COMMUNICATION_ADDED = "communication_added"
    TASK_ADDED = "task_added"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    REMINDER_ADDED = "reminder_added"
    REMINDER_UPDATED = "reminder_updated"
    REMINDER_DELETED = "reminder_deleted"
    REMINDER_SENT = "reminder_sent"
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_DELETED = "document_deleted"
    SITE_VISIT_SCHEDULED = "site_visit_scheduled"
    SITE_VISIT_COMPLETED = "site_visit_completed"
    SITE_VISIT_CANCELLED = "site_visit_cancelled"
    SITE_VISIT_UPDATED = "site_visit_updated"
    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    MERGED = "merged"


class GuardAction(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
