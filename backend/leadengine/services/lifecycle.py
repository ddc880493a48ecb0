"""Lead state machine: status changes, site-visit sub-lifecycle, auto-stage.

Primary lead status is advisory (any editor may set any status), so these
functions only record the change. Tasks and site visits have real state
machines enforced here. All functions mutate the lead in place and append
activity entries; persistence is the caller's job.
"""

from datetime import datetime, timedelta

from leadengine.errors import NotFoundError, ValidationError
from leadengine.schemas.enums import (
    ActivityAction,
    InterestLevel,
    LeadPriority,
    LeadStatus,
    SiteVisitStatus,
    TaskStatus,
)
from leadengine.schemas.lead import Lead, Reminder, SiteVisit, Task, as_utc, utcnow
from leadengine.services.activity import log_activity

SYSTEM_ACTOR = "system"

# Scheduling a visit only moves early-funnel leads forward
SCHEDULABLE_FROM = frozenset({LeadStatus.NEW, LeadStatus.CONTACTED, LeadStatus.QUALIFIED})

VISIT_REMINDER_LEAD_TIME = timedelta(hours=24)
QUALIFY_MIN_COMMUNICATIONS = 3

TASK_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}


def change_status(lead: Lead, new_status: LeadStatus, performed_by: str | None,
                  now: datetime | None = None) -> bool:
    new_status = LeadStatus(new_status)
    if lead.status == new_status:
        return False
    log_activity(
        lead, ActivityAction.STATUS_CHANGE, performed_by,
        field="status", old_value=lead.status, new_value=new_status,
        description=f"Status changed from {lead.status.value} to {new_status.value}",
    )
    lead.status = new_status
    if new_status == LeadStatus.BOOKED and lead.converted_at is None:
        lead.converted_at = now or utcnow()
    return True


def change_priority(lead: Lead, new_priority: LeadPriority, performed_by: str | None) -> bool:
    new_priority = LeadPriority(new_priority)
    if lead.priority == new_priority:
        return False
    log_activity(
        lead, ActivityAction.PRIORITY_CHANGE, performed_by,
        field="priority", old_value=lead.priority, new_value=new_priority,
        description=f"Priority changed from {lead.priority.value} to {new_priority.value}",
    )
    lead.priority = new_priority
    return True


# --- site visits ---

def _add_visit_reminder(lead: Lead, visit: SiteVisit, performed_by: str | None, now: datetime) -> None:
    if visit.scheduled_date - VISIT_REMINDER_LEAD_TIME <= now:
        return
    lead.reminders.append(Reminder(
        title="Site visit tomorrow",
        description=f"Site visit scheduled for {visit.scheduled_date.date().isoformat()}"
                    + (f" at {visit.scheduled_time}" if visit.scheduled_time else ""),
        reminder_date=visit.scheduled_date - VISIT_REMINDER_LEAD_TIME,
        site_visit_id=visit.id,
        created_by=performed_by,
        created_at=now,
    ))


def _retire_visit_reminders(lead: Lead, visit_id: str, now: datetime) -> None:
    """Close a visit's pending reminders so the sweep never sends them."""
    for reminder in lead.reminders:
        if reminder.site_visit_id == visit_id and not reminder.is_completed:
            reminder.is_completed = True
            reminder.completed_at = now


def schedule_site_visit(lead: Lead, visit: SiteVisit, performed_by: str | None,
                        now: datetime | None = None) -> SiteVisit:
    """Append a visit; the legacy single visit was already folded in on load."""
    now = now or utcnow()
    lead.site_visits.append(visit)
    _add_visit_reminder(lead, visit, performed_by, now)

    log_activity(
        lead, ActivityAction.SITE_VISIT_SCHEDULED, performed_by,
        new_value=visit.scheduled_date.isoformat(),
        description=f"Site visit scheduled for {visit.scheduled_date.isoformat()}",
    )
    if lead.status in SCHEDULABLE_FROM:
        change_status(lead, LeadStatus.SITE_VISIT_SCHEDULED, performed_by, now)
    return visit


def _visit_to_complete(lead: Lead) -> SiteVisit:
    for visit in reversed(lead.site_visits):
        if visit.status == SiteVisitStatus.SCHEDULED:
            return visit
    latest = lead.current_site_visit
    if latest is None or latest.status in (SiteVisitStatus.COMPLETED, SiteVisitStatus.CANCELLED):
        raise ValidationError("No scheduled site visit to complete", code="no_scheduled_site_visit")
    return latest


def complete_site_visit(
    lead: Lead,
    performed_by: str | None,
    feedback: str | None = None,
    interest_level: InterestLevel | None = None,
    next_action: str | None = None,
    now: datetime | None = None,
) -> SiteVisit:
    now = now or utcnow()
    visit = _visit_to_complete(lead)
    visit.status = SiteVisitStatus.COMPLETED
    visit.completed_date = now
    if feedback is not None:
        visit.feedback = feedback
    if interest_level is not None:
        visit.interest_level = InterestLevel(interest_level)
    if next_action is not None:
        visit.next_action = next_action
    _retire_visit_reminders(lead, visit.id, now)

    log_activity(
        lead, ActivityAction.SITE_VISIT_COMPLETED, performed_by,
        new_value=visit.interest_level,
        description="Site visit completed" + (f" ({visit.interest_level.value} interest)" if visit.interest_level else ""),
    )
    if lead.status == LeadStatus.SITE_VISIT_SCHEDULED:
        change_status(lead, LeadStatus.SITE_VISIT_COMPLETED, performed_by, now)
    return visit


def _get_visit(lead: Lead, visit_id: str | None) -> SiteVisit:
    visit = lead.find_site_visit(visit_id) if visit_id else lead.current_site_visit
    if visit is None:
        raise NotFoundError("SiteVisit", visit_id)
    return visit


def reschedule_site_visit(
    lead: Lead,
    visit_id: str,
    performed_by: str | None,
    scheduled_date: datetime | None = None,
    scheduled_time: str | None = None,
    relationship_manager: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> SiteVisit:
    now = now or utcnow()
    visit = _get_visit(lead, visit_id)
    if visit.status == SiteVisitStatus.COMPLETED:
        raise ValidationError("A completed site visit cannot be rescheduled", code="site_visit_completed")

    old_date = visit.scheduled_date
    if scheduled_date is not None:
        visit.scheduled_date = as_utc(scheduled_date)
    if scheduled_time is not None:
        visit.scheduled_time = scheduled_time
    if relationship_manager is not None:
        visit.relationship_manager = relationship_manager
    if notes is not None:
        visit.notes = notes
    visit.status = SiteVisitStatus.SCHEDULED
    visit.cancelled_date = None
    _retire_visit_reminders(lead, visit.id, now)
    _add_visit_reminder(lead, visit, performed_by, now)

    log_activity(
        lead, ActivityAction.SITE_VISIT_UPDATED, performed_by,
        field="scheduled_date", old_value=old_date.isoformat(), new_value=visit.scheduled_date.isoformat(),
        description="Site visit rescheduled",
    )
    return visit


def update_visit_remarks(
    lead: Lead,
    visit_id: str,
    performed_by: str | None,
    feedback: str | None = None,
    interest_level: InterestLevel | None = None,
    next_action: str | None = None,
) -> SiteVisit:
    visit = _get_visit(lead, visit_id)
    if visit.status != SiteVisitStatus.COMPLETED:
        raise ValidationError("Remarks can only be edited on a completed site visit", code="site_visit_not_completed")
    if feedback is not None:
        visit.feedback = feedback
    if interest_level is not None:
        visit.interest_level = InterestLevel(interest_level)
    if next_action is not None:
        visit.next_action = next_action
    log_activity(lead, ActivityAction.SITE_VISIT_UPDATED, performed_by, description="Site visit remarks updated")
    return visit


def cancel_site_visit(lead: Lead, performed_by: str | None, visit_id: str | None = None,
                      reason: str | None = None, now: datetime | None = None) -> SiteVisit:
    visit = _get_visit(lead, visit_id)
    if visit.status == SiteVisitStatus.COMPLETED:
        raise ValidationError("A completed site visit cannot be cancelled", code="site_visit_completed")
    visit.status = SiteVisitStatus.CANCELLED
    visit.cancelled_date = now or utcnow()
    _retire_visit_reminders(lead, visit.id, visit.cancelled_date)
    log_activity(
        lead, ActivityAction.SITE_VISIT_CANCELLED, performed_by,
        description="Site visit cancelled" + (f": {reason}" if reason else ""),
    )
    return visit


def delete_site_visit(lead: Lead, visit_id: str, performed_by: str | None,
                      now: datetime | None = None) -> SiteVisit:
    """Remove a visit. The removed entry is returned, marked cancelled if it was still pending.

    Lead status is left as it is; deleting a visit does not undo the funnel.
    """
    now = now or utcnow()
    visit = _get_visit(lead, visit_id)
    lead.site_visits = [v for v in lead.site_visits if v.id != visit.id]
    _retire_visit_reminders(lead, visit.id, now)
    if visit.status == SiteVisitStatus.SCHEDULED:
        visit.status = SiteVisitStatus.CANCELLED
        visit.cancelled_date = now
    log_activity(
        lead, ActivityAction.SITE_VISIT_CANCELLED, performed_by,
        old_value=visit.scheduled_date.isoformat(),
        description=f"Site visit scheduled for {visit.scheduled_date.date().isoformat()} was deleted",
    )
    return visit


def mark_no_show(lead: Lead, now: datetime | None = None, performed_by: str = SYSTEM_ACTOR) -> bool:
    """Flag the current visit as a no-show once its date has passed unvisited."""
    now = now or utcnow()
    visit = lead.current_site_visit
    if not (lead.status == LeadStatus.SITE_VISIT_SCHEDULED and visit is not None
            and visit.status == SiteVisitStatus.SCHEDULED and visit.completed_date is None
            and visit.scheduled_date < now):
        return False
    visit.status = SiteVisitStatus.NO_SHOW
    _retire_visit_reminders(lead, visit.id, now)
    log_activity(
        lead, ActivityAction.SITE_VISIT_UPDATED, performed_by,
        field="site_visit.status", old_value=SiteVisitStatus.SCHEDULED, new_value=SiteVisitStatus.NO_SHOW,
        description="Site visit marked as no-show",
    )
    return True


# --- auto-stage ---

def auto_stage(lead: Lead, now: datetime | None = None, performed_by: str = SYSTEM_ACTOR) -> list[str]:
    """Apply forward-only heuristics in order; returns what changed."""
    now = now or utcnow()
    changes = []
    visit = lead.current_site_visit

    if (lead.status == LeadStatus.SITE_VISIT_COMPLETED and visit is not None
            and visit.interest_level == InterestLevel.HIGH):
        change_status(lead, LeadStatus.NEGOTIATION, performed_by, now)
        changes.append("negotiation")

    if (lead.status == LeadStatus.NEGOTIATION and lead.booking is not None
            and lead.booking.booking_amount):
        change_status(lead, LeadStatus.BOOKED, performed_by, now)
        lead.converted_at = lead.converted_at or now
        changes.append("booked")

    if (lead.status == LeadStatus.CONTACTED
            and len(lead.communications) >= QUALIFY_MIN_COMMUNICATIONS
            and (lead.property_id or lead.inquiry.budget.min)):
        change_status(lead, LeadStatus.QUALIFIED, performed_by, now)
        changes.append("qualified")

    if mark_no_show(lead, now, performed_by):
        changes.append("no_show")

    return changes


# --- tasks ---

def transition_task(task: Task, new_status: TaskStatus, now: datetime | None = None) -> Task:
    new_status = TaskStatus(new_status)
    if new_status == task.status:
        return task
    if new_status not in TASK_TRANSITIONS[task.status]:
        raise ValidationError(
            f"Task cannot move from {task.status.value} to {new_status.value}",
            code="invalid_task_transition",
        )
    task.status = new_status
    if new_status == TaskStatus.COMPLETED:
        task.completed_at = now or utcnow()
    return task
