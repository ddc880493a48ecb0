"""Date-triggered follow-ups: due reminders, task due notices, overdue task alerts.

``collect_due`` decides what a periodic sweep owes a lead at ``now``;
``mark_delivered`` records it so the next sweep does not repeat it. A
visit left unattended past its date is flagged as a no-show on the same
pass.
"""

from dataclasses import dataclass, field
from datetime import datetime

from leadengine.schemas.enums import ActivityAction, LeadStatus, SiteVisitStatus
from leadengine.schemas.lead import TASK_DUE_NOTICE, Lead, Reminder, Task
from leadengine.services import lifecycle
from leadengine.services.activity import log_activity


@dataclass
class DueItems:
    reminders: list[Reminder] = field(default_factory=list)
    upcoming_tasks: list[Task] = field(default_factory=list)
    overdue_tasks: list[Task] = field(default_factory=list)
    no_show: bool = False

    @property
    def has_alerts(self) -> bool:
        return bool(self.reminders or self.upcoming_tasks or self.overdue_tasks)

    def __bool__(self) -> bool:
        return self.has_alerts or self.no_show


def collect_due(lead: Lead, now: datetime) -> DueItems:
    due = DueItems()
    due.reminders = [r for r in lead.reminders if r.is_pending and r.reminder_date <= now]
    for task in lead.tasks:
        if not task.is_open or task.due_date is None:
            continue
        if task.due_date < now:
            if task.overdue_alerted_at is None:
                due.overdue_tasks.append(task)
        elif task.reminder_sent_at is None and task.due_date - TASK_DUE_NOTICE <= now:
            due.upcoming_tasks.append(task)

    visit = lead.current_site_visit
    due.no_show = bool(
        visit is not None and lead.status == LeadStatus.SITE_VISIT_SCHEDULED
        and visit.status == SiteVisitStatus.SCHEDULED and visit.scheduled_date < now
    )
    return due


def mark_delivered(lead: Lead, due: DueItems, now: datetime) -> None:
    for reminder in due.reminders:
        reminder.sent_at = now
    for task in due.upcoming_tasks:
        task.reminder_sent_at = now
    for task in due.overdue_tasks:
        # An overdue task never gets the heads-up afterwards
        task.reminder_sent_at = task.reminder_sent_at or now
        task.overdue_alerted_at = now

    if due.has_alerts:
        parts = []
        if due.reminders:
            parts.append(f"{len(due.reminders)} reminder(s)")
        if due.upcoming_tasks:
            parts.append(f"{len(due.upcoming_tasks)} task(s) due soon")
        if due.overdue_tasks:
            parts.append(f"{len(due.overdue_tasks)} overdue task(s)")
        log_activity(lead, ActivityAction.REMINDER_SENT, lifecycle.SYSTEM_ACTOR,
                     description="Sent " + ", ".join(parts))
    if due.no_show:
        lifecycle.mark_no_show(lead, now)
