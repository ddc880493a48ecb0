"""Tests for due-reminder collection and delivery bookkeeping."""

from datetime import timedelta

from fakes import NOW
from leadengine.schemas.enums import ActivityAction, LeadStatus, SiteVisitStatus, TaskStatus
from leadengine.schemas.lead import Lead, Reminder, SiteVisit, Task
from leadengine.services.reminders import collect_due, mark_delivered


def _lead(**kwargs) -> Lead:
    return Lead(agency_id="agency-1", lead_code="LEAD-000001",
                contact={"first_name": "Ravi", "phone": "98450"}, **kwargs)


class TestNextDueAt:
    def test_nothing_scheduled(self):
        assert _lead().next_due_at is None

    def test_earliest_pending_reminder(self):
        lead = _lead(reminders=[
            Reminder(title="later", reminder_date=NOW + timedelta(days=3)),
            Reminder(title="sooner", reminder_date=NOW + timedelta(days=1)),
            Reminder(title="done", reminder_date=NOW, is_completed=True),
        ])
        assert lead.next_due_at == NOW + timedelta(days=1)

    def test_task_due_a_day_ahead(self):
        lead = _lead(tasks=[Task(title="Send brochure", due_date=NOW + timedelta(days=2))])
        assert lead.next_due_at == NOW + timedelta(days=1)

    def test_task_with_notice_sent_waits_for_due_date(self):
        task = Task(title="Send brochure", due_date=NOW + timedelta(hours=5), reminder_sent_at=NOW)
        assert _lead(tasks=[task]).next_due_at == NOW + timedelta(hours=5)

    def test_closed_tasks_ignored(self):
        task = Task(title="Done", due_date=NOW, status=TaskStatus.COMPLETED)
        assert _lead(tasks=[task]).next_due_at is None

    def test_scheduled_visit_counts(self):
        visit = SiteVisit(scheduled_date=NOW + timedelta(days=4))
        lead = _lead(status=LeadStatus.SITE_VISIT_SCHEDULED, site_visits=[visit])
        assert lead.next_due_at == NOW + timedelta(days=4)

    def test_stored_with_document(self):
        lead = _lead(reminders=[Reminder(title="Call", reminder_date=NOW)])
        doc = lead.model_dump(mode="json")
        assert doc["next_due_at"].startswith("2025-01-15T10:00:00")
        # Loading a stored document ignores the derived value
        assert Lead.model_validate(doc).next_due_at == NOW


class TestCollectDue:
    def test_due_reminder_collected(self):
        due_one = Reminder(title="Call back", reminder_date=NOW - timedelta(minutes=5))
        lead = _lead(reminders=[due_one, Reminder(title="Later", reminder_date=NOW + timedelta(hours=1))])
        due = collect_due(lead, NOW)
        assert [r.id for r in due.reminders] == [due_one.id]
        assert due.has_alerts

    def test_sent_reminder_not_repeated(self):
        lead = _lead(reminders=[Reminder(title="Call", reminder_date=NOW, sent_at=NOW)])
        assert not collect_due(lead, NOW)

    def test_task_inside_notice_window(self):
        lead = _lead(tasks=[Task(title="Share floor plan", due_date=NOW + timedelta(hours=6))])
        due = collect_due(lead, NOW)
        assert len(due.upcoming_tasks) == 1
        assert due.overdue_tasks == []

    def test_overdue_task(self):
        lead = _lead(tasks=[Task(title="Call", due_date=NOW - timedelta(hours=1), reminder_sent_at=NOW)])
        due = collect_due(lead, NOW)
        assert len(due.overdue_tasks) == 1
        assert due.upcoming_tasks == []

    def test_passed_visit_is_a_no_show(self):
        visit = SiteVisit(scheduled_date=NOW - timedelta(hours=2))
        due = collect_due(_lead(status=LeadStatus.SITE_VISIT_SCHEDULED, site_visits=[visit]), NOW)
        assert due.no_show
        assert not due.has_alerts


class TestMarkDelivered:
    def test_marks_and_logs(self):
        lead = _lead(
            reminders=[Reminder(title="Call", reminder_date=NOW)],
            tasks=[Task(title="Overdue call", due_date=NOW - timedelta(days=1))],
        )
        due = collect_due(lead, NOW)
        mark_delivered(lead, due, NOW)

        assert lead.reminders[0].sent_at == NOW
        assert lead.tasks[0].overdue_alerted_at == NOW
        assert lead.tasks[0].reminder_sent_at == NOW
        assert lead.activity_log[-1].action == ActivityAction.REMINDER_SENT
        assert "1 overdue task(s)" in lead.activity_log[-1].description
        assert lead.next_due_at is None
        assert not collect_due(lead, NOW)

    def test_upcoming_task_alerted_again_once_overdue(self):
        lead = _lead(tasks=[Task(title="Call", due_date=NOW + timedelta(hours=2))])
        mark_delivered(lead, collect_due(lead, NOW), NOW)
        assert lead.next_due_at == NOW + timedelta(hours=2)

        later = NOW + timedelta(hours=3)
        assert len(collect_due(lead, later).overdue_tasks) == 1

    def test_no_show_flagged(self):
        visit = SiteVisit(scheduled_date=NOW - timedelta(hours=2))
        visit_reminder = Reminder(title="Site visit tomorrow", reminder_date=NOW + timedelta(days=1),
                                  site_visit_id=visit.id)
        lead = _lead(status=LeadStatus.SITE_VISIT_SCHEDULED, site_visits=[visit], reminders=[visit_reminder])
        mark_delivered(lead, collect_due(lead, NOW), NOW)

        assert lead.current_site_visit.status == SiteVisitStatus.NO_SHOW
        assert lead.reminders[0].is_completed
        assert lead.next_due_at is None
