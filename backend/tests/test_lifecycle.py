"""Tests for status changes, the site-visit sub-lifecycle and auto-stage."""

from datetime import timedelta

import pytest

from fakes import NOW
from leadengine.errors import NotFoundError, ValidationError
from leadengine.schemas.enums import (
    ActivityAction,
    CommunicationType,
    InterestLevel,
    LeadStatus,
    SiteVisitStatus,
    TaskStatus,
)
from leadengine.schemas.lead import Booking, Communication, Lead, SiteVisit, Task
from leadengine.services import lifecycle


def _lead(**kwargs) -> Lead:
    return Lead.model_validate({"agency_id": "a1", **kwargs})


def _visit(days=2, **kwargs) -> SiteVisit:
    return SiteVisit(scheduled_date=NOW + timedelta(days=days), **kwargs)


class TestStatusChange:
    def test_logs_and_converts(self):
        lead = _lead(status="negotiation")
        assert lifecycle.change_status(lead, LeadStatus.BOOKED, "u1", NOW)
        assert lead.converted_at == NOW
        entry = lead.activity_log[-1]
        assert entry.action == ActivityAction.STATUS_CHANGE
        assert (entry.old_value, entry.new_value) == ("negotiation", "booked")

    def test_same_status_is_noop(self):
        lead = _lead(status="contacted")
        assert not lifecycle.change_status(lead, "contacted", "u1")
        assert lead.activity_log == []


class TestScheduleSiteVisit:
    def test_advances_early_funnel_lead(self):
        lead = _lead(status="contacted")
        lifecycle.schedule_site_visit(lead, _visit(), "u1", NOW)
        assert lead.status == LeadStatus.SITE_VISIT_SCHEDULED
        assert len(lead.site_visits) == 1

    def test_does_not_regress_late_lead(self):
        lead = _lead(status="negotiation")
        lifecycle.schedule_site_visit(lead, _visit(), "u1", NOW)
        assert lead.status == LeadStatus.NEGOTIATION

    def test_reminder_day_before(self):
        lead = _lead()
        visit = _visit(days=3)
        lifecycle.schedule_site_visit(lead, visit, "u1", NOW)
        assert len(lead.reminders) == 1
        assert lead.reminders[0].reminder_date == visit.scheduled_date - timedelta(hours=24)

    def test_no_reminder_for_visit_within_a_day(self):
        lead = _lead()
        lifecycle.schedule_site_visit(lead, SiteVisit(scheduled_date=NOW + timedelta(hours=5)), "u1", NOW)
        assert lead.reminders == []

    def test_legacy_visit_kept_ahead_of_new_one(self):
        lead = _lead(status="contacted", site_visit={"id": "old", "scheduled_date": "2024-12-01T10:00:00Z"})
        lifecycle.schedule_site_visit(lead, _visit(id="new"), "u1", NOW)
        assert [v.id for v in lead.site_visits] == ["old", "new"]
        assert lead.current_site_visit.id == "new"
        assert lead.status == LeadStatus.SITE_VISIT_SCHEDULED


class TestCompleteSiteVisit:
    def test_completes_latest_scheduled(self):
        lead = _lead(status="site_visit_scheduled")
        lead.site_visits = [_visit(id="v1"), _visit(id="v2", status=SiteVisitStatus.CANCELLED)]
        visit = lifecycle.complete_site_visit(lead, "u1", feedback="Liked it",
                                              interest_level=InterestLevel.HIGH, now=NOW)
        assert visit.id == "v1"
        assert visit.status == SiteVisitStatus.COMPLETED
        assert visit.completed_date == NOW
        assert lead.status == LeadStatus.SITE_VISIT_COMPLETED

    def test_nothing_to_complete(self):
        lead = _lead(site_visits=[_visit(status=SiteVisitStatus.COMPLETED).model_dump()])
        with pytest.raises(ValidationError) as exc:
            lifecycle.complete_site_visit(lead, "u1")
        assert exc.value.code == "no_scheduled_site_visit"

    def test_no_visits(self):
        with pytest.raises(ValidationError):
            lifecycle.complete_site_visit(_lead(), "u1")


class TestVisitEdits:
    def test_reschedule_restores_scheduled(self):
        lead = _lead()
        lead.site_visits = [_visit(id="v1", status=SiteVisitStatus.NO_SHOW)]
        new_date = NOW + timedelta(days=7)
        visit = lifecycle.reschedule_site_visit(lead, "v1", "u1", scheduled_date=new_date, scheduled_time="11:00")
        assert visit.status == SiteVisitStatus.SCHEDULED
        assert visit.scheduled_date == new_date
        assert lead.activity_log[-1].action == ActivityAction.SITE_VISIT_UPDATED

    def test_completed_visit_cannot_be_rescheduled(self):
        lead = _lead()
        lead.site_visits = [_visit(id="v1", status=SiteVisitStatus.COMPLETED)]
        with pytest.raises(ValidationError):
            lifecycle.reschedule_site_visit(lead, "v1", "u1", scheduled_date=NOW)

    def test_remarks_only_on_completed(self):
        lead = _lead()
        lead.site_visits = [_visit(id="v1")]
        with pytest.raises(ValidationError):
            lifecycle.update_visit_remarks(lead, "v1", "u1", feedback="x")
        lead.site_visits[0].status = SiteVisitStatus.COMPLETED
        lifecycle.update_visit_remarks(lead, "v1", "u1", feedback="Wants corner unit")
        assert lead.site_visits[0].feedback == "Wants corner unit"

    def test_cancel_current(self):
        lead = _lead()
        lead.site_visits = [_visit(id="v1"), _visit(id="v2")]
        visit = lifecycle.cancel_site_visit(lead, "u1", reason="Customer travelling", now=NOW)
        assert visit.id == "v2"
        assert visit.status == SiteVisitStatus.CANCELLED
        assert "Customer travelling" in lead.activity_log[-1].description

    def test_delete_unknown_visit(self):
        with pytest.raises(NotFoundError):
            lifecycle.delete_site_visit(_lead(), "missing", "u1")

    def test_delete(self):
        lead = _lead()
        lead.site_visits = [_visit(id="v1"), _visit(id="v2")]
        lifecycle.delete_site_visit(lead, "v1", "u1")
        assert [v.id for v in lead.site_visits] == ["v2"]

    def test_delete_pending_visit_reports_cancellation(self):
        lead = _lead(status=LeadStatus.SITE_VISIT_SCHEDULED)
        visit = lifecycle.schedule_site_visit(lead, _visit(days=3, id="v1"), "u1", now=NOW)
        removed = lifecycle.delete_site_visit(lead, "v1", "u1", now=NOW)

        assert removed.status == SiteVisitStatus.CANCELLED
        assert removed.cancelled_date == NOW
        assert removed.id == visit.id
        assert lead.status == LeadStatus.SITE_VISIT_SCHEDULED
        assert lead.activity_log[-1].action == ActivityAction.SITE_VISIT_CANCELLED
        assert "was deleted" in lead.activity_log[-1].description
        assert lead.reminders[0].is_completed
        assert lead.next_due_at is None

    def test_delete_completed_visit_keeps_its_status(self):
        lead = _lead()
        lead.site_visits = [_visit(id="v1", status=SiteVisitStatus.COMPLETED)]
        assert lifecycle.delete_site_visit(lead, "v1", "u1", now=NOW).status == SiteVisitStatus.COMPLETED

    def test_cancel_retires_visit_reminder(self):
        lead = _lead()
        lifecycle.schedule_site_visit(lead, _visit(days=3, id="v1"), "u1", now=NOW)
        lifecycle.cancel_site_visit(lead, "u1", now=NOW)
        assert [r.is_completed for r in lead.reminders] == [True]

    def test_reschedule_moves_visit_reminder(self):
        lead = _lead()
        lifecycle.schedule_site_visit(lead, _visit(days=3, id="v1"), "u1", now=NOW)
        lifecycle.reschedule_site_visit(lead, "v1", "u1", scheduled_date=NOW + timedelta(days=10), now=NOW)

        old, new = lead.reminders
        assert old.is_completed
        assert new.site_visit_id == "v1"
        assert new.reminder_date == NOW + timedelta(days=9)


class TestAutoStage:
    def test_high_interest_moves_to_negotiation(self):
        lead = _lead(status="site_visit_completed")
        lead.site_visits = [_visit(status=SiteVisitStatus.COMPLETED, interest_level=InterestLevel.HIGH)]
        assert lifecycle.auto_stage(lead, NOW) == ["negotiation"]
        assert lead.status == LeadStatus.NEGOTIATION

    def test_negotiation_with_booking_amount_books(self):
        lead = _lead(status="negotiation")
        lead.booking = Booking(booking_amount=250000)
        assert lifecycle.auto_stage(lead, NOW) == ["booked"]
        assert lead.status == LeadStatus.BOOKED
        assert lead.converted_at == NOW

    def test_rules_chain_in_order(self):
        lead = _lead(status="site_visit_completed")
        lead.site_visits = [_visit(status=SiteVisitStatus.COMPLETED, interest_level=InterestLevel.HIGH)]
        lead.booking = Booking(booking_amount=100000)
        assert lifecycle.auto_stage(lead, NOW) == ["negotiation", "booked"]

    def test_contacted_with_enough_communications_qualifies(self):
        lead = _lead(status="contacted", inquiry={"budget": {"min": 3_000_000}})
        lead.communications = [Communication(type=CommunicationType.CALL) for _ in range(3)]
        assert lifecycle.auto_stage(lead, NOW) == ["qualified"]

    def test_contacted_without_interest_signal_stays(self):
        lead = _lead(status="contacted")
        lead.communications = [Communication(type=CommunicationType.CALL) for _ in range(5)]
        assert lifecycle.auto_stage(lead, NOW) == []

    def test_past_visit_is_no_show(self):
        lead = _lead(status="site_visit_scheduled")
        lead.site_visits = [SiteVisit(scheduled_date=NOW - timedelta(days=1))]
        assert lifecycle.auto_stage(lead, NOW) == ["no_show"]
        assert lead.current_site_visit.status == SiteVisitStatus.NO_SHOW
        assert lead.status == LeadStatus.SITE_VISIT_SCHEDULED

    def test_future_visit_untouched(self):
        lead = _lead(status="site_visit_scheduled")
        lead.site_visits = [_visit()]
        assert lifecycle.auto_stage(lead, NOW) == []


class TestTaskTransitions:
    def test_pending_to_completed(self):
        task = lifecycle.transition_task(Task(title="Call back"), TaskStatus.COMPLETED, NOW)
        assert task.status == TaskStatus.COMPLETED
        assert task.completed_at == NOW

    def test_terminal_task_cannot_reopen(self):
        task = Task(title="Call back", status=TaskStatus.CANCELLED)
        with pytest.raises(ValidationError) as exc:
            lifecycle.transition_task(task, TaskStatus.IN_PROGRESS)
        assert exc.value.code == "invalid_task_transition"
