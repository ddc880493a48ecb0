"""Tests for first-contact SLA tracking."""

from datetime import timedelta

from fakes import NOW
from leadengine.schemas.enums import CommunicationType, SlaStatus
from leadengine.schemas.lead import SlaState
from leadengine.services.sla import effective_status, record_contact


class TestRecordContact:
    def setup_method(self):
        self.sla = SlaState(first_contact_sla=3_600_000)

    def test_contact_within_threshold_is_met(self):
        record_contact(self.sla, CommunicationType.CALL, NOW, NOW + timedelta(minutes=30))
        assert self.sla.status == SlaStatus.MET
        assert self.sla.response_time == 30 * 60 * 1000
        assert self.sla.first_contact_at == NOW + timedelta(minutes=30)

    def test_contact_after_threshold_is_breached(self):
        record_contact(self.sla, CommunicationType.EMAIL, NOW, NOW + timedelta(minutes=90))
        assert self.sla.status == SlaStatus.BREACHED

    def test_exactly_on_threshold_is_met(self):
        record_contact(self.sla, CommunicationType.SMS, NOW, NOW + timedelta(hours=1))
        assert self.sla.status == SlaStatus.MET

    def test_first_contact_never_changes(self):
        first = NOW + timedelta(minutes=10)
        record_contact(self.sla, CommunicationType.CALL, NOW, first)
        record_contact(self.sla, CommunicationType.CALL, NOW, NOW + timedelta(hours=5))
        assert self.sla.first_contact_at == first
        assert self.sla.status == SlaStatus.MET
        assert self.sla.last_contact_at == NOW + timedelta(hours=5)

    def test_note_does_not_count_as_contact(self):
        record_contact(self.sla, CommunicationType.NOTE, NOW, NOW + timedelta(minutes=5))
        assert self.sla.first_contact_at is None
        assert self.sla.status == SlaStatus.PENDING
        assert self.sla.last_contact_at == NOW + timedelta(minutes=5)


class TestEffectiveStatus:
    def test_pending_within_threshold(self):
        assert effective_status(SlaState(), NOW, NOW + timedelta(minutes=59)) == SlaStatus.PENDING

    def test_pending_past_threshold_reads_breached(self):
        sla = SlaState()
        assert effective_status(sla, NOW, NOW + timedelta(minutes=61)) == SlaStatus.BREACHED
        assert sla.status == SlaStatus.PENDING

    def test_settled_status_is_final(self):
        sla = SlaState(status=SlaStatus.MET)
        assert effective_status(sla, NOW, NOW + timedelta(days=3)) == SlaStatus.MET
