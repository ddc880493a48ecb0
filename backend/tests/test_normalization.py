"""Tests for priority/source/status normalization and legacy document migration."""

import pytest

from leadengine.schemas.enums import LeadPriority, LeadSource, LeadStatus
from leadengine.schemas.lead import Budget, Lead
from leadengine.services.normalization import (
    normalize_lead,
    normalize_priority,
    normalize_source,
    normalize_status,
)


class TestPriorityNormalization:
    @pytest.mark.parametrize("raw,expected", [
        ("high", LeadPriority.HOT),
        ("URGENT", LeadPriority.HOT),
        ("hot", LeadPriority.HOT),
        ("medium", LeadPriority.WARM),
        ("low", LeadPriority.WARM),
        ("cold", LeadPriority.WARM),
        ("not_interested", LeadPriority.WARM),
        ("whatever", LeadPriority.WARM),
        (None, LeadPriority.WARM),
        ("", LeadPriority.WARM),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_priority(raw) == expected

    def test_exact_canonical_values_survive(self):
        assert normalize_priority("Cold") == LeadPriority.COLD
        assert normalize_priority("Not_interested") == LeadPriority.NOT_INTERESTED
        assert normalize_priority(LeadPriority.COLD) == LeadPriority.COLD

    def test_idempotent_on_canonical_values(self):
        for priority in LeadPriority:
            assert normalize_priority(normalize_priority(priority.value)) == priority


class TestSourceNormalization:
    @pytest.mark.parametrize("raw,expected", [
        ("fb", LeadSource.SOCIAL_MEDIA),
        ("Facebook", LeadSource.SOCIAL_MEDIA),
        ("instagram", LeadSource.SOCIAL_MEDIA),
        ("google", LeadSource.SOCIAL_MEDIA),
        ("call", LeadSource.PHONE),
        ("personal", LeadSource.WALK_IN),
        ("referral", LeadSource.REFERRAL),
        ("billboard", LeadSource.OTHER),
        (None, LeadSource.WEBSITE),
        ("", LeadSource.WEBSITE),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_source(raw) == expected

    def test_idempotent_on_canonical_values(self):
        for source in LeadSource:
            assert normalize_source(normalize_source(source.value)) == source


class TestStatusNormalization:
    def test_canonical(self):
        assert normalize_status("negotiation") == LeadStatus.NEGOTIATION

    def test_aliases(self):
        assert normalize_status("Site Visit") == LeadStatus.SITE_VISIT_SCHEDULED
        assert normalize_status("new lead") == LeadStatus.NEW

    def test_unknown_defaults_to_new(self):
        assert normalize_status("limbo") == LeadStatus.NEW
        assert normalize_status(None) == LeadStatus.NEW


class TestLeadDocumentNormalization:
    def test_legacy_values_converge_on_load(self):
        lead = Lead.model_validate({"agency_id": "a1", "priority": "high", "source": "fb", "status": "site visit"})
        assert lead.priority == LeadPriority.HOT
        assert lead.source == LeadSource.SOCIAL_MEDIA
        assert lead.status == LeadStatus.SITE_VISIT_SCHEDULED

    def test_normalize_lead_in_place(self):
        lead = Lead(agency_id="a1")
        lead.priority = "urgent"
        lead.source = "instagram"
        normalize_lead(lead)
        assert lead.priority == LeadPriority.HOT
        assert lead.source == LeadSource.SOCIAL_MEDIA

    def test_non_numeric_budget_is_absent(self):
        budget = Budget(min="call me", max="5000000")
        assert budget.min is None
        assert budget.max == 5_000_000

    def test_legacy_site_visit_folded_into_list(self):
        lead = Lead.model_validate({
            "agency_id": "a1",
            "site_visit": {"id": "v-legacy", "scheduled_date": "2025-01-01T10:00:00Z"},
            "site_visits": [{"id": "v-2", "scheduled_date": "2025-02-01T10:00:00Z"}],
        })
        assert [v.id for v in lead.site_visits] == ["v-legacy", "v-2"]
        assert lead.current_site_visit.id == "v-2"

    def test_legacy_site_visit_not_duplicated(self):
        visit = {"id": "v-1", "scheduled_date": "2025-01-01T10:00:00Z"}
        lead = Lead.model_validate({"agency_id": "a1", "site_visit": visit, "site_visits": [visit]})
        assert len(lead.site_visits) == 1

    def test_naive_datetimes_become_utc(self):
        lead = Lead.model_validate({"agency_id": "a1", "created_at": "2025-01-01T10:00:00"})
        assert lead.created_at.tzinfo is not None
        assert lead.created_at.utcoffset().total_seconds() == 0
