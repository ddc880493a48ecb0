"""Tests for lead code generation."""

from unittest.mock import MagicMock

import pytest

from fakes import InMemoryLeadRepository
from leadengine.errors import ConflictError
from leadengine.schemas.lead import Lead
from leadengine.services.identifiers import (
    fallback_lead_code,
    format_lead_code,
    generate_lead_code,
    next_sequential_code,
)


class TestLeadCodes:
    def test_format_pads_to_six_digits(self):
        assert format_lead_code(7) == "LEAD-000007"
        assert format_lead_code(1234567) == "LEAD-1234567"

    def test_first_code(self):
        assert next_sequential_code(InMemoryLeadRepository()) == "LEAD-000001"

    def test_continues_from_highest(self):
        repo = InMemoryLeadRepository()
        repo.save(Lead(agency_id="a1", lead_code="LEAD-000041"))
        repo.save(Lead(agency_id="a1", lead_code="LEAD-000009"))
        assert next_sequential_code(repo) == "LEAD-000042"

    def test_skips_taken_candidates(self):
        repo = MagicMock()
        repo.max_lead_code.return_value = "LEAD-000010"
        repo.count_documents.side_effect = [1, 1, 0]
        assert next_sequential_code(repo, max_attempts=5) == "LEAD-000013"

    def test_exhausted_raises(self):
        repo = MagicMock()
        repo.max_lead_code.return_value = None
        repo.count_documents.return_value = 1
        with pytest.raises(ConflictError) as exc:
            next_sequential_code(repo, max_attempts=3)
        assert exc.value.code == "lead_code_exhausted"
        assert repo.count_documents.call_count == 3

    def test_generate_falls_back_instead_of_failing(self):
        repo = MagicMock()
        repo.max_lead_code.return_value = None
        repo.count_documents.return_value = 1
        code = generate_lead_code(repo, max_attempts=2)
        assert code.startswith("LEAD-")
        assert len(code) == len("LEAD-000000")

    def test_fallback_shape(self):
        code = fallback_lead_code()
        assert code[5:].isdigit()
