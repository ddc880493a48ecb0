"""Human-readable lead codes (``LEAD-000123``)."""

import re
import time

import structlog

from leadengine.config import settings
from leadengine.errors import ConflictError
from leadengine.repositories.leads import LeadRepository

logger = structlog.get_logger()

LEAD_CODE_PREFIX = "LEAD-"
_CODE_RE = re.compile(r"^LEAD-(\d+)$")


def format_lead_code(number: int) -> str:
    return f"{LEAD_CODE_PREFIX}{number:06d}"


def fallback_lead_code() -> str:
    """Time-based code used when sequential generation is exhausted."""
    return f"{LEAD_CODE_PREFIX}{str(int(time.time() * 1000))[-6:]}"


def next_sequential_code(repo: LeadRepository, max_attempts: int | None = None) -> str:
    max_attempts = max_attempts or settings.lead_code_max_attempts
    match = _CODE_RE.match(repo.max_lead_code() or "")
    start = int(match.group(1)) + 1 if match else 1
    for attempt in range(max_attempts):
        candidate = format_lead_code(start + attempt)
        if repo.count_documents({"lead_code": candidate}) == 0:
            return candidate
    raise ConflictError(f"No free lead code after {max_attempts} attempts", code="lead_code_exhausted")


def generate_lead_code(repo: LeadRepository, max_attempts: int | None = None) -> str:
    """Next sequential code; never blocks creation."""
    try:
        return next_sequential_code(repo, max_attempts)
    except ConflictError as e:
        code = fallback_lead_code()
        logger.warning("lead_code_fallback", error=str(e), lead_code=code)
        return code
