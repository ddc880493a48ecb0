"""Normalization of free-form and legacy lead field values.

Every function here is pure. Priority and source are re-run before every
save so that legacy documents carrying values such as ``"high"`` or ``"fb"``
converge on the canonical enums.
"""

from leadengine.schemas.enums import LeadPriority, LeadSource, LeadStatus

PRIORITY_MAP = {
    "high": LeadPriority.HOT,
    "urgent": LeadPriority.HOT,
    "hot": LeadPriority.HOT,
    "medium": LeadPriority.WARM,
    "warm": LeadPriority.WARM,
    # Low-value signals are not allowed to park a lead in a dead-end priority
    "low": LeadPriority.WARM,
    "cold": LeadPriority.WARM,
    "not_interested": LeadPriority.WARM,
}

SOURCE_MAP = {
    "fb": LeadSource.SOCIAL_MEDIA,
    "facebook": LeadSource.SOCIAL_MEDIA,
    "instagram": LeadSource.SOCIAL_MEDIA,
    "google": LeadSource.SOCIAL_MEDIA,
    "social": LeadSource.SOCIAL_MEDIA,
    "call": LeadSource.PHONE,
    "personal": LeadSource.WALK_IN,
}

STATUS_ALIASES = {
    "site visit": LeadStatus.SITE_VISIT_SCHEDULED,
    "site_visit": LeadStatus.SITE_VISIT_SCHEDULED,
    "new lead": LeadStatus.NEW,
}

_VALID_SOURCES = {s.value for s in LeadSource}
_VALID_STATUSES = {s.value for s in LeadStatus}


def normalize_priority(raw) -> LeadPriority:
    """Map a raw priority to the canonical enum, defaulting to Warm.

    Exact canonical values (as an explicit user choice would carry) are kept,
    so ``Cold`` and ``Not_interested`` survive re-normalization on save.
    Free-form spellings go through the alias table.
    """
    if isinstance(raw, LeadPriority):
        return raw
    if not raw:
        return LeadPriority.WARM
    value = str(raw).strip()
    for priority in LeadPriority:
        if value == priority.value:
            return priority
    return PRIORITY_MAP.get(value.lower(), LeadPriority.WARM)


def normalize_source(raw) -> LeadSource:
    if isinstance(raw, LeadSource):
        return raw
    if not raw:
        return LeadSource.WEBSITE
    value = str(raw).strip().lower()
    if value in SOURCE_MAP:
        return SOURCE_MAP[value]
    if value in _VALID_SOURCES:
        return LeadSource(value)
    return LeadSource.OTHER


def normalize_status(raw) -> LeadStatus:
    if isinstance(raw, LeadStatus):
        return raw
    if not raw:
        return LeadStatus.NEW
    value = str(raw).strip().lower()
    if value in _VALID_STATUSES:
        return LeadStatus(value)
    return STATUS_ALIASES.get(value, LeadStatus.NEW)


def normalize_lead(lead):
    """Re-run priority/source normalization in place before a save."""
    lead.priority = normalize_priority(lead.priority)
    lead.source = normalize_source(lead.source)
    return lead
