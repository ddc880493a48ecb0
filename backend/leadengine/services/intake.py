"""Intake helpers: contact validation and mapping of third-party payloads."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from leadengine.schemas.lead import Contact
from leadengine.schemas.requests import LeadCreate


def validate_contact(contact: Contact, require_email: bool = False, require_phone: bool = False) -> list[str]:
    """Return the contact problems; an empty list means valid."""
    errors = []
    if not contact.first_name or not contact.first_name.strip():
        errors.append("first_name is required")

    email = (contact.email or "").strip()
    phone = (contact.phone or "").strip()
    if email and "@" not in email:
        errors.append("email is invalid")
    if require_email and not email:
        errors.append("email is required")
    if require_phone and not phone:
        errors.append("phone is required")
    if not email and not phone and not (require_email or require_phone):
        errors.append("email or phone is required")
    return errors


def pydantic_errors(exc: PydanticValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


def _first(data: dict, *keys: str):
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_list(value) -> list:
    if value in (None, ""):
        return []
    return list(value) if isinstance(value, (list, tuple)) else [value]


def map_webhook_payload(data: dict[str, Any]) -> LeadCreate:
    """Translate the field aliases used by ad platforms and form builders."""
    name_parts = str(data.get("name") or "").split()
    first_name = _first(data, "first_name", "firstName") or (name_parts[0] if name_parts else "Unknown")
    last_name = _first(data, "last_name", "lastName") or " ".join(name_parts[1:])

    budget = data.get("budget")
    if isinstance(budget, dict):
        budget = {"min": budget.get("min"), "max": budget.get("max")}
    elif budget not in (None, ""):
        budget = {"min": budget, "max": budget}
    else:
        budget = {}

    return LeadCreate(
        agency_id=_first(data, "agency_id", "agency"),
        contact={
            "first_name": first_name,
            "last_name": last_name,
            "email": _first(data, "email", "email_address"),
            "phone": _first(data, "phone", "phone_number", "mobile"),
            "alternate_phone": _first(data, "alternate_phone", "alternatePhone"),
        },
        inquiry={
            "message": _first(data, "message", "inquiry", "notes"),
            "budget": budget,
            "preferred_location": _as_list(_first(data, "preferred_location", "preferredLocation")),
            "property_type": _as_list(_first(data, "property_type", "propertyType")),
            "timeline": data.get("timeline"),
            "requirements": _first(data, "requirements", "requirement"),
        },
        source=data.get("source") or "other",
        campaign_name=_first(data, "campaign_name", "campaignName", "campaign"),
        assigned_agent_id=_first(data, "assigned_agent_id", "assignedAgent"),
        property_id=_first(data, "property_id", "property"),
    )
