"""Isolation and permission guard.

One evaluator decides every lead access. It returns a tagged decision
(``Allow``/``Deny`` with a reason code) instead of a boolean, and runs
before any mutation. Checks, in order:

1. entry-level override on the lead (``entry_permissions.<role>.<action>``)
2. tenant isolation (caller agency must own the lead)
3. assignment scoping for agents (assigned, or manages the linked property)

super_admin bypasses all three.
"""

from dataclasses import dataclass, field

import structlog

from leadengine.errors import PermissionDeniedError, ValidationError
from leadengine.repositories.directory import Directory
from leadengine.schemas.enums import GuardAction, Role
from leadengine.schemas.lead import EntryPermissions, Lead

logger = structlog.get_logger()

LEAD_ROLES = (Role.SUPER_ADMIN, Role.AGENCY_ADMIN, Role.AGENT, Role.STAFF)


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role
    agency_id: str | None = None
    team: str | None = None
    is_team_lead: bool = False

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


@dataclass(frozen=True)
class Allow:
    reason: str
    allowed: bool = True


@dataclass(frozen=True)
class Deny:
    reason: str
    allowed: bool = False


Decision = Allow | Deny


@dataclass(frozen=True)
class LeadResource:
    agency_id: str
    assigned_agent_id: str | None = None
    property_manager_id: str | None = None
    entry_permissions: EntryPermissions = field(default_factory=EntryPermissions)

    @classmethod
    def from_lead(cls, lead: Lead, property_manager_id: str | None = None) -> "LeadResource":
        return cls(
            agency_id=lead.agency_id,
            assigned_agent_id=lead.assigned_agent_id,
            property_manager_id=property_manager_id,
            entry_permissions=lead.entry_permissions,
        )


def evaluate(principal: Principal, action: GuardAction | str, resource: LeadResource) -> Decision:
    action = GuardAction(action)
    if principal.is_super_admin:
        return Allow("super_admin")
    if principal.role not in LEAD_ROLES:
        return Deny("role_not_permitted")

    perms = resource.entry_permissions.for_role(principal.role.value)
    if perms is not None and getattr(perms, action.value) is False:
        return Deny("entry_explicit_deny")

    if not principal.agency_id:
        return Deny("user_no_agency")
    if principal.agency_id != resource.agency_id:
        return Deny("agency_mismatch")

    if principal.role == Role.AGENT:
        if resource.assigned_agent_id and resource.assigned_agent_id == principal.user_id:
            return Allow("assigned_agent")
        if resource.property_manager_id and resource.property_manager_id == principal.user_id:
            return Allow("property_manager")
        return Deny("not_assigned")

    return Allow("agency_member")


def require(principal: Principal, action: GuardAction | str, resource: LeadResource) -> Allow:
    """Evaluate and raise PermissionDeniedError on a Deny."""
    decision = evaluate(principal, action, resource)
    if not decision.allowed:
        logger.warning(
            "lead_access_denied",
            user_id=principal.user_id, role=principal.role.value,
            action=GuardAction(action).value, reason=decision.reason,
        )
        raise PermissionDeniedError(decision.reason)
    return decision


def require_super_admin(principal: Principal) -> None:
    if not principal.is_super_admin:
        raise PermissionDeniedError("super_admin_only")


def resolve_intake_agency(principal: Principal | None, requested_agency_id: str | None,
                          directory: Directory) -> str:
    """Decide which agency a newly created lead belongs to.

    agency_admin and agent are pinned to their own agency; super_admin may
    target any agency; everyone else (including anonymous intake) falls back
    to their own agency or the first active one.
    """
    if principal is None:
        agency_id = requested_agency_id
    elif principal.role in (Role.AGENCY_ADMIN, Role.AGENT):
        if not principal.agency_id:
            raise PermissionDeniedError("no_agency_assigned")
        if requested_agency_id and requested_agency_id != principal.agency_id:
            raise PermissionDeniedError("agency_mismatch")
        return principal.agency_id
    else:
        agency_id = requested_agency_id or (None if principal.is_super_admin else principal.agency_id)

    if agency_id:
        return agency_id
    default = directory.get_default_agency()
    if default is None:
        raise ValidationError("No active agency available for lead", code="no_active_agency")
    return default.id


def visibility_filter(principal: Principal, managed_property_ids: list[str] | None = None) -> dict:
    """Repository filter restricting a listing to what the caller may view.

    For agents, ``managed_property_ids`` are the properties they manage;
    leads on those properties are visible just as ``evaluate`` allows.
    """
    if principal.is_super_admin:
        return {}
    if principal.role not in LEAD_ROLES or not principal.agency_id:
        raise PermissionDeniedError("user_no_agency" if principal.role in LEAD_ROLES else "role_not_permitted")

    scope = {
        "agency_id": principal.agency_id,
        f"entry_permissions.{principal.role.value}.view": {"$ne": False},
    }
    if principal.role == Role.AGENT:
        if managed_property_ids:
            scope["$or"] = [
                {"assigned_agent_id": principal.user_id},
                {"property_id": {"$in": list(managed_property_ids)}},
            ]
        else:
            scope["assigned_agent_id"] = principal.user_id
    return scope
