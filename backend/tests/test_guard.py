"""Tests for the isolation and permission guard."""

import pytest

from fakes import FakeDirectory
from leadengine.errors import PermissionDeniedError, ValidationError
from leadengine.schemas.enums import GuardAction, Role
from leadengine.schemas.lead import EntryPermissions, RolePermissions
from leadengine.services.guard import (
    LeadResource,
    Principal,
    evaluate,
    require,
    require_super_admin,
    resolve_intake_agency,
    visibility_filter,
)

SUPER = Principal("root", Role.SUPER_ADMIN)
ADMIN = Principal("admin-1", Role.AGENCY_ADMIN, agency_id="agency-1")
AGENT_A = Principal("A", Role.AGENT, agency_id="agency-1")
AGENT_B = Principal("B", Role.AGENT, agency_id="agency-1")
STAFF = Principal("staff-1", Role.STAFF, agency_id="agency-1")


def _resource(**kwargs) -> LeadResource:
    return LeadResource(agency_id=kwargs.pop("agency_id", "agency-1"), **kwargs)


class TestEvaluate:
    def test_super_admin_bypasses_everything(self):
        denied = EntryPermissions(agency_admin=RolePermissions(view=False))
        decision = evaluate(SUPER, GuardAction.DELETE, _resource(agency_id="other", entry_permissions=denied))
        assert decision.allowed and decision.reason == "super_admin"

    def test_agency_member_allowed(self):
        assert evaluate(ADMIN, "edit", _resource()).reason == "agency_member"
        assert evaluate(STAFF, "view", _resource()).allowed

    def test_other_agency_denied(self):
        decision = evaluate(ADMIN, "view", _resource(agency_id="agency-2"))
        assert not decision.allowed and decision.reason == "agency_mismatch"

    def test_user_without_agency(self):
        decision = evaluate(Principal("x", Role.STAFF), "view", _resource())
        assert decision.reason == "user_no_agency"

    def test_plain_user_not_permitted(self):
        assert evaluate(Principal("u", Role.USER, agency_id="agency-1"), "view", _resource()).reason == "role_not_permitted"

    def test_agent_scoped_to_assignment(self):
        assert evaluate(AGENT_A, "edit", _resource(assigned_agent_id="A")).reason == "assigned_agent"
        assert evaluate(AGENT_B, "edit", _resource(assigned_agent_id="A")).reason == "not_assigned"

    def test_agent_managing_property(self):
        decision = evaluate(AGENT_B, "view", _resource(assigned_agent_id="A", property_manager_id="B"))
        assert decision.allowed and decision.reason == "property_manager"

    def test_entry_permission_override_wins(self):
        perms = EntryPermissions(agent=RolePermissions(edit=False))
        decision = evaluate(AGENT_A, "edit", _resource(assigned_agent_id="A", entry_permissions=perms))
        assert decision.reason == "entry_explicit_deny"
        assert evaluate(AGENT_A, "view", _resource(assigned_agent_id="A", entry_permissions=perms)).allowed

    def test_delete_denied_by_default(self):
        assert evaluate(ADMIN, "delete", _resource()).reason == "entry_explicit_deny"
        granted = EntryPermissions(agency_admin=RolePermissions(delete=True))
        assert evaluate(ADMIN, "delete", _resource(entry_permissions=granted)).allowed


class TestRequire:
    def test_raises_with_reason(self):
        with pytest.raises(PermissionDeniedError) as exc:
            require(AGENT_B, GuardAction.EDIT, _resource(assigned_agent_id="A"))
        assert exc.value.reason == "not_assigned"
        assert exc.value.code == "not_assigned"

    def test_super_admin_only(self):
        require_super_admin(SUPER)
        with pytest.raises(PermissionDeniedError):
            require_super_admin(ADMIN)


class TestResolveIntakeAgency:
    def setup_method(self):
        self.directory = FakeDirectory()
        self.directory.add_agency("agency-1")
        self.directory.add_agency("agency-2")

    def test_admin_pinned_to_own_agency(self):
        assert resolve_intake_agency(ADMIN, None, self.directory) == "agency-1"
        with pytest.raises(PermissionDeniedError) as exc:
            resolve_intake_agency(ADMIN, "agency-2", self.directory)
        assert exc.value.reason == "agency_mismatch"

    def test_agent_without_agency(self):
        with pytest.raises(PermissionDeniedError) as exc:
            resolve_intake_agency(Principal("A", Role.AGENT), None, self.directory)
        assert exc.value.reason == "no_agency_assigned"

    def test_super_admin_chooses(self):
        assert resolve_intake_agency(SUPER, "agency-2", self.directory) == "agency-2"
        assert resolve_intake_agency(SUPER, None, self.directory) == "agency-1"

    def test_anonymous_falls_back_to_default(self):
        assert resolve_intake_agency(None, None, self.directory) == "agency-1"
        assert resolve_intake_agency(None, "agency-2", self.directory) == "agency-2"

    def test_no_active_agency(self):
        with pytest.raises(ValidationError) as exc:
            resolve_intake_agency(None, None, FakeDirectory())
        assert exc.value.code == "no_active_agency"


class TestVisibilityFilter:
    def test_super_admin_sees_everything(self):
        assert visibility_filter(SUPER) == {}

    def test_agent_scope(self):
        scope = visibility_filter(AGENT_A)
        assert scope["agency_id"] == "agency-1"
        assert scope["assigned_agent_id"] == "A"
        assert scope["entry_permissions.agent.view"] == {"$ne": False}

    def test_agent_scope_includes_managed_properties(self):
        scope = visibility_filter(AGENT_A, ["p1", "p2"])
        assert "assigned_agent_id" not in scope
        assert scope["$or"] == [{"assigned_agent_id": "A"}, {"property_id": {"$in": ["p1", "p2"]}}]

    def test_managed_properties_ignored_for_staff(self):
        assert "$or" not in visibility_filter(STAFF, ["p1"])

    def test_staff_scoped_to_agency(self):
        scope = visibility_filter(STAFF)
        assert scope["agency_id"] == "agency-1"
        assert "assigned_agent_id" not in scope

    def test_no_agency_rejected(self):
        with pytest.raises(PermissionDeniedError):
            visibility_filter(Principal("x", Role.STAFF))
