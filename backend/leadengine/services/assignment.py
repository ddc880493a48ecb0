"""Assignment engine - picks an agent for a lead.

Every strategy works over the agency's active agents only and returns
``None`` when nobody is eligible. ``assign`` never raises for a strategy
failure; the caller leaves the lead unassigned instead.
"""

import structlog

from leadengine.errors import NotFoundError, ValidationError
from leadengine.repositories.directory import Directory, RotationCursor
from leadengine.repositories.leads import LeadRepository
from leadengine.schemas.directory import AgentInfo
from leadengine.schemas.enums import ACTIVE_STATUSES, AssignmentMethod, Role
from leadengine.schemas.lead import Lead

logger = structlog.get_logger()


def _locations_match(agent_locations: list[str], lead_locations: list[str]) -> bool:
    agent_locs = [a.strip().lower() for a in agent_locations if a and a.strip()]
    lead_locs = [l.strip().lower() for l in lead_locations if l and l.strip()]
    return any(a in l or l in a for a in agent_locs for l in lead_locs)


class AssignmentEngine:
    def __init__(self, leads: LeadRepository, directory: Directory, rotation: RotationCursor):
        self.leads = leads
        self.directory = directory
        self.rotation = rotation

    # --- strategies ---

    def round_robin(self, agency_id: str, lead: Lead | None = None) -> str | None:
        agents = self.directory.find_active_agents(agency_id)
        if not agents:
            return None
        ticket = self.rotation.advance(agency_id)
        return agents[(ticket - 1) % len(agents)].id

    def workload(self, agency_id: str, lead: Lead | None = None) -> str | None:
        agent = self._least_loaded(self.directory.find_active_agents(agency_id))
        return agent.id if agent else None

    def location(self, agency_id: str, lead: Lead | None = None) -> str | None:
        if lead is None or not lead.inquiry.preferred_location:
            return None
        matches = [
            a for a in self.directory.find_active_agents(agency_id)
            if _locations_match(a.locations, lead.inquiry.preferred_location)
        ]
        agent = self._least_loaded(matches)
        return agent.id if agent else None

    def project(self, agency_id: str, lead: Lead | None = None) -> str | None:
        if lead is None or not lead.property_id:
            return None
        prop = self.directory.get_property(lead.property_id)
        if not prop or not prop.assigned_agent_ids:
            return None
        allowed = set(prop.assigned_agent_ids)
        eligible = [a for a in self.directory.find_active_agents(agency_id) if a.id in allowed]
        agent = self._least_loaded(eligible)
        return agent.id if agent else None

    def source(self, agency_id: str, lead: Lead | None = None) -> str | None:
        # Source-specific routing rules plug in here; balanced by workload until then
        return self.workload(agency_id, lead)

    def smart(self, agency_id: str, lead: Lead | None = None) -> str | None:
        for strategy in (self.project, self.location, self.source, self.workload):
            agent_id = strategy(agency_id, lead)
            if agent_id:
                return agent_id
        return None

    # --- entry points ---

    def assign(self, agency_id: str, method: AssignmentMethod | str, lead: Lead | None = None) -> str | None:
        """Run one strategy. Strategy failures are logged and yield None."""
        try:
            method = AssignmentMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown assignment method: {method}", code="invalid_assignment_method")

        strategy = getattr(self, method.value)
        try:
            agent_id = strategy(agency_id, lead)
        except Exception as e:
            logger.error("assignment_strategy_failed", method=method.value, agency_id=agency_id, error=str(e))
            return None

        logger.info(
            "assignment_selected" if agent_id else "assignment_no_eligible_agent",
            method=method.value, agency_id=agency_id, agent_id=agent_id,
            lead_id=lead.id if lead else None,
        )
        return agent_id

    def validate_assignee(self, agent_id: str, agency_id: str) -> AgentInfo:
        """Re-check an agent right before it is written onto a lead."""
        agent = self.directory.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        if agent.agency_id != agency_id:
            raise ValidationError("Agent does not belong to the lead's agency", code="agent_agency_mismatch")
        if not agent.is_active:
            raise ValidationError("Agent is inactive", code="agent_inactive")
        if agent.role not in (Role.AGENT, Role.AGENCY_ADMIN, Role.STAFF):
            raise ValidationError("User cannot be assigned leads", code="agent_role_invalid")
        return agent

    def _least_loaded(self, agents: list[AgentInfo]) -> AgentInfo | None:
        best, best_count = None, None
        for agent in agents:
            count = self.leads.count_documents({
                "assigned_agent_id": agent.id,
                "status": {"$in": list(ACTIVE_STATUSES)},
            })
            if best is None or count < best_count:
                best, best_count = agent, count
        return best
