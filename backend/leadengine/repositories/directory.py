"""Directory of agencies, agents and properties, plus the round-robin cursor."""

from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from leadengine.database import parse_uuid
from leadengine.models.agency import Agency
from leadengine.models.agent import Agent
from leadengine.models.property import Property
from leadengine.schemas.directory import AgencyInfo, AgentInfo, PropertyInfo


class Directory(Protocol):
    def find_active_agents(self, agency_id: str) -> list[AgentInfo]: ...

    def get_agent(self, agent_id: str) -> AgentInfo | None: ...

    def get_agency(self, agency_id: str) -> AgencyInfo | None: ...

    def get_default_agency(self) -> AgencyInfo | None: ...

    def get_property(self, property_id: str) -> PropertyInfo | None: ...

    def find_agency_admins(self, agency_id: str) -> list[AgentInfo]: ...

    def find_managed_property_ids(self, agent_id: str) -> list[str]: ...


class RotationCursor(Protocol):
    def advance(self, agency_id: str) -> int: ...


def _agent_info(agent: Agent) -> AgentInfo:
    return AgentInfo(
        id=str(agent.id),
        agency_id=str(agent.agency_id) if agent.agency_id else None,
        role=agent.role,
        first_name=agent.first_name or "",
        last_name=agent.last_name or "",
        email=agent.email,
        phone=agent.phone,
        team=agent.team,
        is_team_lead=bool(agent.is_team_lead),
        is_active=bool(agent.is_active),
        locations=list(agent.locations or []),
        created_at=agent.created_at,
    )


class SqlDirectory:
    def __init__(self, session: Session):
        self.session = session

    def _get(self, model, row_id):
        row_id = parse_uuid(row_id)
        return self.session.get(model, row_id) if row_id else None

    def find_active_agents(self, agency_id):
        """Active agents of an agency, oldest first (round-robin order)."""
        agency_id = parse_uuid(agency_id)
        if agency_id is None:
            return []
        stmt = (
            select(Agent)
            .where(Agent.agency_id == agency_id, Agent.role == "agent", Agent.is_active == True)
            .order_by(Agent.created_at.asc(), Agent.id.asc())
        )
        return [_agent_info(a) for a in self.session.execute(stmt).scalars()]

    def find_agency_admins(self, agency_id):
        agency_id = parse_uuid(agency_id)
        if agency_id is None:
            return []
        stmt = select(Agent).where(
            Agent.agency_id == agency_id, Agent.role == "agency_admin", Agent.is_active == True
        )
        return [_agent_info(a) for a in self.session.execute(stmt).scalars()]

    def get_agent(self, agent_id):
        agent = self._get(Agent, agent_id)
        return _agent_info(agent) if agent else None

    def get_agency(self, agency_id):
        agency = self._get(Agency, agency_id)
        return AgencyInfo.model_validate(agency) if agency else None

    def get_default_agency(self):
        stmt = select(Agency).where(Agency.is_active == True).order_by(Agency.created_at.asc()).limit(1)
        agency = self.session.execute(stmt).scalar_one_or_none()
        return AgencyInfo.model_validate(agency) if agency else None

    def get_property(self, property_id):
        prop = self._get(Property, property_id)
        if not prop:
            return None
        return PropertyInfo(
            id=str(prop.id),
            agency_id=str(prop.agency_id),
            title=prop.title or "",
            agent_id=str(prop.agent_id) if prop.agent_id else None,
            assigned_agent_ids=[str(a) for a in prop.assigned_agent_ids or []],
        )

    def find_managed_property_ids(self, agent_id):
        agent_id = parse_uuid(agent_id)
        if agent_id is None:
            return []
        stmt = select(Property.id).where(Property.agent_id == agent_id)
        return [str(pid) for pid in self.session.execute(stmt).scalars()]


class SqlRotationCursor:
    """Per-agency round-robin ticket stored on the agency row.

    ``advance`` increments and returns the cursor in one statement, so two
    concurrent assignments never draw the same ticket.
    """

    def __init__(self, session: Session):
        self.session = session

    def advance(self, agency_id):
        stmt = (
            update(Agency)
            .where(Agency.id == agency_id)
            .values(assignment_cursor=Agency.assignment_cursor + 1)
            .returning(Agency.assignment_cursor)
        )
        ticket = self.session.execute(stmt).scalar_one()
        self.session.commit()
        return ticket
