"""Read-only views of agencies, agents and properties consumed by the engine."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from leadengine.schemas.enums import AssignmentMethod, Role


class AgencyInfo(BaseModel):
    id: str
    name: str
    is_active: bool = True
    auto_assign_leads: bool = False
    assignment_method: AssignmentMethod = AssignmentMethod.ROUND_ROBIN
    sms_notifications: bool = False
    currency: str = "INR"
    timezone: str = "Asia/Kolkata"
    contact_email: Optional[str] = None
    slack_webhook_url: Optional[str] = None

    model_config = {"from_attributes": True}


class AgentInfo(BaseModel):
    id: str
    agency_id: Optional[str] = None
    role: Role = Role.AGENT
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    team: Optional[str] = None
    is_team_lead: bool = False
    is_active: bool = True
    locations: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PropertyInfo(BaseModel):
    id: str
    agency_id: str
    title: str = ""
    agent_id: Optional[str] = None  # managing agent
    assigned_agent_ids: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}
