from leadengine.models.agency import Agency
from leadengine.models.agent import Agent
from leadengine.models.property import Property
from leadengine.models.lead import LeadRecord

__all__ = ["Agency", "Agent", "Property", "LeadRecord"]
