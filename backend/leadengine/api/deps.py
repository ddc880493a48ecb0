"""Request-scoped wiring of the lead service."""

from fastapi import Depends
from sqlalchemy.orm import Session

from leadengine.database import get_db
from leadengine.repositories.directory import SqlDirectory, SqlRotationCursor
from leadengine.repositories.leads import SqlLeadRepository
from leadengine.services.crypto import ContactCipher
from leadengine.services.dispatch import TaskDispatcher
from leadengine.services.leads import LeadService


def get_lead_service(db: Session = Depends(get_db)) -> LeadService:
    return LeadService(
        leads=SqlLeadRepository(db, cipher=ContactCipher()),
        directory=SqlDirectory(db),
        rotation=SqlRotationCursor(db),
        dispatcher=TaskDispatcher(),
    )
