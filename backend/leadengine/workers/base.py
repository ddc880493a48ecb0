"""Base worker utilities for RQ tasks."""

import asyncio

import structlog
from sqlalchemy.orm import Session

from leadengine.database import SessionLocal
from leadengine.errors import NotFoundError
from leadengine.repositories.directory import SqlDirectory, SqlRotationCursor
from leadengine.repositories.leads import SqlLeadRepository
from leadengine.schemas.lead import Lead
from leadengine.services.crypto import ContactCipher
from leadengine.services.dispatch import TaskDispatcher
from leadengine.services.leads import LeadService

logger = structlog.get_logger()


def run_async(coro):
    """Run an async coroutine from sync RQ worker context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def get_sync_session() -> Session:
    return SessionLocal()


def build_lead_service(session: Session) -> LeadService:
    """Wire the lead service against SQL storage, as the API does per request."""
    leads = SqlLeadRepository(session, cipher=ContactCipher())
    return LeadService(
        leads=leads,
        directory=SqlDirectory(session),
        rotation=SqlRotationCursor(session),
        dispatcher=TaskDispatcher(),
    )


def load_lead(repo: SqlLeadRepository, lead_id: str) -> Lead:
    lead = repo.find_by_id(lead_id)
    if lead is None:
        raise NotFoundError("Lead", lead_id)
    return lead
