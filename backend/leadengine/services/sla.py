"""First-contact SLA tracking."""

from datetime import datetime

from leadengine.schemas.enums import CommunicationType, SlaStatus
from leadengine.schemas.lead import SlaState, utcnow


def record_contact(
    sla: SlaState,
    comm_type: CommunicationType | str,
    created_at: datetime,
    now: datetime | None = None,
) -> SlaState:
    """Register a communication against the lead's SLA state.

    The first non-note communication fixes ``first_contact_at`` and the
    met/breached verdict; it is never recomputed afterwards. Every
    communication, notes included, moves ``last_contact_at``.
    """
    now = now or utcnow()
    if comm_type != CommunicationType.NOTE and sla.first_contact_at is None:
        sla.first_contact_at = now
        sla.response_time = int((now - created_at).total_seconds() * 1000)
        sla.status = SlaStatus.MET if sla.response_time <= sla.first_contact_sla else SlaStatus.BREACHED
    sla.last_contact_at = now
    return sla


def effective_status(sla: SlaState, created_at: datetime, now: datetime | None = None) -> SlaStatus:
    """Read-side view: a pending SLA past its threshold reports as breached."""
    if sla.status != SlaStatus.PENDING:
        return sla.status
    now = now or utcnow()
    elapsed_ms = (now - created_at).total_seconds() * 1000
    return SlaStatus.BREACHED if elapsed_ms > sla.first_contact_sla else SlaStatus.PENDING
