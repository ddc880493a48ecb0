"""Outbound lead webhook - pushes lead snapshots to an external URL.

Disabled (a silent no-op) when no URL is configured. Delivery is
best-effort: failures are logged and reported as ``False``, never raised.
"""

import httpx
import structlog

from leadengine.config import settings
from leadengine.schemas.lead import Lead, utcnow

logger = structlog.get_logger()

USER_AGENT = "RealtyLeadEngine-Webhook/1.0"

STATUS_EVENTS = {
    "booked": "lead_booked",
    "closed": "lead_closed",
    "lost": "lead_lost",
}


def event_for_update(previous_status: str, new_status: str) -> str:
    """Webhook event name for an update that may have changed status."""
    if previous_status == new_status:
        return "lead_updated"
    return STATUS_EVENTS.get(new_status, "status_changed")


def format_lead_payload(lead: Lead) -> dict:
    visit = lead.current_site_visit
    data = lead.model_dump(mode="json", include={
        "id", "lead_code", "status", "priority", "source", "campaign_name",
        "score", "score_details", "agency_id", "assigned_agent_id", "property_id",
        "booking", "sla", "tags", "created_at", "updated_at", "converted_at", "lost_reason",
    })
    data["contact"] = lead.contact.model_dump(mode="json")
    data["inquiry"] = lead.inquiry.model_dump(mode="json", include={
        "message", "budget", "timeline", "requirements", "preferred_location", "property_type",
    })
    data["site_visit"] = visit.model_dump(mode="json", include={
        "scheduled_date", "scheduled_time", "completed_date", "status",
        "feedback", "interest_level", "next_action",
    }) if visit else None
    data["communications_count"] = len(lead.communications)
    data["reminders_count"] = len(lead.reminders)
    return data


class WebhookEmitter:
    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        bulk_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = settings.outbound_webhook_url if url is None else url
        self.api_key = settings.outbound_webhook_api_key if api_key is None else api_key
        self.timeout = timeout or settings.webhook_timeout
        self.bulk_timeout = bulk_timeout or settings.webhook_bulk_timeout
        self._transport = transport

    @property
    def is_enabled(self) -> bool:
        return bool(self.url)

    def build_payload(self, lead: Lead, event: str, previous: dict | None = None) -> dict:
        payload = {
            "event": event,
            "timestamp": utcnow().isoformat(),
            "lead": format_lead_payload(lead),
        }
        if previous is not None:
            payload["previous"] = previous
        return payload

    async def _post(self, payload: dict, event: str, timeout: float) -> bool:
        headers = {
            "X-API-Key": self.api_key or "",
            "X-Event-Type": event,
            "User-Agent": USER_AGENT,
        }
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
                resp.raise_for_status()
            return True
        except Exception as e:
            logger.error("lead_webhook_failed", lead_event=event, error=str(e))
            return False

    async def emit(self, lead: Lead, event: str, previous: dict | None = None) -> bool:
        if not self.is_enabled:
            logger.debug("lead_webhook_skipped_no_url", lead_event=event)
            return False
        ok = await self._post(self.build_payload(lead, event, previous), event, self.timeout)
        if ok:
            logger.info("lead_webhook_sent", lead_id=lead.id, lead_event=event)
        return ok

    async def emit_bulk(self, leads: list[Lead], event: str = "bulk_export") -> bool:
        if not self.is_enabled:
            logger.debug("lead_webhook_skipped_no_url", lead_event=event)
            return False
        payload = {
            "event": event,
            "timestamp": utcnow().isoformat(),
            "total_leads": len(leads),
            "leads": [format_lead_payload(lead) for lead in leads],
        }
        ok = await self._post(payload, event, self.bulk_timeout)
        if ok:
            logger.info("lead_webhook_bulk_sent", count=len(leads))
        return ok
