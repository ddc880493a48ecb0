"""SMS adapter - text messages through an HTTP gateway."""

import httpx
import structlog

from leadengine.config import settings

logger = structlog.get_logger()

# Longer texts are truncated, not split
MAX_SMS_LENGTH = 640


async def send_sms(
    to: str,
    message: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """POST one message to the configured gateway. Never raises."""
    if not settings.sms_gateway_url:
        logger.debug("sms_skipped_no_gateway")
        return False
    if not to:
        return False

    payload = {"to": to, "message": message[:MAX_SMS_LENGTH]}
    if settings.sms_sender_id:
        payload["sender"] = settings.sms_sender_id
    headers = {"Authorization": f"Bearer {settings.sms_api_key}"} if settings.sms_api_key else {}

    try:
        async with httpx.AsyncClient(timeout=settings.webhook_timeout, transport=transport) as client:
            resp = await client.post(settings.sms_gateway_url, json=payload, headers=headers)
            resp.raise_for_status()
        logger.info("sms_sent", to_suffix=to[-4:])
        return True
    except Exception as e:
        logger.error("sms_send_failed", error=str(e))
        return False
