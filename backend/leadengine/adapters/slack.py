"""Slack adapter - incoming webhook notifications for agency channels."""

import httpx
import structlog

from leadengine.config import settings

logger = structlog.get_logger()

# Slack rejects messages carrying more blocks than this
MAX_BLOCKS = 50


def resolve_webhook_url(agency_url: str | None) -> str:
    """Agency channel first, platform channel as fallback."""
    return agency_url or settings.slack_webhook_url


async def send_slack_message(
    webhook_url: str,
    text: str,
    blocks: list | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Post a message via Slack incoming webhook. Never raises."""
    if not webhook_url:
        logger.debug("slack_skipped_no_url")
        return False

    payload: dict = {"text": text}
    if blocks:
        payload["blocks"] = blocks[:MAX_BLOCKS]

    try:
        async with httpx.AsyncClient(timeout=settings.webhook_timeout, transport=transport) as client:
            resp = await client.post(webhook_url, json=payload)
            resp.raise_for_status()
        logger.info("slack_message_sent", blocks=len(payload.get("blocks", [])))
        return True
    except Exception as e:
        logger.error("slack_send_failed", error=str(e))
        return False
