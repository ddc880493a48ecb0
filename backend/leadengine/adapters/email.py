"""Email adapter - SMTP delivery of lead notifications."""

import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib
import structlog

from leadengine.config import settings

logger = structlog.get_logger()

_TAG_RE = re.compile(r"<[^>]+>")


def html_to_text(body_html: str) -> str:
    """Crude plain-text fallback for clients that refuse HTML."""
    text = body_html.replace("</p>", "\n").replace("<br>", "\n").replace("</li>", "\n")
    return _TAG_RE.sub("", text).strip()


def smtp_config_from_settings() -> dict:
    return {
        "host": settings.smtp_host,
        "port": settings.smtp_port,
        "user": settings.smtp_user,
        "password": settings.smtp_password,
        "use_tls": settings.smtp_use_tls,
    }


async def send_email(
    to_email: str | list[str],
    subject: str,
    body_html: str,
    from_email: str | None = None,
    smtp_config: dict | None = None,
    reply_to: str | None = None,
) -> bool:
    """Send an email via SMTP.

    Args:
        to_email: Recipient address, or several
        subject: Email subject
        body_html: HTML body content (a plain-text part is derived from it)
        from_email: Sender address (defaults to smtp user)
        smtp_config: Optional per-agency override of the SMTP settings
        reply_to: Optional Reply-To header, usually the agency contact email
    """
    config = {**smtp_config_from_settings(), **(smtp_config or {})}
    recipients = [to_email] if isinstance(to_email, str) else [r for r in to_email if r]
    if not recipients:
        logger.debug("email_skipped_no_recipient", subject=subject)
        return False

    host = config["host"]
    if not host or host == "localhost":
        logger.info("email_skipped_smtp_not_configured", to=recipients, subject=subject)
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = from_email or config["user"]
    msg["To"] = ", ".join(recipients)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.attach(MIMEText(html_to_text(body_html), "plain"))
    msg.attach(MIMEText(body_html, "html"))

    try:
        await aiosmtplib.send(
            msg,
            recipients=recipients,
            hostname=host,
            port=config["port"],
            username=config["user"] or None,
            password=config["password"] or None,
            use_tls=config["use_tls"],
        )
        logger.info("email_sent", to=recipients, subject=subject)
        return True
    except Exception as e:
        logger.error("email_send_failed", error=str(e), to=recipients)
        return False
