"""Notification, webhook, export and reminder worker tasks.

Enqueued by ``TaskDispatcher`` after the lead write commits. Each task
reloads the lead, so it sees the committed state rather than the state at
enqueue time. Channel failures are logged and swallowed here; RQ retries
only cover crashes before a channel is reached.
"""

import structlog

from leadengine.adapters.email import send_email
from leadengine.adapters.slack import resolve_webhook_url, send_slack_message
from leadengine.adapters.sms import send_sms
from leadengine.config import settings
from leadengine.errors import DownstreamError, NotFoundError
from leadengine.repositories.directory import SqlDirectory
from leadengine.repositories.leads import SqlLeadRepository
from leadengine.schemas.directory import AgencyInfo
from leadengine.schemas.enums import SiteVisitStatus
from leadengine.schemas.lead import SiteVisit, utcnow
from leadengine.services import reminders
from leadengine.services.crypto import ContactCipher
from leadengine.services.dispatch import TaskDispatcher
from leadengine.services.notifications import (
    assignment_email,
    assignment_sms,
    due_alert_email,
    due_alert_sms,
    format_assignment_notification,
    format_due_alert,
    format_new_lead_notification,
    format_site_visit_notification,
    new_lead_email,
    new_lead_sms,
    site_visit_email,
    site_visit_sms,
)
from leadengine.services.webhook import WebhookEmitter
from leadengine.workers.base import build_lead_service, get_sync_session, load_lead, run_async

logger = structlog.get_logger()


def _deliver(channel: str, coro) -> None:
    if not run_async(coro):
        raise DownstreamError(channel, "delivery failed or channel not configured")


def _repos(session):
    return SqlLeadRepository(session, cipher=ContactCipher()), SqlDirectory(session)


def _send_sms(agency: AgencyInfo | None, to: str | None, message: str, lead_id: str) -> None:
    """Text only agencies that opted in."""
    if agency is None or not agency.sms_notifications or not to:
        return
    try:
        _deliver("sms", send_sms(to, message))
    except DownstreamError as e:
        logger.warning("sms_not_sent", lead_id=lead_id, error=str(e))


def send_new_lead_notification(lead_id: str):
    """Tell the agency channel and its admins about a new (or re-engaged) lead."""
    session = get_sync_session()
    try:
        leads, directory = _repos(session)
        lead = load_lead(leads, lead_id)
        agency = directory.get_agency(lead.agency_id)

        text, blocks = format_new_lead_notification(lead, agency)
        try:
            _deliver("slack", send_slack_message(
                resolve_webhook_url(agency.slack_webhook_url if agency else None), text, blocks,
            ))
        except DownstreamError as e:
            logger.warning("new_lead_slack_not_sent", lead_id=lead_id, error=str(e))

        admins = directory.find_agency_admins(lead.agency_id)
        recipients = [a.email for a in admins if a.email]
        if recipients:
            subject, body = new_lead_email(lead, agency)
            try:
                _deliver("email", send_email(recipients, subject, body,
                                             reply_to=agency.contact_email if agency else None))
            except DownstreamError as e:
                logger.warning("new_lead_email_not_sent", lead_id=lead_id, error=str(e))
        for admin in admins:
            _send_sms(agency, admin.phone, new_lead_sms(lead), lead_id)

        logger.info("new_lead_notification_processed", lead_id=lead_id)
    except NotFoundError as e:
        logger.warning("notification_lead_missing", lead_id=lead_id, error=str(e))
    finally:
        session.close()


def send_assignment_notification(lead_id: str, agent_id: str):
    session = get_sync_session()
    try:
        leads, directory = _repos(session)
        lead = load_lead(leads, lead_id)
        agent = directory.get_agent(agent_id)
        if agent is None:
            logger.warning("assignment_notification_agent_missing", lead_id=lead_id, agent_id=agent_id)
            return
        # The lead may have been reassigned before this task ran
        if lead.assigned_agent_id != agent_id:
            logger.info("assignment_notification_stale", lead_id=lead_id, agent_id=agent_id)
            return

        agency = directory.get_agency(lead.agency_id)
        if agent.email:
            subject, body = assignment_email(lead, agent)
            try:
                _deliver("email", send_email(agent.email, subject, body,
                                             reply_to=agency.contact_email if agency else None))
            except DownstreamError as e:
                logger.warning("assignment_email_not_sent", lead_id=lead_id, error=str(e))

        text, blocks = format_assignment_notification(lead, agent)
        try:
            _deliver("slack", send_slack_message(
                resolve_webhook_url(agency.slack_webhook_url if agency else None), text, blocks,
            ))
        except DownstreamError as e:
            logger.warning("assignment_slack_not_sent", lead_id=lead_id, error=str(e))
        _send_sms(agency, agent.phone, assignment_sms(lead), lead_id)
    except NotFoundError as e:
        logger.warning("notification_lead_missing", lead_id=lead_id, error=str(e))
    finally:
        session.close()


def send_site_visit_notification(lead_id: str, visit_id: str, snapshot: dict | None = None):
    """Confirm a visit change to the customer and post it to the agency channel.

    A deleted visit is gone from the lead, so its ``snapshot`` is used instead.
    """
    session = get_sync_session()
    try:
        leads, directory = _repos(session)
        lead = load_lead(leads, lead_id)
        visit = lead.find_site_visit(visit_id)
        if visit is None and snapshot:
            visit = SiteVisit.model_validate(snapshot)
        if visit is None:
            logger.info("site_visit_notification_visit_missing", lead_id=lead_id, visit_id=visit_id)
            return
        agency = directory.get_agency(lead.agency_id)

        if lead.contact.email:
            subject, body = site_visit_email(lead, visit)
            try:
                _deliver("email", send_email(lead.contact.email, subject, body,
                                             reply_to=agency.contact_email if agency else None))
            except DownstreamError as e:
                logger.warning("site_visit_email_not_sent", lead_id=lead_id, error=str(e))

        text, blocks = format_site_visit_notification(lead, visit)
        try:
            _deliver("slack", send_slack_message(
                resolve_webhook_url(agency.slack_webhook_url if agency else None), text, blocks,
            ))
        except DownstreamError as e:
            logger.warning("site_visit_slack_not_sent", lead_id=lead_id, error=str(e))
        if visit.status in (SiteVisitStatus.SCHEDULED, SiteVisitStatus.CANCELLED):
            _send_sms(agency, lead.contact.phone, site_visit_sms(visit), lead_id)
    except NotFoundError as e:
        logger.warning("notification_lead_missing", lead_id=lead_id, error=str(e))
    finally:
        session.close()


def _send_due_alerts(lead, due: reminders.DueItems, directory) -> None:
    agency = directory.get_agency(lead.agency_id)
    agent = directory.get_agent(lead.assigned_agent_id) if lead.assigned_agent_id else None
    # Unassigned leads fall back to the agency admins
    recipients = [agent] if agent else directory.find_agency_admins(lead.agency_id)
    if due.overdue_tasks and lead.reporting_manager_id and lead.reporting_manager_id != lead.assigned_agent_id:
        manager = directory.get_agent(lead.reporting_manager_id)
        if manager:
            recipients.append(manager)

    for person in recipients:
        if person.email:
            subject, body = due_alert_email(lead, due, person.first_name)
            try:
                _deliver("email", send_email(person.email, subject, body,
                                             reply_to=agency.contact_email if agency else None))
            except DownstreamError as e:
                logger.warning("due_alert_email_not_sent", lead_id=lead.id, error=str(e))
        _send_sms(agency, person.phone, due_alert_sms(lead, due), lead.id)

    text, blocks = format_due_alert(lead, due)
    try:
        _deliver("slack", send_slack_message(
            resolve_webhook_url(agency.slack_webhook_url if agency else None), text, blocks,
        ))
    except DownstreamError as e:
        logger.warning("due_alert_slack_not_sent", lead_id=lead.id, error=str(e))


def send_due_reminders():
    """Periodic sweep: deliver due reminders and task alerts, then re-arm itself.

    Each lead is marked and saved as soon as its alerts go out, so a crash
    part-way through repeats at most the lead being processed.
    """
    session = get_sync_session()
    now = utcnow()
    processed = 0
    try:
        leads, directory = _repos(session)
        batch = leads.find({"next_due_at": {"$lte": now}}, sort=[("next_due_at", 1)],
                           limit=settings.reminder_batch_size)
        for lead in batch:
            due = reminders.collect_due(lead, now)
            if due.has_alerts:
                _send_due_alerts(lead, due, directory)
            reminders.mark_delivered(lead, due, now)
            leads.save(lead)
            processed += 1
        logger.info("reminder_sweep_completed", checked=len(batch), processed=processed)
    finally:
        session.close()
        TaskDispatcher().schedule_reminder_sweep()


def deliver_lead_webhook(lead_id: str, event: str, previous: dict | None = None):
    emitter = WebhookEmitter()
    if not emitter.is_enabled:
        return
    session = get_sync_session()
    try:
        leads, _ = _repos(session)
        lead = load_lead(leads, lead_id)
        _deliver("webhook", emitter.emit(lead, event, previous))
    except (NotFoundError, DownstreamError) as e:
        logger.warning("lead_webhook_not_delivered", lead_id=lead_id, lead_event=event, error=str(e))
    finally:
        session.close()


def export_leads(lead_ids: list[str]):
    """Bulk export of the given leads in one webhook call."""
    session = get_sync_session()
    try:
        leads, _ = _repos(session)
        batch = leads.find({"id": {"$in": lead_ids}}, limit=len(lead_ids))
        _deliver("webhook", WebhookEmitter().emit_bulk(batch))
        logger.info("lead_export_completed", requested=len(lead_ids), exported=len(batch))
    except DownstreamError as e:
        logger.error("lead_export_failed", requested=len(lead_ids), error=str(e))
    finally:
        session.close()


def rescore_lead(lead_id: str):
    session = get_sync_session()
    try:
        lead = build_lead_service(session).rescore(lead_id)
        logger.info("lead_rescored", lead_id=lead_id, score=lead.score, priority=lead.priority.value)
    except NotFoundError as e:
        logger.warning("rescore_lead_missing", lead_id=lead_id, error=str(e))
    finally:
        session.close()
