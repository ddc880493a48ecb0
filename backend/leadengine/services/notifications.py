"""Notification message formatting for Slack and email channels."""

from leadengine.schemas.directory import AgencyInfo, AgentInfo
from leadengine.schemas.enums import SiteVisitStatus
from leadengine.schemas.lead import Lead, SiteVisit
from leadengine.services.reminders import DueItems


def _lead_fields(lead: Lead) -> list[dict]:
    return [
        {"type": "mrkdwn", "text": f"*Lead:* {lead.contact.full_name or 'Unknown'} ({lead.lead_code or lead.id})"},
        {"type": "mrkdwn", "text": f"*Source:* {lead.source.value}"},
        {"type": "mrkdwn", "text": f"*Priority:* {lead.priority.value}"},
        {"type": "mrkdwn", "text": f"*Score:* {lead.score}"},
    ]


def format_new_lead_notification(lead: Lead, agency: AgencyInfo | None = None) -> tuple[str, list]:
    """Format a new-lead notification for Slack."""
    text = f"New lead: {lead.contact.full_name or 'Unknown'} ({lead.source.value})"
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "New Lead"}},
        {"type": "section", "fields": _lead_fields(lead)},
    ]
    if lead.inquiry.message:
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Message:* {lead.inquiry.message[:200]}"},
        })
    if agency:
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": agency.name}]})
    return text, blocks


def format_assignment_notification(lead: Lead, agent: AgentInfo) -> tuple[str, list]:
    text = f"Lead {lead.lead_code or lead.id} assigned to {agent.full_name or agent.email}"
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "Lead Assigned"}},
        {"type": "section", "fields": _lead_fields(lead) + [
            {"type": "mrkdwn", "text": f"*Agent:* {agent.full_name or agent.email}"},
        ]},
    ]
    return text, blocks


def format_site_visit_notification(lead: Lead, visit: SiteVisit) -> tuple[str, list]:
    when = visit.scheduled_date.strftime("%Y-%m-%d")
    if visit.scheduled_time:
        when = f"{when} {visit.scheduled_time}"
    text = f"Site visit {visit.status.value} for {lead.contact.full_name or lead.lead_code}: {when}"
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "Site Visit"}},
        {"type": "section", "fields": _lead_fields(lead) + [
            {"type": "mrkdwn", "text": f"*When:* {when}"},
            {"type": "mrkdwn", "text": f"*Status:* {visit.status.value}"},
        ]},
    ]
    return text, blocks


def assignment_email(lead: Lead, agent: AgentInfo) -> tuple[str, str]:
    """Subject and HTML body of the agent assignment email."""
    subject = f"New lead assigned: {lead.contact.full_name or lead.lead_code}"
    body = (
        f"<p>Hi {agent.first_name or 'there'},</p>"
        f"<p>Lead <strong>{lead.lead_code or lead.id}</strong> has been assigned to you.</p>"
        f"<ul><li>Name: {lead.contact.full_name}</li>"
        f"<li>Phone: {lead.contact.phone or '-'}</li>"
        f"<li>Email: {lead.contact.email or '-'}</li>"
        f"<li>Priority: {lead.priority.value}</li></ul>"
    )
    return subject, body


def site_visit_email(lead: Lead, visit: SiteVisit) -> tuple[str, str]:
    when = _when(visit)
    subject = f"Your site visit is {visit.status.value}"
    body = (
        f"<p>Dear {lead.contact.first_name or 'Customer'},</p>"
        f"<p>Your site visit on <strong>{when}</strong> is {visit.status.value}.</p>"
    )
    return subject, body


def new_lead_email(lead: Lead, agency: AgencyInfo | None = None) -> tuple[str, str]:
    subject = f"New lead: {lead.contact.full_name or lead.lead_code} ({lead.source.value})"
    body = (
        f"<p>A new lead has arrived{f' for {agency.name}' if agency else ''}.</p>"
        f"<ul><li>Code: {lead.lead_code or lead.id}</li>"
        f"<li>Name: {lead.contact.full_name or '-'}</li>"
        f"<li>Phone: {lead.contact.phone or '-'}</li>"
        f"<li>Priority: {lead.priority.value} (score {lead.score})</li>"
        f"<li>Assigned: {'yes' if lead.assigned_agent_id else 'no'}</li></ul>"
    )
    return subject, body


def _when(visit: SiteVisit) -> str:
    return visit.scheduled_date.strftime("%d %b %Y") + (f" at {visit.scheduled_time}" if visit.scheduled_time else "")


# --- SMS ---

def new_lead_sms(lead: Lead) -> str:
    return (f"New lead {lead.lead_code or lead.id}: {lead.contact.full_name or 'Unknown'} "
            f"({lead.contact.phone or lead.contact.email or '-'}), {lead.priority.value}.")


def assignment_sms(lead: Lead) -> str:
    return (f"You have been assigned a new lead: {lead.contact.full_name or lead.lead_code} "
            f"({lead.contact.phone or '-'}). Please contact them soon.")


def site_visit_sms(visit: SiteVisit) -> str:
    if visit.status == SiteVisitStatus.CANCELLED:
        return f"Your site visit on {_when(visit)} has been cancelled."
    return f"Your site visit is confirmed for {_when(visit)}. We look forward to meeting you!"


def due_alert_sms(lead: Lead, due: DueItems) -> str:
    name = lead.contact.full_name or lead.lead_code
    if due.overdue_tasks:
        return f"MISSED FOLLOW-UP: {len(due.overdue_tasks)} overdue task(s) on {name}. Please follow up immediately."
    titles = [r.title for r in due.reminders] + [t.title for t in due.upcoming_tasks]
    return f"Reminder for {name}: {'; '.join(titles)}"


# --- reminder sweep ---

def _due_lines(due: DueItems) -> list[str]:
    lines = [f"Reminder: {r.title}" + (f" ({r.description})" if r.description else "") for r in due.reminders]
    lines += [f"Task due {t.due_date:%d %b %Y %H:%M}: {t.title}" for t in due.upcoming_tasks]
    lines += [f"Overdue since {t.due_date:%d %b %Y %H:%M}: {t.title}" for t in due.overdue_tasks]
    return lines


def due_alert_email(lead: Lead, due: DueItems, recipient_name: str | None = None) -> tuple[str, str]:
    label = "Missed follow-up" if due.overdue_tasks else "Follow-up reminder"
    subject = f"{label}: {lead.contact.full_name or lead.lead_code}"
    items = "".join(f"<li>{line}</li>" for line in _due_lines(due))
    body = (
        f"<p>Hi {recipient_name or 'there'},</p>"
        f"<p>Lead <strong>{lead.lead_code or lead.id}</strong> "
        f"({lead.contact.full_name or '-'}, {lead.contact.phone or lead.contact.email or '-'}) needs attention:</p>"
        f"<ul>{items}</ul>"
    )
    return subject, body


def format_due_alert(lead: Lead, due: DueItems) -> tuple[str, list]:
    text = f"Follow-ups due on {lead.contact.full_name or lead.lead_code}"
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "Follow-ups Due"}},
        {"type": "section", "fields": _lead_fields(lead)},
        {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(f"• {line}" for line in _due_lines(due))}},
    ]
    return text, blocks
