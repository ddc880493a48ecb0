"""Append-only lead activity log."""

from typing import Any

from leadengine.schemas.enums import ActivityAction
from leadengine.schemas.lead import ActivityEntry, Lead


def log_activity(
    lead: Lead,
    action: ActivityAction,
    performed_by: str | None,
    description: str | None = None,
    field: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> ActivityEntry:
    entry = ActivityEntry(
        action=action,
        field=field,
        old_value=getattr(old_value, "value", old_value),
        new_value=getattr(new_value, "value", new_value),
        description=description,
        performed_by=performed_by,
    )
    lead.activity_log.append(entry)
    return entry
