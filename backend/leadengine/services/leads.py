"""Lead service - orchestrates intake and mutation of leads.

Intake:   normalize -> assign -> score -> persist -> notify
Mutation: guard -> transition -> audit -> persist -> notify

Notifications, webhooks and background re-scoring are handed to the
dispatcher after the save; their failures never reach the caller.
"""

from typing import Any, Callable

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from leadengine.config import settings
from leadengine.errors import ConflictError, LeadEngineError, NotFoundError, PermissionDeniedError, ValidationError
from leadengine.repositories.directory import Directory, RotationCursor
from leadengine.repositories.leads import LeadRepository
from leadengine.schemas.directory import AgentInfo
from leadengine.schemas.enums import (
    ActivityAction,
    AssignmentMethod,
    CommunicationType,
    GuardAction,
    LeadStatus,
    Role,
    SiteVisitStatus,
)
from leadengine.schemas.lead import (
    Booking,
    Communication,
    Contact,
    Document,
    EntryPermissions,
    InterestedProperty,
    Lead,
    Note,
    Reminder,
    SiteVisit,
    SlaState,
    Task,
    utcnow,
)
from leadengine.schemas.requests import (
    AssignmentOutcome,
    BulkImportError,
    BulkImportRequest,
    BulkImportResult,
    CommunicationCreate,
    DocumentCreate,
    LeadCreate,
    LeadCreateResult,
    LeadListResponse,
    LeadUpdate,
    NoteCreate,
    NoteUpdate,
    ReminderCreate,
    ReminderUpdate,
    SiteVisitComplete,
    SiteVisitCreate,
    SiteVisitReschedule,
    TaskCreate,
    TaskUpdate,
    WebhookExportRequest,
    WebhookExportResult,
)
from leadengine.services import lifecycle
from leadengine.services.activity import log_activity
from leadengine.services.assignment import AssignmentEngine
from leadengine.services.dispatch import TaskDispatcher
from leadengine.services.guard import (
    LeadResource,
    Principal,
    require,
    require_super_admin,
    resolve_intake_agency,
    visibility_filter,
)
from leadengine.services.identifiers import fallback_lead_code, generate_lead_code
from leadengine.services.intake import map_webhook_payload, pydantic_errors, validate_contact
from leadengine.services.normalization import normalize_priority, normalize_source, normalize_status
from leadengine.services.scoring import LeadScoringEngine
from leadengine.services.sla import record_contact
from leadengine.services.webhook import WebhookEmitter, event_for_update

logger = structlog.get_logger()

WEBHOOK_ACTOR = "webhook"


def _actor(principal: Principal | None) -> str | None:
    return principal.user_id if principal else None


def _merge_model(model: BaseModel, changes: dict, nested: tuple[str, ...] = ()):
    """Deep-merge ``changes`` into ``model`` and re-validate."""
    data = model.model_dump()
    for key, value in changes.items():
        if key in nested and isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    try:
        return type(model).model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid lead fields", code="invalid_fields", errors=pydantic_errors(e))


def _snapshot(lead: Lead) -> dict:
    return {
        "status": lead.status.value,
        "priority": lead.priority.value,
        "assigned_agent_id": lead.assigned_agent_id,
    }


class LeadService:
    def __init__(
        self,
        leads: LeadRepository,
        directory: Directory,
        rotation: RotationCursor,
        dispatcher: TaskDispatcher,
        webhook: WebhookEmitter | None = None,
        scoring: LeadScoringEngine | None = None,
        clock: Callable = utcnow,
    ):
        self.leads = leads
        self.directory = directory
        self.dispatcher = dispatcher
        self.webhook = webhook or WebhookEmitter()
        self.scoring = scoring or LeadScoringEngine()
        self.assignment = AssignmentEngine(leads, directory, rotation)
        self.clock = clock

    # --- helpers ---

    def _load(self, lead_id: str) -> Lead:
        lead = self.leads.find_by_id(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        return lead

    def _guard(self, principal: Principal, action: GuardAction, lead: Lead) -> None:
        manager_id = None
        if principal.role == Role.AGENT and lead.property_id and lead.assigned_agent_id != principal.user_id:
            prop = self.directory.get_property(lead.property_id)
            manager_id = prop.agent_id if prop else None
        require(principal, action, LeadResource.from_lead(lead, property_manager_id=manager_id))

    def _load_for(self, lead_id: str, principal: Principal, action: GuardAction = GuardAction.EDIT) -> Lead:
        lead = self._load(lead_id)
        self._guard(principal, action, lead)
        return lead

    def _score(self, lead: Lead, update_priority: bool, actor: str | None) -> None:
        before = lead.priority
        self.scoring.apply(lead, update_priority=update_priority)
        if lead.priority != before:
            log_activity(
                lead, ActivityAction.PRIORITY_CHANGE, actor,
                field="priority", old_value=before, new_value=lead.priority,
                description=f"Priority set to {lead.priority.value} from score {lead.score}",
            )

    def _apply_assignment(self, lead: Lead, agent: AgentInfo, actor: str | None,
                          principal: Principal | None = None, team: str | None = None) -> None:
        previous = lead.assigned_agent_id
        lead.assigned_agent_id = agent.id
        lead.assigned_by = actor
        lead.team = team or agent.team or lead.team
        if principal and (principal.role == Role.AGENCY_ADMIN or principal.is_team_lead):
            lead.reporting_manager_id = principal.user_id
        log_activity(
            lead, ActivityAction.ASSIGNMENT_CHANGE, actor,
            field="assigned_agent_id", old_value=previous, new_value=agent.id,
            description=f"Lead assigned to {agent.full_name or agent.id}",
        )

    def _find_duplicate(self, agency_id: str, contact: Contact) -> Lead | None:
        conditions = []
        if contact.email:
            conditions.append({"contact.email": contact.email.strip().lower()})
        if contact.phone and contact.phone.strip():
            conditions.append({"contact.phone": contact.phone.strip()})
        if not conditions:
            return None
        # Read-then-decide without a lock; two concurrent inquiries may both insert
        return self.leads.find_one({"agency_id": agency_id, "$or": conditions})

    def _save_new(self, lead: Lead) -> Lead:
        try:
            return self.leads.save(lead)
        except ConflictError:
            lead.lead_code = fallback_lead_code()
            logger.warning("lead_code_conflict_fallback", lead_id=lead.id, lead_code=lead.lead_code)
            return self.leads.save(lead)

    # --- intake ---

    def create(self, payload: LeadCreate, principal: Principal | None = None) -> LeadCreateResult:
        problems = validate_contact(payload.contact)
        if problems:
            raise ValidationError("Validation failed", code="invalid_contact", errors=problems)

        agency_id = resolve_intake_agency(principal, payload.agency_id, self.directory)
        agency = self.directory.get_agency(agency_id)
        if agency is None:
            raise NotFoundError("Agency", agency_id)

        actor = _actor(principal)
        if not payload.ignore_duplicates:
            existing = self._find_duplicate(agency_id, payload.contact)
            if existing is not None:
                return self._reengage(existing, payload, actor)

        now = self.clock()
        contact = payload.contact.model_copy()
        if contact.email:
            contact.email = contact.email.strip().lower()
        lead = Lead(
            agency_id=agency_id,
            lead_code=generate_lead_code(self.leads),
            status=normalize_status(payload.status),
            priority=normalize_priority(payload.priority),
            source=normalize_source(payload.source),
            campaign_name=payload.campaign_name,
            contact=contact,
            inquiry=payload.inquiry,
            property_id=payload.property_id,
            team=payload.team,
            tags=payload.tags,
            sla=SlaState(),
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        if "currency" not in payload.inquiry.budget.model_fields_set:
            lead.inquiry.budget.currency = agency.currency
        log_activity(lead, ActivityAction.LEAD_CREATED, actor, description="Lead created")

        agent_id = payload.assigned_agent_id
        if not agent_id and agency.auto_assign_leads:
            agent_id = self.assignment.assign(agency_id, agency.assignment_method, lead)
        if agent_id:
            agent = self.assignment.validate_assignee(agent_id, agency_id)
            self._apply_assignment(lead, agent, actor, principal, team=payload.team)

        self._score(lead, update_priority=payload.priority is None, actor=actor)
        self._save_new(lead)

        logger.info("lead_created", lead_id=lead.id, lead_code=lead.lead_code,
                    agency_id=agency_id, agent_id=lead.assigned_agent_id, score=lead.score)
        self.dispatcher.notify_new_lead(lead.id)
        if lead.assigned_agent_id:
            self.dispatcher.notify_assignment(lead.id, lead.assigned_agent_id)
        self.dispatcher.emit_webhook(lead.id, "lead_created")
        return LeadCreateResult(lead=lead)

    def _reengage(self, lead: Lead, payload: LeadCreate, actor: str | None) -> LeadCreateResult:
        """A repeat inquiry refreshes the existing lead instead of duplicating it."""
        if payload.property_id and payload.property_id != lead.property_id and not any(
            ip.property_id == payload.property_id for ip in lead.interested_properties
        ):
            lead.interested_properties.append(InterestedProperty(property_id=payload.property_id))
        if payload.contact.first_name:
            lead.contact.first_name = payload.contact.first_name
        if payload.contact.last_name:
            lead.contact.last_name = payload.contact.last_name
        log_activity(lead, ActivityAction.LEAD_UPDATED, actor,
                     description="Lead inquiry updated (duplicate prevented)")

        # Forced re-score: a fresh inquiry revives the priority
        self._score(lead, update_priority=True, actor=actor)
        self.leads.save(lead)

        logger.info("lead_duplicate_reengaged", lead_id=lead.id, agency_id=lead.agency_id)
        self.dispatcher.notify_new_lead(lead.id)
        return LeadCreateResult(lead=lead, is_existing=True, message="Existing lead updated")

    def ingest_webhook(self, data: dict[str, Any]) -> LeadCreateResult:
        """External form / ad-platform intake. No caller identity."""
        try:
            payload = map_webhook_payload(data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid webhook payload", code="invalid_payload", errors=pydantic_errors(e))
        if not payload.contact.email and not payload.contact.phone:
            raise ValidationError("Email or phone is required", code="contact_required")
        return self.create(payload, principal=None)

    def bulk_import(self, request: BulkImportRequest, principal: Principal) -> BulkImportResult:
        # Agency overrides are checked for every row before anything is written
        overrides = {row.get("agency_id") for row in request.leads if row.get("agency_id")}
        if request.agency_id:
            overrides.add(request.agency_id)
        if overrides and not principal.is_super_admin and overrides != {principal.agency_id}:
            raise PermissionDeniedError("agency_override_denied")
        default_agency_id = resolve_intake_agency(principal, request.agency_id, self.directory)

        result = BulkImportResult(imported=0, failed=0)
        for index, row in enumerate(request.leads, start=1):
            try:
                payload = LeadCreate.model_validate({"agency_id": default_agency_id, **row})
            except PydanticValidationError as e:
                result.errors.append(BulkImportError(row=index, errors=pydantic_errors(e)))
                continue

            problems = validate_contact(payload.contact, require_email=True, require_phone=True)
            if problems:
                result.errors.append(BulkImportError(row=index, errors=problems))
                continue
            try:
                created = self.create(payload, principal)
            except LeadEngineError as e:
                result.errors.append(BulkImportError(row=index, errors=[e.message]))
                continue
            result.lead_ids.append(created.lead.id)

        result.imported = len(result.lead_ids)
        result.failed = len(result.errors)
        logger.info("lead_bulk_import", imported=result.imported, failed=result.failed,
                    user_id=principal.user_id)
        return result

    # --- reads ---

    def get(self, lead_id: str, principal: Principal) -> Lead:
        return self._load_for(lead_id, principal, GuardAction.VIEW)

    def list_leads(self, principal: Principal, filters: dict | None = None, search: str | None = None,
             page: int = 1, per_page: int = 20) -> LeadListResponse:
        query = {k: v for k, v in (filters or {}).items() if v is not None}
        if search:
            term = search.strip()
            query["$or"] = [
                {"contact.first_name": {"$contains": term}},
                {"contact.last_name": {"$contains": term}},
                {"lead_code": {"$contains": term}},
                {"contact.email": term.lower()},
                {"contact.phone": term},
            ]
        managed = None
        if principal.role == Role.AGENT:
            managed = self.directory.find_managed_property_ids(principal.user_id)
        # Visibility scope is ANDed in, so no caller filter can widen it
        scope = visibility_filter(principal, managed)
        query = {"$and": [query, scope]} if query else scope

        total = self.leads.count_documents(query)
        items = self.leads.find(query, sort=[("created_at", -1)], limit=per_page, skip=(page - 1) * per_page)
        return LeadListResponse(items=items, total=total, page=page, per_page=per_page)

    def find_duplicates(self, lead_id: str, principal: Principal) -> list[Lead]:
        lead = self._load_for(lead_id, principal, GuardAction.VIEW)
        conditions = []
        if lead.contact.email:
            conditions.append({"contact.email": lead.contact.email.lower()})
        if lead.contact.phone:
            conditions.append({"contact.phone": lead.contact.phone})
        if not conditions:
            return []
        return self.leads.find({"agency_id": lead.agency_id, "id": {"$ne": lead.id}, "$or": conditions})

    # --- mutation ---

    def update(self, lead_id: str, payload: LeadUpdate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        actor = principal.user_id
        fields = payload.model_fields_set

        # Checked before anything on the lead changes
        contact = None
        if payload.contact:
            contact = _merge_model(lead.contact, payload.contact)
            problems = validate_contact(contact)
            if problems:
                raise ValidationError("Validation failed", code="invalid_contact", errors=problems)
            if contact.email:
                contact.email = contact.email.strip().lower()

        previous = _snapshot(lead)
        changed = []

        if "status" in fields and payload.status is not None:
            lifecycle.change_status(lead, normalize_status(payload.status), actor, self.clock())
        if "priority" in fields and payload.priority is not None:
            lifecycle.change_priority(lead, normalize_priority(payload.priority), actor)
        if "source" in fields and payload.source is not None:
            lead.source = normalize_source(payload.source)
            changed.append("source")

        if contact is not None:
            lead.contact = contact
            changed.append("contact")
        if payload.inquiry:
            lead.inquiry = _merge_model(lead.inquiry, payload.inquiry, nested=("budget",))
            changed.append("inquiry")
        if payload.booking:
            lead.booking = _merge_model(lead.booking or Booking(), payload.booking)
            changed.append("booking")

        for name in ("campaign_name", "property_id", "reporting_manager_id", "tags", "lost_reason"):
            if name in fields:
                setattr(lead, name, getattr(payload, name))
                changed.append(name)
        if "team" in fields:
            lead.team = payload.team
            changed.append("team")

        new_agent = None
        if "assigned_agent_id" in fields and payload.assigned_agent_id != lead.assigned_agent_id:
            if payload.assigned_agent_id:
                new_agent = self.assignment.validate_assignee(payload.assigned_agent_id, lead.agency_id)
                self._apply_assignment(lead, new_agent, actor, principal,
                                       team=payload.team if "team" in fields else None)
            else:
                log_activity(lead, ActivityAction.ASSIGNMENT_CHANGE, actor, field="assigned_agent_id",
                             old_value=lead.assigned_agent_id, new_value=None, description="Lead unassigned")
                lead.assigned_agent_id = None

        if changed:
            log_activity(lead, ActivityAction.LEAD_UPDATED, actor,
                         description=f"Updated {', '.join(changed)}")

        self._score(lead, update_priority="priority" not in fields, actor=actor)
        self.leads.save(lead)

        logger.info("lead_updated", lead_id=lead.id, user_id=actor, fields=sorted(fields))
        if new_agent:
            self.dispatcher.notify_assignment(lead.id, new_agent.id)
        self.dispatcher.emit_webhook(lead.id, event_for_update(previous["status"], lead.status.value), previous)
        return lead

    def delete(self, lead_id: str, principal: Principal) -> None:
        lead = self._load_for(lead_id, principal, GuardAction.DELETE)
        self.leads.delete_by_id(lead.id)
        logger.info("lead_deleted", lead_id=lead.id, user_id=principal.user_id)

    def set_entry_permissions(self, lead_id: str, permissions: EntryPermissions, principal: Principal) -> Lead:
        require_super_admin(principal)
        lead = self._load(lead_id)
        old = lead.entry_permissions.model_dump()
        lead.entry_permissions = permissions
        log_activity(lead, ActivityAction.LEAD_UPDATED, principal.user_id, field="entry_permissions",
                     old_value=old, new_value=permissions.model_dump(),
                     description="Entry permissions updated")
        return self.leads.save(lead)

    # --- engagement ---

    def add_note(self, lead_id: str, payload: NoteCreate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        lead.notes.append(Note(content=payload.content, is_private=payload.is_private,
                               created_by=principal.user_id, created_at=self.clock()))
        log_activity(lead, ActivityAction.NOTE_ADDED, principal.user_id, description="Note added")
        return self.leads.save(lead)

    def update_note(self, lead_id: str, note_id: str, payload: NoteUpdate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        note = lead.find_note(note_id)
        if note is None:
            raise NotFoundError("Note", note_id)
        fields = payload.model_fields_set
        if "content" in fields and payload.content is not None:
            note.content = payload.content
        if "is_private" in fields and payload.is_private is not None:
            note.is_private = payload.is_private
        log_activity(lead, ActivityAction.NOTE_UPDATED, principal.user_id, description="Note updated")
        return self.leads.save(lead)

    def delete_note(self, lead_id: str, note_id: str, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        if lead.find_note(note_id) is None:
            raise NotFoundError("Note", note_id)
        lead.notes = [n for n in lead.notes if n.id != note_id]
        log_activity(lead, ActivityAction.NOTE_DELETED, principal.user_id, description="Note deleted")
        return self.leads.save(lead)

    def add_communication(self, lead_id: str, payload: CommunicationCreate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        now = self.clock()
        comm = Communication(**payload.model_dump(), created_by=principal.user_id, created_at=now)
        lead.communications.append(comm)
        record_contact(lead.sla, comm.type, lead.created_at, now)
        log_activity(
            lead, ActivityAction.COMMUNICATION_ADDED, principal.user_id,
            description=f"{comm.type.value.capitalize()} logged: {comm.subject or 'No subject'}",
        )
        self._score(lead, update_priority=True, actor=principal.user_id)
        self.leads.save(lead)
        if comm.type != CommunicationType.NOTE:
            logger.info("lead_contacted", lead_id=lead.id, sla_status=lead.sla.status.value)
        return lead

    def add_task(self, lead_id: str, payload: TaskCreate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        task = Task(**payload.model_dump(), created_by=principal.user_id, created_at=self.clock())
        lead.tasks.append(task)
        log_activity(lead, ActivityAction.TASK_ADDED, principal.user_id, description=f"Task added: {task.title}")
        return self.leads.save(lead)

    def update_task(self, lead_id: str, task_id: str, payload: TaskUpdate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        task = lead.find_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        fields = payload.model_fields_set
        old_status = task.status
        for name in ("title", "description", "due_date", "assigned_to"):
            if name in fields:
                setattr(task, name, getattr(payload, name))
        if "due_date" in fields:
            # A moved due date gets a fresh reminder and overdue alert
            task.reminder_sent_at = None
            task.overdue_alerted_at = None
        if "status" in fields and payload.status is not None:
            lifecycle.transition_task(task, payload.status, self.clock())
        log_activity(lead, ActivityAction.TASK_UPDATED, principal.user_id, field="status",
                     old_value=old_status, new_value=task.status, description=f"Task updated: {task.title}")
        # Re-validate so updated dates are coerced to UTC
        lead.tasks = [Task.model_validate(t.model_dump()) for t in lead.tasks]
        return self.leads.save(lead)

    def delete_task(self, lead_id: str, task_id: str, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        task = lead.find_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        lead.tasks = [t for t in lead.tasks if t.id != task_id]
        log_activity(lead, ActivityAction.TASK_DELETED, principal.user_id, description=f"Task deleted: {task.title}")
        return self.leads.save(lead)

    def add_reminder(self, lead_id: str, payload: ReminderCreate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        reminder = Reminder(**payload.model_dump(), created_by=principal.user_id, created_at=self.clock())
        lead.reminders.append(reminder)
        log_activity(lead, ActivityAction.REMINDER_ADDED, principal.user_id,
                     description=f"Reminder set for {reminder.reminder_date.isoformat()}")
        return self.leads.save(lead)

    def update_reminder(self, lead_id: str, reminder_id: str, payload: ReminderUpdate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        reminder = lead.find_reminder(reminder_id)
        if reminder is None:
            raise NotFoundError("Reminder", reminder_id)
        data = reminder.model_dump()
        data.update(payload.model_dump(exclude_unset=True))
        if payload.is_completed and not reminder.is_completed:
            data["completed_at"] = self.clock()
        updated = Reminder.model_validate(data)
        lead.reminders = [updated if r.id == reminder_id else r for r in lead.reminders]
        log_activity(lead, ActivityAction.REMINDER_UPDATED, principal.user_id,
                     description=f"Reminder updated: {updated.title}")
        return self.leads.save(lead)

    def delete_reminder(self, lead_id: str, reminder_id: str, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        if lead.find_reminder(reminder_id) is None:
            raise NotFoundError("Reminder", reminder_id)
        lead.reminders = [r for r in lead.reminders if r.id != reminder_id]
        log_activity(lead, ActivityAction.REMINDER_DELETED, principal.user_id, description="Reminder deleted")
        return self.leads.save(lead)

    def add_document(self, lead_id: str, payload: DocumentCreate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        doc = Document(**payload.model_dump(), uploaded_by=principal.user_id, uploaded_at=self.clock())
        lead.documents.append(doc)
        log_activity(lead, ActivityAction.DOCUMENT_UPLOADED, principal.user_id, description=f"Document uploaded: {doc.name}")
        return self.leads.save(lead)

    def delete_document(self, lead_id: str, document_id: str, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        doc = next((d for d in lead.documents if d.id == document_id), None)
        if doc is None:
            raise NotFoundError("Document", document_id)
        lead.documents = [d for d in lead.documents if d.id != document_id]
        log_activity(lead, ActivityAction.DOCUMENT_DELETED, principal.user_id, description=f"Document deleted: {doc.name}")
        return self.leads.save(lead)

    # --- assignment & scoring ---

    def assign(self, lead_id: str, agent_id: str, principal: Principal, team: str | None = None) -> Lead:
        lead = self._load_for(lead_id, principal)
        agent = self.assignment.validate_assignee(agent_id, lead.agency_id)
        self._apply_assignment(lead, agent, principal.user_id, principal, team=team)
        self.leads.save(lead)

        logger.info("lead_assigned", lead_id=lead.id, agent_id=agent.id, user_id=principal.user_id)
        self.dispatcher.rescore(lead.id)
        self.dispatcher.notify_assignment(lead.id, agent.id)
        return lead

    def auto_assign(self, lead_id: str, method: AssignmentMethod | str, principal: Principal) -> AssignmentOutcome:
        lead = self._load_for(lead_id, principal)
        method = AssignmentMethod(method)
        agent_id = self.assignment.assign(lead.agency_id, method, lead)
        if not agent_id:
            return AssignmentOutcome(lead=lead, agent_id=None, method=method, assigned=False)

        agent = self.assignment.validate_assignee(agent_id, lead.agency_id)
        self._apply_assignment(lead, agent, principal.user_id, principal)
        self.leads.save(lead)

        self.dispatcher.rescore(lead.id)
        self.dispatcher.notify_assignment(lead.id, agent.id)
        return AssignmentOutcome(lead=lead, agent_id=agent.id, method=method, assigned=True)

    def rescore(self, lead_id: str, principal: Principal | None = None) -> Lead:
        """Manual or background re-score. ``principal`` is None for workers."""
        lead = self._load(lead_id) if principal is None else self._load_for(lead_id, principal)
        actor = _actor(principal) or lifecycle.SYSTEM_ACTOR
        old_score = lead.score
        self._score(lead, update_priority=True, actor=actor)
        log_activity(lead, ActivityAction.LEAD_UPDATED, actor, field="score",
                     old_value=old_score, new_value=lead.score, description="Lead re-scored")
        return self.leads.save(lead)

    def merge(self, target_id: str, source_id: str, principal: Principal) -> Lead:
        if target_id == source_id:
            raise ValidationError("A lead cannot be merged into itself", code="merge_same_lead")
        target = self._load_for(target_id, principal)
        source = self._load_for(source_id, principal)
        if target.agency_id != source.agency_id:
            raise ValidationError("Leads belong to different agencies", code="merge_agency_mismatch")

        target.notes.extend(source.notes)
        target.communications.extend(source.communications)
        target.tasks.extend(source.tasks)
        if not target.assigned_agent_id and source.assigned_agent_id:
            target.assigned_agent_id = source.assigned_agent_id
            target.team = target.team or source.team
        if target.status == LeadStatus.NEW and source.status != LeadStatus.NEW:
            lifecycle.change_status(target, source.status, principal.user_id, self.clock())

        log_activity(target, ActivityAction.MERGED, principal.user_id, old_value=source.id,
                     description=f"Merged lead {source.lead_code or source.id} "
                                 f"({source.contact.full_name})")
        self._score(target, update_priority=True, actor=principal.user_id)
        self.leads.save(target)
        self.leads.delete_by_id(source.id)

        logger.info("lead_merged", target_id=target.id, source_id=source.id, user_id=principal.user_id)
        return target

    # --- site visits ---

    def schedule_site_visit(self, lead_id: str, payload: SiteVisitCreate, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        now = self.clock()

        newly_assigned = None
        if not lead.assigned_agent_id:
            newly_assigned = self._try_auto_assign(lead, principal)

        visit = SiteVisit(
            scheduled_date=payload.scheduled_date,
            scheduled_time=payload.scheduled_time,
            relationship_manager=payload.relationship_manager or lead.assigned_agent_id or principal.user_id,
            property_id=payload.property_id or lead.property_id,
            notes=payload.notes,
            created_by=principal.user_id,
            created_at=now,
        )
        lifecycle.schedule_site_visit(lead, visit, principal.user_id, now)
        self.leads.save(lead)

        logger.info("site_visit_scheduled", lead_id=lead.id, visit_id=visit.id,
                    scheduled_date=visit.scheduled_date.isoformat())
        if newly_assigned:
            self.dispatcher.notify_assignment(lead.id, newly_assigned)
        self.dispatcher.notify_site_visit(lead.id, visit.id)
        self.dispatcher.emit_webhook(lead.id, "site_visit_scheduled")
        return lead

    def _try_auto_assign(self, lead: Lead, principal: Principal) -> str | None:
        """Best-effort assignment ahead of a visit; never blocks scheduling."""
        agency = self.directory.get_agency(lead.agency_id)
        method = agency.assignment_method if agency and agency.auto_assign_leads else AssignmentMethod.ROUND_ROBIN
        try:
            agent_id = self.assignment.assign(lead.agency_id, method, lead)
            if not agent_id:
                return None
            agent = self.assignment.validate_assignee(agent_id, lead.agency_id)
        except LeadEngineError as e:
            logger.warning("site_visit_auto_assign_failed", lead_id=lead.id, error=str(e))
            return None
        self._apply_assignment(lead, agent, principal.user_id, principal)
        return agent.id

    def complete_site_visit(self, lead_id: str, payload: SiteVisitComplete, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        visit = lifecycle.complete_site_visit(
            lead, principal.user_id,
            feedback=payload.feedback, interest_level=payload.interest_level,
            next_action=payload.next_action, now=self.clock(),
        )
        self.leads.save(lead)
        self.dispatcher.notify_site_visit(lead.id, visit.id)
        self.dispatcher.emit_webhook(lead.id, "site_visit_completed")
        return lead

    def reschedule_site_visit(self, lead_id: str, visit_id: str, payload: SiteVisitReschedule,
                              principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        visit = lifecycle.reschedule_site_visit(
            lead, visit_id, principal.user_id,
            scheduled_date=payload.scheduled_date, scheduled_time=payload.scheduled_time,
            relationship_manager=payload.relationship_manager, notes=payload.notes, now=self.clock(),
        )
        self.leads.save(lead)
        self.dispatcher.notify_site_visit(lead.id, visit.id)
        return lead

    def update_site_visit_remarks(self, lead_id: str, visit_id: str, payload: SiteVisitComplete,
                                  principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        lifecycle.update_visit_remarks(
            lead, visit_id, principal.user_id,
            feedback=payload.feedback, interest_level=payload.interest_level, next_action=payload.next_action,
        )
        return self.leads.save(lead)

    def cancel_site_visit(self, lead_id: str, principal: Principal, visit_id: str | None = None,
                          reason: str | None = None) -> Lead:
        lead = self._load_for(lead_id, principal)
        visit = lifecycle.cancel_site_visit(lead, principal.user_id, visit_id=visit_id,
                                            reason=reason, now=self.clock())
        self.leads.save(lead)
        self.dispatcher.notify_site_visit(lead.id, visit.id)
        self.dispatcher.emit_webhook(lead.id, "site_visit_cancelled")
        return lead

    def delete_site_visit(self, lead_id: str, visit_id: str, principal: Principal) -> Lead:
        lead = self._load_for(lead_id, principal)
        existing = lead.find_site_visit(visit_id)
        was_pending = existing is not None and existing.status == SiteVisitStatus.SCHEDULED
        visit = lifecycle.delete_site_visit(lead, visit_id, principal.user_id, now=self.clock())
        self.leads.save(lead)

        logger.info("site_visit_deleted", lead_id=lead.id, visit_id=visit.id, user_id=principal.user_id)
        if was_pending:
            # The worker can no longer find the visit on the lead
            self.dispatcher.notify_site_visit(lead.id, visit.id, visit.model_dump(mode="json"))
        self.dispatcher.emit_webhook(lead.id, "site_visit_cancelled")
        return lead

    def auto_stage(self, lead_id: str, principal: Principal) -> tuple[Lead, list[str]]:
        lead = self._load_for(lead_id, principal)
        previous = _snapshot(lead)
        changes = lifecycle.auto_stage(lead, self.clock(), performed_by=principal.user_id)
        if not changes:
            return lead, []
        self.leads.save(lead)
        logger.info("lead_auto_staged", lead_id=lead.id, changes=changes)
        if lead.status.value != previous["status"]:
            self.dispatcher.emit_webhook(lead.id, event_for_update(previous["status"], lead.status.value), previous)
        return lead, changes

    # --- export ---

    def export_to_webhook(self, request: WebhookExportRequest, principal: Principal) -> WebhookExportResult:
        require_super_admin(principal)
        if not self.webhook.is_enabled:
            raise ValidationError("Outbound webhook URL is not configured", code="webhook_disabled")
        limit = min(request.limit or settings.bulk_export_limit, settings.bulk_export_limit)
        query = {}
        if request.agency_id:
            query["agency_id"] = request.agency_id
        if request.status:
            query["status"] = request.status
        lead_ids = [lead.id for lead in self.leads.find(query, sort=[("created_at", -1)], limit=limit)]
        queued = self.dispatcher.bulk_export(lead_ids) if lead_ids else False
        logger.info("lead_webhook_export_requested", count=len(lead_ids), queued=queued)
        return WebhookExportResult(queued=queued, count=len(lead_ids))
