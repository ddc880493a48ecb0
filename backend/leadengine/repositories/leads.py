"""Lead persistence: the document-store contract and its PostgreSQL implementation.

Filters are plain dicts of field predicates:

    {"agency_id": a, "status": {"$in": [...]}, "$or": [{...}, {...}]}

Supported operators: equality, ``$in``, ``$nin``, ``$ne``, ``$gt``, ``$gte``,
``$lt``, ``$lte``, ``$exists`` and ``$contains`` (case-insensitive substring).
``$or`` and ``$and`` take lists of sub-filters. Dotted field names address
nested document fields. Ids that are not UUIDs never match a UUID column.
"""

from enum import Enum
from typing import Protocol

import structlog
from sqlalchemy import and_, false, func, not_, or_, select, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadengine.database import parse_uuid
from leadengine.errors import ConflictError, ValidationError
from leadengine.models.lead import LeadRecord
from leadengine.schemas.lead import Lead, utcnow
from leadengine.services.crypto import ContactCipher, contact_key
from leadengine.services.normalization import normalize_lead

logger = structlog.get_logger()


class LeadRepository(Protocol):
    def find(self, filter: dict, sort: list[tuple[str, int]] | None = None,
             limit: int | None = None, skip: int = 0) -> list[Lead]: ...

    def find_one(self, filter: dict) -> Lead | None: ...

    def find_by_id(self, lead_id: str) -> Lead | None: ...

    def save(self, lead: Lead) -> Lead: ...

    def delete_by_id(self, lead_id: str) -> bool: ...

    def count_documents(self, filter: dict) -> int: ...

    def max_lead_code(self) -> str | None: ...


COLUMN_FIELDS = {
    "id", "agency_id", "lead_code", "status", "priority", "source",
    "assigned_agent_id", "property_id", "team", "score", "created_at", "updated_at",
    "next_due_at",
}

UUID_FIELDS = {"id", "agency_id", "assigned_agent_id", "property_id"}

# Contact fields are matched through their blind index
KEY_FIELDS = {"contact.email": "email_key", "contact.phone": "phone_key"}


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_plain(v) for v in value]
    return value


def index_fields(lead: Lead) -> dict:
    """Scalar column values mirrored from the lead document."""
    return {
        "agency_id": lead.agency_id,
        "lead_code": lead.lead_code,
        "status": lead.status.value,
        "priority": lead.priority.value,
        "source": lead.source.value,
        "assigned_agent_id": lead.assigned_agent_id,
        "property_id": lead.property_id,
        "team": lead.team,
        "score": lead.score,
        "email_key": contact_key(lead.contact.email),
        "phone_key": contact_key(lead.contact.phone),
        "next_due_at": lead.next_due_at,
        "created_at": lead.created_at,
        "updated_at": lead.updated_at,
    }


def _field_expr(field: str):
    if field in COLUMN_FIELDS:
        return getattr(LeadRecord, field), False
    if field in KEY_FIELDS:
        return getattr(LeadRecord, KEY_FIELDS[field]), True
    return LeadRecord.document[tuple(field.split("."))].astext, False


def _uuid_predicate(field: str, condition):
    column = getattr(LeadRecord, field)
    if not isinstance(condition, dict):
        if condition is None:
            return column.is_(None)
        value = parse_uuid(condition)
        return column == value if value else false()

    clauses = []
    for op, operand in condition.items():
        if op in ("$in", "$nin"):
            values = [v for v in (parse_uuid(x) for x in operand) if v]
            clause = column.in_(values)
            clauses.append(clause if op == "$in" else not_(clause))
        elif op == "$ne":
            if operand is None:
                clauses.append(column.is_not(None))
            else:
                value = parse_uuid(operand)
                clauses.append(or_(column != value, column.is_(None)) if value else true())
        elif op == "$exists":
            clauses.append(column.is_not(None) if operand else column.is_(None))
        else:
            raise ValueError(f"Unsupported filter operator on {field}: {op}")
    return and_(*clauses)


def _predicate(field: str, condition):
    if field in UUID_FIELDS:
        return _uuid_predicate(field, condition)
    column, hashed = _field_expr(field)
    is_json = field not in COLUMN_FIELDS and not hashed

    def coerce(v):
        v = _plain(v)
        if hashed:
            return contact_key(v)
        if is_json and v is not None and not isinstance(v, str):
            return str(v).lower() if isinstance(v, bool) else str(v)
        return v

    if not isinstance(condition, dict):
        value = coerce(condition)
        return column.is_(None) if value is None else column == value

    clauses = []
    for op, operand in condition.items():
        if op == "$in":
            clauses.append(column.in_([coerce(v) for v in operand]))
        elif op == "$nin":
            clauses.append(not_(column.in_([coerce(v) for v in operand])))
        elif op == "$ne":
            value = coerce(operand)
            clauses.append(column.is_not(None) if value is None else or_(column != value, column.is_(None)))
        elif op == "$gt":
            clauses.append(column > coerce(operand))
        elif op == "$gte":
            clauses.append(column >= coerce(operand))
        elif op == "$lt":
            clauses.append(column < coerce(operand))
        elif op == "$lte":
            clauses.append(column <= coerce(operand))
        elif op == "$exists":
            clauses.append(column.is_not(None) if operand else column.is_(None))
        elif op == "$contains":
            if hashed:
                raise ValueError(f"$contains is not supported on {field}")
            clauses.append(column.ilike(f"%{operand}%"))
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return and_(*clauses)


def build_where(filter: dict):
    clauses = []
    for field, condition in (filter or {}).items():
        if field == "$or":
            clauses.append(or_(*[build_where(sub) for sub in condition]))
        elif field == "$and":
            clauses.append(and_(*[build_where(sub) for sub in condition]))
        else:
            clauses.append(_predicate(field, condition))
    return and_(*clauses) if clauses else true()


class SqlLeadRepository:
    """Lead documents in PostgreSQL. Saves are whole-document, last write wins."""

    def __init__(self, session: Session, cipher: ContactCipher | None = None):
        self.session = session
        self.cipher = cipher or ContactCipher()

    def _to_lead(self, record: LeadRecord) -> Lead:
        doc = dict(record.document)
        doc["contact"] = self.cipher.decrypt_contact(doc.get("contact") or {})
        return Lead.model_validate(doc)

    def find(self, filter, sort=None, limit=None, skip=0):
        stmt = select(LeadRecord).where(build_where(filter))
        for field, direction in sort or [("created_at", -1)]:
            column = getattr(LeadRecord, field)
            stmt = stmt.order_by(column.desc() if direction < 0 else column.asc())
        if skip:
            stmt = stmt.offset(skip)
        if limit:
            stmt = stmt.limit(limit)
        return [self._to_lead(r) for r in self.session.execute(stmt).scalars()]

    def find_one(self, filter):
        found = self.find(filter, limit=1)
        return found[0] if found else None

    def _get_record(self, lead_id) -> LeadRecord | None:
        record_id = parse_uuid(lead_id)
        return self.session.get(LeadRecord, record_id) if record_id else None

    def find_by_id(self, lead_id):
        record = self._get_record(lead_id)
        return self._to_lead(record) if record else None

    def save(self, lead):
        normalize_lead(lead)
        fields = index_fields(lead)
        for column in ("agency_id", "assigned_agent_id", "property_id"):
            if fields[column] is None:
                continue
            fields[column] = parse_uuid(fields[column])
            if fields[column] is None:
                raise ValidationError(f"{column} is not a valid id", code="invalid_id",
                                      errors=[f"{column}: must be a UUID"])
        if parse_uuid(lead.id) is None:
            raise ValidationError("Lead id is not a valid id", code="invalid_id")

        lead.updated_at = utcnow()
        fields["updated_at"] = lead.updated_at
        doc = lead.model_dump(mode="json")
        doc["contact"] = self.cipher.encrypt_contact(doc["contact"])

        record = self._get_record(lead.id)
        if record is None:
            record = LeadRecord(id=lead.id)
            self.session.add(record)
        for column, value in fields.items():
            setattr(record, column, value)
        record.document = doc

        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning("lead_save_conflict", lead_id=lead.id, lead_code=lead.lead_code, error=str(e))
            raise ConflictError(f"Lead code {lead.lead_code} already exists", code="lead_code_conflict")
        return lead

    def delete_by_id(self, lead_id):
        record = self._get_record(lead_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.commit()
        return True

    def count_documents(self, filter):
        stmt = select(func.count()).select_from(LeadRecord).where(build_where(filter))
        return self.session.execute(stmt).scalar_one()

    def max_lead_code(self):
        # Numeric order: a longer code is always the larger number
        stmt = (
            select(LeadRecord.lead_code)
            .where(LeadRecord.lead_code.like("LEAD-%"))
            .order_by(func.length(LeadRecord.lead_code).desc(), LeadRecord.lead_code.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()
