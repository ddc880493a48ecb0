"""Lead document table.

The full aggregate lives in ``document``; the scalar columns mirror the
fields the engine filters on and are rewritten on every save.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from leadengine.database import Base


class LeadRecord(Base):
    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    agency_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("agencies.id"), nullable=False, index=True)
    lead_code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)

    # Indexed mirrors of document fields
    status: Mapped[str] = mapped_column(String(30), default="new", index=True)
    priority: Mapped[str] = mapped_column(String(20), default="Warm")
    source: Mapped[str] = mapped_column(String(20), default="website")
    assigned_agent_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True, index=True)
    property_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    team: Mapped[str | None] = mapped_column(String(100), nullable=True)
    score: Mapped[int] = mapped_column(Integer, default=0)

    # Blind indexes (sha256) so duplicate lookup works with encrypted contacts
    email_key: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    phone_key: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Earliest pending reminder, task notice or visit date; drives the reminder sweep
    next_due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    document: Mapped[dict] = mapped_column(JSONB, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
