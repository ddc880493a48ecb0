"""Property model - only the fields lead assignment and scoping read."""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from leadengine.database import Base


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    agency_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("agencies.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    agent_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), ForeignKey("agents.id"), nullable=True)
    assigned_agent_ids: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
