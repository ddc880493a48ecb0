"""Agency model - the tenant that owns leads, agents and properties."""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, Integer, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leadengine.database import Base


class Agency(Base):
    __tablename__ = "agencies"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Lead settings
    auto_assign_leads: Mapped[bool] = mapped_column(Boolean, default=False)
    assignment_method: Mapped[str] = mapped_column(String(30), default="round_robin")  # round_robin, workload, location, project, source, smart
    sms_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    currency: Mapped[str] = mapped_column(String(10), default="INR")
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Kolkata")
    slack_webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Round-robin rotation cursor, advanced atomically per assignment
    assignment_cursor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Agency {self.slug}>"
