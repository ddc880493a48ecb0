"""Initial schema: agencies, agents, properties and lead documents.

Revision ID: 001
Revises: None
Create Date: 2025-01-01
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Agencies
    op.create_table(
        "agencies",
        sa.Column("id", UUID(as_uuid=False), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), unique=True, nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("auto_assign_leads", sa.Boolean, server_default="false"),
        sa.Column("assignment_method", sa.String(30), server_default="round_robin"),
        sa.Column("sms_notifications", sa.Boolean, server_default="false"),
        sa.Column("currency", sa.String(10), server_default="INR"),
        sa.Column("timezone", sa.String(64), server_default="Asia/Kolkata"),
        sa.Column("slack_webhook_url", sa.Text, nullable=True),
        sa.Column("assignment_cursor", sa.Integer, server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_agencies_slug", "agencies", ["slug"])

    # Agents
    op.create_table(
        "agents",
        sa.Column("id", UUID(as_uuid=False), primary_key=True),
        sa.Column("agency_id", UUID(as_uuid=False), sa.ForeignKey("agencies.id"), nullable=True),
        sa.Column("role", sa.String(30), server_default="agent"),
        sa.Column("first_name", sa.String(100), server_default=""),
        sa.Column("last_name", sa.String(100), server_default=""),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("team", sa.String(100), nullable=True),
        sa.Column("is_team_lead", sa.Boolean, server_default="false"),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        sa.Column("locations", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_agents_agency_id", "agents", ["agency_id"])
    op.create_index("ix_agents_created_at", "agents", ["created_at"])

    # Properties
    op.create_table(
        "properties",
        sa.Column("id", UUID(as_uuid=False), primary_key=True),
        sa.Column("agency_id", UUID(as_uuid=False), sa.ForeignKey("agencies.id"), nullable=False),
        sa.Column("title", sa.String(255), server_default=""),
        sa.Column("agent_id", UUID(as_uuid=False), sa.ForeignKey("agents.id"), nullable=True),
        sa.Column("assigned_agent_ids", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_properties_agency_id", "properties", ["agency_id"])

    # Leads
    op.create_table(
        "leads",
        sa.Column("id", UUID(as_uuid=False), primary_key=True),
        sa.Column("agency_id", UUID(as_uuid=False), sa.ForeignKey("agencies.id"), nullable=False),
        sa.Column("lead_code", sa.String(20), unique=True, nullable=True),
        sa.Column("status", sa.String(30), server_default="new"),
        sa.Column("priority", sa.String(20), server_default="Warm"),
        sa.Column("source", sa.String(20), server_default="website"),
        sa.Column("assigned_agent_id", UUID(as_uuid=False), nullable=True),
        sa.Column("property_id", UUID(as_uuid=False), nullable=True),
        sa.Column("team", sa.String(100), nullable=True),
        sa.Column("score", sa.Integer, server_default="0"),
        sa.Column("email_key", sa.String(64), nullable=True),
        sa.Column("phone_key", sa.String(64), nullable=True),
        sa.Column("document", JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_leads_agency_id", "leads", ["agency_id"])
    op.create_index("ix_leads_status", "leads", ["status"])
    op.create_index("ix_leads_assigned_agent_id", "leads", ["assigned_agent_id"])
    op.create_index("ix_leads_email_key", "leads", ["email_key"])
    op.create_index("ix_leads_phone_key", "leads", ["phone_key"])
    op.create_index("ix_leads_created_at", "leads", ["created_at"])
    op.create_index("ix_leads_document", "leads", ["document"], postgresql_using="gin")


def downgrade() -> None:
    op.drop_table("leads")
    op.drop_table("properties")
    op.drop_table("agents")
    op.drop_table("agencies")
