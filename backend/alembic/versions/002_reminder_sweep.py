"""Reminder sweep: index leads by their next due reminder.

Revision ID: 002
Revises: 001
Create Date: 2025-02-01
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("leads", sa.Column("next_due_at", sa.DateTime(timezone=True), nullable=True))
    op.create_index("ix_leads_next_due_at", "leads", ["next_due_at"])


def downgrade() -> None:
    op.drop_index("ix_leads_next_due_at", table_name="leads")
    op.drop_column("leads", "next_due_at")
