"""create model_entries and queue_messages tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "model_entries",
        sa.Column("model_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "parameters",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Training parameters supplied at submission",
        ),
        sa.Column(
            "parsing_report",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Aggregated input parsing report of the last training run",
        ),
        sa.Column(
            "statistics",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Training durations and dataset counts",
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "owner",
            sa.String(length=64),
            nullable=True,
            comment="Queue message id holding the InProgress claim",
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("model_id"),
    )
    op.create_index("ix_model_entries_created_at", "model_entries", ["created_at"], unique=False)
    op.create_index("ix_model_entries_status", "model_entries", ["status"], unique=False)

    op.create_table(
        "queue_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("queue_name", sa.String(length=64), nullable=False),
        sa.Column("model_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("operation", sa.String(length=16), nullable=False, comment="Train, Delete"),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "visible_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Message is hidden from dequeue until this instant",
        ),
        sa.Column("dequeue_count", sa.Integer(), nullable=False),
        sa.Column(
            "pop_receipt",
            sa.String(length=64),
            nullable=True,
            comment="Token of the current lease; rotates on every dequeue",
        ),
        sa.Column("dead_lettered_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_queue_messages_dequeue",
        "queue_messages",
        ["queue_name", "state", "visible_at"],
        unique=False,
    )
    op.create_index("ix_queue_messages_model_id", "queue_messages", ["model_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_queue_messages_model_id", table_name="queue_messages")
    op.drop_index("ix_queue_messages_dequeue", table_name="queue_messages")
    op.drop_table("queue_messages")
    op.drop_index("ix_model_entries_status", table_name="model_entries")
    op.drop_index("ix_model_entries_created_at", table_name="model_entries")
    op.drop_table("model_entries")
